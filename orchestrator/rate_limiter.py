"""Thread-safe in-memory rate limiter for the widget refresh path."""

import threading
import time
from dataclasses import dataclass
from typing import Callable

from orchestrator.pipeline_settings import RateLimitSettings
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _WindowEntry:
    count: int
    reset_at: float


@dataclass
class _WidgetEntry:
    last_refresh: float
    total_refreshes: int


@dataclass(frozen=True)
class WidgetLimitDecision:
    allowed: bool
    reason: str | None = None


class RateLimiter:
    """
    Three independent quotas:
    - per client IP: fixed window (100 per hour by default)
    - per session: fixed window (20 per 24h)
    - per widget instance: minimum spacing (5s) and a lifetime cap (50)

    Every check-and-increment happens under one lock. IP and session entries
    are purged by ``cleanup`` once their window has passed; widget entries are
    kept for the life of the process.
    """

    def __init__(
        self,
        settings: RateLimitSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings or RateLimitSettings()
        self._clock = clock
        self._lock = threading.Lock()
        self._ip_limits: dict[str, _WindowEntry] = {}
        self._session_limits: dict[str, _WindowEntry] = {}
        self._widget_limits: dict[str, _WidgetEntry] = {}
        self._sweeper: threading.Thread | None = None
        self._stop_sweeper = threading.Event()

    @property
    def settings(self) -> RateLimitSettings:
        return self._settings

    def _check_window(
        self, entries: dict[str, _WindowEntry], key: str, limit: int, window_s: float
    ) -> bool:
        now = self._clock()
        with self._lock:
            entry = entries.get(key)
            if entry is None or now > entry.reset_at:
                entries[key] = _WindowEntry(count=1, reset_at=now + window_s)
                return True
            if entry.count >= limit:
                return False
            entry.count += 1
            return True

    def check_ip_limit(self, ip: str) -> bool:
        allowed = self._check_window(
            self._ip_limits, ip, self._settings.ip_max_requests, self._settings.ip_window_seconds
        )
        if not allowed:
            logger.warning("IP refresh limit exceeded", extra={"extra_fields": {"ip": ip}})
        return allowed

    def check_session_limit(self, session_id: str) -> bool:
        allowed = self._check_window(
            self._session_limits,
            session_id,
            self._settings.session_max_requests,
            self._settings.session_window_seconds,
        )
        if not allowed:
            logger.warning(
                "Session refresh limit exceeded", extra={"extra_fields": {"session_id": session_id}}
            )
        return allowed

    def check_widget_limit(self, widget_id: str) -> WidgetLimitDecision:
        s = self._settings
        now = self._clock()
        with self._lock:
            entry = self._widget_limits.get(widget_id)
            if entry is None:
                self._widget_limits[widget_id] = _WidgetEntry(last_refresh=now, total_refreshes=1)
                return WidgetLimitDecision(allowed=True)

            # spacing rejections don't count toward the lifetime cap
            if now - entry.last_refresh < s.widget_min_spacing_seconds:
                return WidgetLimitDecision(
                    allowed=False,
                    reason=f"Too soon - minimum {s.widget_min_spacing_seconds:g} seconds between refreshes",
                )
            if entry.total_refreshes >= s.widget_max_refreshes:
                return WidgetLimitDecision(
                    allowed=False,
                    reason=f"Widget refresh limit reached ({s.widget_max_refreshes} refreshes)",
                )

            entry.last_refresh = now
            entry.total_refreshes += 1
            return WidgetLimitDecision(allowed=True)

    def remaining_refreshes(self, widget_id: str) -> int:
        with self._lock:
            entry = self._widget_limits.get(widget_id)
            used = entry.total_refreshes if entry else 0
        return max(0, self._settings.widget_max_refreshes - used)

    def cleanup(self) -> int:
        """Drop expired IP and session windows. Returns how many entries were removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            for entries in (self._ip_limits, self._session_limits):
                expired = [key for key, entry in entries.items() if now > entry.reset_at]
                for key in expired:
                    del entries[key]
                removed += len(expired)
        if removed:
            logger.info("Rate limiter cleanup", extra={"extra_fields": {"removed": removed}})
        return removed

    def start_sweeper(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_sweeper.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="rate-limiter-sweeper", daemon=True
        )
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop_sweeper.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop_sweeper.wait(self._settings.cleanup_interval_seconds):
            self.cleanup()
