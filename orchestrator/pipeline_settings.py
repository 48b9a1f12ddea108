from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from orchestrator.retry_controller import RetryPolicy

REQUIRED_PROGRESS_STEPS = ("planning", "querying", "searching", "preparing", "generating", "validating")


@dataclass(frozen=True)
class ProgressStep:
    phase: str
    message: str
    progress: int
    subtext: str | None = None


@dataclass(frozen=True)
class RateLimitSettings:
    ip_max_requests: int = 100
    ip_window_seconds: float = 3600
    session_max_requests: int = 20
    session_window_seconds: float = 86400
    widget_min_spacing_seconds: float = 5
    widget_max_refreshes: int = 50
    cleanup_interval_seconds: float = 300


@dataclass(frozen=True)
class AgentEventCatalog:
    throttle_seconds: float = 2.0
    thinking_deltas_per_message: int = 15
    tools: dict[str, str] = field(default_factory=dict)
    phases: dict[str, dict[str, list[str]]] = field(default_factory=dict)

    def messages(self, phase: str, kind: str) -> list[str]:
        """Messages of one kind (init/thinking/complete); unknown phases use planning's."""
        catalog = self.phases.get(phase) or self.phases.get("planning") or {}
        return list(catalog.get(kind, []))


@dataclass(frozen=True)
class PipelineSettings:
    retry: RetryPolicy
    rate_limits: RateLimitSettings
    progress: dict[str, ProgressStep]
    fallback_step: ProgressStep
    agent_events: AgentEventCatalog

    @classmethod
    def from_yaml(cls, path: str | None = None) -> "PipelineSettings":
        settings_path = (
            Path(path) if path else Path(__file__).resolve().parent.parent / "config" / "pipeline.yaml"
        )
        if not settings_path.exists():
            raise ValueError(f"Pipeline settings not found at {settings_path}")

        data = yaml.safe_load(settings_path.read_text(encoding="utf-8")) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineSettings":
        retry_data = data.get("retry", {})
        retry = RetryPolicy(
            max_retries=int(retry_data.get("max_retries", 2)),
            backoff_ms=int(retry_data.get("backoff_ms", 500)),
        )

        limits = data.get("rate_limits", {})
        ip = limits.get("ip", {})
        session = limits.get("session", {})
        widget = limits.get("widget", {})
        rate_limits = RateLimitSettings(
            ip_max_requests=int(ip.get("max_requests", 100)),
            ip_window_seconds=float(ip.get("window_seconds", 3600)),
            session_max_requests=int(session.get("max_requests", 20)),
            session_window_seconds=float(session.get("window_seconds", 86400)),
            widget_min_spacing_seconds=float(widget.get("min_spacing_seconds", 5)),
            widget_max_refreshes=int(widget.get("max_refreshes", 50)),
            cleanup_interval_seconds=float(limits.get("cleanup_interval_seconds", 300)),
        )

        progress_data = dict(data.get("progress", {}))
        fallback_data = progress_data.pop("fallback", None)
        missing = [name for name in REQUIRED_PROGRESS_STEPS if name not in progress_data]
        if missing:
            raise ValueError(f"Invalid pipeline settings: missing progress steps {missing}")
        if not fallback_data:
            raise ValueError("Invalid pipeline settings: missing progress.fallback")

        progress = {
            name: ProgressStep(
                phase=step.get("phase", name),
                message=step["message"],
                progress=int(step["progress"]),
                subtext=step.get("subtext"),
            )
            for name, step in progress_data.items()
        }
        fallback_step = ProgressStep(
            phase=fallback_data.get("phase", "preparing"),
            message=fallback_data["message"],
            progress=int(fallback_data["progress"]),
            subtext=fallback_data.get("subtext"),
        )

        events = data.get("agent_events", {})
        agent_events = AgentEventCatalog(
            throttle_seconds=float(events.get("throttle_seconds", 2)),
            thinking_deltas_per_message=int(events.get("thinking_deltas_per_message", 15)),
            tools=dict(events.get("tools", {})),
            phases={
                phase: {kind: list(messages) for kind, messages in kinds.items()}
                for phase, kinds in events.get("phases", {}).items()
            },
        )

        return cls(
            retry=retry,
            rate_limits=rate_limits,
            progress=progress,
            fallback_step=fallback_step,
            agent_events=agent_events,
        )

    def step(self, name: str) -> ProgressStep:
        return self.progress[name]
