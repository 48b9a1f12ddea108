"""
Invoker for the cursor-agent command line tool.

The agent is started as a child process in ``--print --output-format stream-json``
mode and emits one JSON event per stdout line. The first of three things to
happen resolves the call: a ``result`` event, end of stream, or the timeout.
"""

import os
import shutil
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Optional

from agent.base_invoker import BaseAgentInvoker, EventCallback
from models.agent_result import AgentEvent, AgentResult
from utils.logger import get_logger, is_debug_enabled

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
KILL_GRACE_SECONDS = 5.0
FALLBACK_BINARY_DIRS = ("~/.local/bin", "~/.cursor/bin", "/usr/local/bin")


def find_agent_binary(binary: str) -> Optional[str]:
    """
    Resolve the agent executable.

    Absolute paths are taken as-is. Bare names are looked up on PATH and then in
    the usual install locations of the cursor-agent installer.
    """
    if os.path.isabs(binary):
        return binary if os.access(binary, os.X_OK) else None

    found = shutil.which(binary)
    if found:
        return found

    for directory in FALLBACK_BINARY_DIRS:
        candidate = Path(directory).expanduser() / binary
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    return None


class _StreamState:
    """Mutable state shared by the reader, the stderr pump and the timeout timer."""

    def __init__(self):
        self._lock = threading.Lock()
        self._resolved = False
        self.text_parts: list[str] = []
        self.events: list[AgentEvent] = []
        self.stderr_lines: list[str] = []

    def resolve(self) -> bool:
        """Claim the right to produce the result. Only the first caller gets True."""
        with self._lock:
            if self._resolved:
                return False
            self._resolved = True
            return True

    @property
    def resolved(self) -> bool:
        with self._lock:
            return self._resolved

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def stderr(self) -> str:
        return "".join(self.stderr_lines).strip()


class CliAgentInvoker(BaseAgentInvoker):
    """
    Runs the external agent CLI once per call.
    Never raises for agent failures; spawn errors and timeouts come back as
    unsuccessful AgentResults.
    """

    def __init__(
        self,
        binary: str = "cursor-agent",
        api_key: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
        kill_grace_s: float = KILL_GRACE_SECONDS,
    ):
        super().__init__(default_model=default_model)
        self.binary = binary
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.kill_grace_s = kill_grace_s

    @classmethod
    def from_config(cls, config) -> "CliAgentInvoker":
        return cls(
            binary=config.AGENT_BINARY,
            api_key=config.CURSOR_API_KEY,
            default_model=config.DEFAULT_MODEL,
            timeout_s=config.AGENT_TIMEOUT_SECONDS,
        )

    def build_argv(self, executable: str, prompt: str, model: Optional[str], force: bool) -> list[str]:
        argv = [executable, "--print", "--output-format", "stream-json"]
        if force:
            argv.append("--force")
        if model:
            argv.extend(["--model", model])
        argv.append(prompt)
        return argv

    def _child_env(self) -> dict[str, str]:
        env = os.environ.copy()
        if self.api_key:
            env["CURSOR_API_KEY"] = self.api_key
        return env

    def invoke(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        force: bool = True,
        on_event: Optional[EventCallback] = None,
    ) -> AgentResult:
        started = time.monotonic()
        model = model or self.default_model
        full_prompt = self.compose_prompt(prompt, system_prompt)

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        executable = find_agent_binary(self.binary)
        if executable is None:
            error = (
                f"Agent binary '{self.binary}' not found on PATH or in "
                f"{', '.join(FALLBACK_BINARY_DIRS)}"
            )
            logger.error(error, extra={"extra_fields": {"binary": self.binary}})
            return AgentResult(success=False, text="", error=error, duration_ms=elapsed_ms())

        argv = self.build_argv(executable, full_prompt, model, force)
        logger.info(
            "Invoking agent",
            extra={
                "extra_fields": {
                    "binary": executable,
                    "model": model,
                    "prompt_chars": len(full_prompt),
                }
            },
        )
        if is_debug_enabled():
            logger.debug(f"Agent prompt preview: {full_prompt[:500]}")

        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                env=self._child_env(),
                # own process group so a timeout reaches helpers the agent spawned
                start_new_session=True,
            )
        except OSError as e:
            error = f"Failed to start agent process: {e}"
            logger.error(error, extra={"extra_fields": {"binary": executable}})
            return AgentResult(success=False, text="", error=error, duration_ms=elapsed_ms())

        state = _StreamState()

        stderr_thread = threading.Thread(
            target=self._pump_stderr, args=(process, state), name="agent-stderr", daemon=True
        )
        stderr_thread.start()

        timer = threading.Timer(self.timeout_s, self._on_timeout, args=(process, state))
        timer.daemon = True
        timer.start()

        try:
            for line in process.stdout:
                if state.resolved:
                    break
                event = AgentEvent.from_line(line)
                if event is None:
                    continue

                state.events.append(event)
                if event.type == "assistant" and event.text:
                    state.text_parts.append(event.text)
                if is_debug_enabled():
                    logger.debug(
                        "Agent event",
                        extra={"extra_fields": {"type": event.type, "subtype": event.subtype}},
                    )
                self._notify(on_event, event)

                if event.type == "result":
                    if not state.resolve():
                        break
                    timer.cancel()
                    self._reap_in_background(process)
                    return self._result_from_event(event, state, process, elapsed_ms())
        finally:
            timer.cancel()

        if not state.resolve():
            error = f"Agent timed out after {self.timeout_s:g}s"
            logger.error(error, extra={"extra_fields": {"model": model}})
            self._reap_in_background(process)
            return AgentResult(
                success=False,
                text=state.text,
                events=list(state.events),
                error=error,
                duration_ms=elapsed_ms(),
                timed_out=True,
            )

        exit_code = process.wait()
        stderr_thread.join(timeout=1.0)

        success = exit_code == 0
        error = None
        if not success:
            error = state.stderr or f"Agent exited with code {exit_code}"
            logger.error(
                "Agent exited without a result",
                extra={"extra_fields": {"exit_code": exit_code, "stderr": state.stderr[:500]}},
            )
        return AgentResult(
            success=success,
            text=state.text,
            events=list(state.events),
            error=error,
            duration_ms=elapsed_ms(),
            exit_code=exit_code,
        )

    def _result_from_event(
        self, event: AgentEvent, state: _StreamState, process: subprocess.Popen, duration_ms: int
    ) -> AgentResult:
        text = state.text
        final = event.raw.get("result")
        if not text and isinstance(final, str):
            text = final

        success = event.is_terminal_success
        error = None
        if not success:
            error = final if isinstance(final, str) and final else "Agent reported an error result"
        logger.info(
            "Agent finished",
            extra={
                "extra_fields": {
                    "success": success,
                    "duration_ms": duration_ms,
                    "events": len(state.events),
                    "text_chars": len(text),
                }
            },
        )
        return AgentResult(
            success=success,
            text=text,
            events=list(state.events),
            error=error,
            duration_ms=duration_ms,
            exit_code=process.returncode,
        )

    @staticmethod
    def _notify(on_event: Optional[EventCallback], event: AgentEvent) -> None:
        if on_event is None:
            return
        try:
            on_event(event)
        except Exception as e:
            logger.warning(
                f"Agent event callback failed: {e}",
                extra={"extra_fields": {"type": event.type}},
            )

    @staticmethod
    def _pump_stderr(process: subprocess.Popen, state: _StreamState) -> None:
        for line in process.stderr:
            state.stderr_lines.append(line)

    @staticmethod
    def _signal_group(process: subprocess.Popen, sig: int) -> None:
        """Signal the agent and every process it started. Gone groups are ignored."""
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass

    def _on_timeout(self, process: subprocess.Popen, state: _StreamState) -> None:
        if not state.resolve():
            return
        logger.warning(
            "Agent timeout reached, terminating process group",
            extra={"extra_fields": {"pid": process.pid, "timeout_s": self.timeout_s}},
        )
        self._signal_group(process, signal.SIGTERM)
        try:
            process.wait(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            logger.warning("Agent ignored SIGTERM, killing", extra={"extra_fields": {"pid": process.pid}})
        # helpers that outlive the agent would keep stdout open
        self._signal_group(process, signal.SIGKILL)

    @staticmethod
    def _reap_in_background(process: subprocess.Popen) -> None:
        """Drain whatever the agent still writes after its result and wait for exit."""

        def drain():
            for _ in process.stdout:
                pass
            process.wait()

        threading.Thread(target=drain, name="agent-reaper", daemon=True).start()
