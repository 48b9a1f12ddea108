import json
import os
import sys
import textwrap
import time

import pytest

from agent.base_invoker import BaseAgentInvoker
from agent.cli_invoker import CliAgentInvoker, find_agent_binary

pytestmark = pytest.mark.skipif(os.name != "posix", reason="fake agents are shebang scripts")

PRELUDE = """\
import json, os, signal, sys, time

def emit(obj):
    sys.stdout.write(json.dumps(obj) + "\\n")
    sys.stdout.flush()

def say(text):
    emit({"type": "assistant", "message": {"content": [{"type": "text", "text": text}]}})

"""


def make_agent(tmp_path, body, name="fake-agent"):
    path = tmp_path / name
    path.write_text(f"#!{sys.executable}\n" + PRELUDE + textwrap.dedent(body))
    path.chmod(0o755)
    return str(path)


def test_streams_events_and_returns_result(tmp_path, monkeypatch):
    argv_out = tmp_path / "argv.json"
    monkeypatch.setenv("ARGV_OUT", str(argv_out))
    agent = make_agent(
        tmp_path,
        """
        with open(os.environ["ARGV_OUT"], "w") as f:
            json.dump({"argv": sys.argv[1:], "key": os.environ.get("CURSOR_API_KEY")}, f)
        emit({"type": "system", "subtype": "init"})
        emit({"type": "thinking", "subtype": "delta"})
        say('{"a": ')
        say('1}')
        emit({"type": "result", "subtype": "success", "is_error": False, "result": '{"a": 1}'})
        """,
    )
    invoker = CliAgentInvoker(binary=agent, api_key="secret-key", default_model="composer-1")
    seen = []

    result = invoker.invoke("What is MRR?", system_prompt="Return JSON", on_event=seen.append)

    assert result.success
    assert result.error is None
    assert result.text == '{"a": 1}'
    assert [e.type for e in seen] == ["system", "thinking", "assistant", "assistant", "result"]
    assert len(result.events) == 5

    captured = json.loads(argv_out.read_text())
    argv = captured["argv"]
    assert argv[:6] == ["--print", "--output-format", "stream-json", "--force", "--model", "composer-1"]
    assert argv[-1] == BaseAgentInvoker.compose_prompt("What is MRR?", "Return JSON")
    assert "SYSTEM INSTRUCTIONS:\nReturn JSON" in argv[-1]
    # the credential travels in the environment only
    assert captured["key"] == "secret-key"
    assert not any("secret-key" in arg for arg in argv)


def test_model_override_and_no_force(tmp_path, monkeypatch):
    argv_out = tmp_path / "argv.json"
    monkeypatch.setenv("ARGV_OUT", str(argv_out))
    agent = make_agent(
        tmp_path,
        """
        with open(os.environ["ARGV_OUT"], "w") as f:
            json.dump(sys.argv[1:], f)
        emit({"type": "result", "subtype": "success", "result": "ok"})
        """,
    )
    result = CliAgentInvoker(binary=agent, default_model="composer-1").invoke(
        "hi", model="other-model", force=False
    )
    assert result.success
    assert result.text == "ok"
    assert json.loads(argv_out.read_text()) == [
        "--print", "--output-format", "stream-json", "--model", "other-model", "hi"
    ]


def test_returns_at_result_even_if_process_lingers(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        say("done")
        emit({"type": "result", "subtype": "success"})
        time.sleep(10)
        """,
    )
    started = time.monotonic()
    result = CliAgentInvoker(binary=agent, timeout_s=30).invoke("x")
    assert result.success
    assert result.text == "done"
    assert time.monotonic() - started < 5


def test_error_result_event(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        say("partial")
        emit({"type": "result", "subtype": "error", "is_error": True, "result": "quota exceeded"})
        """,
    )
    result = CliAgentInvoker(binary=agent).invoke("x")
    assert not result.success
    assert result.error == "quota exceeded"
    assert result.text == "partial"


def test_eof_with_zero_exit_is_success(tmp_path):
    agent = make_agent(tmp_path, 'say("hello")\n')
    result = CliAgentInvoker(binary=agent).invoke("x")
    assert result.success
    assert result.text == "hello"
    assert result.exit_code == 0


def test_eof_with_nonzero_exit_reports_stderr(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        sys.stderr.write("authentication required\\n")
        sys.exit(3)
        """,
    )
    result = CliAgentInvoker(binary=agent).invoke("x")
    assert not result.success
    assert result.exit_code == 3
    assert result.error == "authentication required"


def test_nonzero_exit_without_stderr(tmp_path):
    agent = make_agent(tmp_path, "sys.exit(3)\n")
    result = CliAgentInvoker(binary=agent).invoke("x")
    assert result.error == "Agent exited with code 3"


def test_unparseable_lines_are_skipped(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        print("Loading...", flush=True)
        print("{not json", flush=True)
        emit({"type": "telemetry", "value": 1})
        emit([1, 2, 3])
        say("kept")
        emit({"type": "result", "subtype": "success"})
        """,
    )
    result = CliAgentInvoker(binary=agent).invoke("x")
    assert result.success
    assert result.text == "kept"
    assert [e.type for e in result.events] == ["assistant", "result"]


def test_timeout_keeps_partial_text(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        say("partial answer")
        time.sleep(30)
        """,
    )
    started = time.monotonic()
    result = CliAgentInvoker(binary=agent, timeout_s=0.5, kill_grace_s=1).invoke("x")
    assert not result.success
    assert result.timed_out
    assert result.error == "Agent timed out after 0.5s"
    assert result.text == "partial answer"
    assert time.monotonic() - started < 10


def test_timeout_kills_process_that_ignores_sigterm(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        say("stubborn")
        time.sleep(30)
        """,
    )
    started = time.monotonic()
    result = CliAgentInvoker(binary=agent, timeout_s=0.5, kill_grace_s=0.3).invoke("x")
    assert result.timed_out
    assert time.monotonic() - started < 10


def test_timeout_also_stops_helpers_holding_stdout(tmp_path):
    path = tmp_path / "shell-agent"
    path.write_text(
        "#!/bin/sh\n"
        'echo \'{"type": "assistant", "message": {"content": [{"text": "partial"}]}}\'\n'
        "sleep 8 &\n"
        "sleep 30\n"
    )
    path.chmod(0o755)

    started = time.monotonic()
    result = CliAgentInvoker(binary=str(path), timeout_s=0.5, kill_grace_s=0.3).invoke("x")

    assert result.timed_out
    assert result.text == "partial"
    assert time.monotonic() - started < 5


def test_missing_binary(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))
    monkeypatch.setenv("HOME", str(tmp_path))
    result = CliAgentInvoker(binary="definitely-not-an-agent-binary").invoke("x")
    assert not result.success
    assert result.error.startswith("Agent binary 'definitely-not-an-agent-binary' not found")


def test_spawn_failure_is_reported(tmp_path):
    path = tmp_path / "broken-agent"
    path.write_text("#!/nonexistent/interpreter\n")
    path.chmod(0o755)
    result = CliAgentInvoker(binary=str(path)).invoke("x")
    assert not result.success
    assert result.error.startswith("Failed to start agent process")


def test_callback_errors_do_not_break_the_stream(tmp_path):
    agent = make_agent(
        tmp_path,
        """
        say("still fine")
        emit({"type": "result", "subtype": "success"})
        """,
    )

    def explode(event):
        raise RuntimeError("listener bug")

    result = CliAgentInvoker(binary=agent).invoke("x", on_event=explode)
    assert result.success
    assert result.text == "still fine"


def test_find_agent_binary_checks_install_dirs(tmp_path, monkeypatch):
    bin_dir = tmp_path / ".local" / "bin"
    bin_dir.mkdir(parents=True)
    make_agent(bin_dir, 'emit({"type": "result"})\n', name="my-agent")
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    monkeypatch.setenv("HOME", str(tmp_path))

    assert find_agent_binary("my-agent") == str(bin_dir / "my-agent")
    assert find_agent_binary("other-agent") is None


def test_find_agent_binary_rejects_non_executable_path(tmp_path):
    path = tmp_path / "agent"
    path.write_text("not executable")
    assert find_agent_binary(str(path)) is None
