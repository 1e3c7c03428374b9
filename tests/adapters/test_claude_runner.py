"""Tests for the Claude CLI runner."""

import asyncio
import json
from pathlib import Path

import pytest

from discoagent.adapters.llm.claude_runner import (
    ClaudeRunner,
    available_agents,
    create_runner,
)
from discoagent.config import ClaudeConfig
from discoagent.domain.models import AssistantError, FailureKind
from discoagent.ports.outbound import RunnerPort


def run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class _FakeProc:
    def __init__(self, returncode=0, stdout=b"", stderr=b"", delay=0):
        self.returncode = returncode
        self._stdout = stdout
        self._stderr = stderr
        self._delay = delay
        self.killed = False

    async def communicate(self):
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._stdout, self._stderr

    def kill(self):
        self.killed = True

    async def wait(self):
        return self.returncode


def _patch_exec(monkeypatch, proc, captured=None):
    async def fake_create_subprocess_exec(*args, **kwargs):
        if captured is not None:
            captured["args"] = args
            stdin = kwargs["stdin"]
            captured["stdin_path"] = Path(stdin.name)
            captured["prompt"] = Path(stdin.name).read_text(encoding="utf-8")
        return proc

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)


def _json(**fields):
    return json.dumps(fields).encode()


def test_create_runner_rejects_unknown_agent():
    with pytest.raises(ValueError, match="Unknown agent type: gpt"):
        create_runner("gpt")


def test_create_runner_returns_claude_runner():
    runner = create_runner("Claude", ClaudeConfig(model="opus"))
    assert isinstance(runner, ClaudeRunner)
    assert isinstance(runner, RunnerPort)
    assert runner.config.model == "opus"
    assert available_agents() == ("claude",)


def test_build_command_variants():
    runner = ClaudeRunner(ClaudeConfig(command="claude", model="sonnet"))
    base = ["claude", "--print", "--model", "sonnet", "--output-format", "json"]

    assert runner.build_command() == base
    assert runner.build_command(resume_token="abc") == base + ["--resume", "abc"]
    assert runner.build_command(max_turns=5) == base + ["--max-turns", "5"]


def test_invoke_parses_json_and_removes_prompt_file(monkeypatch):
    captured = {}
    proc = _FakeProc(
        stdout=_json(result="Hello!", total_cost_usd=0.0123, session_id="sess-1")
    )
    _patch_exec(monkeypatch, proc, captured)

    reply = run(ClaudeRunner().invoke("[Discord message from a]: hi", resume_token="old"))

    assert reply.result == "Hello!"
    assert reply.cost == pytest.approx(0.0123)
    assert reply.session_id == "sess-1"
    assert captured["prompt"] == "[Discord message from a]: hi"
    assert "--resume" in captured["args"]
    assert captured["stdin_path"].name.startswith("claude-prompt-")
    assert not captured["stdin_path"].exists()


def test_invoke_missing_cost_defaults_to_zero(monkeypatch):
    _patch_exec(monkeypatch, _FakeProc(stdout=_json(result="ok", session_id="s")))

    reply = run(ClaudeRunner().invoke("hi"))

    assert reply.cost == 0.0


def test_invoke_non_json_output_returned_raw(monkeypatch):
    _patch_exec(monkeypatch, _FakeProc(stdout=b"plain text answer\n"))

    reply = run(ClaudeRunner().invoke("hi"))

    assert reply.result == "plain text answer"
    assert reply.cost == 0.0
    assert reply.session_id is None


def test_invoke_empty_output_returns_none(monkeypatch):
    _patch_exec(monkeypatch, _FakeProc(stdout=b"", stderr=b""))

    assert run(ClaudeRunner().invoke("hi")) is None


def test_invoke_stderr_only_is_error(monkeypatch):
    _patch_exec(monkeypatch, _FakeProc(stdout=b"", stderr=b"rate limited"))

    with pytest.raises(AssistantError) as exc_info:
        run(ClaudeRunner().invoke("hi"))

    assert exc_info.value.kind is FailureKind.OTHER
    assert exc_info.value.message == "Error from Claude: rate limited"


def test_invoke_cli_not_found(monkeypatch):
    captured = {}

    async def fake_create_subprocess_exec(*args, **kwargs):
        captured["stdin_path"] = Path(kwargs["stdin"].name)
        raise FileNotFoundError("claude")

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_create_subprocess_exec)

    with pytest.raises(AssistantError) as exc_info:
        run(ClaudeRunner().invoke("hi"))

    assert exc_info.value.kind is FailureKind.NOT_FOUND
    assert "not found" in exc_info.value.message
    assert not captured["stdin_path"].exists()


def test_invoke_timeout_kills_process(monkeypatch):
    captured = {}
    proc = _FakeProc(stdout=_json(result="late"), delay=5)
    _patch_exec(monkeypatch, proc, captured)

    runner = ClaudeRunner(ClaudeConfig(timeout=0.05))
    with pytest.raises(AssistantError) as exc_info:
        run(runner.invoke("hi"))

    assert exc_info.value.kind is FailureKind.TIMEOUT
    assert "timed out" in exc_info.value.message
    assert proc.killed is True
    assert not captured["stdin_path"].exists()


def test_nonzero_exit_with_resume_token_is_invalid_session(monkeypatch):
    _patch_exec(
        monkeypatch,
        _FakeProc(returncode=1, stderr=b"No conversation found with session ID: abc"),
    )

    with pytest.raises(AssistantError) as exc_info:
        run(ClaudeRunner().invoke("hi", resume_token="abc"))

    assert exc_info.value.kind is FailureKind.INVALID_SESSION


def test_nonzero_exit_without_resume_token_is_other(monkeypatch):
    _patch_exec(monkeypatch, _FakeProc(returncode=1, stderr=b"invalid api key"))

    with pytest.raises(AssistantError) as exc_info:
        run(ClaudeRunner().invoke("hi"))

    assert exc_info.value.kind is FailureKind.OTHER
    assert exc_info.value.message == "invalid api key"


def test_is_error_payload_raises(monkeypatch):
    _patch_exec(
        monkeypatch,
        _FakeProc(stdout=_json(is_error=True, result="Credit balance is too low")),
    )

    with pytest.raises(AssistantError) as exc_info:
        run(ClaudeRunner().invoke("hi"))

    assert exc_info.value.kind is FailureKind.OTHER
    assert exc_info.value.message == "Credit balance is too low"


def test_is_error_payload_with_resume_token_invalid_session(monkeypatch):
    _patch_exec(
        monkeypatch,
        _FakeProc(stdout=_json(is_error=True, result="Invalid session")),
    )

    with pytest.raises(AssistantError) as exc_info:
        run(ClaudeRunner().invoke("hi", resume_token="stale"))

    assert exc_info.value.kind is FailureKind.INVALID_SESSION
