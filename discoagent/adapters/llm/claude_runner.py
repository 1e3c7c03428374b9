"""Claude CLI runner — implements RunnerPort."""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from discoagent.config import ClaudeConfig
from discoagent.domain.models import AssistantError, AssistantReply, FailureKind

logger = logging.getLogger(__name__)

AVAILABLE_AGENTS = ("claude",)

# Markers in CLI output that mean the resume token is no longer usable.
_INVALID_SESSION_MARKERS = ("no conversation found", "session", "invalid")


async def _run_subprocess(cmd_args: List[str], stdin_path: Path, timeout: float):
    """Run a subprocess with stdin redirected from a file.

    Returns process/stdout/stderr; kills the process on timeout.
    """
    with open(stdin_path, "rb") as stdin:
        proc = await asyncio.create_subprocess_exec(
            *cmd_args,
            stdin=stdin,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            raise
    return proc, stdout, stderr


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace").strip()


class ClaudeRunner:
    """Invokes the ``claude`` CLI with the prompt delivered on stdin.

    Each call writes the prompt to a transient file, pipes it into the process,
    and removes the file afterwards, also when the call fails.
    """

    def __init__(self, config: Optional[ClaudeConfig] = None):
        self.config = config or ClaudeConfig()

    def build_command(
        self,
        resume_token: Optional[str] = None,
        max_turns: Optional[int] = None,
    ) -> List[str]:
        args = [
            self.config.command,
            "--print",
            "--model",
            self.config.model,
            "--output-format",
            "json",
        ]
        if resume_token:
            args.extend(["--resume", resume_token])
        if max_turns:
            args.extend(["--max-turns", str(max_turns)])
        return args

    async def invoke(
        self,
        prompt: str,
        resume_token: Optional[str] = None,
        max_turns: Optional[int] = None,
    ) -> Optional[AssistantReply]:
        """Run one prompt. Returns None when the CLI produced no output at all."""
        fd, prompt_path = tempfile.mkstemp(prefix="claude-prompt-", suffix=".txt")
        prompt_file = Path(prompt_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(prompt)
            logger.debug(f"Wrote prompt to temp file: {prompt_file}")

            args = self.build_command(resume_token=resume_token, max_turns=max_turns)
            logger.info(f"Running: {' '.join(args)} < {prompt_file.name}")

            try:
                proc, stdout, stderr = await _run_subprocess(
                    args, prompt_file, timeout=self.config.timeout
                )
            except FileNotFoundError:
                raise AssistantError(
                    FailureKind.NOT_FOUND, "Claude CLI not found. Please check installation."
                )
            except asyncio.TimeoutError:
                raise AssistantError(
                    FailureKind.TIMEOUT,
                    f"Claude request timed out after {self.config.timeout:g}s. "
                    "The query might be too complex.",
                )

            out_text, err_text = _decode(stdout), _decode(stderr)
            if out_text:
                logger.info(
                    f"Claude stdout ({len(out_text)} chars): {out_text[:500]}"
                    f"{'...' if len(out_text) > 500 else ''}"
                )
            if err_text:
                logger.warning(f"Claude stderr: {err_text}")

            if proc.returncode != 0:
                detail = err_text or out_text or f"exit code {proc.returncode}"
                raise AssistantError(self._classify(detail, resume_token), detail)

            return self._parse(out_text, err_text, resume_token)
        finally:
            try:
                prompt_file.unlink(missing_ok=True)
            except OSError as e:
                logger.debug(f"Could not delete temp file: {e}")

    @staticmethod
    def _classify(detail: str, resume_token: Optional[str]) -> FailureKind:
        lowered = detail.lower()
        if resume_token and any(marker in lowered for marker in _INVALID_SESSION_MARKERS):
            return FailureKind.INVALID_SESSION
        return FailureKind.OTHER

    def _parse(
        self, out_text: str, err_text: str, resume_token: Optional[str]
    ) -> Optional[AssistantReply]:
        if not out_text:
            if err_text:
                raise AssistantError(FailureKind.OTHER, f"Error from Claude: {err_text}")
            logger.warning("Claude returned empty response")
            return None

        try:
            data = json.loads(out_text)
        except ValueError as e:
            logger.debug(f"Response is not JSON, returning raw: {e}")
            return AssistantReply(result=out_text)

        if not isinstance(data, dict):
            return AssistantReply(result=out_text)

        result, session_id = _extract_fields(data)
        if data.get("is_error"):
            message = result or "Unknown error"
            raise AssistantError(self._classify(message, resume_token), message)

        return AssistantReply(
            result=result,
            cost=float(data.get("total_cost_usd") or 0),
            session_id=session_id,
        )


def _extract_fields(data: dict) -> Tuple[str, Optional[str]]:
    result = data.get("result")
    session_id = data.get("session_id")
    return (str(result) if result is not None else ""), (str(session_id) if session_id else None)


def create_runner(agent_type: str = "claude", config: Optional[ClaudeConfig] = None):
    """Create a runner for the selected agent type."""
    selected = (agent_type or "").strip().lower()
    if selected == "claude":
        return ClaudeRunner(config)
    raise ValueError(f"Unknown agent type: {agent_type}")


def available_agents() -> Tuple[str, ...]:
    return AVAILABLE_AGENTS
