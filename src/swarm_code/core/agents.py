"""Coding agent variants behind one spawn/is_available contract."""

import asyncio
import logging
import os
import shlex
import shutil
import signal
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30 * 60
KILL_GRACE = 5.0

# Exit code reported when the agent binary could not be launched
LAUNCH_FAILED = 127


@dataclass
class AgentResult:
    success: bool
    exit_code: int
    output: str
    duration: float


class CodingAgent(ABC):
    """An external coding agent run as a subprocess inside a worktree."""

    name: str = ""

    @abstractmethod
    async def spawn(
        self,
        workdir: str | Path,
        prompt: str,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
    ) -> AgentResult:
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        ...

    async def run_command(
        self,
        argv: list[str],
        workdir: str | Path,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
    ) -> AgentResult:
        """Run argv in workdir with merged stdout/stderr and a wall-clock timeout.

        Launch failures and timeouts resolve into a failed result; nothing is raised.
        """
        timeout = DEFAULT_TIMEOUT if timeout is None else timeout
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(workdir),
                env={**os.environ, **(env or {})},
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning("Agent %s failed to launch: %s", self.name, e)
            return AgentResult(
                success=False,
                exit_code=LAUNCH_FAILED,
                output=str(e),
                duration=time.monotonic() - start,
            )

        chunks: list[bytes] = []
        reader = asyncio.create_task(_read_stream(proc.stdout, chunks))

        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            logger.warning("Agent %s (PID %s) timed out after %ss, terminating", self.name, proc.pid, timeout)
            await _terminate(proc)

        # Grandchildren may still hold the pipe open
        try:
            await asyncio.wait_for(reader, timeout=KILL_GRACE)
        except asyncio.TimeoutError:
            reader.cancel()

        output = b"".join(chunks).decode("utf-8", errors="replace")
        if timed_out:
            output += f"\n[agent timed out after {timeout}s]"
        exit_code = proc.returncode if proc.returncode is not None else 1
        return AgentResult(
            success=exit_code == 0 and not timed_out,
            exit_code=exit_code,
            output=output,
            duration=time.monotonic() - start,
        )


async def _read_stream(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        chunk = await stream.read(8192)
        if not chunk:
            break
        chunks.append(chunk)


def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass
    except PermissionError:
        proc.send_signal(sig)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """SIGTERM the agent's process group, then SIGKILL after the grace window."""
    _signal_group(proc, signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE)
    except asyncio.TimeoutError:
        logger.warning("Agent PID %s ignored SIGTERM, killing", proc.pid)
        _signal_group(proc, signal.SIGKILL)
        await proc.wait()


def _on_path(binary: str) -> bool:
    return shutil.which(binary) is not None


class ClaudeAgent(CodingAgent):
    name = "claude"

    def __init__(self, model: str | None = None):
        self.model = model

    async def spawn(self, workdir, prompt, timeout=None, env=None) -> AgentResult:
        argv = [
            "claude", "-p", prompt,
            "--allowedTools", "Bash,Write,Edit,Read",
            "--output-format", "text",
        ]
        if self.model:
            argv += ["--model", self.model]
        return await self.run_command(argv, workdir, timeout=timeout, env=env)

    async def is_available(self) -> bool:
        return _on_path("claude")


class CodexAgent(CodingAgent):
    name = "codex"

    async def spawn(self, workdir, prompt, timeout=None, env=None) -> AgentResult:
        argv = ["codex", "exec", "--full-auto", prompt]
        return await self.run_command(argv, workdir, timeout=timeout, env=env)

    async def is_available(self) -> bool:
        return _on_path("codex")


class CustomAgent(CodingAgent):
    """Runs a user-supplied shell command with {prompt} and {workdir} placeholders."""

    name = "custom"

    def __init__(self, command_template: str):
        self.command_template = command_template

    def render(self, workdir: str | Path, prompt: str) -> str:
        return (
            self.command_template
            .replace("{prompt}", shlex.quote(prompt))
            .replace("{workdir}", shlex.quote(str(workdir)))
        )

    async def spawn(self, workdir, prompt, timeout=None, env=None) -> AgentResult:
        cmd = self.render(workdir, prompt)
        return await self.run_command(["sh", "-c", cmd], workdir, timeout=timeout, env=env)

    async def is_available(self) -> bool:
        return True


AGENT_TYPES = ("codex", "claude", "custom")


def create_agent(
    agent_type: str,
    custom_command: str | None = None,
    model: str | None = None,
) -> CodingAgent:
    """Build the agent variant for a configuration tag."""
    if agent_type == "codex":
        return CodexAgent()
    if agent_type == "claude":
        return ClaudeAgent(model=model)
    if agent_type == "custom":
        if not custom_command:
            raise ValueError("custom agent requires a command template")
        return CustomAgent(custom_command)
    raise ValueError(f"Unknown agent type: {agent_type}")
