"""Cancellable subprocess execution for external tools.

Every external tool invocation goes through a CommandRunner. Commands run as
real OS processes; the awaiting task is the only suspension point. When that
task is cancelled the child process is killed before the cancellation
propagates, so no tool keeps writing after its group has failed.

Examples:
    Basic usage::

        runner = CommandRunner()
        output = await runner.run(["protoc", "--version"])

    Bounded fan-out::

        runner = CommandRunner(max_concurrency=8)
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from chaingen.exceptions import CommandError
from chaingen.utils.logger import get_logger

logger = get_logger("cmdrunner")


class CommandRunner:
    """Runs external commands and captures their combined output.

    Args:
        max_concurrency: Upper bound on simultaneously running commands.
            0 means unbounded.
        env: Extra environment variables for every command
    """

    def __init__(self, max_concurrency: int = 0, env: dict[str, str] | None = None):
        if max_concurrency < 0:
            raise ValueError("max_concurrency must be >= 0")
        self.max_concurrency = max_concurrency
        self.env = env or {}
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def run(
        self,
        command: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> str:
        """Run a command to completion.

        Args:
            command: Program and arguments
            cwd: Working directory
            env: Extra environment variables for this command

        Returns:
            Combined stdout and stderr, decoded

        Raises:
            CommandError: If the program cannot be started or exits non-zero
        """
        if self._semaphore is None:
            return await self._run(command, cwd, env)
        async with self._semaphore:
            return await self._run(command, cwd, env)

    async def _run(
        self,
        command: list[str],
        cwd: str | Path | None,
        env: dict[str, str] | None,
    ) -> str:
        workdir = str(cwd) if cwd is not None else None
        logger.debug(f"running {' '.join(command)}" + (f" in {workdir}" if workdir else ""))

        merged_env = None
        if self.env or env:
            merged_env = {**os.environ, **self.env, **(env or {})}

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=workdir,
                env=merged_env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise CommandError(list(command), 127, str(e), workdir) from e

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        output = stdout.decode(errors="replace") if stdout else ""
        if process.returncode != 0:
            raise CommandError(list(command), process.returncode, output, workdir)
        return output
