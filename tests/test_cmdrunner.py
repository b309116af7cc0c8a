"""Tests for the subprocess runner.

These start the running interpreter as the child process, so they need no
external tools.
"""

import asyncio
import sys
import time

import pytest

from chaingen.cmdrunner import CommandRunner
from chaingen.exceptions import CommandError, ErrorCategory


def python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


class TestCommandRunner:
    @pytest.mark.asyncio
    async def test_captures_stdout_and_stderr(self):
        output = await CommandRunner().run(
            python("import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)")
        )

        assert "out" in output
        assert "err" in output

    @pytest.mark.asyncio
    async def test_runs_in_workdir(self, tmp_path):
        output = await CommandRunner().run(python("import os; print(os.getcwd())"), cwd=tmp_path)

        assert output.strip() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_extra_environment(self):
        runner = CommandRunner(env={"CHAINGEN_A": "a"})
        output = await runner.run(
            python("import os; print(os.environ['CHAINGEN_A'] + os.environ['CHAINGEN_B'])"),
            env={"CHAINGEN_B": "b"},
        )

        assert output.strip() == "ab"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        command = python("import sys; print('bad schema'); sys.exit(3)")

        with pytest.raises(CommandError) as exc_info:
            await CommandRunner().run(command)

        error = exc_info.value
        assert error.returncode == 3
        assert error.command == command
        assert "bad schema" in error.output
        assert "bad schema" in str(error)
        assert error.category is ErrorCategory.GENERATION

    @pytest.mark.asyncio
    async def test_missing_program(self):
        with pytest.raises(CommandError) as exc_info:
            await CommandRunner().run(["chaingen-no-such-program"])

        assert exc_info.value.returncode == 127

    @pytest.mark.asyncio
    async def test_cancellation_kills_the_process(self):
        task = asyncio.ensure_future(CommandRunner().run(python("import time; time.sleep(30)")))
        await asyncio.sleep(0.5)

        start = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert time.monotonic() - start < 10

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, tmp_path):
        runner = CommandRunner(max_concurrency=1)
        marker = tmp_path / "running"
        code = (
            "import os, sys, time\n"
            f"p = {str(marker)!r}\n"
            "if os.path.exists(p): sys.exit(9)\n"
            "open(p, 'w').close()\n"
            "time.sleep(0.2)\n"
            "os.remove(p)\n"
        )

        await asyncio.gather(*(runner.run(python(code)) for _ in range(3)))

    def test_negative_bound_rejected(self):
        with pytest.raises(ValueError):
            CommandRunner(max_concurrency=-1)
