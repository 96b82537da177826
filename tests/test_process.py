"""Tests for the external command runner."""

import sys

import pytest

from deep_reviewer.core.exceptions import ErrorKind, ProcessError, ProcessTimeoutError
from deep_reviewer.core.process import ProcessRunner


class TestProcessRunner:
    """Tests for ProcessRunner.run."""

    @pytest.mark.asyncio
    async def test_captures_stdout_and_stderr(self):
        runner = ProcessRunner()
        result = await runner.run(
            sys.executable,
            ["-c", "import sys; print('out'); print('err', file=sys.stderr)"],
        )

        assert result.ok
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert result.exit_code == 0

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, tmp_path):
        runner = ProcessRunner()
        result = await runner.run(sys.executable, ["-c", "import os; print(os.getcwd())"], cwd=tmp_path)

        assert result.stdout.strip() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises(self):
        runner = ProcessRunner()

        with pytest.raises(ProcessError) as exc_info:
            await runner.run(
                sys.executable,
                ["-c", "import sys; sys.stderr.write('boom\\n'); sys.exit(3)"],
            )

        assert exc_info.value.exit_code == 3
        assert exc_info.value.kind is ErrorKind.EXECUTION_FAILED
        assert "exited with status 3: boom" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_ignore_exit_code_returns_result(self):
        runner = ProcessRunner()
        result = await runner.run(
            sys.executable,
            ["-c", "import sys; print('findings'); sys.exit(1)"],
            ignore_exit_code=True,
        )

        assert not result.ok
        assert result.exit_code == 1
        assert "findings" in result.stdout

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self):
        runner = ProcessRunner()

        with pytest.raises(ProcessError) as exc_info:
            await runner.run("definitely-not-a-real-binary-xyz", ["--version"])

        assert exc_info.value.exit_code is None
        assert "could not be started" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        runner = ProcessRunner()

        with pytest.raises(ProcessTimeoutError) as exc_info:
            await runner.run(sys.executable, ["-c", "import time; time.sleep(10)"], timeout=0.3)

        assert exc_info.value.kind is ErrorKind.TIMEOUT
        assert exc_info.value.timeout == 0.3
