"""Tests for running plan commands in the workspace."""

import asyncio
import logging
import time
from pathlib import Path

import pytest

from local_coder.approval import AutoApprover
from local_coder.cancellation import CancellationToken
from local_coder.errors import Cancelled, CommandFailed
from local_coder.plans.models import CommandRequest
from local_coder.shell import CommandExecutor
from local_coder.workspace import Workspace


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
	return Workspace([tmp_path])


class TestCommandExecutor:
	@pytest.mark.asyncio
	async def test_success_captures_stdout(self, workspace, caplog):
		executor = CommandExecutor(workspace, AutoApprover())
		with caplog.at_level(logging.INFO, logger="local_coder.shell"):
			result = await executor.run(CommandRequest(command="echo hello"), require_approval=False)
		assert result.stdout == "hello\n"
		assert result.returncode == 0
		assert "$ echo hello" in caplog.text
		assert "hello" in caplog.text

	@pytest.mark.asyncio
	async def test_runs_in_workspace_directory(self, workspace):
		executor = CommandExecutor(workspace, AutoApprover())
		result = await executor.run(CommandRequest(command="pwd"), require_approval=False)
		assert Path(result.stdout.strip()).resolve() == workspace.cwd.resolve()

	@pytest.mark.asyncio
	async def test_non_zero_exit_raises(self, workspace):
		executor = CommandExecutor(workspace, AutoApprover())
		with pytest.raises(CommandFailed) as exc_info:
			await executor.run(CommandRequest(command="echo oops 1>&2; exit 3"), require_approval=False)
		assert exc_info.value.returncode == 3
		assert exc_info.value.stderr == "oops\n"
		assert "exited with code 3" in str(exc_info.value)

	@pytest.mark.asyncio
	async def test_explicit_shell(self, workspace):
		executor = CommandExecutor(workspace, AutoApprover(), shell="/bin/sh")
		result = await executor.run(CommandRequest(command="echo from-sh"), require_approval=False)
		assert result.stdout == "from-sh\n"

	@pytest.mark.asyncio
	async def test_rejected_command_does_not_run(self, workspace):
		approver = AutoApprover(answer=False)
		executor = CommandExecutor(workspace, approver)
		request = CommandRequest(command="touch marker", description="Create a marker")
		assert await executor.run(request, require_approval=True) is None
		assert not (workspace.cwd / "marker").exists()
		assert approver.requests == [(
			"Allow the assistant to execute the following command?",
			"Create a marker\n\ntouch marker",
		)]

	@pytest.mark.asyncio
	async def test_run_all_continues_after_failure(self, workspace):
		executor = CommandExecutor(workspace, AutoApprover())
		results = await executor.run_all(
			[CommandRequest(command="exit 1"), CommandRequest(command="echo ok")],
			require_approval=False,
		)
		assert results[0] is None
		assert results[1].stdout == "ok\n"

	@pytest.mark.asyncio
	async def test_output_line_longer_than_reader_limit(self, workspace):
		executor = CommandExecutor(workspace, AutoApprover())
		results = await executor.run_all(
			[
				CommandRequest(command="head -c 70000 /dev/zero | tr '\\0' a; echo"),
				CommandRequest(command="touch second_ran"),
			],
			require_approval=False,
		)
		assert results[0].stdout == "a" * 70000 + "\n"
		assert results[1] is not None
		assert (workspace.cwd / "second_ran").exists()

	@pytest.mark.asyncio
	async def test_run_all_continues_after_unexpected_error(self, workspace):
		class FlakyExecutor(CommandExecutor):
			async def execute(self, request, token):
				if request.command == "boom":
					raise RuntimeError("pipe closed")
				return await super().execute(request, token)

		executor = FlakyExecutor(workspace, AutoApprover())
		results = await executor.run_all(
			[CommandRequest(command="boom"), CommandRequest(command="echo after")],
			require_approval=False,
		)
		assert results[0] is None
		assert results[1].stdout == "after\n"


class TestCommandCancellation:
	@pytest.mark.asyncio
	async def test_cancel_terminates_running_command(self, workspace):
		token = CancellationToken()
		executor = CommandExecutor(workspace, AutoApprover())
		asyncio.get_running_loop().call_later(0.2, token.cancel)

		started = time.monotonic()
		with pytest.raises(Cancelled):
			await executor.run(CommandRequest(command="sleep 30"), require_approval=False, token=token)
		assert time.monotonic() - started < 10

	@pytest.mark.asyncio
	async def test_cancelled_batch_stops(self, workspace):
		token = CancellationToken()
		token.cancel()
		executor = CommandExecutor(workspace, AutoApprover())
		with pytest.raises(Cancelled):
			await executor.run_all([CommandRequest(command="touch marker")], False, token)
		assert not (workspace.cwd / "marker").exists()
