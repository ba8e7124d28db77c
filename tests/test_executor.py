"""Tests for applying file actions under approval and cancellation."""

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console

from local_coder.approval import AutoApprover, ConsoleApprover
from local_coder.cancellation import CancellationToken
from local_coder.errors import Cancelled
from local_coder.executor import ActionStatus, FileActionExecutor, build_preview
from local_coder.plans.models import FileAction, FileActionType
from local_coder.plans.recovery import recover_plan
from local_coder.workspace import Workspace


def create(path: str, content: str = "x") -> FileAction:
	return FileAction(type=FileActionType.CREATE, path=path, content=content)


class CancellingApprover:
	"""Approves everything but cancels the token while answering the Nth request."""

	def __init__(self, token: CancellationToken, cancel_on: int):
		self.token = token
		self.cancel_on = cancel_on
		self.calls = 0

	async def confirm(self, title: str, detail: str) -> bool:
		self.calls += 1
		if self.calls == self.cancel_on:
			self.token.cancel("Stopped by user")
		return True


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
	root = tmp_path / "proj"
	root.mkdir()
	return Workspace([root])


class TestApply:
	@pytest.mark.asyncio
	async def test_create_makes_parent_dirs(self, workspace):
		created = []
		executor = FileActionExecutor(workspace, AutoApprover(), on_created=created.append)
		outcomes = await executor.apply([create("src/pkg/mod.py", "print(1)\n")], require_approval=False)

		target = workspace.cwd / "src" / "pkg" / "mod.py"
		assert target.read_text() == "print(1)\n"
		assert outcomes[0].status == ActionStatus.APPLIED
		assert outcomes[0].path == target
		assert created == [target]

	@pytest.mark.asyncio
	async def test_create_without_content_writes_empty_file(self, workspace):
		executor = FileActionExecutor(workspace, AutoApprover())
		await executor.apply([FileAction(type=FileActionType.CREATE, path="empty.txt")], require_approval=False)
		assert (workspace.cwd / "empty.txt").read_text() == ""

	@pytest.mark.asyncio
	async def test_edit_overwrites_existing_file(self, workspace):
		(workspace.cwd / "a.txt").write_text("old")
		executor = FileActionExecutor(workspace, AutoApprover())
		action = FileAction(type=FileActionType.EDIT, path="a.txt", content="new")
		outcomes = await executor.apply([action], require_approval=False)
		assert outcomes[0].status == ActionStatus.APPLIED
		assert (workspace.cwd / "a.txt").read_text() == "new"

	@pytest.mark.asyncio
	async def test_edit_of_missing_file_fails_and_batch_continues(self, workspace):
		executor = FileActionExecutor(workspace, AutoApprover())
		actions = [
			FileAction(type=FileActionType.EDIT, path="missing.txt", content="x"),
			create("b.txt"),
		]
		outcomes = await executor.apply(actions, require_approval=False)

		assert outcomes[0].status == ActionStatus.FAILED
		assert "does not exist" in outcomes[0].error
		assert not (workspace.cwd / "missing.txt").exists()
		assert outcomes[1].status == ActionStatus.APPLIED
		assert (workspace.cwd / "b.txt").exists()

	@pytest.mark.asyncio
	async def test_delete_removes_directory_tree(self, workspace):
		build = workspace.cwd / "build"
		(build / "nested").mkdir(parents=True)
		(build / "nested" / "out.o").write_text("bin")
		executor = FileActionExecutor(workspace, AutoApprover())
		outcomes = await executor.apply([FileAction(type=FileActionType.DELETE, path="build")], require_approval=False)
		assert outcomes[0].status == ActionStatus.APPLIED
		assert not build.exists()

	@pytest.mark.asyncio
	async def test_delete_of_missing_file_fails(self, workspace):
		executor = FileActionExecutor(workspace, AutoApprover())
		outcomes = await executor.apply([FileAction(type=FileActionType.DELETE, path="nope.txt")], require_approval=False)
		assert outcomes[0].status == ActionStatus.FAILED

	@pytest.mark.asyncio
	async def test_path_outside_workspace_fails(self, workspace):
		executor = FileActionExecutor(workspace, AutoApprover())
		outcomes = await executor.apply([create("../escape.txt")], require_approval=False)
		assert outcomes[0].status == ActionStatus.FAILED
		assert not (workspace.cwd.parent / "escape.txt").exists()

	@pytest.mark.asyncio
	async def test_progress_reports_start_and_complete(self, workspace):
		events = []
		executor = FileActionExecutor(
			workspace,
			AutoApprover(),
			on_progress=lambda index, total, action, stage: events.append((index, total, stage)),
		)
		await executor.apply([create("a.txt"), create("b.txt")], require_approval=False)
		assert events == [(0, 2, "start"), (0, 2, "complete"), (1, 2, "start"), (1, 2, "complete")]

	@pytest.mark.asyncio
	async def test_unencodable_content_fails_only_that_action(self, workspace):
		plan = recover_plan(
			r'{"summary": "s", "fileActions": ['
			r'{"type": "create", "path": "a.txt", "content": "bad \ud800"},'
			r'{"type": "create", "path": "b.txt", "content": "ok"}]}'
		)
		executor = FileActionExecutor(workspace, AutoApprover())
		outcomes = await executor.apply(plan.file_actions, require_approval=False)

		assert outcomes[0].status == ActionStatus.FAILED
		assert "surrogates" in outcomes[0].error
		assert outcomes[1].status == ActionStatus.APPLIED
		assert (workspace.cwd / "b.txt").read_text() == "ok"

	@pytest.mark.asyncio
	async def test_auto_apply_logs_preview(self, workspace, caplog):
		executor = FileActionExecutor(workspace, AutoApprover())
		action = FileAction(type=FileActionType.CREATE, path="a.txt", content="hello", description="Greeting")
		with caplog.at_level(logging.INFO, logger="local_coder.executor"):
			await executor.apply([action], require_approval=False)
		assert "Auto-applying file action: create a.txt (same write path as approved actions)" in caplog.text
		assert "Greeting" in caplog.text
		assert "hello" in caplog.text


class TestApproval:
	@pytest.mark.asyncio
	async def test_rejection_is_not_a_failure(self, workspace):
		approver = AutoApprover(answer=False)
		executor = FileActionExecutor(workspace, approver)
		outcomes = await executor.apply([create("a.txt", "hello")], require_approval=True)

		assert outcomes[0].status == ActionStatus.REJECTED
		assert outcomes[0].error is None
		assert not (workspace.cwd / "a.txt").exists()
		title, detail = approver.requests[0]
		assert title == "Approve assistant request to create a.txt?"
		assert "hello" in detail

	@pytest.mark.asyncio
	async def test_auto_apply_skips_approver(self, workspace):
		approver = AutoApprover(answer=False)
		executor = FileActionExecutor(workspace, approver)
		outcomes = await executor.apply([create("a.txt")], require_approval=False)
		assert outcomes[0].status == ActionStatus.APPLIED
		assert approver.requests == []

	def test_preview_truncates_long_content(self):
		action = FileAction(type=FileActionType.CREATE, path="big.txt", content="y" * 600, description="Generated")
		preview = build_preview(action, limit=500)
		assert preview.startswith("Generated\n\n--- Proposed content preview ---\n")
		assert preview.endswith("\n... (truncated)")
		assert "y" * 501 not in preview


class TestCancellation:
	@pytest.mark.asyncio
	async def test_cancel_mid_batch_stops_remaining_actions(self, workspace):
		token = CancellationToken()
		approver = CancellingApprover(token, cancel_on=2)
		executor = FileActionExecutor(workspace, approver)

		with pytest.raises(Cancelled):
			await executor.apply([create("a.txt"), create("b.txt"), create("c.txt")], True, token)

		assert (workspace.cwd / "a.txt").exists()
		assert not (workspace.cwd / "b.txt").exists()
		assert not (workspace.cwd / "c.txt").exists()
		assert approver.calls == 2

	@pytest.mark.asyncio
	async def test_cancelled_before_start_applies_nothing(self, workspace):
		token = CancellationToken()
		token.cancel()
		executor = FileActionExecutor(workspace, AutoApprover())
		with pytest.raises(Cancelled):
			await executor.apply([create("a.txt")], False, token)
		assert not (workspace.cwd / "a.txt").exists()


class TestConsoleApprover:
	@pytest.mark.asyncio
	async def test_answer_is_returned(self):
		console = Console(record=True, width=100, color_system=None)
		with patch("local_coder.approval.Confirm.ask", return_value=True) as ask:
			assert await ConsoleApprover(console).confirm("Approve assistant request to create a.txt?", "preview")
		ask.assert_called_once()
		assert "preview" in console.export_text()

	@pytest.mark.asyncio
	async def test_closed_stdin_rejects(self):
		console = Console(record=True, width=100, color_system=None)
		with patch("local_coder.approval.Confirm.ask", side_effect=EOFError):
			assert not await ConsoleApprover(console).confirm("Allow?", "")
