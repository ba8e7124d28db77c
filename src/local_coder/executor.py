"""
File action executor - applies a plan's file actions one at a time.

Every action is resolved inside the workspace, optionally approved by the
user, then written through the same code path whether it was approved or
auto-applied. A failing action is logged and recorded; the batch carries on.
Only cancellation stops the batch.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from .approval import Approver
from .cancellation import CancellationToken
from .errors import Cancelled, PathUnresolved, TargetMissing
from .plans.models import FileAction, FileActionType
from .workspace import Workspace

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 500


class ActionStatus(str, Enum):
	"""What happened to a single file action."""
	APPLIED = "applied"
	REJECTED = "rejected"
	FAILED = "failed"


@dataclass
class ActionOutcome:
	action: FileAction
	status: ActionStatus
	path: Optional[Path] = None
	error: Optional[str] = None


ProgressCallback = Callable[[int, int, FileAction, str], None]


def describe_action(action: FileAction) -> str:
	return f"{action.type.value} {action.path}"


def build_preview(action: FileAction, limit: int = PREVIEW_LIMIT) -> str:
	"""Description plus a truncated content preview, shown with the approval prompt."""
	parts = []
	if action.description:
		parts.append(action.description)
	if action.content:
		content = action.content
		if len(content) > limit:
			content = content[:limit] + "\n... (truncated)"
		parts.append(f"--- Proposed content preview ---\n{content}")
	return "\n\n".join(parts)


class FileActionExecutor:
	"""
	Applies FileActions against the workspace.

	Usage:
		executor = FileActionExecutor(workspace, approver)
		outcomes = await executor.apply(plan.file_actions, require_approval=True, token=token)
	"""

	def __init__(
		self,
		workspace: Workspace,
		approver: Approver,
		on_created: Optional[Callable[[Path], None]] = None,
		on_progress: Optional[ProgressCallback] = None,
	):
		self.workspace = workspace
		self.approver = approver
		self.on_created = on_created
		self.on_progress = on_progress

	async def apply(
		self,
		actions: Sequence[FileAction],
		require_approval: bool = True,
		token: Optional[CancellationToken] = None,
	) -> list[ActionOutcome]:
		"""Apply ``actions`` in order. Raises Cancelled if the token fires."""
		token = token or CancellationToken()
		outcomes: list[ActionOutcome] = []
		total = len(actions)
		for index, action in enumerate(actions):
			token.raise_if_cancelled()
			self._progress(index, total, action, "start")
			try:
				outcome = await self.apply_single(action, require_approval, token)
			except Cancelled:
				raise
			except (PathUnresolved, TargetMissing, OSError) as e:
				logger.error(f"Failed to apply file action {describe_action(action)}: {e}")
				outcome = ActionOutcome(action=action, status=ActionStatus.FAILED, error=str(e))
			except Exception as e:
				logger.error(f"Unexpected error applying file action {describe_action(action)}: {e}")
				outcome = ActionOutcome(action=action, status=ActionStatus.FAILED, error=str(e))
			outcomes.append(outcome)
			self._progress(index, total, action, "complete")
		return outcomes

	async def apply_single(
		self,
		action: FileAction,
		require_approval: bool,
		token: CancellationToken,
	) -> ActionOutcome:
		target = self.workspace.resolve(action.path)
		label = describe_action(action)

		if require_approval:
			approved = await token.run(self.approver.confirm(
				f"Approve assistant request to {label}?",
				build_preview(action),
			))
			if not approved:
				logger.info(f"File action rejected: {label}")
				return ActionOutcome(action=action, status=ActionStatus.REJECTED, path=target)
		else:
			logger.info(f"Auto-applying file action: {label} (same write path as approved actions)\n{build_preview(action)}")

		token.raise_if_cancelled()
		await self._execute(action, target, token)
		logger.info(f"File action applied: {label}")
		return ActionOutcome(action=action, status=ActionStatus.APPLIED, path=target)

	async def _execute(self, action: FileAction, target: Path, token: CancellationToken) -> None:
		if action.type == FileActionType.CREATE:
			await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
			token.raise_if_cancelled()
			await asyncio.to_thread(target.write_text, action.content or "", encoding="utf-8")
			token.raise_if_cancelled()
			if self.on_created:
				self.on_created(target)
		elif action.type == FileActionType.EDIT:
			exists = await asyncio.to_thread(target.exists)
			token.raise_if_cancelled()
			if not exists:
				raise TargetMissing(action.path)
			await asyncio.to_thread(target.write_text, action.content or "", encoding="utf-8")
			token.raise_if_cancelled()
		elif action.type == FileActionType.DELETE:
			await asyncio.to_thread(_remove, target)
			token.raise_if_cancelled()

	def _progress(self, index: int, total: int, action: FileAction, stage: str) -> None:
		if self.on_progress:
			self.on_progress(index, total, action, stage)


def _remove(target: Path) -> None:
	"""Delete a file or a whole directory tree."""
	if target.is_dir() and not target.is_symlink():
		shutil.rmtree(target)
	else:
		target.unlink()
