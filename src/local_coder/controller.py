"""
Assistant controller - runs one user turn end to end.

A turn collects workspace context, prepares model handles, runs the role
pipeline until a Plan is recovered, records the exchange in the conversation
and then applies the plan: commands first, then file actions.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .approval import Approver
from .cancellation import CancellationToken
from .config import Config
from .context import ContextCollector, ContextOptions
from .conversation import AssistantRequest, ConversationHistory, assistant_message, user_message
from .errors import Cancelled, LocalCoderError
from .executor import ActionOutcome, FileActionExecutor
from .inference import ModelHandlePool
from .orchestrator.pipeline import RoleOrchestrator, StreamSink
from .plans.models import Plan
from .session_store import SessionStore
from .shell import CommandExecutor, CommandResult
from .workspace import Workspace

logger = logging.getLogger(__name__)


class TurnStatus(str, Enum):
	"""How a turn ended."""
	COMPLETED = "completed"
	CANCELLED = "cancelled"
	FAILED = "failed"


@dataclass
class TurnOutcome:
	status: TurnStatus
	plan: Optional[Plan] = None
	error: Optional[str] = None
	attempts: int = 0
	command_results: list[Optional[CommandResult]] = field(default_factory=list)
	file_outcomes: list[ActionOutcome] = field(default_factory=list)


def plan_log_lines(plan: Plan) -> list[str]:
	"""Plain-text dump of a plan for the log file."""
	lines = ["--- Assistant plan ---", f"Summary: {plan.summary}", "Message:", plan.message]
	if plan.steps:
		lines.append("Plan steps:")
		for index, step in enumerate(plan.steps, start=1):
			segments = [f"{index}. {step.title}"]
			if step.detail:
				segments.append(step.detail)
			if step.result:
				segments.append(f"Result: {step.result}")
			lines.append("- " + " | ".join(segments))
	else:
		lines.append("Plan steps: none")
	for title, entries in (
		("Live log entries", plan.live_log),
		("QA findings", plan.qa_findings),
		("Test results", plan.test_results),
	):
		if entries:
			lines.append(f"{title}:")
			lines.extend(f"- {entry}" for entry in entries)
		else:
			lines.append(f"{title}: none")
	for request in plan.command_requests:
		lines.append(f"Command: {request.command}")
	for action in plan.file_actions:
		lines.append(f"File action: {action.type.value} {action.path}")
	return lines


class AssistantController:
	"""
	Owns the session state for a sequence of turns.

	Usage:
		controller = AssistantController(config, store, pool, approver, workspace)
		await controller.load()
		outcome = await controller.run_turn("add a README", token)
	"""

	def __init__(
		self,
		config: Config,
		store: SessionStore,
		pool: ModelHandlePool,
		approver: Approver,
		workspace: Workspace,
		stream_sink: Optional[StreamSink] = None,
		on_status: Optional[Callable[[str], None]] = None,
		on_plan: Optional[Callable[[Plan], None]] = None,
	):
		self.config = config
		self.store = store
		self.pool = pool
		self.workspace = workspace
		self.stream_sink = stream_sink
		self.on_status = on_status
		self.on_plan = on_plan
		self.history = ConversationHistory(config.history_limit)
		self.last_plan: Optional[Plan] = None
		self.collector = ContextCollector(workspace, ContextOptions(
			max_files=config.context_max_files,
			max_file_size=config.context_max_file_size,
			max_total_size=config.context_max_total_size,
			include_binary=config.context_include_binary,
			exclude_globs=list(config.context_exclude_globs),
			use_default_excludes=config.context_use_default_excludes,
			prioritize_changed_files=config.context_prioritize_changed_files,
		))
		self.files = FileActionExecutor(workspace, approver)
		self.commands = CommandExecutor(workspace, approver, shell=config.shell)

	async def load(self) -> None:
		"""Restore the persisted conversation."""
		self.history.load(await self.store.load_history(self.config.history_limit))
		logger.info(f"Loaded {len(self.history)} conversation message(s)")

	async def reset_conversation(self) -> None:
		self.history.clear()
		await self.store.clear_history()

	async def run_turn(self, prompt: str, token: Optional[CancellationToken] = None) -> TurnOutcome:
		"""Run one turn. Never raises for model, parse or execution failures."""
		token = token or CancellationToken()
		prompt = prompt.strip()
		if not prompt:
			return TurnOutcome(status=TurnStatus.FAILED, error="Empty request")

		previous_plan = self.last_plan
		try:
			return await self._run_turn(prompt, token)
		except Cancelled:
			logger.info("Assistant request cancelled.")
			plan = self.last_plan if self.last_plan is not previous_plan else None
			return TurnOutcome(status=TurnStatus.CANCELLED, plan=plan)
		except LocalCoderError as e:
			logger.error(f"Assistant error: {e}")
			return TurnOutcome(status=TurnStatus.FAILED, error=str(e))

	async def _run_turn(self, prompt: str, token: CancellationToken) -> TurnOutcome:
		context = await token.run(self.collector.collect())
		request = AssistantRequest(prompt=prompt, context=context, history=self.history.snapshot())

		settings = self.config.resolve_role_settings()
		for model_id in sorted({s.model_id for s in settings.values()}):
			await self.store.add_known_model(model_id)

		orchestrator = RoleOrchestrator(
			self.pool,
			settings,
			max_attempts=self.config.max_attempts,
			stream_sink=self.stream_sink,
			live_stream=self.config.show_live_stream,
			on_status=self.on_status,
		)
		await orchestrator.prepare_models(token)
		result = await orchestrator.generate_plan(request, token)
		plan = result.plan

		self.history.push(user_message(prompt))
		if plan.message.strip():
			self.history.push(assistant_message(plan.message))
		await self.store.save_history(list(self.history.snapshot()), self.config.history_limit)
		self.last_plan = plan
		for line in plan_log_lines(plan):
			logger.info(line)
		if self.on_plan:
			self.on_plan(plan)

		outcome = TurnOutcome(status=TurnStatus.COMPLETED, plan=plan, attempts=result.attempts)
		outcome.command_results, outcome.file_outcomes = await self.process_plan(plan, token)
		return outcome

	async def process_plan(
		self,
		plan: Plan,
		token: CancellationToken,
	) -> tuple[list[Optional[CommandResult]], list[ActionOutcome]]:
		"""Run the plan's commands, then apply its file actions."""
		require_approval = self.config.require_approval
		command_results: list[Optional[CommandResult]] = []
		if plan.command_requests:
			if self.config.allow_command_execution:
				command_results = await self.commands.run_all(plan.command_requests, require_approval, token)
			else:
				logger.info(f"Command execution disabled; skipping {len(plan.command_requests)} command(s)")
		file_outcomes: list[ActionOutcome] = []
		if plan.file_actions:
			file_outcomes = await self.files.apply(plan.file_actions, require_approval, token)
		return command_results, file_outcomes
