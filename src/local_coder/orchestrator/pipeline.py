"""
Role pipeline - runs every role in order and recovers a Plan from the result.

Each turn invokes contextScout, planner, coder, reviewer, qa, safety and
verifier, feeding every role the previous role's output. When the verifier's
output cannot be recovered as a Plan, the whole chain runs again with the
failed reply and a corrective instruction appended to a per-turn copy of the
history, up to ``max_attempts`` times.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from ..cancellation import CancellationToken
from ..conversation import AssistantRequest, assistant_message, user_message
from ..errors import EmptyGeneration, PlanUnrecoverable, UnrecoverableFormat
from ..inference import ModelHandle, ModelHandlePool, model_name
from ..plans.models import Plan
from ..plans.recovery import ResponseRecoverer
from ..prompts import get_builder
from .roles import RESOLUTION_ORDER, Role, RoleSettings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 4
MAX_FAILED_REPLY_CHARS = 4000
PREVIEW_CHARS = 400

DOWNSTREAM_ROLES = (Role.CODER, Role.REVIEWER, Role.QA, Role.SAFETY, Role.VERIFIER)

FIRST_CORRECTION = (
	"Your previous reply could not be parsed as JSON. Respond again using only valid JSON matching "
	"the required schema. Do not include markdown fences or extra commentary."
)
REPEATED_CORRECTION = (
	"Reminder: respond with valid JSON only, matching the required schema. Do not include markdown "
	"fences or extra commentary."
)
SCOUT_STEERING = (
	"Incorporate the context scout briefing above. If essential artifacts are missing, highlight "
	"them in liveLog and steps before proceeding."
)


@dataclass(frozen=True)
class RoleUpdate:
	"""Snapshot of a role's accumulated output, sent to the stream sink."""
	role: Role
	attempt: int
	text: str
	final: bool


class StreamSink(Protocol):
	def on_role_update(self, update: RoleUpdate) -> None:
		...


@dataclass
class RoleTranscript:
	"""Outputs of one pass through the roles."""
	attempt: int
	outputs: dict[Role, str] = field(default_factory=dict)

	@property
	def raw_response(self) -> str:
		return self.outputs.get(Role.VERIFIER, "")


@dataclass
class PlanResult:
	plan: Plan
	raw_response: str
	attempts: int
	transcript: RoleTranscript


def truncate_reply(text: str, limit: int = MAX_FAILED_REPLY_CHARS) -> str:
	return text if len(text) <= limit else text[:limit] + "…"


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
	trimmed = text.strip()
	return trimmed if len(trimmed) <= limit else trimmed[:limit] + "…"


class RoleOrchestrator:
	"""
	Runs the role chain for one turn.

	Usage:
		orchestrator = RoleOrchestrator(pool, config.resolve_role_settings())
		await orchestrator.prepare_models(token)
		result = await orchestrator.generate_plan(request, token)
	"""

	def __init__(
		self,
		pool: ModelHandlePool,
		settings: dict[Role, RoleSettings],
		*,
		max_attempts: int = DEFAULT_MAX_ATTEMPTS,
		stream_sink: Optional[StreamSink] = None,
		live_stream: bool = False,
		on_status: Optional[Callable[[str], None]] = None,
		recoverer: Optional[ResponseRecoverer] = None,
	):
		self.pool = pool
		self.settings = settings
		self.max_attempts = max(1, max_attempts)
		self.stream_sink = stream_sink
		self.live_stream = live_stream
		self.on_status = on_status
		self.recoverer = recoverer or ResponseRecoverer()
		self._handles: dict[Role, ModelHandle] = {}

	def _status(self, message: str) -> None:
		logger.info(message)
		if self.on_status:
			self.on_status(message)

	def shared_with(self, role: Role) -> Optional[Role]:
		"""First upstream role (in resolution order) that resolves to the same model id."""
		model_id = self.settings[role].model_id
		for other in RESOLUTION_ORDER:
			if other == role:
				return None
			if self.settings[other].model_id == model_id:
				return other
		return None

	def handle_for(self, role: Role) -> ModelHandle:
		handle = self._handles.get(role)
		if handle is None:
			handle = self.pool.get(self.settings[role].model_id)
			self._handles[role] = handle
		return handle

	async def prepare_models(self, token: Optional[CancellationToken] = None) -> None:
		"""Load every distinct model id once, reusing handles for roles that share an id."""
		for role in RESOLUTION_ORDER:
			if token:
				token.raise_if_cancelled()
			handle = self.handle_for(role)
			owner = self.shared_with(role)
			if owner is not None:
				self._status(f"[{role.label}] Reusing {owner.value} model {model_name(handle.model_id)}")
				continue
			if handle.loaded:
				continue
			self._status(f"[{role.label}] Loading model {model_name(handle.model_id)}...")
			await handle.ensure_loaded(
				on_status=lambda status, label=role.label: self._status(f"[{label}] {status}"),
				token=token,
			)

	async def run_roles(
		self,
		request: AssistantRequest,
		token: Optional[CancellationToken] = None,
		attempt: int = 1,
	) -> RoleTranscript:
		"""One pass through every role; the verifier's output is the raw response."""
		transcript = RoleTranscript(attempt=attempt)

		briefing = await self._invoke(Role.CONTEXT_SCOUT, request, None, token, attempt)
		transcript.outputs[Role.CONTEXT_SCOUT] = briefing
		briefed = request.extended(
			assistant_message(f"Context scout briefing:\n{briefing.strip()}"),
			user_message(SCOUT_STEERING),
		)

		upstream = await self._invoke(Role.PLANNER, briefed, None, token, attempt)
		transcript.outputs[Role.PLANNER] = upstream
		for role in DOWNSTREAM_ROLES:
			upstream = await self._invoke(role, briefed, upstream, token, attempt)
			transcript.outputs[role] = upstream
		return transcript

	async def generate_plan(
		self,
		request: AssistantRequest,
		token: Optional[CancellationToken] = None,
	) -> PlanResult:
		"""Run the roles until a Plan is recovered or the attempt ceiling is reached."""
		history = list(request.history)
		attempt = 1
		while True:
			transcript = await self.run_roles(request.with_history(history), token, attempt)
			raw = transcript.raw_response
			try:
				plan = self.recoverer.recover(raw)
			except UnrecoverableFormat as e:
				logger.warning(f"Attempt {attempt}/{self.max_attempts}: {e.reason}")
				if attempt >= self.max_attempts:
					raise PlanUnrecoverable(attempt, raw, e) from e
				history.append(assistant_message(truncate_reply(raw)))
				history.append(user_message(FIRST_CORRECTION if attempt == 1 else REPEATED_CORRECTION))
				attempt += 1
				self._status(f"Model reply was not valid JSON, retrying (attempt {attempt}/{self.max_attempts})")
				continue
			logger.info(f"Recovered plan on attempt {attempt}: {plan.summary}")
			return PlanResult(plan=plan, raw_response=raw, attempts=attempt, transcript=transcript)

	async def _invoke(
		self,
		role: Role,
		request: AssistantRequest,
		upstream: Optional[str],
		token: Optional[CancellationToken],
		attempt: int,
	) -> str:
		if token:
			token.raise_if_cancelled()
		settings = self.settings[role]
		builder = get_builder(role, settings.prompt_builder_id)
		prompt = builder.build(request, upstream)
		handle = self.handle_for(role)
		logger.info(f"[{role.label}] Generating with {model_name(handle.model_id)} ({builder.id})")

		chunks: list[str] = []

		def on_chunk(chunk: str) -> None:
			chunks.append(chunk)
			if chunk.strip():
				logger.debug(f"[{role.label}][stream] {chunk}")
			self._emit(RoleUpdate(role=role, attempt=attempt, text="".join(chunks), final=False))

		text = await handle.generate(prompt, settings.sampling, on_chunk, token)
		text = text or "".join(chunks)
		if not text.strip():
			raise EmptyGeneration(role.label)
		logger.info(f"[{role.label}] {preview(text)}")
		self._emit(RoleUpdate(role=role, attempt=attempt, text=text, final=True))
		return text

	def _emit(self, update: RoleUpdate) -> None:
		if not (self.live_stream and self.stream_sink):
			return
		try:
			self.stream_sink.on_role_update(update)
		except Exception as e:
			logger.warning(f"Stream sink failed for {update.role.label}: {e}")
