"""
Roles - the fixed sequence of model roles and their inheritance graph.

Every role has a model id, a prompt-builder id and sampling parameters. A
role left unset inherits the *resolved* value of its parent, so pinning a
role freezes it while unpinned roles follow upstream changes. Resolution is
recomputed from the parent table on every read.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional


class Role(str, Enum):
	"""Model roles in invocation order."""
	CONTEXT_SCOUT = "contextScout"
	PLANNER = "planner"
	CODER = "coder"
	REVIEWER = "reviewer"
	QA = "qa"
	SAFETY = "safety"
	VERIFIER = "verifier"

	@property
	def label(self) -> str:
		return ROLE_LABELS[self]

	@classmethod
	def parse(cls, value: str) -> "Role":
		"""Accept the wire value, the enum name or a label, case-insensitively."""
		key = value.strip().lower().replace("_", "").replace("-", "").replace(" ", "")
		for role in cls:
			names = {role.value.lower(), role.name.lower().replace("_", ""), role.label.lower().replace(" ", "")}
			if key in names:
				return role
		raise ValueError(f"Unknown role: {value}")


ROLE_ORDER: tuple[Role, ...] = tuple(Role)

ROLE_LABELS: dict[Role, str] = {
	Role.CONTEXT_SCOUT: "Context scout",
	Role.PLANNER: "Planner",
	Role.CODER: "Coder",
	Role.REVIEWER: "Reviewer",
	Role.QA: "QA analyst",
	Role.SAFETY: "Safety auditor",
	Role.VERIFIER: "Verifier",
}

# Parent each role inherits from when it has no explicit setting.
ROLE_PARENTS: dict[Role, Optional[Role]] = {
	Role.PLANNER: None,
	Role.CONTEXT_SCOUT: Role.PLANNER,
	Role.REVIEWER: Role.PLANNER,
	Role.CODER: Role.REVIEWER,
	Role.QA: Role.CODER,
	Role.SAFETY: Role.QA,
	Role.VERIFIER: Role.SAFETY,
}

# Roles ordered so that every parent precedes its children.
RESOLUTION_ORDER: tuple[Role, ...] = (
	Role.PLANNER,
	Role.CONTEXT_SCOUT,
	Role.REVIEWER,
	Role.CODER,
	Role.QA,
	Role.SAFETY,
	Role.VERIFIER,
)


def resolve_inherited(
	explicit: Mapping[Role, Optional[str]],
	root_default: str,
	normalize: Callable[[str], str] = str.strip,
) -> dict[Role, str]:
	"""Resolve a per-role setting through the inheritance graph.

	Blank or missing entries inherit their parent's resolved value; the root
	falls back to ``root_default``.
	"""
	resolved: dict[Role, str] = {}
	for role in RESOLUTION_ORDER:
		value = explicit.get(role)
		if value is not None and value.strip():
			resolved[role] = normalize(value)
			continue
		parent = ROLE_PARENTS[role]
		resolved[role] = resolved[parent] if parent else normalize(root_default)
	return resolved


def inheritance_source(explicit: Mapping[Role, Optional[str]], role: Role) -> Optional[Role]:
	"""Return the role a setting is actually taken from (None when it falls back to the default)."""
	current: Optional[Role] = role
	while current is not None:
		value = explicit.get(current)
		if value is not None and value.strip():
			return current
		current = ROLE_PARENTS[current]
	return None


@dataclass(frozen=True)
class SamplingParams:
	"""Sampling parameters sent with every generate request."""
	temperature: float = 0.2
	top_p: float = 0.95
	repetition_penalty: float = 1.05
	max_new_tokens: int = 5120

	def merged(self, overrides: Optional[Mapping[str, float]]) -> "SamplingParams":
		if not overrides:
			return self
		return SamplingParams(
			temperature=float(overrides.get("temperature", self.temperature)),
			top_p=float(overrides.get("top_p", self.top_p)),
			repetition_penalty=float(overrides.get("repetition_penalty", self.repetition_penalty)),
			max_new_tokens=int(overrides.get("max_new_tokens", self.max_new_tokens)),
		)


@dataclass(frozen=True)
class RoleSettings:
	"""Resolved settings for one role."""
	role: Role
	model_id: str
	prompt_builder_id: str
	sampling: SamplingParams = field(default_factory=SamplingParams)
	model_source: Optional[Role] = None
