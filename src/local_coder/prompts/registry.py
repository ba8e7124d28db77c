"""
Prompt builder registry.

Builders are keyed ``"<style>/<role>"``. A configured id may name the exact
builder, a builder of the same style for another role, or just the style;
anything else falls back to the role's default builder.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..conversation import AssistantRequest
from ..orchestrator.roles import Role

logger = logging.getLogger(__name__)

DEFAULT_STYLE_ID = "structured-default"

BuildFn = Callable[[AssistantRequest, Optional[str]], str]


@dataclass(frozen=True)
class PromptBuilder:
	"""Builds one role's prompt for one style."""
	id: str
	role: Role
	label: str
	description: str
	build_fn: BuildFn

	@property
	def style(self) -> str:
		return self.id.split("/", 1)[0]

	def build(self, request: AssistantRequest, upstream: Optional[str] = None) -> str:
		return self.build_fn(request, upstream)


_BUILDERS: dict[str, PromptBuilder] = {}


def register(builder: PromptBuilder) -> None:
	if builder.id in _BUILDERS:
		return
	_BUILDERS[builder.id] = builder


def builder_id(style: str, role: Role) -> str:
	return f"{style}/{role.value}"


def _style_of(value: str) -> Optional[str]:
	separator = value.find("/")
	if separator <= 0:
		return None
	return value[:separator]


def normalize_builder_id(requested: Optional[str], role: Role) -> str:
	"""Map a configured id onto a registered builder id for ``role``."""
	default = builder_id(DEFAULT_STYLE_ID, role)
	trimmed = (requested or "").strip()
	if not trimmed:
		return default
	direct = _BUILDERS.get(trimmed)
	if direct and direct.role == role:
		return direct.id
	for style in (_style_of(trimmed), trimmed):
		if style and builder_id(style, role) in _BUILDERS:
			return builder_id(style, role)
	logger.warning(f"Unknown prompt builder '{trimmed}' for {role.label}; using {default}")
	return default


def get_builder(role: Role, requested: Optional[str] = None) -> PromptBuilder:
	return _BUILDERS[normalize_builder_id(requested, role)]


def list_builders(role: Optional[Role] = None) -> list[PromptBuilder]:
	builders = [b for b in _BUILDERS.values() if role is None or b.role == role]
	return sorted(builders, key=lambda b: b.label.lower())


def list_styles() -> list[str]:
	return sorted({b.style for b in _BUILDERS.values()})


def register_style(
	style: str,
	label: str,
	description: str,
	planner_build: BuildFn,
	scout_build: BuildFn,
	downstream: dict[Role, BuildFn],
) -> None:
	"""Register every role's builder for one style."""
	builds = {Role.PLANNER: planner_build, Role.CONTEXT_SCOUT: scout_build, **downstream}
	missing = [role.label for role in Role if role not in builds]
	if missing:
		raise ValueError(f"Style {style} has no builder for {', '.join(missing)}")
	for role in Role:
		register(PromptBuilder(
			id=builder_id(style, role),
			role=role,
			label=f"{label} · {role.label}",
			description=description,
			build_fn=builds[role],
		))
