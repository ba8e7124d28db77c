"""Concise strategist prompt set: lean plans with the smallest sufficient set of steps."""

from typing import Optional

from ..conversation import AssistantRequest
from ..orchestrator.roles import Role
from .registry import register_style
from .shared import (
	RESPONSE_EXAMPLE,
	RESPONSE_REQUIREMENTS,
	RESPONSE_SCHEMA,
	compose_prompt,
	with_upstream,
)

STYLE_ID = "concise-strategist"
STYLE_LABEL = "Concise strategist"
STYLE_DESCRIPTION = "Short prompts tuned for fast, high-signal plans."

SYSTEM_PROMPT = (
	"You are a pragmatic software engineer in the user's terminal. Deliver precise, high-impact plans "
	"with no padding. You run on the user's machine and reason only from the context given here."
)

EXTRA_SECTIONS = [
	"Working principles:",
	"\n".join([
		"- Use the smallest set of steps that fully solves the task.",
		"- Name the key checks and commands without explaining well-known tools.",
		"- Prefer incremental edits and call out risky changes.",
	]),
	"Response format requirements:",
	RESPONSE_REQUIREMENTS,
	"JSON schema:",
	RESPONSE_SCHEMA,
	RESPONSE_EXAMPLE,
]

FINAL_REMINDER = (
	"Reply with VALID JSON matching the schema. No markdown fences or chat, and include fileActions "
	"whenever a file must be created, edited or deleted."
)

CONTEXT_SCOUT_PROMPT = (
	"You are the context scout for a fast-moving pair. Name the most important context gaps to close before planning."
)

CONTEXT_SCOUT_SECTIONS = [
	"Checklist:",
	"\n".join([
		"- Essential files, configs or test suites missing from the context.",
		"- Recent changes or TODOs that need attention.",
		"- If everything needed is present, say so.",
	]),
]

CONTEXT_SCOUT_REMINDER = (
	'Reply with at most three bullet points. If there are no gaps, reply "No additional context required."'
)

CODER_INSTRUCTIONS = "\n".join([
	"You are the coder. Make the planner's JSON plan above executable.",
	"Add fileActions for every file to create, edit or delete, with full content for create and edit.",
	"Return only the JSON object.",
])

REVIEWER_INSTRUCTIONS = "\n".join([
	"Review the coder's JSON plan above.",
	"Make sure the steps cover every requirement and risky changes carry a mitigation note.",
	"Trim where you can; add detail only where leaving it out would cause failure.",
	"Return only the corrected JSON object.",
])

QA_INSTRUCTIONS = "\n".join([
	"You are QA. List the checks that prove the plan works in qaFindings and testResults.",
	"Flag missing commands or file changes. Return only the JSON object.",
])

SAFETY_INSTRUCTIONS = "\n".join([
	"You are the safety auditor. Flag destructive commands or file deletions and add safeguards.",
	"Return only the JSON object.",
])

VERIFIER_INSTRUCTIONS = "\n".join([
	"You are the verifier. Return the plan above as valid JSON that matches the schema exactly.",
	"If it is already valid, return it unchanged.",
])


def build_planner(request: AssistantRequest, upstream: Optional[str] = None) -> str:
	return compose_prompt(SYSTEM_PROMPT, request, EXTRA_SECTIONS, FINAL_REMINDER)


def build_context_scout(request: AssistantRequest, upstream: Optional[str] = None) -> str:
	return compose_prompt(CONTEXT_SCOUT_PROMPT, request, CONTEXT_SCOUT_SECTIONS, CONTEXT_SCOUT_REMINDER)


def _downstream(instructions: str):
	def build(request: AssistantRequest, upstream: Optional[str] = None) -> str:
		return build_planner(with_upstream(request, upstream or "", instructions))
	return build


register_style(
	STYLE_ID,
	STYLE_LABEL,
	STYLE_DESCRIPTION,
	planner_build=build_planner,
	scout_build=build_context_scout,
	downstream={
		Role.CODER: _downstream(CODER_INSTRUCTIONS),
		Role.REVIEWER: _downstream(REVIEWER_INSTRUCTIONS),
		Role.QA: _downstream(QA_INSTRUCTIONS),
		Role.SAFETY: _downstream(SAFETY_INSTRUCTIONS),
		Role.VERIFIER: _downstream(VERIFIER_INSTRUCTIONS),
	},
)
