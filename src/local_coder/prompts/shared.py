"""Prompt text shared by every style: response contract and prompt layout."""

from typing import Iterable, Optional, Sequence

from ..conversation import AssistantRequest, ConversationMessage, assistant_message, user_message

RESPONSE_RULES = [
	"Return exactly one JSON object that follows the schema below.",
	"Include every top-level key even when it has nothing to report; use empty strings or arrays.",
	"Escape newlines inside JSON strings as \\n.",
	"Put every file that must be created, edited or deleted in fileActions with its exact path, "
	"and give the complete file content for create and edit.",
	"Leave fileActions empty only when no change is needed, and say so in steps or liveLog.",
	"Never claim an action already happened; the plan runs only after the user approves it.",
	"Do not wrap the JSON in markdown fences or add text before or after it.",
]

RESPONSE_REQUIREMENTS = "\n".join(f"- {rule}" for rule in RESPONSE_RULES)

RESPONSE_SCHEMA = """{
  "summary": string, // one line describing the plan or answer
  "message": string, // markdown reply for the user
  "steps": [
    { "title": string, "detail"?: string, "result"?: string }
  ],
  "liveLog": string[], // facts gathered while planning, in order
  "qaFindings": string[], // quality checks and the bugs they found
  "testResults": string[], // tests to run and what they reported
  "commandRequests": [
    { "command": string, "description"?: string }
  ],
  "fileActions": [
    { "type": "create"|"edit"|"delete", "path": string, "content"?: string, "description"?: string }
  ]
}"""

RESPONSE_EXAMPLE = """Example JSON response:
{
  "summary": "Add hello.py",
  "message": "I will add hello.py, which prints a greeting.",
  "steps": [
    { "title": "Create hello.py", "detail": "Write a one-line script.", "result": "hello.py staged for creation" }
  ],
  "liveLog": ["The workspace has no existing entry point."],
  "qaFindings": [],
  "testResults": [],
  "commandRequests": [
    { "command": "python hello.py", "description": "Run the script" }
  ],
  "fileActions": [
    { "type": "create", "path": "hello.py", "content": "print(\\"hello\\")\\n" }
  ]
}"""


def format_context(context: str) -> str:
	trimmed = context.strip()
	return trimmed if trimmed else "(no additional context provided)"


def render_history(history: Sequence[ConversationMessage]) -> str:
	if not history:
		return "(no prior messages)"
	return "\n\n".join(f"{m.role.value.upper()}:\n{m.content}" for m in history)


def compose_prompt(
	system_prompt: str,
	request: AssistantRequest,
	extra_sections: Optional[Iterable[str]] = None,
	closing_reminder: Optional[str] = None,
) -> str:
	"""Lay out a prompt: system text, context, history, extras, request, reminder."""
	sections = [
		system_prompt,
		f"Project context:\n{format_context(request.context)}",
		f"Conversation so far:\n{render_history(request.history)}",
	]
	if extra_sections:
		sections.extend(extra_sections)
	sections.append(f"User request: {request.prompt}")
	if closing_reminder:
		sections.append(closing_reminder)
	return "\n\n".join(sections)


def with_upstream(request: AssistantRequest, upstream: str, instructions: str) -> AssistantRequest:
	"""Copy of ``request`` whose history ends with the upstream draft and the role's instructions."""
	return request.extended(assistant_message(upstream), user_message(instructions))
