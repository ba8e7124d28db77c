"""
Response Recoverer - turns free-form model output into a validated Plan.

Models wrap their JSON in reasoning traces, markdown fences and prose, and
often emit comments or trailing commas. Recovery tries a fixed sequence of
candidate substrings with three parsers each, then normalizes every field,
dropping malformed items instead of failing the whole plan.
"""

import json
import logging
import re
from typing import Any, Optional

import json5

from ..errors import UnrecoverableFormat
from .models import CommandRequest, FileAction, FileActionType, Plan, Step

logger = logging.getLogger(__name__)

REASONING_PATTERNS = [
	re.compile(r"<think>[\s\S]*?(?:</think>|$)", re.IGNORECASE),
	re.compile(r"<reflection>[\s\S]*?(?:</reflection>|$)", re.IGNORECASE),
]
FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

LIST_PREFIX_PATTERNS = [
	re.compile(r"^[-*•]+\s+"),
	re.compile(r"^\d+[.)]\s+"),
	re.compile(r"^\(\d+\)\s+"),
	re.compile(r"^[a-z]\)\s+", re.IGNORECASE),
]
DESCRIPTION_SEPARATOR = re.compile(r"\s[-–—]\s")

COMMAND_LABELS = ["command", "cmd", "shell"]
FILE_ACTION_LABELS = ["file action", "file", "action"]
FILE_ACTION_FILLER_WORDS = {"file", "files", "the", "a", "an", "path", "folder", "directory"}

# Verb prefixes, checked in this order after lower-casing and dropping non-letters.
ACTION_VERBS: list[tuple[FileActionType, tuple[str, ...]]] = [
	(FileActionType.CREATE, ("create", "add", "write", "new", "make")),
	(FileActionType.EDIT, ("edit", "update", "modify", "change", "replace", "revise", "patch")),
	(FileActionType.DELETE, ("delete", "remove", "drop", "unlink", "erase")),
]

PATH_WRAPPERS = [
	('"', '"'),
	("'", "'"),
	("`", "`"),
	("“", "”"),
	("‘", "’"),
	("«", "»"),
	("**", "**"),
	("*", "*"),
]

LIVE_LOG_KEYS = ("liveLog", "workLog", "log")
QA_KEYS = ("qaFindings", "qualityFindings")
TEST_KEYS = ("testResults", "tests", "testLog", "testOutcomes")
ACTION_TYPE_KEYS = ("type", "action", "kind", "operation")
ACTION_PATH_KEYS = ("path", "file", "target", "uri", "filename", "filePath")
ACTION_CONTENT_KEYS = ("content", "contents", "text", "body", "data", "code", "value")
ACTION_DESCRIPTION_KEYS = ("description", "detail", "notes", "note", "summary")


# ---------------------------------------------------------------------------
# Candidate extraction
# ---------------------------------------------------------------------------

def strip_reasoning(text: str) -> str:
	"""Remove <think>/<reflection> blocks, including an unterminated trailing one."""
	for pattern in REASONING_PATTERNS:
		text = pattern.sub("", text)
	return text


def extract_fenced(text: str) -> Optional[str]:
	"""Return the body of the first fenced block, or of an unclosed leading fence."""
	match = FENCE_PATTERN.search(text)
	if match and match.group(1):
		return match.group(1).strip()
	if text.startswith("```"):
		newline = text.find("\n")
		if newline != -1:
			after = text[newline + 1:]
			closing = after.rfind("```")
			inside = after[:closing] if closing != -1 else after
			if inside.strip():
				return inside.strip()
	return None


def extract_braced(text: str) -> Optional[str]:
	"""Return the slice from the first '{' to the last '}'."""
	first = text.find("{")
	last = text.rfind("}")
	if first == -1 or last <= first:
		return None
	return text[first:last + 1].strip() or None


def build_candidates(raw: str) -> list[str]:
	"""Ordered, de-duplicated, non-blank candidate strings for parsing."""
	candidates: list[str] = []

	def push(candidate: Optional[str]) -> None:
		if not candidate:
			return
		candidate = candidate.strip()
		if candidate and candidate not in candidates:
			candidates.append(candidate)

	trimmed = raw.strip()
	stripped = strip_reasoning(trimmed).strip()
	has_reasoning = stripped != trimmed

	push(trimmed)
	if has_reasoning:
		push(stripped)
	push(extract_fenced(trimmed))
	if has_reasoning:
		push(extract_fenced(stripped))
	push(extract_braced(trimmed))
	if has_reasoning:
		push(extract_braced(stripped))
	return candidates


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

def _as_object(value: Any) -> Optional[dict]:
	return value if isinstance(value, dict) else None


def parse_strict(candidate: str) -> Optional[dict]:
	try:
		return _as_object(json.loads(candidate, strict=False))
	except ValueError:
		return None


def parse_lenient(candidate: str) -> Optional[dict]:
	"""JSON5 parse: tolerates comments, trailing commas and single quotes."""
	try:
		return _as_object(json5.loads(candidate))
	except (ValueError, TypeError, RecursionError):
		return None


def strip_json_noise(text: str) -> str:
	"""Drop comments and trailing commas outside of string literals."""
	without_comments = []
	quote: Optional[str] = None
	i = 0
	length = len(text)
	while i < length:
		char = text[i]
		if quote:
			without_comments.append(char)
			if char == "\\" and i + 1 < length:
				without_comments.append(text[i + 1])
				i += 2
				continue
			if char == quote:
				quote = None
			i += 1
			continue
		if char in ('"', "'"):
			quote = char
			without_comments.append(char)
			i += 1
			continue
		if text.startswith("//", i):
			while i < length and text[i] not in "\r\n":
				i += 1
			continue
		if text.startswith("/*", i):
			end = text.find("*/", i + 2)
			i = length if end == -1 else end + 2
			continue
		without_comments.append(char)
		i += 1
	return _remove_trailing_commas("".join(without_comments)).strip()


def _remove_trailing_commas(text: str) -> str:
	result = []
	quote: Optional[str] = None
	i = 0
	length = len(text)
	while i < length:
		char = text[i]
		if quote:
			result.append(char)
			if char == "\\" and i + 1 < length:
				result.append(text[i + 1])
				i += 2
				continue
			if char == quote:
				quote = None
			i += 1
			continue
		if char in ('"', "'"):
			quote = char
		elif char == ",":
			rest = text[i + 1:].lstrip(" \t\r\n")
			if rest[:1] in ("}", "]"):
				i += 1
				continue
		result.append(char)
		i += 1
	return "".join(result)


def parse_scanned(candidate: str) -> Optional[dict]:
	cleaned = strip_json_noise(candidate)
	if not cleaned:
		return None
	return parse_strict(cleaned)


PARSERS = (parse_strict, parse_lenient, parse_scanned)


# ---------------------------------------------------------------------------
# String grammar shared by command and file action entries
# ---------------------------------------------------------------------------

def strip_list_prefix(value: str) -> str:
	result = value.strip()
	for pattern in LIST_PREFIX_PATTERNS:
		result = pattern.sub("", result, count=1)
	return result.strip()


def strip_leading_label(value: str, labels: list[str]) -> str:
	result = value.strip()
	for label in labels:
		pattern = re.compile(rf"^{re.escape(label)}(?:\s*[:：=-]\s*|\s+)", re.IGNORECASE)
		if pattern.match(result):
			return pattern.sub("", result, count=1).strip()
	return result


def split_value_and_description(value: str) -> tuple[str, Optional[str]]:
	"""Split ``value - description`` at the first spaced dash, en dash or em dash."""
	trimmed = value.strip()
	if not trimmed:
		return "", None
	match = DESCRIPTION_SEPARATOR.search(trimmed)
	if not match:
		return trimmed, None
	description = trimmed[match.end():].strip()
	return trimmed[:match.start()].strip(), description or None


def normalize_file_path(value: str) -> str:
	"""Peel quote, backtick and emphasis wrappers off a path."""
	result = value.strip()
	if not result:
		return ""
	updated = True
	while updated:
		updated = False
		for opening, closing in PATH_WRAPPERS:
			if (
				len(result) >= len(opening) + len(closing)
				and result.startswith(opening)
				and result.endswith(closing)
			):
				result = result[len(opening):len(result) - len(closing)].strip()
				updated = True
	return result.lstrip("*`").rstrip("*`").strip()


def normalize_action_type(value: Optional[str]) -> Optional[FileActionType]:
	if not value:
		return None
	collapsed = re.sub(r"[^a-z]", "", value.strip().lower())
	if not collapsed:
		return None
	for action_type, prefixes in ACTION_VERBS:
		if collapsed.startswith(prefixes):
			return action_type
	return None


def parse_command_string(value: str) -> Optional[CommandRequest]:
	stripped = strip_leading_label(strip_list_prefix(value), COMMAND_LABELS)
	if not stripped:
		return None
	command, description = split_value_and_description(stripped)
	if not command:
		return None
	return CommandRequest(command=command, description=description)


def parse_file_action_string(value: str) -> Optional[FileAction]:
	stripped = strip_leading_label(strip_list_prefix(value), FILE_ACTION_LABELS)
	tokens = stripped.split()
	if not tokens:
		return None

	action_type = normalize_action_type(tokens[0])
	start = 1
	if action_type is None and len(tokens) >= 2:
		action_type = normalize_action_type(f"{tokens[0]} {tokens[1]}")
		start = 2
	if action_type is None:
		return None

	remainder = tokens[start:]
	while remainder and remainder[0].lower() in FILE_ACTION_FILLER_WORDS:
		remainder.pop(0)
	if not remainder:
		return None

	path_part, description = split_value_and_description(" ".join(remainder))
	path = normalize_file_path(path_part)
	if not path:
		return None
	return FileAction(type=action_type, path=path, description=description)


# ---------------------------------------------------------------------------
# Recoverer
# ---------------------------------------------------------------------------

def _first_present(data: dict, keys: tuple[str, ...]) -> Any:
	for key in keys:
		if data.get(key) is not None:
			return data[key]
	return None


def _first_string(record: dict, keys: tuple[str, ...]) -> Optional[str]:
	for key in keys:
		value = record.get(key)
		if isinstance(value, str) and value.strip():
			return value.strip()
	return None


class ResponseRecoverer:
	"""
	Recover a Plan from raw model text.

	Usage:
		plan = ResponseRecoverer().recover(raw_text)

	Raises UnrecoverableFormat when no candidate parses to a JSON object or
	when the object has no usable ``summary``.
	"""

	def recover(self, raw: str) -> Plan:
		data = self._parse_object(raw)

		summary = data.get("summary")
		if not isinstance(summary, str) or not summary.strip():
			raise UnrecoverableFormat("Assistant response field `summary` is missing or empty.", raw)
		message = data.get("message", "")
		if not isinstance(message, str):
			raise UnrecoverableFormat("Assistant response field `message` is missing or empty.", raw)
		if not message.strip():
			message = ""

		return Plan(
			summary=summary,
			message=message,
			steps=self._steps(data.get("steps")),
			live_log=self._strings(_first_present(data, LIVE_LOG_KEYS), "liveLog"),
			qa_findings=self._strings(_first_present(data, QA_KEYS), "qaFindings"),
			test_results=self._strings(_first_present(data, TEST_KEYS), "testResults"),
			command_requests=self._commands(data.get("commandRequests")),
			file_actions=self._file_actions(data.get("fileActions")),
		)

	def _parse_object(self, raw: str) -> dict:
		for candidate in build_candidates(raw or ""):
			for parser in PARSERS:
				parsed = parser(candidate)
				if parsed is not None:
					return parsed
		raise UnrecoverableFormat("Failed to parse assistant response as JSON.", raw)

	def _strings(self, value: Any, field: str) -> list[str]:
		if not isinstance(value, list):
			return []
		result = [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]
		if value and not result:
			logger.warning(f"Assistant response field `{field}` contained unsupported values and was ignored.")
		return result

	def _steps(self, value: Any) -> list[Step]:
		if not isinstance(value, list):
			return []
		steps = []
		for entry in value:
			if isinstance(entry, str):
				if entry.strip():
					steps.append(Step(title=entry.strip()))
				continue
			if not isinstance(entry, dict):
				continue
			title = entry.get("title")
			if not isinstance(title, str) or not title.strip():
				continue
			detail = _first_string(entry, ("detail", "description"))
			result = _first_string(entry, ("result", "outcome"))
			steps.append(Step(title=title.strip(), detail=detail, result=result))
		return steps

	def _commands(self, value: Any) -> list[CommandRequest]:
		if not isinstance(value, list):
			return []
		commands = []
		for entry in value:
			if isinstance(entry, str):
				parsed = parse_command_string(entry)
				if parsed:
					commands.append(parsed)
				continue
			if not isinstance(entry, dict):
				continue
			command = entry.get("command")
			if not isinstance(command, str) or not command.strip():
				continue
			description = entry.get("description")
			commands.append(CommandRequest(
				command=command.strip(),
				description=description if isinstance(description, str) else None,
			))
		return commands

	def _file_actions(self, value: Any) -> list[FileAction]:
		if not isinstance(value, list):
			return []
		actions = []
		for entry in value:
			if isinstance(entry, str):
				parsed = parse_file_action_string(entry)
				if parsed:
					actions.append(parsed)
				continue
			if not isinstance(entry, dict):
				continue
			action_type = normalize_action_type(_first_string(entry, ACTION_TYPE_KEYS))
			if action_type is None:
				continue
			raw_path = _first_string(entry, ACTION_PATH_KEYS)
			path = normalize_file_path(raw_path) if raw_path else ""
			if not path:
				continue
			actions.append(FileAction(
				type=action_type,
				path=path,
				content=self._content(entry),
				description=_first_string(entry, ACTION_DESCRIPTION_KEYS),
			))
		return actions

	def _content(self, record: dict) -> Optional[str]:
		for key in ACTION_CONTENT_KEYS:
			if key not in record:
				continue
			value = record[key]
			if isinstance(value, str):
				return value
			if isinstance(value, list) and all(isinstance(item, str) for item in value):
				return "\n".join(value)
		return None


_recoverer = ResponseRecoverer()


def recover_plan(raw: str) -> Plan:
	"""Module-level shortcut for ResponseRecoverer().recover()."""
	return _recoverer.recover(raw)
