"""Tests for recovering plans from free-form model output."""

import json
import logging

import pytest

from local_coder.errors import UnrecoverableFormat
from local_coder.plans import FileActionType, ResponseRecoverer, recover_plan
from local_coder.plans.recovery import (
	build_candidates,
	extract_fenced,
	normalize_action_type,
	normalize_file_path,
	parse_command_string,
	parse_file_action_string,
	split_value_and_description,
	strip_json_noise,
	strip_list_prefix,
	strip_reasoning,
)

from .helpers import make_plan, make_plan_json


class TestCandidates:
	def test_reasoning_blocks_removed(self):
		assert strip_reasoning("<think>hmm</think>{}").strip() == "{}"
		assert strip_reasoning("{}<reflection>unfinished").strip() == "{}"

	def test_candidate_order_with_reasoning(self):
		raw = '<think>x</think>```json\n{"a": 1}\n```'
		candidates = build_candidates(raw)
		assert candidates == [raw, '```json\n{"a": 1}\n```', '{"a": 1}']

	def test_candidates_are_unique_and_non_blank(self):
		assert build_candidates("   ") == []
		assert build_candidates('{"a": 1}') == ['{"a": 1}']

	def test_unclosed_leading_fence(self):
		assert extract_fenced('```json\n{"a": 1}') == '{"a": 1}'
		assert extract_fenced("no fence here") is None


class TestParsing:
	def test_example_file_action_with_line_list(self):
		"""Content given as a list of lines is joined with newlines."""
		raw = json.dumps({
			"summary": "ok",
			"message": "m",
			"fileActions": [{"type": "CREATE_FILE", "file": "a.py", "contents": ["print(1)", ""]}],
		})
		plan = recover_plan(raw)
		assert len(plan.file_actions) == 1
		action = plan.file_actions[0]
		assert action.type == FileActionType.CREATE
		assert action.path == "a.py"
		assert action.content == "print(1)\n"

	def test_fenced_json_after_reasoning(self):
		raw = "<think>I should write {not json}</think>\nSure!\n```json\n" + make_plan_json("fenced") + "\n```"
		assert recover_plan(raw).summary == "fenced"

	def test_comments_and_trailing_commas(self):
		raw = '{\n "summary": "s", // one line\n "message": "m",\n "steps": ["a",],\n}'
		plan = recover_plan(raw)
		assert plan.summary == "s"
		assert [s.title for s in plan.steps] == ["a"]

	def test_prose_around_object(self):
		raw = 'Here is the plan: {"summary": "braced", "message": ""} Hope this helps.'
		assert recover_plan(raw).summary == "braced"

	def test_raw_newline_inside_string(self):
		plan = recover_plan('{"summary": "line one\nline two"}')
		assert plan.summary == "line one\nline two"

	def test_scanner_strips_noise_outside_strings(self):
		cleaned = strip_json_noise('{"a": "http://x", // c\n "b": [1,2,],}')
		assert json.loads(cleaned) == {"a": "http://x", "b": [1, 2]}

	def test_unparseable_text_raises(self):
		with pytest.raises(UnrecoverableFormat, match="Failed to parse"):
			recover_plan("I cannot help with that.")

	def test_top_level_array_is_not_a_plan(self):
		with pytest.raises(UnrecoverableFormat):
			recover_plan("[1, 2, 3]")


class TestFieldNormalization:
	def test_missing_summary_raises(self):
		with pytest.raises(UnrecoverableFormat, match="summary"):
			recover_plan('{"message": "m"}')

	def test_blank_summary_raises(self):
		with pytest.raises(UnrecoverableFormat):
			recover_plan('{"summary": "   ", "message": "m"}')

	def test_non_string_message_raises(self):
		with pytest.raises(UnrecoverableFormat, match="message"):
			recover_plan('{"summary": "s", "message": 42}')

	def test_missing_or_blank_message_becomes_empty(self):
		assert recover_plan('{"summary": "s"}').message == ""
		assert recover_plan('{"summary": "s", "message": "  \\n "}').message == ""

	def test_synonym_keys(self):
		raw = json.dumps({
			"summary": "s",
			"workLog": ["read files"],
			"qualityFindings": ["no issues"],
			"tests": ["pytest passed"],
		})
		plan = recover_plan(raw)
		assert plan.live_log == ["read files"]
		assert plan.qa_findings == ["no issues"]
		assert plan.test_results == ["pytest passed"]

	def test_steps_from_strings_and_objects(self):
		raw = json.dumps({
			"summary": "s",
			"steps": [
				"  plain step ",
				{"title": "obj", "description": "d", "outcome": "o"},
				{"title": ""},
				5,
			],
		})
		steps = recover_plan(raw).steps
		assert [s.title for s in steps] == ["plain step", "obj"]
		assert steps[1].detail == "d"
		assert steps[1].result == "o"

	def test_commands_mixed_entries(self):
		raw = json.dumps({
			"summary": "s",
			"commandRequests": [
				"- mkdir out - make output dir",
				{"command": " ls ", "description": 5},
				{"command": ""},
				7,
			],
		})
		commands = recover_plan(raw).command_requests
		assert [(c.command, c.description) for c in commands] == [
			("mkdir out", "make output dir"),
			("ls", None),
		]

	def test_file_action_object_synonyms(self):
		raw = json.dumps({
			"summary": "s",
			"fileActions": [
				{"action": "Modify", "filePath": "**README.md**", "text": "hi", "notes": "refresh"},
				{"type": "rename", "path": "a.py"},
				{"type": "delete"},
			],
		})
		actions = recover_plan(raw).file_actions
		assert len(actions) == 1
		assert actions[0].type == FileActionType.EDIT
		assert actions[0].path == "README.md"
		assert actions[0].content == "hi"
		assert actions[0].description == "refresh"

	def test_unsupported_list_values_warn(self, caplog):
		with caplog.at_level(logging.WARNING):
			plan = recover_plan('{"summary": "s", "liveLog": [1, 2]}')
		assert plan.live_log == []
		assert "liveLog" in caplog.text

	def test_recovering_a_serialized_plan_is_stable(self):
		plan = make_plan()
		assert ResponseRecoverer().recover(plan.to_json()) == plan


class TestStringGrammar:
	def test_list_prefixes(self):
		assert strip_list_prefix("- item") == "item"
		assert strip_list_prefix("2) item") == "item"
		assert strip_list_prefix("(3) item") == "item"
		assert strip_list_prefix("• item") == "item"

	def test_split_on_spaced_dashes_only(self):
		assert split_value_and_description("npm test — run tests") == ("npm test", "run tests")
		assert split_value_and_description("rm -rf build") == ("rm -rf build", None)
		assert split_value_and_description("   ") == ("", None)

	def test_command_labels(self):
		assert parse_command_string("Command: ls -la").command == "ls -la"
		assert parse_command_string("cmd = make build").command == "make build"
		assert parse_command_string("   ") is None

	@pytest.mark.parametrize("value,expected", [
		("CREATE_FILE", FileActionType.CREATE),
		("new-file", FileActionType.CREATE),
		("Update", FileActionType.EDIT),
		("erase", FileActionType.DELETE),
		("rename", None),
		("", None),
		(None, None),
	])
	def test_action_type_prefixes(self, value, expected):
		assert normalize_action_type(value) == expected

	def test_path_wrappers(self):
		assert normalize_file_path("`src/app.py`") == "src/app.py"
		assert normalize_file_path('"**notes.md**"') == "notes.md"
		assert normalize_file_path("  ") == ""

	def test_file_action_string(self):
		action = parse_file_action_string("1. Create file `src/app.py` - entry point")
		assert action.type == FileActionType.CREATE
		assert action.path == "src/app.py"
		assert action.description == "entry point"

	def test_file_action_string_with_colon_verb(self):
		action = parse_file_action_string("Delete: build/")
		assert action.type == FileActionType.DELETE
		assert action.path == "build/"

	def test_file_action_string_rejects_unknown_verb(self):
		assert parse_file_action_string("Rename a.py to b.py") is None
		assert parse_file_action_string("Create the file") is None
