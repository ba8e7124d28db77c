"""Tests for the prompt builder registry and prompt layout."""

import logging

import pytest

from local_coder.conversation import AssistantRequest, MessageRole, assistant_message, user_message
from local_coder.orchestrator.roles import Role
from local_coder.prompts import (
	DEFAULT_STYLE_ID,
	get_builder,
	list_builders,
	list_styles,
	normalize_builder_id,
)
from local_coder.prompts.registry import register_style
from local_coder.prompts.shared import compose_prompt, with_upstream


def sample_request() -> AssistantRequest:
	return AssistantRequest(
		prompt="Add hello.py",
		context="",
		history=(user_message("hi"), assistant_message("hello")),
	)


class TestNormalizeBuilderId:
	def test_blank_uses_default_style(self):
		assert normalize_builder_id(None, Role.PLANNER) == f"{DEFAULT_STYLE_ID}/planner"
		assert normalize_builder_id("  ", Role.QA) == f"{DEFAULT_STYLE_ID}/qa"

	def test_exact_id(self):
		assert normalize_builder_id("concise-strategist/coder", Role.CODER) == "concise-strategist/coder"

	def test_other_roles_id_maps_to_same_style(self):
		assert normalize_builder_id("concise-strategist/coder", Role.REVIEWER) == "concise-strategist/reviewer"

	def test_bare_style(self):
		assert normalize_builder_id("concise-strategist", Role.VERIFIER) == "concise-strategist/verifier"

	def test_unknown_falls_back_with_warning(self, caplog):
		with caplog.at_level(logging.WARNING):
			assert normalize_builder_id("made-up/coder", Role.CODER) == f"{DEFAULT_STYLE_ID}/coder"
		assert "made-up/coder" in caplog.text


class TestRegistry:
	def test_styles(self):
		assert list_styles() == ["concise-strategist", "structured-default"]

	def test_builders_for_role_sorted_by_label(self):
		builders = list_builders(Role.CODER)
		assert [b.id for b in builders] == ["structured-default/coder", "concise-strategist/coder"]
		assert all(b.role == Role.CODER for b in builders)

	def test_every_role_has_every_style(self):
		assert len(list_builders()) == 2 * len(Role)

	def test_style_must_cover_every_role(self):
		with pytest.raises(ValueError):
			register_style("partial", "Partial", "", lambda r, u: "", lambda r, u: "", {})
		assert "partial" not in list_styles()

	@pytest.mark.parametrize("builder", list_builders(), ids=lambda b: b.id)
	def test_builder_includes_request_and_upstream(self, builder):
		prompt = builder.build(sample_request(), '{"summary": "upstream draft"}')
		assert "Add hello.py" in prompt
		if builder.role not in (Role.PLANNER, Role.CONTEXT_SCOUT):
			assert "upstream draft" in prompt

	def test_get_builder_resolves_style(self):
		assert get_builder(Role.SAFETY, "concise-strategist").id == "concise-strategist/safety"
		assert get_builder(Role.SAFETY).id == f"{DEFAULT_STYLE_ID}/safety"


class TestPromptLayout:
	def test_sections_in_order(self):
		prompt = compose_prompt("SYSTEM", sample_request(), ["EXTRA"], "REMINDER")
		assert prompt.startswith("SYSTEM\n\nProject context:\n(no additional context provided)")
		assert prompt.index("USER:\nhi") < prompt.index("ASSISTANT:\nhello") < prompt.index("EXTRA")
		assert prompt.index("EXTRA") < prompt.index("User request: Add hello.py")
		assert prompt.endswith("REMINDER")

	def test_empty_history(self):
		prompt = compose_prompt("SYSTEM", AssistantRequest(prompt="x", context="files"))
		assert "Project context:\nfiles" in prompt
		assert "Conversation so far:\n(no prior messages)" in prompt

	def test_with_upstream_appends_draft_then_instructions(self):
		request = sample_request()
		extended = with_upstream(request, "draft", "do better")
		assert extended.history[-2].role == MessageRole.ASSISTANT
		assert extended.history[-2].content == "draft"
		assert extended.history[-1].content == "do better"
		assert len(request.history) == 2
