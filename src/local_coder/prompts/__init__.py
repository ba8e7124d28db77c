"""Prompt builders for every role, in two styles."""

from . import concise, structured
from .registry import (
	DEFAULT_STYLE_ID,
	PromptBuilder,
	get_builder,
	list_builders,
	list_styles,
	normalize_builder_id,
)

__all__ = [
	"DEFAULT_STYLE_ID",
	"PromptBuilder",
	"concise",
	"get_builder",
	"list_builders",
	"list_styles",
	"normalize_builder_id",
	"structured",
]
