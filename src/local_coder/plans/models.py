"""
Plan Models - Pydantic schemas for the structured plan a turn produces.

The wire format uses camelCase keys (``liveLog``, ``commandRequests`` ...),
Python code uses the snake_case attribute names.
"""

import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FileActionType(str, Enum):
	"""Kind of change a file action makes."""
	CREATE = "create"
	EDIT = "edit"
	DELETE = "delete"


class Step(BaseModel):
	"""A single step of the plan narrative."""
	title: str = Field(description="Short step title")
	detail: Optional[str] = Field(default=None, description="Longer explanation")
	result: Optional[str] = Field(default=None, description="Outcome of the step")

	@field_validator("title")
	@classmethod
	def _title_not_blank(cls, value: str) -> str:
		if not value.strip():
			raise ValueError("step title must not be blank")
		return value


class CommandRequest(BaseModel):
	"""A shell command the plan asks to run."""
	command: str = Field(description="Command line passed to the shell")
	description: Optional[str] = Field(default=None, description="Why the command is needed")

	@field_validator("command")
	@classmethod
	def _command_not_blank(cls, value: str) -> str:
		if not value.strip():
			raise ValueError("command must not be blank")
		return value


class FileAction(BaseModel):
	"""A file change the plan asks to make."""
	type: FileActionType = Field(description="create, edit or delete")
	path: str = Field(description="Workspace path, relative or absolute")
	content: Optional[str] = Field(default=None, description="Full file content for create/edit")
	description: Optional[str] = Field(default=None, description="Why the change is needed")

	@field_validator("path")
	@classmethod
	def _path_not_blank(cls, value: str) -> str:
		if not value.strip():
			raise ValueError("path must not be blank")
		return value


class Plan(BaseModel):
	"""
	The validated result of a turn.

	``summary`` is required and non-blank; every list defaults to empty.
	"""
	model_config = ConfigDict(populate_by_name=True)

	summary: str = Field(description="One-line summary of the plan")
	message: str = Field(default="", description="Reply shown to the user")
	steps: list[Step] = Field(default_factory=list)
	live_log: list[str] = Field(default_factory=list, alias="liveLog")
	qa_findings: list[str] = Field(default_factory=list, alias="qaFindings")
	test_results: list[str] = Field(default_factory=list, alias="testResults")
	command_requests: list[CommandRequest] = Field(default_factory=list, alias="commandRequests")
	file_actions: list[FileAction] = Field(default_factory=list, alias="fileActions")

	@field_validator("summary")
	@classmethod
	def _summary_not_blank(cls, value: str) -> str:
		if not value.strip():
			raise ValueError("summary must not be blank")
		return value

	def to_wire(self) -> dict[str, Any]:
		"""Return the camelCase dict form, omitting unset optional fields."""
		return self.model_dump(mode="json", by_alias=True, exclude_none=True)

	def to_json(self, indent: Optional[int] = 2) -> str:
		return json.dumps(self.to_wire(), indent=indent, ensure_ascii=False)

	def has_actions(self) -> bool:
		return bool(self.command_requests or self.file_actions)
