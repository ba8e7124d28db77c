"""Conversation messages, the per-turn request and the bounded session history."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_HISTORY_LIMIT = 20


class MessageRole(str, Enum):
	"""Speaker of a conversation message."""
	USER = "user"
	ASSISTANT = "assistant"
	SYSTEM = "system"


class ConversationMessage(BaseModel):
	"""One immutable entry of the conversation."""
	model_config = ConfigDict(frozen=True)

	role: MessageRole = Field(description="Who said it")
	content: str = Field(description="Message text")


def user_message(content: str) -> ConversationMessage:
	return ConversationMessage(role=MessageRole.USER, content=content)


def assistant_message(content: str) -> ConversationMessage:
	return ConversationMessage(role=MessageRole.ASSISTANT, content=content)


@dataclass(frozen=True)
class AssistantRequest:
	"""Everything a role sees for one turn.

	Built once per turn. Roles that need extra history entries derive a new
	request with ``with_history`` instead of mutating this one.
	"""
	prompt: str
	context: str = ""
	history: tuple[ConversationMessage, ...] = field(default_factory=tuple)

	def with_history(self, history: Iterable[ConversationMessage]) -> "AssistantRequest":
		return AssistantRequest(prompt=self.prompt, context=self.context, history=tuple(history))

	def extended(self, *messages: ConversationMessage) -> "AssistantRequest":
		return self.with_history(self.history + tuple(messages))


class ConversationHistory:
	"""Bounded, ordered message buffer; the oldest entries are evicted first."""

	def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT, messages: Optional[Iterable[ConversationMessage]] = None):
		self.limit = max(1, limit)
		self._messages: list[ConversationMessage] = []
		if messages:
			self.load(messages)

	def load(self, messages: Iterable[ConversationMessage]) -> None:
		"""Replace the buffer, skipping blank entries and keeping the newest ones."""
		kept = [m for m in messages if m.content.strip()]
		self._messages = kept[-self.limit:]

	def push(self, message: ConversationMessage) -> None:
		self._messages.append(message)
		if len(self._messages) > self.limit:
			del self._messages[:len(self._messages) - self.limit]

	def clear(self) -> None:
		self._messages = []

	def snapshot(self) -> tuple[ConversationMessage, ...]:
		return tuple(self._messages)

	def __len__(self) -> int:
		return len(self._messages)
