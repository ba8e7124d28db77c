"""
Session Store - SQLite-backed state that survives between runs.

Features:
- Bounded conversation history
- Known model ids
- Approval mode and per-role model/prompt pins set from the CLI
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from .conversation import DEFAULT_HISTORY_LIMIT, ConversationMessage, MessageRole
from .inference import normalize_model_id
from .orchestrator.roles import Role

logger = logging.getLogger(__name__)

KNOWN_MODELS_KEY = "known_models"
ROLE_MODELS_KEY = "role_models"
ROLE_PROMPTS_KEY = "role_prompt_builders"
APPROVAL_MODE_KEY = "approval_mode"


class SessionStore:
	"""
	Persisted session state.

	Usage:
		store = SessionStore(config.session_db_path)
		await store.init()

		history = await store.load_history(limit=20)
		await store.save_history(messages, limit=20)
		await store.add_known_model("ollama:qwen3:4b")
	"""

	def __init__(self, db_path: str | Path):
		"""Initialize the session store."""
		self.db_path = Path(db_path)
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		self._db: Optional[aiosqlite.Connection] = None

	async def init(self):
		"""Initialize the database schema."""
		self._db = await aiosqlite.connect(str(self.db_path))
		self._db.row_factory = aiosqlite.Row

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS messages (
				id INTEGER PRIMARY KEY AUTOINCREMENT,
				role TEXT NOT NULL,
				content TEXT NOT NULL,
				created_at TEXT NOT NULL
			)
		""")

		await self._db.execute("""
			CREATE TABLE IF NOT EXISTS settings (
				key TEXT PRIMARY KEY,
				value TEXT NOT NULL,
				updated_at TEXT NOT NULL
			)
		""")

		await self._db.commit()
		logger.info(f"Session store initialized: {self.db_path}")

	async def close(self):
		"""Close the database connection."""
		if self._db:
			await self._db.close()
			self._db = None

	async def _conn(self) -> aiosqlite.Connection:
		if not self._db:
			await self.init()
		return self._db

	# -- conversation ------------------------------------------------------

	async def load_history(self, limit: int = DEFAULT_HISTORY_LIMIT) -> list[ConversationMessage]:
		"""Newest ``limit`` non-blank messages, oldest first."""
		db = await self._conn()
		cursor = await db.execute(
			"SELECT role, content FROM messages ORDER BY id DESC LIMIT ?",
			(limit,),
		)
		rows = await cursor.fetchall()
		messages = []
		for row in reversed(rows):
			if not row["content"].strip():
				continue
			try:
				role = MessageRole(row["role"])
			except ValueError:
				logger.warning(f"Skipping stored message with unknown role: {row['role']}")
				continue
			messages.append(ConversationMessage(role=role, content=row["content"]))
		return messages

	async def save_history(self, messages: list[ConversationMessage], limit: int = DEFAULT_HISTORY_LIMIT) -> None:
		"""Replace the stored conversation with the last ``limit`` messages."""
		db = await self._conn()
		now = datetime.now().isoformat()
		kept = [m for m in messages if m.content.strip()][-limit:]
		await db.execute("DELETE FROM messages")
		await db.executemany(
			"INSERT INTO messages (role, content, created_at) VALUES (?, ?, ?)",
			[(m.role.value, m.content, now) for m in kept],
		)
		await db.commit()

	async def clear_history(self) -> None:
		db = await self._conn()
		await db.execute("DELETE FROM messages")
		await db.commit()
		logger.info("Conversation history cleared")

	# -- settings ----------------------------------------------------------

	async def get_setting(self, key: str, default: Any = None) -> Any:
		db = await self._conn()
		cursor = await db.execute("SELECT value FROM settings WHERE key = ?", (key,))
		row = await cursor.fetchone()
		if not row:
			return default
		return json.loads(row["value"])

	async def set_setting(self, key: str, value: Any) -> None:
		db = await self._conn()
		await db.execute(
			"""
			INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
			ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
			""",
			(key, json.dumps(value), datetime.now().isoformat()),
		)
		await db.commit()

	async def load_settings(self) -> dict[str, Any]:
		"""All stored settings, shaped for ``config.apply_stored_settings``."""
		db = await self._conn()
		cursor = await db.execute("SELECT key, value FROM settings")
		rows = await cursor.fetchall()
		return {row["key"]: json.loads(row["value"]) for row in rows}

	async def set_role_model(self, role: Role, model_id: Optional[str]) -> None:
		"""Pin a role's model; None or blank makes the role inherit."""
		pins = await self.get_setting(ROLE_MODELS_KEY, {})
		pins[role.value] = normalize_model_id(model_id) if model_id and model_id.strip() else ""
		await self.set_setting(ROLE_MODELS_KEY, pins)
		if model_id and model_id.strip():
			await self.add_known_model(model_id)

	async def set_role_prompt_builder(self, role: Role, builder_id: Optional[str]) -> None:
		pins = await self.get_setting(ROLE_PROMPTS_KEY, {})
		pins[role.value] = (builder_id or "").strip()
		await self.set_setting(ROLE_PROMPTS_KEY, pins)

	async def get_approval_mode(self) -> Optional[str]:
		return await self.get_setting(APPROVAL_MODE_KEY)

	async def set_approval_mode(self, mode: str) -> None:
		await self.set_setting(APPROVAL_MODE_KEY, mode)

	# -- known models ------------------------------------------------------

	async def known_models(self) -> list[str]:
		return list(await self.get_setting(KNOWN_MODELS_KEY, []))

	async def add_known_model(self, model_id: str) -> list[str]:
		normalized = normalize_model_id(model_id)
		models = await self.known_models()
		if normalized not in models:
			models.append(normalized)
			models.sort()
			await self.set_setting(KNOWN_MODELS_KEY, models)
		return models

	async def remove_known_model(self, model_id: str) -> bool:
		normalized = normalize_model_id(model_id)
		models = await self.known_models()
		if normalized not in models:
			return False
		models.remove(normalized)
		await self.set_setting(KNOWN_MODELS_KEY, models)
		return True
