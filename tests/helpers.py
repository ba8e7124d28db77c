"""Shared test fixtures and helpers for local-coder tests."""

import json
import subprocess
from pathlib import Path
from typing import Callable, Optional

from local_coder.config import Config
from local_coder.orchestrator.roles import ROLE_ORDER, Role, RoleSettings
from local_coder.plans.models import CommandRequest, FileAction, FileActionType, Plan, Step

SCOUT_REPLY = "No additional context required."


def init_git_repo(path: Path) -> None:
	"""Create a real git repo with an initial commit."""
	path.mkdir(parents=True, exist_ok=True)
	subprocess.run(["git", "init"], cwd=str(path), capture_output=True, check=True)
	subprocess.run(["git", "config", "user.email", "test@test.com"], cwd=str(path), capture_output=True)
	subprocess.run(["git", "config", "user.name", "Test"], cwd=str(path), capture_output=True)
	(path / "README.md").write_text("# Test\n")
	subprocess.run(["git", "add", "README.md"], cwd=str(path), capture_output=True, check=True)
	subprocess.run(["git", "commit", "-m", "init"], cwd=str(path), capture_output=True, check=True)


def make_plan(summary: str = "Add hello.py", with_actions: bool = True) -> Plan:
	"""Create a Plan with realistic content for testing."""
	return Plan(
		summary=summary,
		message="I will add hello.py, which prints a greeting.",
		steps=[
			Step(title="Create hello.py", detail="Write a one-line script.", result="staged"),
			Step(title="Run it"),
		],
		live_log=["The workspace has no entry point."],
		qa_findings=[],
		test_results=["python hello.py prints hello"],
		command_requests=[CommandRequest(command="echo hi", description="Say hi")] if with_actions else [],
		file_actions=[
			FileAction(type=FileActionType.CREATE, path="hello.py", content='print("hello")\n'),
		] if with_actions else [],
	)


def make_plan_json(summary: str = "Add hello.py", **overrides) -> str:
	"""Wire-format JSON for a minimal valid plan."""
	payload = {
		"summary": summary,
		"message": "Done.",
		"steps": [],
		"liveLog": [],
		"qaFindings": [],
		"testResults": [],
		"commandRequests": [],
		"fileActions": [],
	}
	payload.update(overrides)
	return json.dumps(payload)


def make_config(tmp_path: Path, models: Optional[dict[str, str]] = None) -> Config:
	"""Config rooted in ``tmp_path`` with optional role model pins."""
	config = Config(config_dir=tmp_path / "config", data_dir=tmp_path / "data")
	if models:
		for role_key, model_id in models.items():
			config.set_role_model(Role.parse(role_key), model_id)
	return config


def make_settings(models: Optional[dict[Role, str]] = None, default: str = "ollama:base") -> dict[Role, RoleSettings]:
	"""Resolved RoleSettings for every role, without going through Config."""
	models = models or {}
	return {
		role: RoleSettings(
			role=role,
			model_id=models.get(role, default),
			prompt_builder_id="structured-default/" + role.value,
		)
		for role in ROLE_ORDER
	}


Responder = Callable[[str, str, int], str]


def role_at(call_index: int) -> Role:
	"""Role of the ``call_index``-th generation when every pass runs all roles."""
	return ROLE_ORDER[call_index % len(ROLE_ORDER)]


def plan_responder(verifier_replies: Optional[list[str]] = None) -> Responder:
	"""Scout gets a briefing, every other role a valid plan.

	``verifier_replies`` overrides the verifier's reply per attempt; the last
	entry repeats once the list runs out.
	"""
	replies = verifier_replies or [make_plan_json()]

	def respond(model_id: str, prompt: str, call_index: int) -> str:
		role = role_at(call_index)
		if role == Role.CONTEXT_SCOUT:
			return SCOUT_REPLY
		if role == Role.VERIFIER:
			attempt = call_index // len(ROLE_ORDER)
			return replies[min(attempt, len(replies) - 1)]
		return make_plan_json(f"{role.value} draft")

	return respond


class FakeHandle:
	"""Stands in for ModelHandle; replies come from the pool's responder."""

	def __init__(self, pool: "FakePool", model_id: str):
		self.pool = pool
		self.model_id = model_id
		self.loaded = False
		self.load_calls = 0
		self.prompts: list[str] = []
		self.in_flight = 0
		self.max_in_flight = 0

	async def ensure_loaded(self, on_status=None, token=None) -> None:
		self.load_calls += 1
		if on_status:
			on_status("Ollama model ready.")
		self.loaded = True

	async def generate(self, prompt, sampling, on_chunk=None, token=None) -> str:
		self.in_flight += 1
		self.max_in_flight = max(self.max_in_flight, self.in_flight)
		try:
			index = len(self.pool.calls)
			self.pool.calls.append((self.model_id, prompt))
			reply = self.pool.responder(self.model_id, prompt, index)
			if on_chunk:
				for line in reply.splitlines(keepends=True):
					on_chunk(line)
			if token:
				token.raise_if_cancelled()
			return reply
		finally:
			self.in_flight -= 1


class FakePool:
	"""Stands in for ModelHandlePool; records every generation in ``calls``."""

	def __init__(self, responder: Optional[Responder] = None):
		self.responder = responder or plan_responder()
		self.calls: list[tuple[str, str]] = []
		self.handles: dict[str, FakeHandle] = {}

	def get(self, model_id: str) -> FakeHandle:
		if model_id not in self.handles:
			self.handles[model_id] = FakeHandle(self, model_id)
		return self.handles[model_id]

	def __len__(self) -> int:
		return len(self.handles)

	async def aclose(self) -> None:
		self.handles.clear()
