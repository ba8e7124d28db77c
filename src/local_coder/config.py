"""Configuration system using platformdirs for cross-platform paths."""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import platformdirs

from .inference import DEFAULT_MODEL_ID, normalize_model_id
from .orchestrator.roles import (
	ROLE_ORDER,
	Role,
	RoleSettings,
	SamplingParams,
	inheritance_source,
	resolve_inherited,
)
from .prompts import DEFAULT_STYLE_ID, normalize_builder_id

APP_NAME = "local-coder"
APP_AUTHOR = "local-coder"

APPROVAL_MODES = ("requireApproval", "autoApprove")
DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"


@dataclass
class Config:
	"""Central configuration with XDG/platform conventions."""

	config_dir: Path = field(default_factory=lambda: Path(platformdirs.user_config_dir(APP_NAME)))
	data_dir: Path = field(default_factory=lambda: Path(platformdirs.user_data_dir(APP_NAME)))

	# Derived paths
	session_db_path: Path = field(init=False)
	log_dir: Path = field(init=False)

	# Inference
	ollama_host: str = field(default_factory=lambda: os.getenv("OLLAMA_HOST", DEFAULT_OLLAMA_HOST))
	request_timeout: float = 30.0
	generation_timeout: float = 120.0

	# Sampling defaults, overridable per role through role_sampling
	max_new_tokens: int = 5120
	temperature: float = 0.2
	top_p: float = 0.95
	repetition_penalty: float = 1.05

	# Per-role settings keyed by Role value; blank or missing means inherit
	role_models: dict[str, str] = field(default_factory=lambda: {Role.PLANNER.value: DEFAULT_MODEL_ID})
	role_prompt_builders: dict[str, str] = field(default_factory=dict)
	role_sampling: dict[str, dict[str, float]] = field(default_factory=dict)

	# Turn behaviour
	show_live_stream: bool = False
	allow_command_execution: bool = True
	shell: str = "default"
	approval_mode: str = "requireApproval"
	max_attempts: int = 4
	history_limit: int = 20

	# Workspace context collection
	workspace_roots: list[Path] = field(default_factory=list)
	context_max_files: int = 40
	context_max_file_size: int = 200 * 1024
	context_max_total_size: int = 1500 * 1024
	context_include_binary: bool = False
	context_exclude_globs: list[str] = field(default_factory=list)
	context_use_default_excludes: bool = True
	context_prioritize_changed_files: bool = True

	def __post_init__(self) -> None:
		self.session_db_path = self.data_dir / "session.db"
		self.log_dir = self.data_dir / "logs"

	def ensure_dirs(self) -> None:
		"""Create all required directories."""
		self.config_dir.mkdir(parents=True, exist_ok=True)
		self.data_dir.mkdir(parents=True, exist_ok=True)
		self.log_dir.mkdir(parents=True, exist_ok=True)

	@property
	def require_approval(self) -> bool:
		return self.approval_mode != "autoApprove"

	def set_approval_mode(self, mode: str) -> None:
		if mode not in APPROVAL_MODES:
			raise ValueError(f"Unknown approval mode: {mode} (expected one of {', '.join(APPROVAL_MODES)})")
		self.approval_mode = mode

	def set_role_model(self, role: Role, model_id: Optional[str]) -> None:
		"""Pin ``role`` to ``model_id``; None or blank makes it inherit again."""
		if model_id and model_id.strip():
			self.role_models[role.value] = model_id.strip()
		else:
			self.role_models.pop(role.value, None)

	def set_role_prompt_builder(self, role: Role, builder_id: Optional[str]) -> None:
		if builder_id and builder_id.strip():
			self.role_prompt_builders[role.value] = builder_id.strip()
		else:
			self.role_prompt_builders.pop(role.value, None)

	def base_sampling(self) -> SamplingParams:
		return SamplingParams(
			temperature=self.temperature,
			top_p=self.top_p,
			repetition_penalty=self.repetition_penalty,
			max_new_tokens=self.max_new_tokens,
		)

	def resolve_role_settings(self) -> dict[Role, RoleSettings]:
		"""Resolve model, prompt builder and sampling for every role."""
		model_pins = _by_role(self.role_models)
		builder_pins = _by_role(self.role_prompt_builders)
		models = resolve_inherited(model_pins, DEFAULT_MODEL_ID, normalize_model_id)
		builders = resolve_inherited(builder_pins, DEFAULT_STYLE_ID)
		base = self.base_sampling()
		settings = {}
		for role in ROLE_ORDER:
			settings[role] = RoleSettings(
				role=role,
				model_id=models[role],
				prompt_builder_id=normalize_builder_id(builders[role], role),
				sampling=base.merged(self.role_sampling.get(role.value)),
				model_source=inheritance_source(model_pins, role),
			)
		return settings


def _by_role(values: Mapping[str, Any]) -> dict[Role, Optional[str]]:
	result: dict[Role, Optional[str]] = {}
	for key, value in values.items():
		try:
			role = Role.parse(key)
		except ValueError:
			continue
		result[role] = str(value) if value is not None else None
	return result


def _env_bool(value: str) -> bool:
	return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(config: Config) -> Config:
	"""Apply LOCAL_CODER_* environment variable overrides."""
	path_map = {
		"LOCAL_CODER_CONFIG_DIR": "config_dir",
		"LOCAL_CODER_DATA_DIR": "data_dir",
	}
	for env_key, attr in path_map.items():
		val = os.getenv(env_key)
		if val:
			setattr(config, attr, Path(val))

	host = os.getenv("OLLAMA_HOST")
	if host:
		config.ollama_host = host

	model = os.getenv("LOCAL_CODER_MODEL")
	if model:
		config.set_role_model(Role.PLANNER, model)

	approval = os.getenv("LOCAL_CODER_APPROVAL_MODE")
	if approval:
		config.set_approval_mode(approval)

	stream = os.getenv("LOCAL_CODER_LIVE_STREAM")
	if stream:
		config.show_live_stream = _env_bool(stream)

	attempts = os.getenv("LOCAL_CODER_MAX_ATTEMPTS")
	if attempts:
		config.max_attempts = max(1, int(attempts))

	# Recompute derived paths after overrides
	config.__post_init__()
	return config


TABLE_FIELDS = {
	"models": "role_models",
	"prompts": "role_prompt_builders",
	"sampling": "role_sampling",
}


def _apply_toml(config: Config) -> Config:
	"""Apply config.toml overrides if file exists."""
	toml_path = config.config_dir / "config.toml"
	if not toml_path.exists():
		return config

	with open(toml_path, "rb") as f:
		data = tomllib.load(f)

	path_fields = {"config_dir", "data_dir"}
	for key, val in data.items():
		if key in TABLE_FIELDS:
			getattr(config, TABLE_FIELDS[key]).update(val)
		elif key == "workspace_roots":
			config.workspace_roots = [Path(os.path.expanduser(p)) for p in val]
		elif hasattr(config, key):
			if key in path_fields:
				setattr(config, key, Path(os.path.expanduser(val)))
			else:
				setattr(config, key, val)

	if config.approval_mode not in APPROVAL_MODES:
		raise ValueError(f"Invalid approval_mode in {toml_path}: {config.approval_mode}")

	# Recompute derived paths after toml overrides
	config.__post_init__()
	return config


def apply_stored_settings(config: Config, settings: Mapping[str, Any]) -> Config:
	"""Overlay settings persisted by the session store (CLI changes) on top of the file config."""
	for role_key, model_id in (settings.get("role_models") or {}).items():
		config.set_role_model(Role.parse(role_key), model_id)
	for role_key, builder_id in (settings.get("role_prompt_builders") or {}).items():
		config.set_role_prompt_builder(Role.parse(role_key), builder_id)
	approval = settings.get("approval_mode")
	if approval:
		config.set_approval_mode(approval)
	return config


def load_config() -> Config:
	"""Load config with precedence: env vars > config.toml > defaults."""
	config = Config()
	config = _apply_toml(config)
	config = _apply_env_overrides(config)
	config.ensure_dirs()
	return config


# Singleton
_config: Config | None = None


def get_config() -> Config:
	"""Get or create the global config instance."""
	global _config
	if _config is None:
		_config = load_config()
	return _config
