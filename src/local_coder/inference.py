"""
Inference boundary - talks to a local Ollama daemon over HTTP.

OllamaClient wraps the three endpoints a turn needs (pull, show, generate)
with NDJSON streaming through httpx. ModelHandle is the lazily loaded,
per-model-id object the orchestrator invokes; ModelHandlePool hands out one
handle per distinct model id so roles that resolve to the same model share it.
"""

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from .cancellation import CancellationToken
from .errors import InferenceError
from .orchestrator.roles import SamplingParams

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "ollama:qwen3:4b"
DEFAULT_HOST = "http://127.0.0.1:11434"
MODEL_PREFIX = "ollama:"
PROGRESS_BAR_WIDTH = 24

StatusCallback = Callable[[str], None]
ChunkCallback = Callable[[str], None]


def normalize_model_id(value: Optional[str]) -> str:
	"""Return ``value`` in ``ollama:<name>`` form, or the default model when blank."""
	trimmed = (value or "").strip()
	if not trimmed:
		return DEFAULT_MODEL_ID
	if trimmed.lower().startswith(MODEL_PREFIX):
		return MODEL_PREFIX + trimmed[len(MODEL_PREFIX):]
	return f"{MODEL_PREFIX}{trimmed}"


def model_name(model_id: str) -> str:
	"""Strip the ``ollama:`` prefix (and an optional ``//``) from a model id."""
	name = re.sub(r"^ollama:", "", model_id.strip(), flags=re.IGNORECASE)
	return name[2:] if name.startswith("//") else name


def normalize_host(host: Optional[str]) -> str:
	"""Add a scheme to a bare ``host:port`` value."""
	value = (host or "").strip()
	if not value:
		return DEFAULT_HOST
	if "://" not in value:
		value = f"http://{value}"
	return value.rstrip("/")


def render_progress_bar(ratio: float, width: int = PROGRESS_BAR_WIDTH) -> str:
	clamped = max(0.0, min(1.0, ratio))
	filled = round(clamped * width)
	return "[" + "#" * filled + "-" * (width - filled) + "]"


class PullProgress:
	"""Aggregates pull progress across layers and renders a single status line."""

	def __init__(self) -> None:
		self.status = "Preparing download..."
		self.saw_success = False
		self._layers: dict[str, dict[str, int]] = {}
		self._last_rendered: Optional[str] = None

	def update(self, payload: dict[str, Any]) -> Optional[str]:
		"""Fold one NDJSON record in; return the new status line if it changed."""
		status = payload.get("status")
		if isinstance(status, str) and status.strip():
			self.status = status.strip()
		key = payload.get("digest") or payload.get("status") or "default"
		layer = self._layers.setdefault(str(key), {})
		for field_name in ("total", "completed"):
			value = payload.get(field_name)
			if isinstance(value, (int, float)):
				layer[field_name] = int(value)
		if status == "success":
			self.saw_success = True
		return self._render()

	def ratio(self) -> Optional[float]:
		done = 0
		total = 0
		for layer in self._layers.values():
			layer_total = layer.get("total", 0)
			if layer_total > 0:
				total += layer_total
				done += min(layer.get("completed", 0), layer_total)
		if total <= 0:
			return None
		return max(0.0, min(1.0, done / total))

	def _render(self) -> Optional[str]:
		parts = []
		ratio = self.ratio()
		if ratio is not None:
			parts.append(f"{render_progress_bar(ratio)} {round(ratio * 100)}%")
		parts.append(self.status)
		message = " ".join(p for p in parts if p).strip()
		if message and message != self._last_rendered:
			self._last_rendered = message
			return message
		return None


class OllamaClient:
	"""
	Async client for the Ollama HTTP API.

	Usage:
		client = OllamaClient(config.ollama_host)
		await client.pull("qwen3:4b", on_progress=print)
		text = await client.generate("qwen3:4b", prompt, SamplingParams())
		await client.aclose()
	"""

	def __init__(
		self,
		host: Optional[str] = None,
		request_timeout: float = 30.0,
		generation_timeout: float = 120.0,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	):
		url = httpx.URL(normalize_host(host))
		auth = None
		if url.username:
			auth = httpx.BasicAuth(url.username, url.password or "")
			url = url.copy_with(username=None, password=None)
		self.base_url = str(url).rstrip("/")
		self.request_timeout = request_timeout
		self.generation_timeout = generation_timeout
		self._client = httpx.AsyncClient(base_url=self.base_url, auth=auth, transport=transport)

	async def aclose(self) -> None:
		await self._client.aclose()

	async def pull(
		self,
		model: str,
		on_progress: Optional[StatusCallback] = None,
		token: Optional[CancellationToken] = None,
	) -> None:
		"""Download ``model`` if needed, reporting aggregated progress."""
		coro = self._pull(model, on_progress)
		if token:
			await token.run(coro)
		else:
			await coro

	async def _pull(self, model: str, on_progress: Optional[StatusCallback]) -> None:
		progress = PullProgress()
		async for payload in self._stream("/api/pull", {"model": model, "stream": True}, self.request_timeout, "pull"):
			if payload.get("error"):
				raise InferenceError(str(payload["error"]))
			message = progress.update(payload)
			if message and on_progress:
				on_progress(message)
		if not progress.saw_success:
			raise InferenceError("Ollama pull ended without success confirmation.")

	async def show(self, model: str, token: Optional[CancellationToken] = None) -> dict[str, Any]:
		coro = self._post_json("/api/show", {"model": model})
		return await token.run(coro) if token else await coro

	async def list_models(self) -> list[str]:
		"""Names of models already present on the daemon."""
		try:
			response = await self._client.get("/api/tags", timeout=self.request_timeout)
			response.raise_for_status()
		except httpx.HTTPError as e:
			raise InferenceError(f"Ollama request failed: {e}") from e
		return [m.get("name", "") for m in response.json().get("models", []) if m.get("name")]

	async def generate(
		self,
		model: str,
		prompt: str,
		sampling: SamplingParams,
		on_chunk: Optional[ChunkCallback] = None,
		token: Optional[CancellationToken] = None,
	) -> str:
		"""Stream a completion, forwarding each fragment to ``on_chunk``."""
		coro = self._generate(model, prompt, sampling, on_chunk)
		return await token.run(coro) if token else await coro

	async def _generate(
		self,
		model: str,
		prompt: str,
		sampling: SamplingParams,
		on_chunk: Optional[ChunkCallback],
	) -> str:
		payload = {
			"model": model,
			"prompt": prompt,
			"stream": True,
			"options": {
				"num_predict": sampling.max_new_tokens,
				"temperature": sampling.temperature,
				"top_p": sampling.top_p,
				"repeat_penalty": sampling.repetition_penalty,
			},
		}
		parts: list[str] = []
		async for record in self._stream("/api/generate", payload, self.generation_timeout, "generation"):
			if record.get("error"):
				raise InferenceError(str(record["error"]))
			fragment = record.get("response")
			if isinstance(fragment, str) and fragment:
				parts.append(fragment)
				if on_chunk:
					on_chunk(fragment)
		return "".join(parts)

	async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
		try:
			response = await self._client.post(path, json=payload, timeout=self.request_timeout)
		except httpx.TimeoutException as e:
			raise InferenceError("Ollama request timed out.") from e
		except httpx.HTTPError as e:
			raise InferenceError(f"Ollama request failed: {e}") from e
		if response.status_code >= 300:
			raise InferenceError(
				f"Ollama request failed ({response.status_code}): {response.text or 'No response body'}"
			)
		try:
			return response.json()
		except ValueError as e:
			raise InferenceError(f"Failed to parse Ollama response: {e}") from e

	async def _stream(
		self,
		path: str,
		payload: dict[str, Any],
		idle_timeout: float,
		operation: str,
	) -> AsyncIterator[dict[str, Any]]:
		"""POST ``payload`` and yield decoded NDJSON records.

		``idle_timeout`` bounds the wait between received chunks, not the whole stream.
		"""
		timeout = httpx.Timeout(self.request_timeout, read=idle_timeout if idle_timeout > 0 else None)
		try:
			async with self._client.stream("POST", path, json=payload, timeout=timeout) as response:
				if response.status_code >= 300:
					body = (await response.aread()).decode(errors="replace")
					raise InferenceError(
						f"Ollama {operation} failed ({response.status_code}): {body or 'No response body'}"
					)
				async for line in response.aiter_lines():
					line = line.strip()
					if not line:
						continue
					try:
						record = json.loads(line)
					except ValueError as e:
						raise InferenceError(f"Failed to parse Ollama {operation} chunk: {e}") from e
					if isinstance(record, dict):
						yield record
		except httpx.TimeoutException as e:
			raise InferenceError(f"Ollama {operation} timed out.") from e
		except httpx.HTTPError as e:
			raise InferenceError(f"Ollama {operation} failed: {e}") from e


class ModelHandle:
	"""
	One loaded model id.

	Loading (pull + show) happens once, on first use. Generations on the same
	handle are serialized so at most one request per model id is in flight.
	"""

	def __init__(self, client: OllamaClient, model_id: str):
		self.client = client
		self.model_id = normalize_model_id(model_id)
		self.loaded = False
		self._load_lock = asyncio.Lock()
		self._generate_lock = asyncio.Lock()

	@property
	def name(self) -> str:
		return model_name(self.model_id)

	async def ensure_loaded(
		self,
		on_status: Optional[StatusCallback] = None,
		token: Optional[CancellationToken] = None,
	) -> None:
		if self.loaded:
			return
		async with self._load_lock:
			if self.loaded:
				return
			if token:
				token.raise_if_cancelled()

			def report(status: str) -> None:
				logger.info(f"[{self.name}] {status}")
				if on_status:
					on_status(status)

			report(f"Connecting to Ollama at {self.client.base_url}...")
			await self.client.pull(self.name, report, token)
			await self.client.show(self.name, token)
			self.loaded = True
			report("Ollama model ready.")

	async def generate(
		self,
		prompt: str,
		sampling: SamplingParams,
		on_chunk: Optional[ChunkCallback] = None,
		token: Optional[CancellationToken] = None,
	) -> str:
		await self.ensure_loaded(token=token)
		async with self._generate_lock:
			if token:
				token.raise_if_cancelled()
			return await self.client.generate(self.name, prompt, sampling, on_chunk, token)


class ModelHandlePool:
	"""Hands out one ModelHandle per distinct model id."""

	def __init__(self, client: OllamaClient):
		self.client = client
		self._handles: dict[str, ModelHandle] = {}

	def get(self, model_id: str) -> ModelHandle:
		key = normalize_model_id(model_id)
		handle = self._handles.get(key)
		if handle is None:
			handle = ModelHandle(self.client, key)
			self._handles[key] = handle
		return handle

	def __contains__(self, model_id: str) -> bool:
		return normalize_model_id(model_id) in self._handles

	def __len__(self) -> int:
		return len(self._handles)

	async def aclose(self) -> None:
		self._handles.clear()
		await self.client.aclose()
