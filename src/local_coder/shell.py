"""Shell command executor with approval, output streaming and cancellation."""

import asyncio
import codecs
import logging
import os
from dataclasses import dataclass
from typing import Optional, Sequence

from .approval import Approver
from .cancellation import CancellationToken
from .errors import Cancelled, CommandFailed
from .plans.models import CommandRequest
from .workspace import Workspace

logger = logging.getLogger(__name__)

KILL_GRACE_SECONDS = 5.0
READ_CHUNK_SIZE = 4096
MAX_LOGGED_LINE_CHARS = 2000


@dataclass
class CommandResult:
	command: str
	stdout: str
	stderr: str
	returncode: int = 0


def build_detail(request: CommandRequest) -> str:
	if request.description:
		return f"{request.description}\n\n{request.command}"
	return request.command


class CommandExecutor:
	"""
	Runs plan commands in the workspace's active root.

	``shell`` is "default" for the platform shell, or a shell executable that
	is invoked as ``<shell> -c <command>``.
	"""

	def __init__(self, workspace: Workspace, approver: Approver, shell: str = "default"):
		self.workspace = workspace
		self.approver = approver
		self.shell = shell

	async def run_all(
		self,
		requests: Sequence[CommandRequest],
		require_approval: bool = True,
		token: Optional[CancellationToken] = None,
	) -> list[Optional[CommandResult]]:
		"""Run ``requests`` in order; a failing command is logged and the batch continues."""
		token = token or CancellationToken()
		results: list[Optional[CommandResult]] = []
		for request in requests:
			token.raise_if_cancelled()
			try:
				results.append(await self.run(request, require_approval, token))
			except Cancelled:
				raise
			except CommandFailed as e:
				logger.error(f"Command failed: {e}")
				results.append(None)
			except OSError as e:
				logger.error(f"Could not start command {request.command}: {e}")
				results.append(None)
			except Exception as e:
				logger.error(f"Command {request.command} failed unexpectedly: {e}")
				results.append(None)
		return results

	async def run(
		self,
		request: CommandRequest,
		require_approval: bool = True,
		token: Optional[CancellationToken] = None,
	) -> Optional[CommandResult]:
		"""Run one command. Returns None when the user rejects it."""
		token = token or CancellationToken()
		if require_approval:
			approved = await token.run(self.approver.confirm(
				"Allow the assistant to execute the following command?",
				build_detail(request),
			))
			if not approved:
				logger.info(f"Command rejected: {request.command}")
				return None
		return await self.execute(request, token)

	async def execute(self, request: CommandRequest, token: CancellationToken) -> CommandResult:
		token.raise_if_cancelled()
		cwd = str(self.workspace.cwd)
		logger.info(f"$ {request.command}")

		if self.shell and self.shell.strip() and self.shell != "default":
			proc = await asyncio.create_subprocess_exec(
				self.shell, "-c", request.command,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
				cwd=cwd,
				env=os.environ.copy(),
			)
		else:
			proc = await asyncio.create_subprocess_shell(
				request.command,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
				cwd=cwd,
				env=os.environ.copy(),
			)

		stdout_parts: list[str] = []
		stderr_parts: list[str] = []

		async def communicate() -> int:
			await asyncio.gather(
				_pump(proc.stdout, stdout_parts, logging.INFO),
				_pump(proc.stderr, stderr_parts, logging.WARNING),
			)
			return await proc.wait()

		try:
			returncode = await token.run(communicate())
		except Cancelled:
			logger.info(f"Command cancelled: {request.command}")
			await _terminate(proc)
			raise

		stdout = "".join(stdout_parts)
		stderr = "".join(stderr_parts)
		if returncode != 0:
			raise CommandFailed(request.command, returncode, stdout, stderr)
		return CommandResult(command=request.command, stdout=stdout, stderr=stderr, returncode=0)


async def _pump(stream: Optional[asyncio.StreamReader], sink: list[str], level: int) -> None:
	"""Copy ``stream`` into ``sink`` in fixed-size chunks, logging each complete line."""
	if stream is None:
		return
	decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
	pending = ""
	while True:
		chunk = await stream.read(READ_CHUNK_SIZE)
		text = decoder.decode(chunk, final=not chunk)
		if text:
			sink.append(text)
			pending += text
			*lines, pending = pending.split("\n")
			for line in lines:
				logger.log(level, line[:MAX_LOGGED_LINE_CHARS])
		if not chunk:
			if pending:
				logger.log(level, pending[:MAX_LOGGED_LINE_CHARS])
			return


async def _terminate(proc: asyncio.subprocess.Process) -> None:
	"""SIGTERM, then SIGKILL if the process outlives the grace period."""
	if proc.returncode is not None:
		return
	try:
		proc.terminate()
		await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_SECONDS)
	except asyncio.TimeoutError:
		proc.kill()
		await proc.wait()
	except ProcessLookupError:
		return
