"""Exception types shared across local-coder.

Each failure kind is raised where the failure happens. The controller turns
turn-level failures into a TurnOutcome, the executors record per-action
failures and carry on with the batch.
"""

from typing import Optional


class LocalCoderError(Exception):
	"""Base class for all local-coder errors."""
	pass


class Cancelled(LocalCoderError):
	"""Raised when the turn's cancellation token fires."""

	def __init__(self, message: str = "Operation cancelled"):
		super().__init__(message)


class InferenceError(LocalCoderError):
	"""Raised when the model server fails, times out or returns an error payload."""
	pass


class EmptyGeneration(LocalCoderError):
	"""Raised when a role produced nothing but whitespace."""

	def __init__(self, role_label: str):
		self.role_label = role_label
		super().__init__(f"{role_label} model returned an empty response.")


class UnrecoverableFormat(LocalCoderError):
	"""Raised when no plan can be recovered from a model response."""

	def __init__(self, reason: str, raw: str = ""):
		self.reason = reason
		self.raw = raw
		super().__init__(reason)


class PlanUnrecoverable(LocalCoderError):
	"""Raised when every attempt of a turn produced unrecoverable output."""

	def __init__(self, attempts: int, raw: str = "", last_error: Optional[UnrecoverableFormat] = None):
		self.attempts = attempts
		self.raw = raw
		self.last_error = last_error
		detail = f": {last_error.reason}" if last_error else ""
		super().__init__(f"No valid plan after {attempts} attempt(s){detail}")


class PathUnresolved(LocalCoderError):
	"""Raised when a file action path cannot be placed inside a workspace root."""

	def __init__(self, path: str):
		self.path = path
		super().__init__(f"Unable to resolve path inside the workspace: {path}")


class TargetMissing(LocalCoderError):
	"""Raised when an edit targets a file that does not exist."""

	def __init__(self, path: str):
		self.path = path
		super().__init__(f"Cannot edit a file that does not exist: {path}")


class CommandFailed(LocalCoderError):
	"""Raised when a shell command exits with a non-zero code."""

	def __init__(self, command: str, returncode: int, stdout: str = "", stderr: str = ""):
		self.command = command
		self.returncode = returncode
		self.stdout = stdout
		self.stderr = stderr
		super().__init__(f"{command} exited with code {returncode}")
