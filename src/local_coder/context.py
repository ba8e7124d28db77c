"""
Workspace context collector.

Builds the "Project context" text every role sees: a short header followed
by the contents of a bounded set of workspace files, files with uncommitted
git changes first.
"""

import asyncio
import fnmatch
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .workspace import Workspace

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_GLOBS = [
	"**/.git/**",
	"**/node_modules/**",
	"**/dist/**",
	"**/out/**",
	"**/build/**",
	"**/.venv/**",
	"**/__pycache__/**",
	"**/.idea/**",
	"**/.vscode/**",
]


@dataclass
class ContextOptions:
	max_files: int = 40
	max_file_size: int = 200 * 1024
	max_total_size: int = 1500 * 1024
	include_binary: bool = False
	exclude_globs: list[str] = field(default_factory=list)
	use_default_excludes: bool = True
	prioritize_changed_files: bool = True

	def excludes(self) -> list[str]:
		base = DEFAULT_EXCLUDE_GLOBS if self.use_default_excludes else []
		merged = []
		for glob in [*base, *self.exclude_globs]:
			if glob and glob not in merged:
				merged.append(glob)
		return merged


def looks_binary(data: bytes) -> bool:
	"""NUL byte in the first 1000 bytes, or more than 30% control characters."""
	sample = data[:1000]
	if not sample:
		return False
	if b"\x00" in sample:
		return True
	non_text = sum(1 for b in sample if b < 7 or 13 < b < 32 or b == 127)
	return non_text / len(sample) > 0.3


async def _run_git(args: list[str], cwd: Path, timeout: int = 10) -> tuple[str, str, int]:
	"""Run a git command and return (stdout, stderr, returncode)."""
	try:
		proc = await asyncio.create_subprocess_exec(
			"git", *args,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
			cwd=str(cwd),
		)
	except OSError as e:
		return ("", str(e), -1)
	try:
		stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
	except asyncio.TimeoutError:
		proc.kill()
		return ("", f"git {args[0]} timed out after {timeout}s", -1)
	return (
		stdout.decode(errors="replace").strip(),
		stderr.decode(errors="replace").strip(),
		proc.returncode or 0,
	)


class ContextCollector:
	"""
	Collects workspace files into a single context string.

	Usage:
		collector = ContextCollector(workspace, ContextOptions(max_files=20))
		context = await collector.collect()
	"""

	def __init__(self, workspace: Workspace, options: Optional[ContextOptions] = None):
		self.workspace = workspace
		self.options = options or ContextOptions()
		self._excludes = self.options.excludes()

	def is_excluded(self, relative: str) -> bool:
		candidate = "/" + relative.replace(os.sep, "/")
		return any(fnmatch.fnmatch(candidate, glob) or fnmatch.fnmatch(candidate + "/", glob) for glob in self._excludes)

	async def changed_files(self, root: Path) -> list[Path]:
		"""Files with uncommitted changes according to ``git status``."""
		stdout, stderr, rc = await _run_git(["status", "--porcelain"], root)
		if rc != 0:
			logger.debug(f"No git status for {root}: {stderr}")
			return []
		files = []
		for line in stdout.splitlines():
			entry = line.strip().partition(" ")[2].strip()
			if " -> " in entry:
				entry = entry.split(" -> ", 1)[1]
			path = root / entry.strip('"')
			if path.is_file():
				files.append(path)
		return files

	def iter_files(self, root: Path):
		for dirpath, dirnames, filenames in os.walk(root):
			rel_dir = os.path.relpath(dirpath, root)
			dirnames[:] = sorted(
				d for d in dirnames
				if not self.is_excluded(os.path.normpath(os.path.join(rel_dir, d)) + "/")
			)
			for name in sorted(filenames):
				rel = os.path.normpath(os.path.join(rel_dir, name))
				if not self.is_excluded(rel):
					yield Path(dirpath) / name

	async def collect(self) -> str:
		"""Return the context text for the current workspace."""
		opts = self.options
		chunks: list[str] = []
		seen: set[Path] = set()
		total_bytes = 0
		roots = self.workspace.ordered_roots()
		multi_root = len(roots) > 1

		def label_for(path: Path, root: Path) -> str:
			rel = path.relative_to(root).as_posix()
			return f"{root.name}/{rel}" if multi_root else rel

		def try_add(path: Path, root: Path, note: str = "") -> None:
			nonlocal total_bytes
			if len(seen) >= opts.max_files or path in seen:
				return
			try:
				size = path.stat().st_size
				if size > opts.max_file_size or total_bytes + size > opts.max_total_size:
					return
				data = path.read_bytes()
			except OSError as e:
				logger.debug(f"Skipping {path}: {e}")
				return
			if not opts.include_binary and looks_binary(data):
				return
			seen.add(path)
			total_bytes += len(data)
			suffix = f" ({note})" if note else ""
			text = data.decode("utf-8", errors="replace")
			chunks.append(f"### File: {label_for(path, root)}{suffix}\n\n```\n{text}\n```")

		if opts.prioritize_changed_files:
			for root in roots:
				for path in await self.changed_files(root):
					rel = path.relative_to(root).as_posix()
					if not self.is_excluded(rel):
						try_add(path, root, "changed")

		for root in roots:
			if len(seen) >= opts.max_files:
				break
			files = await asyncio.to_thread(lambda r=root: list(self.iter_files(r)))
			for path in files:
				if len(seen) >= opts.max_files:
					break
				try_add(path, root)

		names = ", ".join(root.name for root in roots)
		label = "Workspace" if len(roots) == 1 else "Workspaces"
		header = f"{label}: {names}\nFiles included: {len(seen)}\nTotal bytes: {total_bytes}"
		logger.info(f"Collected context: {len(seen)} file(s), {total_bytes} bytes")
		return f"{header}\n\n" + "\n\n".join(chunks) if chunks else header
