"""Workspace roots and containment-checked path resolution."""

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from .errors import PathUnresolved

logger = logging.getLogger(__name__)


def is_inside(path: Path, root: Path) -> bool:
	"""True when ``path`` is ``root`` or below it, compared component by component."""
	try:
		path.resolve().relative_to(root.resolve())
	except ValueError:
		return False
	return True


class Workspace:
	"""
	The set of directories a turn may read and change.

	``active_root`` is the root the user worked in most recently; relative
	paths are tried against it before the other roots.
	"""

	def __init__(self, roots: Iterable[Path], active_root: Optional[Path] = None):
		self.roots = [Path(os.path.abspath(r)) for r in roots]
		if not self.roots:
			raise ValueError("A workspace needs at least one root directory")
		self.active_root: Optional[Path] = None
		if active_root is not None:
			self.set_active(active_root)

	def set_active(self, root: Path) -> None:
		root = Path(os.path.abspath(root))
		if root not in self.roots:
			raise ValueError(f"{root} is not a workspace root")
		self.active_root = root

	@property
	def cwd(self) -> Path:
		"""Directory commands run in."""
		return self.active_root or self.roots[0]

	def ordered_roots(self) -> list[Path]:
		if self.active_root is None:
			return list(self.roots)
		return [self.active_root] + [r for r in self.roots if r != self.active_root]

	def root_named(self, name: str) -> Optional[Path]:
		lowered = name.lower()
		for root in self.ordered_roots():
			if root.name.lower() == lowered:
				return root
		return None

	def contains(self, path: Path) -> bool:
		return any(is_inside(path, root) for root in self.roots)

	def resolve(self, raw_path: str) -> Path:
		"""Map a plan path onto an absolute path inside one of the roots.

		Raises PathUnresolved when no root can hold the path.
		"""
		resolved = self._resolve(raw_path.strip())
		if resolved is None:
			raise PathUnresolved(raw_path)
		return resolved

	def _resolve(self, raw_path: str) -> Optional[Path]:
		if not raw_path:
			return None
		candidate = Path(raw_path)
		segments = [s for s in raw_path.replace("\\", "/").split("/") if s]

		if candidate.is_absolute():
			normalized = Path(os.path.normpath(raw_path))
			if self.contains(normalized):
				return normalized
			# "/<root name>/rest" written as if the root were the filesystem root
			if len(segments) > 1:
				named = self.root_named(segments[0])
				if named is not None:
					return self._join(named, segments[1:])
			return None

		roots = self.ordered_roots()
		if segments:
			named = self.root_named(segments[0])
			if named is not None:
				rest = segments[1:]
				if not rest:
					return None
				for root in [named] + [r for r in roots if r != named]:
					joined = self._join(root, rest)
					if joined is not None:
						return joined
				return None

		for root in roots:
			joined = self._join(root, segments)
			if joined is not None:
				return joined
		return None

	def _join(self, root: Path, segments: list[str]) -> Optional[Path]:
		joined = Path(os.path.normpath(os.path.join(root, *segments)))
		if is_inside(joined, root):
			return joined
		logger.debug(f"Rejected {joined}: outside {root}")
		return None
