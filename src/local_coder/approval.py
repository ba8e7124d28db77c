"""Approval gate consulted before any command runs or file changes."""

import asyncio
import logging
from typing import Optional, Protocol

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

logger = logging.getLogger(__name__)


class Approver(Protocol):
	async def confirm(self, title: str, detail: str) -> bool:
		"""Return True when the user approves the request."""
		...


class AutoApprover:
	"""Approves everything; used for ``autoApprove`` mode and in tests."""

	def __init__(self, answer: bool = True):
		self.answer = answer
		self.requests: list[tuple[str, str]] = []

	async def confirm(self, title: str, detail: str) -> bool:
		self.requests.append((title, detail))
		return self.answer


class ConsoleApprover:
	"""Asks on the terminal with a rich panel and a yes/no prompt."""

	def __init__(self, console: Optional[Console] = None):
		self.console = console or Console()

	async def confirm(self, title: str, detail: str) -> bool:
		return await asyncio.to_thread(self._ask, title, detail)

	def _ask(self, title: str, detail: str) -> bool:
		if detail.strip():
			self.console.print(Panel(detail, title=title, border_style="yellow"))
		else:
			self.console.print(f"[bold yellow]{title}[/bold yellow]")
		try:
			return Confirm.ask("Approve?", console=self.console, default=False)
		except EOFError:
			logger.warning(f"No input available, treating as rejected: {title}")
			return False
