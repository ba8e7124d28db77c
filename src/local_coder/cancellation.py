"""Cooperative cancellation shared by every step of a turn."""

import asyncio
from typing import Awaitable, TypeVar

from .errors import Cancelled

T = TypeVar("T")


class CancellationToken:
	"""A one-shot cancellation signal backed by an asyncio.Event.

	Long-running steps call ``raise_if_cancelled()`` at their checkpoints, and
	``run()`` races an awaitable against the signal so that a blocked network
	read or process wait unwinds as soon as the user cancels.
	"""

	def __init__(self) -> None:
		self._event = asyncio.Event()
		self.reason = ""

	@property
	def is_cancelled(self) -> bool:
		return self._event.is_set()

	def cancel(self, reason: str = "") -> None:
		if not self._event.is_set():
			self.reason = reason
			self._event.set()

	def raise_if_cancelled(self) -> None:
		if self._event.is_set():
			raise Cancelled(self.reason or "Operation cancelled")

	async def wait(self) -> None:
		await self._event.wait()

	async def run(self, awaitable: Awaitable[T]) -> T:
		"""Await ``awaitable`` unless the token fires first.

		Raises Cancelled and cancels the pending work when the token wins.
		"""
		if self.is_cancelled:
			if asyncio.iscoroutine(awaitable):
				awaitable.close()
			self.raise_if_cancelled()
		work = asyncio.ensure_future(awaitable)
		waiter = asyncio.ensure_future(self._event.wait())
		try:
			done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
		except BaseException:
			work.cancel()
			waiter.cancel()
			raise
		if work in done:
			waiter.cancel()
			return work.result()
		work.cancel()
		try:
			await work
		except (asyncio.CancelledError, Exception):
			pass
		raise Cancelled(self.reason or "Operation cancelled")
