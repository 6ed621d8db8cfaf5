"""Background badge poller bound to a hub + user context."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Awaitable, Callable, Optional

from hub_activity.domain.activity.models import ActivityContext
from hub_activity.obs import metrics as obs_metrics
from hub_activity.settings import settings

logger = logging.getLogger(__name__)

RefreshFn = Callable[[ActivityContext], Awaitable[object]]


class BadgePoller:
	"""Runs `refresh` on bind, on every interval, and whenever triggered.

	Rebinding to a different context cancels the running loop and starts a
	fresh one, which refreshes immediately. Binding None releases the loop so
	no counts keep flowing for a hub the user has left.
	"""

	def __init__(self, refresh: RefreshFn, *, interval_seconds: Optional[float] = None) -> None:
		self._refresh = refresh
		self.interval_seconds = float(
			interval_seconds if interval_seconds is not None else settings.badge_poll_interval_seconds
		)
		self._context: Optional[ActivityContext] = None
		self._task: Optional[asyncio.Task] = None
		self._wake = asyncio.Event()

	@property
	def context(self) -> Optional[ActivityContext]:
		return self._context

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	async def bind(self, ctx: Optional[ActivityContext]) -> None:
		if ctx is not None and ctx == self._context and self.running:
			return
		await self._cancel()
		self._context = ctx
		if ctx is None:
			return
		self._wake = asyncio.Event()
		self._task = asyncio.create_task(self._run(ctx), name=f"badge-poller:{ctx.hub_id}:{ctx.user_id}")

	def trigger(self) -> None:
		"""Ask for an immediate refresh outside the regular cadence."""
		if self.running:
			self._wake.set()

	async def stop(self) -> None:
		await self.bind(None)

	async def _cancel(self) -> None:
		task, self._task = self._task, None
		if task is None:
			return
		task.cancel()
		with suppress(asyncio.CancelledError):
			await task

	async def _run(self, ctx: ActivityContext) -> None:
		reason = "initial"
		try:
			while True:
				await self._tick(ctx, reason)
				try:
					await asyncio.wait_for(self._wake.wait(), timeout=self.interval_seconds)
					reason = "trigger"
				except asyncio.TimeoutError:
					reason = "interval"
				self._wake.clear()
		except asyncio.CancelledError:
			raise
		except Exception:  # pragma: no cover
			logger.exception("badge_poller.loop_failed", extra={"hub_id": ctx.hub_id})

	async def _tick(self, ctx: ActivityContext, reason: str) -> None:
		obs_metrics.inc_poller_tick(reason)
		try:
			await self._refresh(ctx)
		except asyncio.CancelledError:
			raise
		except Exception:
			logger.exception("badge_poller.refresh_failed", extra={"hub_id": ctx.hub_id, "reason": reason})
