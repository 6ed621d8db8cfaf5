"""Per-user activity sessions scoped to the hub the user is currently in.

An `ActivitySession` owns the per-(hub, user) state: the last badge counts,
the feed reader, the preference registry and the badge poller. Results of
work started under one context are dropped at apply-time if the session has
since moved to another hub or closed. Push registration is per device, not
per hub, and lives in `PushDeviceRegistry`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from hub_activity.domain.activity import models
from hub_activity.domain.activity.badges import BadgeAggregator
from hub_activity.domain.activity.exceptions import NoActiveSession
from hub_activity.domain.activity.feed import FeedReader
from hub_activity.domain.activity.poller import BadgePoller
from hub_activity.domain.activity.preferences import PreferenceRegistry
from hub_activity.domain.activity.push import PushDeviceRegistry
from hub_activity.domain.activity.snapshots import BadgeSnapshotStore
from hub_activity.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class ActivitySession:
	def __init__(
		self,
		user_id: str,
		repository,
		*,
		snapshots: Optional[BadgeSnapshotStore] = None,
		aggregator: Optional[BadgeAggregator] = None,
		poll_interval_seconds: Optional[float] = None,
		page_size: Optional[int] = None,
	) -> None:
		self.user_id = user_id
		self.repo = repository
		self.context: Optional[models.ActivityContext] = None
		self.badges = models.BadgeCounts()
		self.snapshots = snapshots
		self.aggregator = aggregator or BadgeAggregator(repository)
		self.preferences = PreferenceRegistry(repository)
		self.feed = FeedReader(repository, self.preferences, page_size=page_size)
		self.poller = BadgePoller(self.refresh, interval_seconds=poll_interval_seconds)

	def require_context(self) -> models.ActivityContext:
		if self.context is None:
			raise NoActiveSession()
		return self.context

	async def open(self, hub_id: str) -> models.ActivityContext:
		"""Enter `hub_id`, resetting per-hub state and restarting the poller."""
		ctx = models.ActivityContext(hub_id=hub_id, user_id=self.user_id)
		if ctx == self.context:
			return ctx
		self.context = ctx
		self.badges = models.BadgeCounts()
		self.feed.bind(ctx)
		self.preferences.bind(ctx)
		await self.preferences.get(ctx)
		await self.poller.bind(ctx)
		logger.info("activity_session.opened", extra={"hub_id": hub_id})
		return ctx

	async def close(self) -> None:
		ctx = self.context
		await self.poller.stop()
		self.context = None
		self._reset_state()
		if ctx is not None and self.snapshots is not None:
			await self.snapshots.drop(ctx)

	def _reset_state(self) -> None:
		self.badges = models.BadgeCounts()
		self.feed.clear()
		self.preferences.clear()

	# --- Badge refresh -------------------------------------------------------

	async def refresh(self, ctx: Optional[models.ActivityContext] = None) -> models.BadgeCounts:
		"""Badge aggregation and feed unread count, run side by side."""
		ctx = ctx or self.require_context()
		counts, _ = await asyncio.gather(
			self.refresh_badges(ctx),
			self.feed.unread_count(ctx),
		)
		return counts

	async def refresh_badges(self, ctx: Optional[models.ActivityContext] = None) -> models.BadgeCounts:
		ctx = ctx or self.require_context()
		counts = await self.aggregator.refresh(ctx)
		await self._apply_badges(ctx, counts)
		return counts

	async def _apply_badges(self, ctx: models.ActivityContext, counts: models.BadgeCounts) -> bool:
		if self.context != ctx:
			obs_metrics.inc_stale_discard("badges")
			logger.debug("activity_session.stale_badges_discarded", extra={"hub_id": ctx.hub_id})
			return False
		self.badges = counts
		if self.snapshots is not None:
			await self.snapshots.save(ctx, counts)
		return True

	async def current_badges(self) -> models.BadgeCounts:
		"""Latest applied counts, falling back to the shared snapshot, then a fresh aggregation."""
		ctx = self.require_context()
		if self.badges.computed_at is not None:
			return self.badges
		if self.snapshots is not None:
			cached = await self.snapshots.load(ctx)
			if cached is not None:
				self.badges = cached
				return cached
		return await self.refresh_badges(ctx)


SessionFactory = Callable[[str], ActivitySession]
SessionKey = tuple[str, str]


class SessionRegistry:
	"""Maps (user, hub) pairs to their live ActivitySession; one instance per application.

	Two devices of one user in different hubs get separate sessions, so a
	read in one hub never resets the feed or poller of the other.
	"""

	def __init__(self, factory: SessionFactory, *, devices: Optional[PushDeviceRegistry] = None) -> None:
		self._factory = factory
		self._sessions: dict[SessionKey, ActivitySession] = {}
		self._lock = asyncio.Lock()
		self.devices = devices
		if devices is not None and devices.on_received is None:
			devices.on_received = lambda user_id, _payload: self.trigger(user_id)

	def get(self, user_id: str, hub_id: str) -> Optional[ActivitySession]:
		return self._sessions.get((user_id, hub_id))

	def sessions_for(self, user_id: str) -> list[ActivitySession]:
		return [session for (owner, _hub), session in self._sessions.items() if owner == user_id]

	async def open(self, user_id: str, hub_id: str) -> ActivitySession:
		"""Return the user's session for `hub_id`, creating it on first use."""
		async with self._lock:
			session = self._sessions.get((user_id, hub_id))
			if session is None:
				session = self._factory(user_id)
				self._sessions[(user_id, hub_id)] = session
		await session.open(hub_id)
		return session

	async def close(
		self,
		user_id: str,
		*,
		hub_id: Optional[str] = None,
		device_id: Optional[str] = None,
		token: Optional[str] = None,
	) -> int:
		"""Close the user's session in `hub_id` (every hub when None).

		With `device_id`, that device's push token is deactivated as well;
		other devices keep theirs.
		"""
		async with self._lock:
			keys = [key for key in self._sessions if key[0] == user_id and (hub_id is None or key[1] == hub_id)]
			sessions = [self._sessions.pop(key) for key in keys]
		for session in sessions:
			await session.close()
		if device_id is not None and self.devices is not None:
			await self.devices.deregister(user_id, device_id, token=token)
		return len(sessions)

	def trigger(self, user_id: str) -> None:
		"""Ask every open session of the user for an immediate badge refresh."""
		for session in self.sessions_for(user_id):
			session.poller.trigger()

	async def shutdown(self) -> None:
		async with self._lock:
			sessions = list(self._sessions.values())
			self._sessions.clear()
		for session in sessions:
			await session.close()

	def __len__(self) -> int:
		return len(self._sessions)
