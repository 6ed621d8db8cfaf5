"""Unread badge aggregation across chat channels, group posts and events.

Every count is an independent query. A membership whose count fails
contributes zero and is logged; nothing short of cancellation aborts an
aggregation. Results are point-in-time snapshots, so overlapping refreshes
for the same user are allowed and the last applied one wins.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo

from hub_activity.domain.activity import models
from hub_activity.obs import metrics as obs_metrics
from hub_activity.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _now() -> datetime:
	return datetime.now(timezone.utc)


def today_window(now: datetime, tz_name: str) -> tuple[datetime, datetime]:
	"""Return [start of today, start of tomorrow) in `tz_name`, as aware datetimes."""
	zone = ZoneInfo(tz_name)
	local = now.astimezone(zone)
	start = local.replace(hour=0, minute=0, second=0, microsecond=0)
	return start, start + timedelta(days=1)


class BadgeAggregator:
	"""Computes BadgeCounts for a hub + user context."""

	def __init__(
		self,
		repository,
		*,
		clock: Callable[[], datetime] = _now,
		tz_name: Optional[str] = None,
	) -> None:
		self.repo = repository
		self._clock = clock
		self._tz_name = tz_name or settings.badge_timezone

	async def refresh(self, ctx: models.ActivityContext) -> models.BadgeCounts:
		started = time.perf_counter()
		now = self._clock()
		day_start, day_end = today_window(now, self._tz_name)
		channels, groups, events_today, unread_feed = await asyncio.gather(
			self._guard("channel_memberships", ctx, self.repo.list_channel_memberships(ctx.hub_id, ctx.user_id), []),
			self._guard("group_memberships", ctx, self.repo.list_group_memberships(ctx.hub_id, ctx.user_id), []),
			self._guard("events", ctx, self.repo.count_events_between(ctx.hub_id, day_start, day_end), 0),
			self._guard("feed", ctx, self.repo.count_unread_notifications(ctx.hub_id, ctx.user_id), 0),
		)
		unread_messages, unread_groups = await asyncio.gather(
			self._sum_channels(ctx, channels),
			self._sum_groups(ctx, groups),
		)
		counts = models.BadgeCounts(
			unread_messages=unread_messages,
			unread_groups=unread_groups,
			upcoming_events_today=events_today,
			has_more_notifications=unread_feed > 0,
			computed_at=now,
		)
		obs_metrics.record_badge_refresh("ok", duration_seconds=time.perf_counter() - started)
		logger.debug(
			"badges.refreshed",
			extra={
				"hub_id": ctx.hub_id,
				"channels": len(channels),
				"groups": len(groups),
				"unread_messages": unread_messages,
				"unread_groups": unread_groups,
			},
		)
		return counts

	async def _sum_channels(self, ctx: models.ActivityContext, memberships: Sequence[models.ChannelMembership]) -> int:
		if not memberships:
			return 0
		counts = await asyncio.gather(
			*(
				self._guard(
					"messages",
					ctx,
					self.repo.count_unread_messages(str(m.channel_id), ctx.user_id, m.cursor),
					0,
				)
				for m in memberships
			)
		)
		return sum(max(0, int(count)) for count in counts)

	async def _sum_groups(self, ctx: models.ActivityContext, memberships: Sequence[models.GroupMembership]) -> int:
		if not memberships:
			return 0
		counts = await asyncio.gather(
			*(
				self._guard(
					"posts",
					ctx,
					self.repo.count_unread_posts(str(m.group_id), ctx.user_id, m.cursor),
					0,
				)
				for m in memberships
			)
		)
		return sum(max(0, int(count)) for count in counts)

	async def _guard(self, stream: str, ctx: models.ActivityContext, call: Awaitable[T], fallback: T) -> T:
		try:
			return await call
		except asyncio.CancelledError:
			raise
		except Exception:
			obs_metrics.inc_badge_stream_failure(stream)
			logger.warning(
				"badges.stream_failed",
				exc_info=True,
				extra={"stream": stream, "hub_id": ctx.hub_id},
			)
			return fallback

	# --- Cursor advancement --------------------------------------------------

	async def mark_channel_read(
		self,
		ctx: models.ActivityContext,
		channel_id: str,
		*,
		at: Optional[datetime] = None,
	) -> Optional[datetime]:
		"""Move the channel's read cursor forward; never moves it backwards."""
		return await self.repo.advance_channel_cursor(channel_id, ctx.user_id, at or self._clock())

	async def mark_group_viewed(
		self,
		ctx: models.ActivityContext,
		group_id: str,
		*,
		at: Optional[datetime] = None,
	) -> Optional[datetime]:
		return await self.repo.advance_group_cursor(group_id, ctx.user_id, at or self._clock())
