"""Redis mirror of the last applied badge counts per hub + user."""

from __future__ import annotations

import logging
from typing import Optional

from hub_activity.domain.activity import models
from hub_activity.infra.redis import redis_client
from hub_activity.settings import settings

logger = logging.getLogger(__name__)


def _key(ctx: models.ActivityContext) -> str:
	return f"activity:badges:{ctx.hub_id}:{ctx.user_id}"


class BadgeSnapshotStore:
	"""Short-lived badge snapshots so any worker can answer a badge read.

	Cache failures never reach callers; a miss just means a fresh aggregation.
	"""

	def __init__(self, client=redis_client, *, ttl_seconds: Optional[int] = None) -> None:
		self.client = client
		self.ttl_seconds = int(ttl_seconds or settings.badge_snapshot_ttl_seconds)

	async def save(self, ctx: models.ActivityContext, counts: models.BadgeCounts) -> None:
		try:
			await self.client.setex(_key(ctx), self.ttl_seconds, counts.model_dump_json())
		except Exception:
			logger.warning("badge_snapshot.save_failed", exc_info=True, extra={"hub_id": ctx.hub_id})

	async def load(self, ctx: models.ActivityContext) -> Optional[models.BadgeCounts]:
		try:
			raw = await self.client.get(_key(ctx))
		except Exception:
			logger.warning("badge_snapshot.load_failed", exc_info=True, extra={"hub_id": ctx.hub_id})
			return None
		if not raw:
			return None
		try:
			return models.BadgeCounts.model_validate_json(raw)
		except ValueError:
			logger.warning("badge_snapshot.corrupt", extra={"hub_id": ctx.hub_id})
			return None

	async def drop(self, ctx: models.ActivityContext) -> None:
		try:
			await self.client.delete(_key(ctx))
		except Exception:
			logger.warning("badge_snapshot.drop_failed", exc_info=True, extra={"hub_id": ctx.hub_id})
