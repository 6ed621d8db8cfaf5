"""Paginated, preference-filtered notification feed with read-state tracking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from hub_activity.domain.activity import models
from hub_activity.domain.activity import preferences as prefs_module
from hub_activity.obs import metrics as obs_metrics
from hub_activity.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class FeedState:
	"""What the session currently holds for the feed."""

	context: Optional[models.ActivityContext] = None
	items: list[models.NotificationRecord] = field(default_factory=list)
	unread_count: int = 0
	has_more: bool = True
	loading: bool = False
	loading_more: bool = False
	generation: int = 0


class FeedReader:
	"""Feed listing, unread counter and mark-read mutations for one session.

	Read paths swallow store errors and leave state untouched. Read-state
	mutations are fail-closed: local state only changes after the store
	confirms the write.
	"""

	def __init__(
		self,
		repository,
		registry: prefs_module.PreferenceRegistry,
		*,
		page_size: Optional[int] = None,
	) -> None:
		self.repo = repository
		self.preferences = registry
		self.page_size = page_size or settings.feed_page_size
		self.state = FeedState()

	def _is_current(self, ctx: models.ActivityContext, generation: int) -> bool:
		return self.state.context == ctx and self.state.generation == generation

	async def list(self, ctx: models.ActivityContext, *, reset: bool = False) -> models.FeedPage:
		"""Fetch the first page (reset) or the page after what is already held.

		A reset bumps the generation; any fetch that finds the generation or
		context changed when its response arrives is dropped, so a slow older
		response can never overwrite a newer one.
		"""
		state = self.state
		if reset or state.context != ctx:
			if state.context != ctx:
				state.items = []
				state.has_more = True
			state.context = ctx
			state.generation += 1
			state.loading = True
			offset = 0
			mode = "reset"
		else:
			state.loading_more = True
			offset = len(state.items)
			mode = "append"
		generation = state.generation
		types = prefs_module.type_filter(self.preferences.current)
		try:
			items = await self.repo.list_notifications(
				ctx.hub_id,
				ctx.user_id,
				offset=offset,
				limit=self.page_size,
				types=types,
			)
		except Exception:
			obs_metrics.inc_feed_fetch(mode, "error")
			logger.warning("feed.fetch_failed", exc_info=True, extra={"hub_id": ctx.hub_id, "offset": offset})
			if self._is_current(ctx, generation):
				state.loading = False
				state.loading_more = False
			return models.FeedPage(items=[], has_more=state.has_more)
		page = models.FeedPage(items=list(items), has_more=len(items) >= self.page_size)
		if not self._is_current(ctx, generation):
			obs_metrics.inc_feed_fetch(mode, "stale")
			obs_metrics.inc_stale_discard("feed")
			logger.debug("feed.stale_page_discarded", extra={"hub_id": ctx.hub_id, "generation": generation})
			return page
		if mode == "reset":
			state.items = list(page.items)
		else:
			state.items = [*state.items, *page.items]
		state.has_more = page.has_more
		state.loading = False
		state.loading_more = False
		obs_metrics.inc_feed_fetch(mode, "ok")
		return page

	async def unread_count(self, ctx: models.ActivityContext) -> int:
		"""Fresh unread total; only cached when `ctx` is still the bound context."""
		try:
			count = max(0, int(await self.repo.count_unread_notifications(ctx.hub_id, ctx.user_id)))
		except Exception:
			logger.warning("feed.unread_count_failed", exc_info=True, extra={"hub_id": ctx.hub_id})
			return self.state.unread_count if self.state.context == ctx else 0
		if self.state.context != ctx:
			obs_metrics.inc_stale_discard("unread_count")
			return count
		self.state.unread_count = count
		return count

	async def mark_read(self, ctx: models.ActivityContext, notification_id: str) -> bool:
		"""Mark one record read; True only when this call flipped it.

		Records owned by someone else, unknown ids and already-read records all
		come back False with no local change, so repeated calls never decrement
		the counter twice. A flipped record from another hub of the same user
		leaves this hub's counter alone.
		"""
		try:
			hub_id = await self.repo.mark_notification_read(notification_id, ctx.user_id)
		except Exception:
			obs_metrics.inc_mark_read("one", "error")
			logger.warning("feed.mark_read_failed", exc_info=True, extra={"notification_id": notification_id})
			return False
		if hub_id is None:
			obs_metrics.inc_mark_read("one", "noop")
			return False
		obs_metrics.inc_mark_read("one", "ok")
		if self.state.context != ctx or str(hub_id) != str(ctx.hub_id):
			return True
		self.state.items = [
			item.model_copy(update={"is_read": True}) if str(item.id) == str(notification_id) else item
			for item in self.state.items
		]
		self.state.unread_count = max(0, self.state.unread_count - 1)
		return True

	async def mark_all_read(self, ctx: models.ActivityContext) -> Optional[int]:
		"""Mark every unread record in the hub read; None when the store refused."""
		try:
			updated = await self.repo.mark_all_notifications_read(ctx.hub_id, ctx.user_id)
		except Exception:
			obs_metrics.inc_mark_read("all", "error")
			logger.warning("feed.mark_all_read_failed", exc_info=True, extra={"hub_id": ctx.hub_id})
			return None
		obs_metrics.inc_mark_read("all", "ok")
		if self.state.context == ctx:
			self.state.items = [item.model_copy(update={"is_read": True}) for item in self.state.items]
			self.state.unread_count = 0
		return int(updated)

	def bind(self, ctx: Optional[models.ActivityContext]) -> None:
		"""Start holding `ctx`; any work in flight for another context is dropped on arrival."""
		if ctx != self.state.context:
			self.state = FeedState(context=ctx, generation=self.state.generation + 1)

	def clear(self) -> None:
		self.state = FeedState(generation=self.state.generation + 1)
