"""Notification preference registry.

Preferences are per-(user, hub) boolean toggles. Reads fail open: a missing
row or a failed read yields the all-enabled defaults. Writes are applied to
local state optimistically and reconciled from the store when the durable
write fails.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from hub_activity.domain.activity import models
from hub_activity.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

NotificationType = models.NotificationType

PREFERENCE_KEY: Mapping[NotificationType, str] = {
	NotificationType.MESSAGE: "messages_enabled",
	NotificationType.POST: "groups_enabled",
	NotificationType.EVENT: "calendar_enabled",
	NotificationType.COMPETITION: "competitions_enabled",
	NotificationType.SCORE: "scores_enabled",
	NotificationType.SKILL: "skills_enabled",
	NotificationType.ASSIGNMENT: "assignments_enabled",
	NotificationType.MARKETPLACE_ITEM: "marketplace_enabled",
	NotificationType.RESOURCE: "resources_enabled",
	NotificationType.STAFF_TASK: "staff_tasks_enabled",
	NotificationType.STAFF_TIME_OFF: "staff_tasks_enabled",
	NotificationType.PRIVATE_LESSON: "private_lessons_enabled",
}

_missing = set(NotificationType) - set(PREFERENCE_KEY)
if _missing:
	raise RuntimeError(f"notification types without a preference key: {sorted(t.value for t in _missing)}")
_unknown_keys = set(PREFERENCE_KEY.values()) - set(models.NotificationPreferencesPatch.model_fields)
if _unknown_keys:
	raise RuntimeError(f"preference keys missing from the preferences model: {sorted(_unknown_keys)}")


def _now() -> datetime:
	return datetime.now(timezone.utc)


def default_preferences() -> models.NotificationPreferences:
	return models.NotificationPreferences()


def is_enabled(prefs: Optional[models.NotificationPreferences], kind: NotificationType) -> bool:
	if prefs is None:
		return True
	return getattr(prefs, PREFERENCE_KEY[kind]) is not False


def enabled_types(prefs: Optional[models.NotificationPreferences]) -> list[NotificationType]:
	return [kind for kind in NotificationType if is_enabled(prefs, kind)]


def type_filter(prefs: Optional[models.NotificationPreferences]) -> Optional[list[str]]:
	"""Types to restrict the feed to, or None for no restriction.

	Only a strict, non-empty subset restricts the query. All-enabled and
	all-disabled both return None so a filtering mistake never hides the feed.
	"""
	enabled = enabled_types(prefs)
	if 0 < len(enabled) < len(NotificationType):
		return [kind.value for kind in enabled]
	return None


class PreferenceRegistry:
	"""Holds the session's view of its preferences and mediates updates.

	Results for a context other than the bound one are returned to the
	caller but never applied, so a write that lands after a hub switch
	cannot leak one hub's toggles into another hub's feed filter.
	"""

	def __init__(self, repository) -> None:
		self.repo = repository
		self.context: Optional[models.ActivityContext] = None
		self.current: Optional[models.NotificationPreferences] = None
		self._durable: Optional[models.NotificationPreferences] = None

	def bind(self, ctx: Optional[models.ActivityContext]) -> None:
		if ctx != self.context:
			self.context = ctx
			self.current = None
			self._durable = None

	def _is_current(self, ctx: models.ActivityContext) -> bool:
		if self.context == ctx:
			return True
		obs_metrics.inc_stale_discard("preferences")
		logger.debug("preferences.stale_result_discarded", extra={"hub_id": ctx.hub_id})
		return False

	async def get(self, ctx: models.ActivityContext) -> models.NotificationPreferences:
		try:
			stored = await self.repo.get_preferences(ctx.hub_id, ctx.user_id)
		except Exception:
			logger.exception("preferences.fetch_failed", extra={"hub_id": ctx.hub_id})
			if self.context == ctx and self.current is not None:
				return self.current
			return default_preferences()
		prefs = stored or default_preferences()
		if self._is_current(ctx):
			self.current = prefs
			self._durable = prefs
		return prefs

	async def set(
		self,
		ctx: models.ActivityContext,
		patch: models.NotificationPreferencesPatch,
	) -> models.NotificationPreferences:
		updates = patch.model_dump(exclude_none=True)
		stamp = _now()
		if self.context == ctx:
			base = self.current or default_preferences()
			self.current = base.model_copy(update={**updates, "updated_at": stamp})
		try:
			saved = await self.repo.upsert_preferences(ctx.hub_id, ctx.user_id, updates, updated_at=stamp)
		except Exception:
			obs_metrics.inc_preferences_update("reconciled")
			logger.warning(
				"preferences.write_failed",
				exc_info=True,
				extra={"hub_id": ctx.hub_id, "fields": sorted(updates)},
			)
			return await self._reconcile(ctx)
		obs_metrics.inc_preferences_update("saved")
		if self._is_current(ctx):
			self.current = saved
			self._durable = saved
		return saved

	async def _reconcile(self, ctx: models.ActivityContext) -> models.NotificationPreferences:
		try:
			stored = await self.repo.get_preferences(ctx.hub_id, ctx.user_id)
		except Exception:
			logger.exception("preferences.reconcile_failed", extra={"hub_id": ctx.hub_id})
			if self.context != ctx:
				return default_preferences()
			self.current = self._durable
			return self.current or default_preferences()
		prefs = stored or default_preferences()
		if self._is_current(ctx):
			self.current = prefs
			self._durable = prefs
		return prefs

	def clear(self) -> None:
		self.bind(None)
