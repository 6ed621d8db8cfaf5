"""Notification tap → navigation target resolution."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from hub_activity.domain.activity.models import NotificationType

logger = logging.getLogger(__name__)

DASHBOARD = "/(tabs)/"

# Types whose target embeds the reference id; the second path is used when
# the payload carries no reference.
_REFERENCED: Mapping[NotificationType, tuple[str, str]] = {
	NotificationType.MESSAGE: ("/chat/{ref}", "/(tabs)/messages"),
	NotificationType.POST: ("/group/{ref}", "/(tabs)/groups"),
	NotificationType.COMPETITION: ("/competitions/{ref}", "/competitions/"),
}

_STATIC: Mapping[NotificationType, str] = {
	NotificationType.EVENT: "/(tabs)/calendar",
	NotificationType.SCORE: "/(tabs)/scores",
	NotificationType.SKILL: "/(tabs)/skills",
	NotificationType.ASSIGNMENT: "/(tabs)/assignments",
	NotificationType.MARKETPLACE_ITEM: "/(tabs)/more",
	NotificationType.RESOURCE: "/(tabs)/more",
	NotificationType.STAFF_TASK: "/staff/",
	NotificationType.STAFF_TIME_OFF: "/staff/",
	NotificationType.PRIVATE_LESSON: "/private-lessons/",
}

if set(_REFERENCED) | set(_STATIC) != set(NotificationType) or set(_REFERENCED) & set(_STATIC):
	raise RuntimeError("every notification type needs exactly one deep-link target")


def resolve_target(kind: object, reference_id: Optional[str] = None) -> str:
	"""Map a notification type (and optional reference) to a route; never empty."""
	parsed = NotificationType.parse(kind) if kind is not None else None
	if parsed is None:
		return DASHBOARD
	if parsed in _REFERENCED:
		with_ref, without_ref = _REFERENCED[parsed]
		ref = str(reference_id).strip() if reference_id is not None else ""
		return with_ref.format(ref=ref) if ref else without_ref
	return _STATIC[parsed]


def handle_tap(payload: Optional[Mapping[str, Any]], navigate: Callable[[str], Any]) -> str:
	"""Resolve a tapped notification's data payload and hand the route to `navigate`."""
	data = payload or {}
	target = resolve_target(data.get("type"), data.get("reference_id"))
	logger.info("push.tap_dispatched", extra={"type": data.get("type"), "target": target})
	navigate(target)
	return target
