"""Helpers for upstream features that write notification records."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from hub_activity.domain.activity import models

logger = logging.getLogger(__name__)


class NotificationProducer:
	"""Appends notification rows; recipients never get notified of their own actions."""

	def __init__(self, repository) -> None:
		self.repo = repository

	async def notify(
		self,
		*,
		hub_id: str,
		user_id: str,
		actor_id: Optional[str],
		type: models.NotificationType,
		title: str,
		body: Optional[str] = None,
		reference_id: Optional[str] = None,
		reference_type: Optional[str] = None,
	) -> Optional[models.NotificationRecord]:
		if actor_id is not None and str(actor_id) == str(user_id):
			return None
		record = await self.repo.insert_notification(
			hub_id=hub_id,
			user_id=user_id,
			type=models.NotificationType(type).value,
			title=title,
			body=body,
			actor_id=actor_id,
			reference_id=reference_id,
			reference_type=reference_type or models.NotificationType(type).value,
		)
		logger.debug("notification.created", extra={"hub_id": hub_id, "type": record.type})
		return record


async def notify_many(
	producer: NotificationProducer,
	*,
	hub_id: str,
	user_ids: Iterable[str],
	actor_id: Optional[str],
	type: models.NotificationType,
	title: str,
	body: Optional[str] = None,
	reference_id: Optional[str] = None,
	reference_type: Optional[str] = None,
) -> int:
	"""Persist notifications for many recipients, returning number created."""
	created = 0
	for user_id in user_ids:
		record = await producer.notify(
			hub_id=hub_id,
			user_id=user_id,
			actor_id=actor_id,
			type=type,
			title=title,
			body=body,
			reference_id=reference_id,
			reference_type=reference_type,
		)
		if record is not None:
			created += 1
	return created
