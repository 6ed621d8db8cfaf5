"""Pydantic schemas for the activity API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from hub_activity.domain.activity import deeplinks, models
from hub_activity.domain.activity.push import DeviceReport, PushState


class SessionOpenRequest(BaseModel):
	hub_id: str = Field(..., min_length=1, max_length=64)


class SessionResponse(BaseModel):
	hub_id: str
	user_id: str
	polling: bool


class BadgeResponse(BaseModel):
	unread_messages: int
	unread_groups: int
	upcoming_events_today: int
	has_more_notifications: bool
	computed_at: Optional[datetime] = None

	@classmethod
	def from_counts(cls, counts: models.BadgeCounts) -> "BadgeResponse":
		return cls(**counts.model_dump())


class CursorAdvanceRequest(BaseModel):
	at: Optional[datetime] = None


class CursorResponse(BaseModel):
	cursor: Optional[datetime] = None


class NotificationResponse(BaseModel):
	id: UUID
	type: Optional[str] = None
	title: str
	body: Optional[str] = None
	actor_id: Optional[UUID] = None
	actor_profile: Optional[models.ActorProfile] = None
	reference_id: Optional[str] = None
	reference_type: Optional[str] = None
	is_read: bool
	created_at: datetime
	target: str

	@classmethod
	def from_record(cls, record: models.NotificationRecord) -> "NotificationResponse":
		return cls(
			id=record.id,
			type=record.type.value if record.type else None,
			title=record.title,
			body=record.body,
			actor_id=record.actor_id,
			actor_profile=record.actor_profile,
			reference_id=record.reference_id,
			reference_type=record.reference_type,
			is_read=record.is_read,
			created_at=record.created_at,
			target=deeplinks.resolve_target(record.type, record.reference_id),
		)


class NotificationListResponse(BaseModel):
	items: List[NotificationResponse]
	has_more: bool
	held: int


class NotificationUnreadResponse(BaseModel):
	count: int


class NotificationMarkReadResponse(BaseModel):
	updated: bool
	unread_count: int


class NotificationMarkAllReadResponse(BaseModel):
	updated: int
	unread_count: int


class PushRegisterRequest(DeviceReport):
	device_id: str = Field(..., min_length=1, max_length=128)
	reinitiate: bool = True


class PushStatusResponse(BaseModel):
	device_id: str
	state: PushState
	permission: str
	active: bool


class PushTapRequest(BaseModel):
	data: Dict[str, Any] = Field(default_factory=dict)


class PushTapResponse(BaseModel):
	target: str
