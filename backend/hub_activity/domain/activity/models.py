"""Domain models for hub activity: memberships, notifications, preferences, push tokens."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class NotificationType(str, enum.Enum):
	"""Closed set of notification kinds written by upstream producers."""

	MESSAGE = "message"
	POST = "post"
	EVENT = "event"
	COMPETITION = "competition"
	SCORE = "score"
	SKILL = "skill"
	ASSIGNMENT = "assignment"
	MARKETPLACE_ITEM = "marketplace_item"
	RESOURCE = "resource"
	STAFF_TASK = "staff_task"
	STAFF_TIME_OFF = "staff_time_off"
	PRIVATE_LESSON = "private_lesson"

	@classmethod
	def parse(cls, value: object) -> Optional["NotificationType"]:
		if isinstance(value, cls):
			return value
		try:
			return cls(str(value))
		except ValueError:
			return None


class ActivityContext(BaseModel):
	"""The (hub, user) pair every activity operation is scoped to."""

	hub_id: str
	user_id: str

	model_config = ConfigDict(frozen=True)


class ChannelMembership(BaseModel):
	channel_id: UUID
	user_id: UUID
	hub_id: UUID
	last_read_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)

	@property
	def cursor(self) -> datetime:
		return self.last_read_at or EPOCH


class GroupMembership(BaseModel):
	group_id: UUID
	user_id: UUID
	hub_id: UUID
	last_viewed_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)

	@property
	def cursor(self) -> datetime:
		return self.last_viewed_at or EPOCH


class ActorProfile(BaseModel):
	full_name: Optional[str] = None
	avatar_url: Optional[str] = None


class NotificationRecord(BaseModel):
	"""A persisted feed entry; `type` is None when the store holds an unknown kind."""

	id: UUID
	user_id: UUID
	hub_id: UUID
	type: Optional[NotificationType] = None
	title: str
	body: Optional[str] = None
	actor_id: Optional[UUID] = None
	reference_id: Optional[str] = None
	reference_type: Optional[str] = None
	is_read: bool = False
	created_at: datetime
	actor_profile: Optional[ActorProfile] = None

	model_config = ConfigDict(from_attributes=True)

	@field_validator("type", mode="before")
	@classmethod
	def _lenient_type(cls, value: object) -> Optional[NotificationType]:
		if value is None:
			return None
		return NotificationType.parse(value)


class NotificationPreferences(BaseModel):
	"""Per-(user, hub) feature toggles. Absent rows mean everything enabled."""

	user_id: Optional[UUID] = None
	hub_id: Optional[UUID] = None
	messages_enabled: bool = True
	groups_enabled: bool = True
	calendar_enabled: bool = True
	competitions_enabled: bool = True
	scores_enabled: bool = True
	skills_enabled: bool = True
	assignments_enabled: bool = True
	marketplace_enabled: bool = True
	resources_enabled: bool = True
	staff_tasks_enabled: bool = True
	private_lessons_enabled: bool = True
	updated_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class NotificationPreferencesPatch(BaseModel):
	messages_enabled: Optional[bool] = None
	groups_enabled: Optional[bool] = None
	calendar_enabled: Optional[bool] = None
	competitions_enabled: Optional[bool] = None
	scores_enabled: Optional[bool] = None
	skills_enabled: Optional[bool] = None
	assignments_enabled: Optional[bool] = None
	marketplace_enabled: Optional[bool] = None
	resources_enabled: Optional[bool] = None
	staff_tasks_enabled: Optional[bool] = None
	private_lessons_enabled: Optional[bool] = None

	model_config = ConfigDict(extra="forbid")


class PushToken(BaseModel):
	user_id: UUID
	token: str
	platform: str
	is_active: bool = True
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class BadgeCounts(BaseModel):
	unread_messages: int = 0
	unread_groups: int = 0
	upcoming_events_today: int = 0
	has_more_notifications: bool = False
	computed_at: Optional[datetime] = None


class FeedPage(BaseModel):
	items: list[NotificationRecord] = Field(default_factory=list)
	has_more: bool = True
