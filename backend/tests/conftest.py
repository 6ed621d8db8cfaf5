import asyncio
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from hub_activity.domain.activity import models
from hub_activity.domain.activity.snapshots import BadgeSnapshotStore
from hub_activity.infra import postgres
from hub_activity.main import app, build_registry
from hub_activity.settings import settings


class FakeActivityRepo:
	"""In-memory stand-in for ActivityRepository.

	Content rows are plain dicts; `fail` holds method names that should raise.
	"""

	def __init__(self) -> None:
		self.channel_members: list[dict] = []
		self.group_members: list[dict] = []
		self.messages: list[dict] = []
		self.posts: list[dict] = []
		self.events: list[dict] = []
		self.notifications: list[models.NotificationRecord] = []
		self.preferences: dict[tuple[str, str], models.NotificationPreferences] = {}
		self.push_tokens: dict[tuple[str, str], models.PushToken] = {}
		self.fail: set[str] = set()
		self.list_calls: list[dict] = []

	def _check(self, name: str) -> None:
		if name in self.fail:
			raise RuntimeError(f"{name} unavailable")

	# --- seeding helpers ----------------------------------------------------

	def add_channel(self, hub_id, user_id, channel_id=None, last_read_at=None) -> str:
		channel_id = channel_id or str(uuid.uuid4())
		self.channel_members.append(
			{"channel_id": channel_id, "user_id": user_id, "hub_id": hub_id, "last_read_at": last_read_at}
		)
		return channel_id

	def add_group(self, hub_id, user_id, group_id=None, last_viewed_at=None) -> str:
		group_id = group_id or str(uuid.uuid4())
		self.group_members.append(
			{"group_id": group_id, "user_id": user_id, "hub_id": hub_id, "last_viewed_at": last_viewed_at}
		)
		return group_id

	def add_message(self, channel_id, author_id, created_at) -> None:
		self.messages.append({"channel_id": channel_id, "user_id": author_id, "created_at": created_at})

	def add_post(self, group_id, author_id, created_at) -> None:
		self.posts.append({"group_id": group_id, "user_id": author_id, "created_at": created_at})

	def add_event(self, hub_id, start_time) -> None:
		self.events.append({"hub_id": hub_id, "start_time": start_time})

	def add_notification(self, hub_id, user_id, *, type="message", is_read=False, created_at=None, **extra):
		record = models.NotificationRecord(
			id=extra.pop("id", None) or uuid.uuid4(),
			user_id=user_id,
			hub_id=hub_id,
			type=type,
			title=extra.pop("title", f"{type} notification"),
			is_read=is_read,
			created_at=created_at or datetime.now(timezone.utc),
			**extra,
		)
		self.notifications.append(record)
		return record

	# --- repository surface -------------------------------------------------

	async def list_channel_memberships(self, hub_id, user_id):
		self._check("list_channel_memberships")
		return [
			models.ChannelMembership(**row)
			for row in self.channel_members
			if row["hub_id"] == hub_id and row["user_id"] == user_id
		]

	async def list_group_memberships(self, hub_id, user_id):
		self._check("list_group_memberships")
		return [
			models.GroupMembership(**row)
			for row in self.group_members
			if row["hub_id"] == hub_id and row["user_id"] == user_id
		]

	async def advance_channel_cursor(self, channel_id, user_id, at):
		self._check("advance_channel_cursor")
		for row in self.channel_members:
			if str(row["channel_id"]) == str(channel_id) and row["user_id"] == user_id:
				current = row["last_read_at"] or models.EPOCH
				row["last_read_at"] = max(current, at)
				return row["last_read_at"]
		return None

	async def advance_group_cursor(self, group_id, user_id, at):
		self._check("advance_group_cursor")
		for row in self.group_members:
			if str(row["group_id"]) == str(group_id) and row["user_id"] == user_id:
				current = row["last_viewed_at"] or models.EPOCH
				row["last_viewed_at"] = max(current, at)
				return row["last_viewed_at"]
		return None

	async def count_unread_messages(self, channel_id, user_id, since):
		self._check("count_unread_messages")
		return sum(
			1
			for row in self.messages
			if str(row["channel_id"]) == str(channel_id) and row["created_at"] > since and row["user_id"] != user_id
		)

	async def count_unread_posts(self, group_id, user_id, since):
		self._check("count_unread_posts")
		return sum(
			1
			for row in self.posts
			if str(row["group_id"]) == str(group_id) and row["created_at"] > since and row["user_id"] != user_id
		)

	async def count_events_between(self, hub_id, start, end):
		self._check("count_events_between")
		return sum(1 for row in self.events if row["hub_id"] == hub_id and start <= row["start_time"] < end)

	def _feed(self, hub_id, user_id):
		rows = [n for n in self.notifications if str(n.hub_id) == str(hub_id) and str(n.user_id) == str(user_id)]
		return sorted(rows, key=lambda n: (n.created_at, str(n.id)), reverse=True)

	async def list_notifications(self, hub_id, user_id, *, offset, limit, types=None):
		self._check("list_notifications")
		self.list_calls.append({"offset": offset, "limit": limit, "types": types})
		rows = self._feed(hub_id, user_id)
		if types is not None:
			rows = [n for n in rows if n.type is not None and n.type.value in types]
		return rows[offset : offset + limit]

	async def count_unread_notifications(self, hub_id, user_id):
		self._check("count_unread_notifications")
		return sum(1 for n in self._feed(hub_id, user_id) if not n.is_read)

	async def mark_notification_read(self, notification_id, user_id):
		self._check("mark_notification_read")
		for idx, n in enumerate(self.notifications):
			if str(n.id) == str(notification_id) and str(n.user_id) == str(user_id) and not n.is_read:
				self.notifications[idx] = n.model_copy(update={"is_read": True})
				return str(n.hub_id)
		return None

	async def mark_all_notifications_read(self, hub_id, user_id):
		self._check("mark_all_notifications_read")
		updated = 0
		for idx, n in enumerate(self.notifications):
			if str(n.hub_id) == str(hub_id) and str(n.user_id) == str(user_id) and not n.is_read:
				self.notifications[idx] = n.model_copy(update={"is_read": True})
				updated += 1
		return updated

	async def insert_notification(self, *, hub_id, user_id, type, title, body, actor_id, reference_id, reference_type):
		self._check("insert_notification")
		return self.add_notification(
			hub_id,
			user_id,
			type=type,
			title=title,
			body=body,
			actor_id=actor_id,
			reference_id=reference_id,
			reference_type=reference_type,
		)

	async def get_preferences(self, hub_id, user_id):
		self._check("get_preferences")
		return self.preferences.get((hub_id, user_id))

	async def upsert_preferences(self, hub_id, user_id, updates, *, updated_at):
		self._check("upsert_preferences")
		base = self.preferences.get((hub_id, user_id)) or models.NotificationPreferences()
		saved = base.model_copy(update={**updates, "updated_at": updated_at})
		self.preferences[(hub_id, user_id)] = saved
		return saved

	async def upsert_push_token(self, user_id, *, token, platform, updated_at):
		self._check("upsert_push_token")
		row = models.PushToken(user_id=user_id, token=token, platform=platform, is_active=True, updated_at=updated_at)
		self.push_tokens[(str(user_id), token)] = row
		return row

	async def deactivate_push_token(self, user_id, token, *, updated_at):
		self._check("deactivate_push_token")
		row = self.push_tokens.get((str(user_id), token))
		if row is None:
			return 0
		self.push_tokens[(str(user_id), token)] = row.model_copy(update={"is_active": False, "updated_at": updated_at})
		return 1


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		# Non-fatal; proceed with default policy
		pass


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from hub_activity.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await app.state.activity_sessions.shutdown()
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Ensure a consistent test environment.

	API tests authenticate via X-User-Id/X-Hub-Id headers, which are only
	accepted in dev mode. Push needs a project id to issue tokens.
	"""
	original_env = settings.environment
	original_project = settings.push_project_id
	settings.environment = "dev"
	settings.push_project_id = "test-project"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.push_project_id = original_project


@pytest.fixture
def activity_repo():
	return FakeActivityRepo()


@pytest_asyncio.fixture
async def api_client(activity_repo):
	original = app.state.activity_sessions
	app.state.activity_sessions = build_registry(activity_repo, BadgeSnapshotStore())
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		await app.state.activity_sessions.shutdown()
		app.state.activity_sessions = original
