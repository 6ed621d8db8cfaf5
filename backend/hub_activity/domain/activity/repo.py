"""Async repository helpers for hub activity."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

import asyncpg

from hub_activity.domain.activity import models
from hub_activity.infra.postgres import get_pool

PREFERENCE_COLUMNS: tuple[str, ...] = tuple(models.NotificationPreferencesPatch.model_fields)


def _notification_from_row(row: asyncpg.Record) -> models.NotificationRecord:
	data = dict(row)
	profile = data.pop("actor_profile", None)
	if isinstance(profile, str):
		profile = json.loads(profile)
	data["actor_profile"] = profile or None
	return models.NotificationRecord.model_validate(data)


def _rowcount(status: str | None) -> int:
	return int(status.split()[-1]) if status else 0


class ActivityRepository:
	"""Thin data-access layer around asyncpg."""

	# --- Membership / cursor operations --------------------------------------

	async def list_channel_memberships(self, hub_id: str, user_id: str) -> list[models.ChannelMembership]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT cm.channel_id, cm.user_id, c.hub_id, cm.last_read_at
				FROM channel_members cm
				JOIN channels c ON c.id = cm.channel_id
				WHERE cm.user_id = $1 AND c.hub_id = $2
				""",
				user_id,
				hub_id,
			)
		return [models.ChannelMembership.model_validate(dict(row)) for row in rows]

	async def list_group_memberships(self, hub_id: str, user_id: str) -> list[models.GroupMembership]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT gm.group_id, gm.user_id, g.hub_id, gm.last_viewed_at
				FROM group_members gm
				JOIN groups g ON g.id = gm.group_id
				WHERE gm.user_id = $1 AND g.hub_id = $2
				""",
				user_id,
				hub_id,
			)
		return [models.GroupMembership.model_validate(dict(row)) for row in rows]

	async def advance_channel_cursor(self, channel_id: str, user_id: str, at: datetime) -> Optional[datetime]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			return await conn.fetchval(
				"""
				UPDATE channel_members
				SET last_read_at = GREATEST(COALESCE(last_read_at, 'epoch'::timestamptz), $3)
				WHERE channel_id = $1 AND user_id = $2
				RETURNING last_read_at
				""",
				channel_id,
				user_id,
				at,
			)

	async def advance_group_cursor(self, group_id: str, user_id: str, at: datetime) -> Optional[datetime]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			return await conn.fetchval(
				"""
				UPDATE group_members
				SET last_viewed_at = GREATEST(COALESCE(last_viewed_at, 'epoch'::timestamptz), $3)
				WHERE group_id = $1 AND user_id = $2
				RETURNING last_viewed_at
				""",
				group_id,
				user_id,
				at,
			)

	# --- Content counts -------------------------------------------------------

	async def count_unread_messages(self, channel_id: str, user_id: str, since: datetime) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*) FROM messages
				WHERE channel_id = $1 AND created_at > $2 AND user_id <> $3
				""",
				channel_id,
				since,
				user_id,
			)
		return int(value or 0)

	async def count_unread_posts(self, group_id: str, user_id: str, since: datetime) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*) FROM posts
				WHERE group_id = $1 AND created_at > $2 AND user_id <> $3
				""",
				group_id,
				since,
				user_id,
			)
		return int(value or 0)

	async def count_events_between(self, hub_id: str, start: datetime, end: datetime) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*) FROM events
				WHERE hub_id = $1 AND start_time >= $2 AND start_time < $3
				""",
				hub_id,
				start,
				end,
			)
		return int(value or 0)

	# --- Notification operations ---------------------------------------------

	async def list_notifications(
		self,
		hub_id: str,
		user_id: str,
		*,
		offset: int,
		limit: int,
		types: Optional[Sequence[str]] = None,
	) -> list[models.NotificationRecord]:
		pool = await get_pool()
		params: list[object] = [user_id, hub_id]
		conditions = ["n.user_id = $1", "n.hub_id = $2"]
		if types:
			params.append(list(types))
			conditions.append(f"n.type = ANY(${len(params)}::text[])")
		params.extend([limit, offset])
		where_clause = " AND ".join(conditions)
		query = f"""
			SELECT n.id, n.user_id, n.hub_id, n.type, n.title, n.body, n.actor_id,
				n.reference_id, n.reference_type, n.is_read, n.created_at,
				CASE WHEN p.id IS NULL THEN NULL
					ELSE json_build_object('full_name', p.full_name, 'avatar_url', p.avatar_url)
				END AS actor_profile
			FROM notifications n
			LEFT JOIN profiles p ON p.id = n.actor_id
			WHERE {where_clause}
			ORDER BY n.created_at DESC, n.id DESC
			LIMIT ${len(params) - 1} OFFSET ${len(params)}
		"""
		async with pool.acquire() as conn:
			rows = await conn.fetch(query, *params)
		return [_notification_from_row(row) for row in rows]

	async def count_unread_notifications(self, hub_id: str, user_id: str) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			value = await conn.fetchval(
				"""
				SELECT COUNT(*) FROM notifications
				WHERE user_id = $1 AND hub_id = $2 AND is_read = FALSE
				""",
				user_id,
				hub_id,
			)
		return int(value or 0)

	async def mark_notification_read(self, notification_id: str, user_id: str) -> Optional[str]:
		"""Flip one unread row owned by `user_id`; returns its hub, or None when nothing transitioned."""
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE notifications
				SET is_read = TRUE
				WHERE id = $1 AND user_id = $2 AND is_read = FALSE
				RETURNING hub_id
				""",
				notification_id,
				user_id,
			)
		return str(row["hub_id"]) if row is not None else None

	async def mark_all_notifications_read(self, hub_id: str, user_id: str) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			result = await conn.execute(
				"""
				UPDATE notifications
				SET is_read = TRUE
				WHERE user_id = $1 AND hub_id = $2 AND is_read = FALSE
				""",
				user_id,
				hub_id,
			)
		return _rowcount(result)

	async def insert_notification(
		self,
		*,
		hub_id: str,
		user_id: str,
		type: str,
		title: str,
		body: Optional[str],
		actor_id: Optional[str],
		reference_id: Optional[str],
		reference_type: Optional[str],
	) -> models.NotificationRecord:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO notifications (hub_id, user_id, type, title, body, actor_id,
					reference_id, reference_type, is_read)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, FALSE)
				RETURNING *
				""",
				hub_id,
				user_id,
				type,
				title,
				body,
				actor_id,
				reference_id,
				reference_type,
			)
		return _notification_from_row(row)

	# --- Preference operations -----------------------------------------------

	async def get_preferences(self, hub_id: str, user_id: str) -> Optional[models.NotificationPreferences]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT * FROM user_notification_preferences
				WHERE user_id = $1 AND hub_id = $2
				""",
				user_id,
				hub_id,
			)
		if row is None:
			return None
		return models.NotificationPreferences.model_validate(dict(row))

	async def upsert_preferences(
		self,
		hub_id: str,
		user_id: str,
		updates: Mapping[str, bool],
		*,
		updated_at: datetime,
	) -> models.NotificationPreferences:
		"""Merge `updates` into the (user, hub) row, creating it with defaults if absent."""
		columns = [name for name in PREFERENCE_COLUMNS if name in updates]
		params: list[Any] = [user_id, hub_id, updated_at]
		params.extend(bool(updates[name]) for name in columns)
		insert_cols = ", ".join(["user_id", "hub_id", "updated_at", *columns])
		placeholders = ", ".join(f"${idx}" for idx in range(1, len(params) + 1))
		assignments = ", ".join(
			["updated_at = EXCLUDED.updated_at", *(f"{name} = EXCLUDED.{name}" for name in columns)]
		)
		query = f"""
			INSERT INTO user_notification_preferences ({insert_cols})
			VALUES ({placeholders})
			ON CONFLICT (user_id, hub_id)
			DO UPDATE SET {assignments}
			RETURNING *
		"""
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(query, *params)
		return models.NotificationPreferences.model_validate(dict(row))

	# --- Push token operations -----------------------------------------------

	async def upsert_push_token(
		self,
		user_id: str,
		*,
		token: str,
		platform: str,
		updated_at: datetime,
	) -> models.PushToken:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO user_push_tokens (user_id, token, platform, is_active, updated_at)
				VALUES ($1, $2, $3, TRUE, $4)
				ON CONFLICT (user_id, token)
				DO UPDATE SET platform = EXCLUDED.platform, is_active = TRUE, updated_at = EXCLUDED.updated_at
				RETURNING user_id, token, platform, is_active, updated_at
				""",
				user_id,
				token,
				platform,
				updated_at,
			)
		return models.PushToken.model_validate(dict(row))

	async def deactivate_push_token(self, user_id: str, token: str, *, updated_at: datetime) -> int:
		pool = await get_pool()
		async with pool.acquire() as conn:
			result = await conn.execute(
				"""
				UPDATE user_push_tokens
				SET is_active = FALSE, updated_at = $3
				WHERE user_id = $1 AND token = $2
				""",
				user_id,
				token,
				updated_at,
			)
		return _rowcount(result)
