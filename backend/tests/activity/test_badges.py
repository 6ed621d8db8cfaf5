import uuid
from datetime import datetime, timedelta, timezone

import pytest

from hub_activity.domain.activity import models
from hub_activity.domain.activity.badges import BadgeAggregator, today_window

HUB = str(uuid.uuid4())
USER = str(uuid.uuid4())
OTHER = str(uuid.uuid4())
NOW = datetime(2024, 5, 14, 15, 30, tzinfo=timezone.utc)
T0 = NOW - timedelta(hours=2)


def _aggregator(repo) -> BadgeAggregator:
	return BadgeAggregator(repo, clock=lambda: NOW, tz_name="UTC")


def _ctx() -> models.ActivityContext:
	return models.ActivityContext(hub_id=HUB, user_id=USER)


@pytest.mark.asyncio
async def test_unread_messages_exclude_own_and_already_read(activity_repo):
	channel_a = activity_repo.add_channel(HUB, USER, last_read_at=T0)
	channel_b = activity_repo.add_channel(HUB, USER, last_read_at=T0)
	for minutes in (10, 20, 30):
		activity_repo.add_message(channel_a, OTHER, T0 + timedelta(minutes=minutes))
	activity_repo.add_message(channel_a, USER, T0 + timedelta(minutes=40))
	activity_repo.add_message(channel_a, OTHER, T0 - timedelta(minutes=5))
	activity_repo.add_message(channel_b, OTHER, T0 - timedelta(minutes=1))

	counts = await _aggregator(activity_repo).refresh(_ctx())

	assert counts.unread_messages == 3
	assert counts.unread_groups == 0
	assert counts.computed_at == NOW


@pytest.mark.asyncio
async def test_null_cursor_counts_everything_since_epoch(activity_repo):
	channel = activity_repo.add_channel(HUB, USER)
	group = activity_repo.add_group(HUB, USER)
	for days in range(4):
		activity_repo.add_message(channel, OTHER, NOW - timedelta(days=days * 300))
	activity_repo.add_post(group, OTHER, NOW - timedelta(days=3))
	activity_repo.add_post(group, USER, NOW - timedelta(days=2))

	counts = await _aggregator(activity_repo).refresh(_ctx())

	assert counts.unread_messages == 4
	assert counts.unread_groups == 1


@pytest.mark.asyncio
async def test_no_memberships_issue_no_count_queries(activity_repo):
	calls: list[str] = []

	async def _tracked(*_args, **_kwargs):
		calls.append("count")
		return 99

	activity_repo.count_unread_messages = _tracked
	activity_repo.count_unread_posts = _tracked

	counts = await _aggregator(activity_repo).refresh(_ctx())

	assert counts.unread_messages == 0
	assert counts.unread_groups == 0
	assert counts.upcoming_events_today == 0
	assert calls == []


@pytest.mark.asyncio
async def test_failed_membership_count_contributes_zero(activity_repo):
	healthy = activity_repo.add_channel(HUB, USER, last_read_at=T0)
	broken = activity_repo.add_channel(HUB, USER, last_read_at=T0)
	activity_repo.add_message(healthy, OTHER, NOW)
	activity_repo.add_message(broken, OTHER, NOW)
	original = activity_repo.count_unread_messages

	async def _flaky(channel_id, user_id, since):
		if channel_id == broken:
			raise ConnectionError("timeout")
		return await original(channel_id, user_id, since)

	activity_repo.count_unread_messages = _flaky

	counts = await _aggregator(activity_repo).refresh(_ctx())

	assert counts.unread_messages == 1


@pytest.mark.asyncio
async def test_membership_lookup_failure_degrades_to_zero(activity_repo):
	group = activity_repo.add_group(HUB, USER)
	activity_repo.add_post(group, OTHER, NOW)
	activity_repo.add_event(HUB, NOW)
	activity_repo.fail.add("list_channel_memberships")

	counts = await _aggregator(activity_repo).refresh(_ctx())

	assert counts.unread_messages == 0
	assert counts.unread_groups == 1
	assert counts.upcoming_events_today == 1


@pytest.mark.asyncio
async def test_events_counted_within_today_only(activity_repo):
	day_start = NOW.replace(hour=0, minute=0)
	activity_repo.add_event(HUB, day_start)
	activity_repo.add_event(HUB, NOW + timedelta(hours=3))
	activity_repo.add_event(HUB, day_start + timedelta(days=1))
	activity_repo.add_event(HUB, day_start - timedelta(seconds=1))
	activity_repo.add_event(str(uuid.uuid4()), NOW)

	counts = await _aggregator(activity_repo).refresh(_ctx())

	assert counts.upcoming_events_today == 2


@pytest.mark.asyncio
async def test_has_more_notifications_reflects_unread_feed(activity_repo):
	aggregator = _aggregator(activity_repo)
	assert (await aggregator.refresh(_ctx())).has_more_notifications is False

	activity_repo.add_notification(HUB, USER)
	assert (await aggregator.refresh(_ctx())).has_more_notifications is True


def test_today_window_uses_local_midnight():
	start, end = today_window(datetime(2024, 5, 14, 2, 0, tzinfo=timezone.utc), "America/New_York")
	assert start.isoformat() == "2024-05-13T00:00:00-04:00"
	assert end - start == timedelta(days=1)


@pytest.mark.asyncio
async def test_cursor_never_moves_backwards(activity_repo):
	channel = activity_repo.add_channel(HUB, USER, last_read_at=NOW)
	aggregator = _aggregator(activity_repo)

	cursor = await aggregator.mark_channel_read(_ctx(), channel, at=NOW - timedelta(days=1))
	assert cursor == NOW

	later = NOW + timedelta(minutes=5)
	assert await aggregator.mark_channel_read(_ctx(), channel, at=later) == later


@pytest.mark.asyncio
async def test_mark_group_viewed_defaults_to_clock(activity_repo):
	group = activity_repo.add_group(HUB, USER)
	activity_repo.add_post(group, OTHER, NOW - timedelta(minutes=1))
	aggregator = _aggregator(activity_repo)

	assert await aggregator.mark_group_viewed(_ctx(), group) == NOW
	assert (await aggregator.refresh(_ctx())).unread_groups == 0
