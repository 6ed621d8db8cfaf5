import uuid
from datetime import datetime, timezone

import pytest

from hub_activity.domain.activity.push import (
	DeviceReport,
	NullPushPlatform,
	PermissionStatus,
	PushDeviceRegistry,
	PushRegistrationManager,
	PushState,
	ReportedDevicePlatform,
	probe_platform,
)
from hub_activity.settings import settings

USER = str(uuid.uuid4())


class StubPlatform:
	def __init__(self, *, physical=True, permission=PermissionStatus.GRANTED, prompt=None, token="ExponentPushToken[abc]"):
		self.name = "android"
		self.is_physical_device = physical
		self.permission = permission
		self.prompt = prompt
		self.token = token
		self.prompts = 0
		self.channels: list[str] = []

	async def ensure_channel(self, channel_id: str) -> None:
		self.channels.append(channel_id)

	async def get_permission(self) -> PermissionStatus:
		return self.permission

	async def request_permission(self) -> PermissionStatus:
		self.prompts += 1
		return self.prompt or PermissionStatus.UNDETERMINED

	async def issue_token(self, project_id: str):
		return self.token


def _manager(repo, platform, project_id="proj-1") -> PushRegistrationManager:
	return PushRegistrationManager(repo, platform, project_id=project_id, channel_id="default")


@pytest.mark.asyncio
async def test_non_device_is_a_silent_noop(activity_repo):
	platform = StubPlatform(physical=False, permission=PermissionStatus.UNDETERMINED)
	manager = _manager(activity_repo, platform)

	assert await manager.register(USER) is None
	assert platform.prompts == 0
	assert platform.channels == []
	assert activity_repo.push_tokens == {}
	assert manager.state is PushState.UNREGISTERED


@pytest.mark.asyncio
async def test_granted_registration_upserts_token(activity_repo):
	platform = StubPlatform()
	manager = _manager(activity_repo, platform)

	row = await manager.register(USER)

	assert row is not None and row.is_active
	assert platform.channels == ["default"]
	assert platform.prompts == 0
	assert manager.state is PushState.ACTIVE
	assert list(activity_repo.push_tokens) == [(USER, "ExponentPushToken[abc]")]


@pytest.mark.asyncio
async def test_reregistering_same_token_does_not_duplicate(activity_repo):
	manager = _manager(activity_repo, StubPlatform())
	await manager.register(USER)
	await manager.register(USER)
	assert len(activity_repo.push_tokens) == 1


@pytest.mark.asyncio
async def test_undetermined_permission_prompts_once(activity_repo):
	platform = StubPlatform(permission=PermissionStatus.UNDETERMINED, prompt=PermissionStatus.GRANTED)
	manager = _manager(activity_repo, platform)

	assert await manager.register(USER) is not None
	assert platform.prompts == 1


@pytest.mark.asyncio
async def test_denial_is_recorded_not_retried(activity_repo):
	platform = StubPlatform(permission=PermissionStatus.UNDETERMINED, prompt=PermissionStatus.DENIED)
	manager = _manager(activity_repo, platform)

	assert await manager.register(USER) is None
	assert manager.state is PushState.DENIED
	assert manager.permission is PermissionStatus.DENIED

	platform.prompt = PermissionStatus.GRANTED
	assert await manager.register(USER) is None
	assert platform.prompts == 1

	assert await manager.register(USER, reinitiate=True) is not None
	assert manager.state is PushState.ACTIVE


@pytest.mark.asyncio
async def test_missing_project_id_only_disables_push(activity_repo):
	manager = _manager(activity_repo, StubPlatform(), project_id="")

	assert await manager.register(USER) is None
	assert manager.state is PushState.GRANTED
	assert activity_repo.push_tokens == {}


@pytest.mark.asyncio
async def test_store_failure_never_raises(activity_repo):
	activity_repo.fail.add("upsert_push_token")
	manager = _manager(activity_repo, StubPlatform())

	assert await manager.register(USER) is None
	assert manager.state is PushState.TOKEN_ISSUED


@pytest.mark.asyncio
async def test_deregister_soft_deletes_token(activity_repo):
	manager = _manager(activity_repo, StubPlatform())
	await manager.register(USER)

	await manager.deregister()

	row = activity_repo.push_tokens[(USER, "ExponentPushToken[abc]")]
	assert row.is_active is False
	assert manager.token is None
	assert manager.state is PushState.DEREGISTERED


@pytest.mark.asyncio
async def test_deregister_without_token_is_noop(activity_repo):
	manager = _manager(activity_repo, StubPlatform())
	await manager.deregister()
	assert manager.state is PushState.UNREGISTERED


def test_probe_platform_without_report_is_null():
	assert isinstance(probe_platform(None), NullPushPlatform)


def test_probe_platform_respects_push_toggle(monkeypatch):
	report = DeviceReport(platform="ios", token="tok")
	assert isinstance(probe_platform(report), ReportedDevicePlatform)
	monkeypatch.setattr(settings, "push_enabled", False)
	assert isinstance(probe_platform(report), NullPushPlatform)


@pytest.mark.asyncio
async def test_reported_device_token_bound_to_project(activity_repo):
	report = DeviceReport(platform="android", permission=PermissionStatus.GRANTED, token="tok", project_id="other")
	manager = _manager(activity_repo, ReportedDevicePlatform(report))

	assert await manager.register(USER) is None
	assert activity_repo.push_tokens == {}


def test_device_report_rejects_unknown_platform():
	with pytest.raises(ValueError):
		DeviceReport(platform="symbian")


@pytest.mark.asyncio
async def test_each_device_keeps_its_own_token(activity_repo):
	devices = PushDeviceRegistry(activity_repo, project_id="proj-1")
	phone = await devices.register(USER, "phone", StubPlatform(token="tokA"))
	tablet = await devices.register(USER, "tablet", StubPlatform(token="tokB"))

	assert phone is not tablet
	assert phone.token == "tokA" and tablet.token == "tokB"
	assert all(row.is_active for row in activity_repo.push_tokens.values())
	assert len(devices) == 2

	await devices.deregister(USER, "phone")

	assert activity_repo.push_tokens[(USER, "tokA")].is_active is False
	assert activity_repo.push_tokens[(USER, "tokB")].is_active is True
	assert devices.get(USER, "phone") is None
	assert devices.get(USER, "tablet").state is PushState.ACTIVE


@pytest.mark.asyncio
async def test_denial_on_one_device_does_not_block_another(activity_repo):
	devices = PushDeviceRegistry(activity_repo, project_id="proj-1")
	denied = StubPlatform(permission=PermissionStatus.UNDETERMINED, prompt=PermissionStatus.DENIED, token="tokA")
	await devices.register(USER, "phone", denied)
	tablet = await devices.register(USER, "tablet", StubPlatform(token="tokB"))

	assert devices.get(USER, "phone").state is PushState.DENIED
	assert tablet.state is PushState.ACTIVE
	assert list(activity_repo.push_tokens) == [(USER, "tokB")]


@pytest.mark.asyncio
async def test_deregister_unknown_device_uses_reported_token(activity_repo):
	await activity_repo.upsert_push_token(USER, token="tokA", platform="ios", updated_at=datetime.now(timezone.utc))
	devices = PushDeviceRegistry(activity_repo, project_id="proj-1")

	assert await devices.deregister(USER, "phone", token="tokA") is None
	assert activity_repo.push_tokens[(USER, "tokA")].is_active is False


def test_received_notification_invokes_callback(activity_repo):
	seen: list = []
	devices = PushDeviceRegistry(activity_repo, on_received=lambda user_id, data: seen.append((user_id, data)))
	devices.handle_received(USER, {"type": "message"})
	devices.handle_received(USER)
	assert seen == [(USER, {"type": "message"}), (USER, {})]
