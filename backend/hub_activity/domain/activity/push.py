"""Push registration: device permission, token lifecycle and tap dispatch.

The device side (permission prompt, channel setup, token issuance) is reached
through a `PushPlatform` capability. `probe_platform` picks a concrete one
once, from settings and what the device reported; hosts without push get the
no-op `NullPushPlatform` instead of failing.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from pydantic import BaseModel, Field

from hub_activity.domain.activity import models
from hub_activity.domain.activity.exceptions import PushConfigurationError
from hub_activity.obs import metrics as obs_metrics
from hub_activity.settings import settings

logger = logging.getLogger(__name__)


def _now() -> datetime:
	return datetime.now(timezone.utc)


class PermissionStatus(str, enum.Enum):
	UNDETERMINED = "undetermined"
	GRANTED = "granted"
	DENIED = "denied"


class PushState(str, enum.Enum):
	UNREGISTERED = "unregistered"
	PERMISSION_REQUESTED = "permission_requested"
	GRANTED = "granted"
	DENIED = "denied"
	TOKEN_ISSUED = "token_issued"
	ACTIVE = "active"
	DEREGISTERED = "deregistered"


class PushPlatform(Protocol):
	name: str
	is_physical_device: bool

	async def ensure_channel(self, channel_id: str) -> None: ...

	async def get_permission(self) -> PermissionStatus: ...

	async def request_permission(self) -> PermissionStatus: ...

	async def issue_token(self, project_id: str) -> Optional[str]: ...


class NullPushPlatform:
	"""Stands in where push is disabled or the device cannot receive pushes."""

	name = "none"
	is_physical_device = False

	async def ensure_channel(self, channel_id: str) -> None:
		return None

	async def get_permission(self) -> PermissionStatus:
		return PermissionStatus.DENIED

	async def request_permission(self) -> PermissionStatus:
		return PermissionStatus.DENIED

	async def issue_token(self, project_id: str) -> Optional[str]:
		return None


class DeviceReport(BaseModel):
	"""What a client device tells us about its push capability."""

	platform: str = Field(..., pattern="^(ios|android|web)$")
	is_device: bool = True
	permission: PermissionStatus = PermissionStatus.UNDETERMINED
	# Answer to the OS prompt when the client showed it for this registration
	prompt_result: Optional[PermissionStatus] = None
	token: Optional[str] = Field(default=None, min_length=1, max_length=512)
	project_id: Optional[str] = None


class ReportedDevicePlatform:
	"""Platform backed by the permission state and token the device relayed."""

	def __init__(self, report: DeviceReport) -> None:
		self.report = report
		self.name = report.platform
		self.is_physical_device = report.is_device
		self.channels: set[str] = set()

	async def ensure_channel(self, channel_id: str) -> None:
		# Only Android has notification channels; re-adding one is a no-op.
		if self.name == "android":
			self.channels.add(channel_id)

	async def get_permission(self) -> PermissionStatus:
		return self.report.permission

	async def request_permission(self) -> PermissionStatus:
		return self.report.prompt_result or PermissionStatus.UNDETERMINED

	async def issue_token(self, project_id: str) -> Optional[str]:
		if self.report.project_id and self.report.project_id != project_id:
			logger.warning("push.token_project_mismatch", extra={"platform": self.name})
			return None
		return self.report.token


def probe_platform(report: Optional[DeviceReport] = None) -> PushPlatform:
	if not settings.push_enabled or report is None:
		return NullPushPlatform()
	return ReportedDevicePlatform(report)


class PushRegistrationManager:
	"""Per-device push state machine.

	unregistered → permission_requested → granted | denied → token_issued →
	active | deregistered. A denial is kept until the user starts a new
	registration themselves.
	"""

	def __init__(
		self,
		repository,
		platform: Optional[PushPlatform] = None,
		*,
		project_id: Optional[str] = None,
		channel_id: Optional[str] = None,
	) -> None:
		self.repo = repository
		self.platform: PushPlatform = platform or NullPushPlatform()
		self.project_id = project_id if project_id is not None else settings.push_project_id
		self.channel_id = channel_id or settings.push_channel_id
		self.state = PushState.UNREGISTERED
		self.permission = PermissionStatus.UNDETERMINED
		self.token: Optional[str] = None
		self.user_id: Optional[str] = None

	async def register(self, user_id: str, *, reinitiate: bool = False) -> Optional[models.PushToken]:
		"""Run the registration flow; returns the stored token row or None.

		Never raises: non-device hosts, denial, missing project id and store
		errors all end in None with the reason logged.
		"""
		platform = self.platform
		if not platform.is_physical_device:
			logger.info("push.skipped_not_device", extra={"platform": platform.name})
			obs_metrics.inc_push_registration("not_device")
			return None
		if self.state is PushState.DENIED and not reinitiate:
			obs_metrics.inc_push_registration("denied")
			return None
		try:
			await platform.ensure_channel(self.channel_id)
			status = await platform.get_permission()
			if status is PermissionStatus.UNDETERMINED:
				self.state = PushState.PERMISSION_REQUESTED
				status = await platform.request_permission()
			if status is not PermissionStatus.GRANTED:
				self.state = PushState.DENIED
				self.permission = PermissionStatus.DENIED
				obs_metrics.inc_push_registration("denied")
				logger.info("push.permission_denied", extra={"platform": platform.name})
				return None
			self.state = PushState.GRANTED
			self.permission = PermissionStatus.GRANTED
			if not self.project_id:
				raise PushConfigurationError()
			token = await platform.issue_token(self.project_id)
			if not token:
				obs_metrics.inc_push_registration("no_token")
				logger.warning("push.no_token", extra={"platform": platform.name})
				return None
			self.token = token
			self.user_id = user_id
			self.state = PushState.TOKEN_ISSUED
			row = await self.repo.upsert_push_token(
				user_id,
				token=token,
				platform=platform.name,
				updated_at=_now(),
			)
		except PushConfigurationError:
			obs_metrics.inc_push_registration("misconfigured")
			logger.error("push.project_id_missing", extra={"platform": platform.name})
			return None
		except Exception:
			obs_metrics.inc_push_registration("error")
			logger.exception("push.registration_failed", extra={"platform": platform.name})
			return None
		self.state = PushState.ACTIVE
		obs_metrics.inc_push_registration("active")
		logger.info("push.registered", extra={"platform": platform.name})
		return row

	async def deregister(self) -> None:
		"""Soft-delete the held token's row and forget it locally."""
		token, user_id = self.token, self.user_id
		if not token or not user_id:
			return
		try:
			await self.repo.deactivate_push_token(user_id, token, updated_at=_now())
		except Exception:
			logger.exception("push.deregister_failed")
		self.token = None
		self.user_id = None
		self.state = PushState.DEREGISTERED


ReceivedCallback = Callable[[str, Mapping[str, Any]], None]


class PushDeviceRegistry:
	"""One PushRegistrationManager per (user, device).

	A user may hold several active tokens, one per device; registering or
	dropping one device never touches another device's token or state.
	"""

	def __init__(
		self,
		repository,
		*,
		project_id: Optional[str] = None,
		channel_id: Optional[str] = None,
		on_received: Optional[ReceivedCallback] = None,
	) -> None:
		self.repo = repository
		self.project_id = project_id
		self.channel_id = channel_id
		self.on_received = on_received
		self._devices: dict[tuple[str, str], PushRegistrationManager] = {}

	def get(self, user_id: str, device_id: str) -> Optional[PushRegistrationManager]:
		return self._devices.get((user_id, device_id))

	def manager(self, user_id: str, device_id: str) -> PushRegistrationManager:
		key = (user_id, device_id)
		manager = self._devices.get(key)
		if manager is None:
			manager = PushRegistrationManager(self.repo, project_id=self.project_id, channel_id=self.channel_id)
			self._devices[key] = manager
		return manager

	async def register(
		self,
		user_id: str,
		device_id: str,
		platform: PushPlatform,
		*,
		reinitiate: bool = False,
	) -> PushRegistrationManager:
		manager = self.manager(user_id, device_id)
		manager.platform = platform
		await manager.register(user_id, reinitiate=reinitiate)
		return manager

	async def deregister(
		self,
		user_id: str,
		device_id: str,
		*,
		token: Optional[str] = None,
	) -> Optional[PushRegistrationManager]:
		"""Deactivate this device's token.

		`token` covers devices registered before this process started, whose
		manager is no longer held in memory.
		"""
		manager = self._devices.pop((user_id, device_id), None)
		if manager is not None and manager.token:
			await manager.deregister()
			return manager
		if token:
			try:
				await self.repo.deactivate_push_token(user_id, token, updated_at=_now())
			except Exception:
				logger.exception("push.deregister_failed")
		return manager

	def handle_received(self, user_id: str, payload: Optional[Mapping[str, Any]] = None) -> None:
		"""Foreground delivery; badges are refreshed rather than incremented."""
		if self.on_received is not None:
			self.on_received(user_id, payload or {})

	def __len__(self) -> int:
		return len(self._devices)
