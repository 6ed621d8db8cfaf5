"""Activity endpoints: badges, notification feed, preferences and push."""

from __future__ import annotations

from typing import Optional, cast

from fastapi import APIRouter, Depends, Query, Request, Response, status

from hub_activity.api._errors import to_http_error
from hub_activity.domain.activity import deeplinks, models
from hub_activity.domain.activity import schemas as dto
from hub_activity.domain.activity.push import (
	PermissionStatus,
	PushDeviceRegistry,
	PushRegistrationManager,
	PushState,
	probe_platform,
)
from hub_activity.domain.activity.session import ActivitySession, SessionRegistry
from hub_activity.infra.auth import AuthenticatedUser, get_current_user, get_hub_user

router = APIRouter(prefix="/api/activity/v1", tags=["activity"])


def get_registry(request: Request) -> SessionRegistry:
	return request.app.state.activity_sessions


async def get_session(
	auth_user: AuthenticatedUser = Depends(get_hub_user),
	registry: SessionRegistry = Depends(get_registry),
) -> ActivitySession:
	try:
		return await registry.open(auth_user.id, cast(str, auth_user.hub_id))
	except Exception as exc:
		raise to_http_error(exc) from exc


# --- Session ---------------------------------------------------------------


@router.post("/session", response_model=dto.SessionResponse)
async def open_session_endpoint(
	payload: dto.SessionOpenRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	registry: SessionRegistry = Depends(get_registry),
) -> dto.SessionResponse:
	try:
		session = await registry.open(auth_user.id, payload.hub_id)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.SessionResponse(hub_id=payload.hub_id, user_id=auth_user.id, polling=session.poller.running)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def close_session_endpoint(
	device_id: Optional[str] = Query(default=None, min_length=1, max_length=128),
	token: Optional[str] = Query(default=None, min_length=1, max_length=512),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	registry: SessionRegistry = Depends(get_registry),
) -> Response:
	"""Close the session in the request's hub (every hub without one) and drop this device's push token."""
	await registry.close(auth_user.id, hub_id=auth_user.hub_id, device_id=device_id, token=token)
	return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Badges ----------------------------------------------------------------


@router.get("/badges", response_model=dto.BadgeResponse)
async def badges_endpoint(session: ActivitySession = Depends(get_session)) -> dto.BadgeResponse:
	try:
		counts = await session.current_badges()
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.BadgeResponse.from_counts(counts)


@router.post("/badges/refresh", response_model=dto.BadgeResponse)
async def refresh_badges_endpoint(session: ActivitySession = Depends(get_session)) -> dto.BadgeResponse:
	try:
		counts = await session.refresh()
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.BadgeResponse.from_counts(counts)


@router.post("/channels/{channel_id}/read", response_model=dto.CursorResponse)
async def mark_channel_read_endpoint(
	channel_id: str,
	payload: dto.CursorAdvanceRequest | None = None,
	session: ActivitySession = Depends(get_session),
) -> dto.CursorResponse:
	try:
		ctx = session.require_context()
		cursor = await session.aggregator.mark_channel_read(ctx, channel_id, at=payload.at if payload else None)
	except Exception as exc:
		raise to_http_error(exc) from exc
	session.poller.trigger()
	return dto.CursorResponse(cursor=cursor)


@router.post("/groups/{group_id}/viewed", response_model=dto.CursorResponse)
async def mark_group_viewed_endpoint(
	group_id: str,
	payload: dto.CursorAdvanceRequest | None = None,
	session: ActivitySession = Depends(get_session),
) -> dto.CursorResponse:
	try:
		ctx = session.require_context()
		cursor = await session.aggregator.mark_group_viewed(ctx, group_id, at=payload.at if payload else None)
	except Exception as exc:
		raise to_http_error(exc) from exc
	session.poller.trigger()
	return dto.CursorResponse(cursor=cursor)


# --- Notification feed -----------------------------------------------------


@router.get("/notifications", response_model=dto.NotificationListResponse)
async def list_notifications_endpoint(
	reset: bool = Query(default=False),
	session: ActivitySession = Depends(get_session),
) -> dto.NotificationListResponse:
	try:
		page = await session.feed.list(session.require_context(), reset=reset)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.NotificationListResponse(
		items=[dto.NotificationResponse.from_record(item) for item in page.items],
		has_more=page.has_more,
		held=len(session.feed.state.items),
	)


@router.get("/notifications/unread", response_model=dto.NotificationUnreadResponse)
async def unread_notifications_endpoint(
	session: ActivitySession = Depends(get_session),
) -> dto.NotificationUnreadResponse:
	try:
		count = await session.feed.unread_count(session.require_context())
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.NotificationUnreadResponse(count=count)


@router.post("/notifications/read-all", response_model=dto.NotificationMarkAllReadResponse)
async def mark_all_read_endpoint(
	session: ActivitySession = Depends(get_session),
) -> dto.NotificationMarkAllReadResponse:
	try:
		updated = await session.feed.mark_all_read(session.require_context())
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.NotificationMarkAllReadResponse(
		updated=updated or 0,
		unread_count=session.feed.state.unread_count,
	)


@router.post("/notifications/{notification_id}/read", response_model=dto.NotificationMarkReadResponse)
async def mark_read_endpoint(
	notification_id: str,
	session: ActivitySession = Depends(get_session),
) -> dto.NotificationMarkReadResponse:
	try:
		updated = await session.feed.mark_read(session.require_context(), notification_id)
	except Exception as exc:
		raise to_http_error(exc) from exc
	return dto.NotificationMarkReadResponse(updated=updated, unread_count=session.feed.state.unread_count)


# --- Preferences -----------------------------------------------------------


@router.get("/preferences", response_model=models.NotificationPreferences)
async def get_preferences_endpoint(
	session: ActivitySession = Depends(get_session),
) -> models.NotificationPreferences:
	try:
		return await session.preferences.get(session.require_context())
	except Exception as exc:
		raise to_http_error(exc) from exc


@router.patch("/preferences", response_model=models.NotificationPreferences)
async def update_preferences_endpoint(
	payload: models.NotificationPreferencesPatch,
	session: ActivitySession = Depends(get_session),
) -> models.NotificationPreferences:
	try:
		return await session.preferences.set(session.require_context(), payload)
	except Exception as exc:
		raise to_http_error(exc) from exc


# --- Push ------------------------------------------------------------------


def get_devices(registry: SessionRegistry = Depends(get_registry)) -> PushDeviceRegistry:
	if registry.devices is None:
		raise to_http_error(RuntimeError("push device registry not configured"))
	return registry.devices


def _push_status(device_id: str, manager: Optional[PushRegistrationManager]) -> dto.PushStatusResponse:
	if manager is None:
		return dto.PushStatusResponse(
			device_id=device_id,
			state=PushState.UNREGISTERED,
			permission=PermissionStatus.UNDETERMINED.value,
			active=False,
		)
	return dto.PushStatusResponse(
		device_id=device_id,
		state=manager.state,
		permission=manager.permission.value,
		active=manager.token is not None,
	)


@router.post("/push", response_model=dto.PushStatusResponse)
async def register_push_endpoint(
	payload: dto.PushRegisterRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	devices: PushDeviceRegistry = Depends(get_devices),
) -> dto.PushStatusResponse:
	manager = await devices.register(
		auth_user.id,
		payload.device_id,
		probe_platform(payload),
		reinitiate=payload.reinitiate,
	)
	return _push_status(payload.device_id, manager)


@router.delete("/push", response_model=dto.PushStatusResponse)
async def deregister_push_endpoint(
	device_id: str = Query(..., min_length=1, max_length=128),
	token: Optional[str] = Query(default=None, min_length=1, max_length=512),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	devices: PushDeviceRegistry = Depends(get_devices),
) -> dto.PushStatusResponse:
	manager = await devices.deregister(auth_user.id, device_id, token=token)
	return _push_status(device_id, manager)


@router.post("/push/tap", response_model=dto.PushTapResponse)
async def push_tap_endpoint(
	payload: dto.PushTapRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.PushTapResponse:
	target = deeplinks.handle_tap(payload.data, lambda _route: None)
	return dto.PushTapResponse(target=target)


@router.post("/push/received", status_code=status.HTTP_202_ACCEPTED)
async def push_received_endpoint(
	payload: dto.PushTapRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	devices: PushDeviceRegistry = Depends(get_devices),
) -> Response:
	devices.handle_received(auth_user.id, payload.data)
	return Response(status_code=status.HTTP_202_ACCEPTED)


__all__ = ["router"]
