"""Authentication helpers for FastAPI endpoints.

Bearer JWTs are required outside development. In development the
X-User-Id / X-Hub-Id headers are accepted so local tools can act as any user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hub_activity.infra import jwt as jwt_helper
from hub_activity.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	hub_id: Optional[str] = None
	session_id: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	`hub_id` is optional in the token; the active hub can also be chosen
	per request through the X-Hub-Id header.
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

	sub = str(payload.get("sub") or "").strip()
	if not sub:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	hub_id = payload.get("hub_id")
	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=sub,
		hub_id=str(hub_id).strip() if hub_id else None,
		session_id=str(session_id).strip() if session_id is not None else None,
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_hub_id: Optional[str] = Header(default=None, alias="X-Hub-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user."""
	if credentials and credentials.scheme.lower() == "bearer":
		user = verify_access_jwt(credentials.credentials)
		if x_hub_id:
			user.hub_id = x_hub_id
		return user

	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id, hub_id=x_hub_id)

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


async def get_hub_user(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
	"""Require an active hub alongside the user."""
	if not user.hub_id:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="hub_required")
	return user
