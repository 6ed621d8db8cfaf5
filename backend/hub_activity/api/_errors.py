"""Error translation helpers for the activity API."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from hub_activity.domain.activity import exceptions

logger = logging.getLogger(__name__)


def to_http_error(exc: Exception) -> HTTPException:
	"""Translate domain exceptions to FastAPI HTTP errors."""
	if isinstance(exc, HTTPException):
		return exc
	if isinstance(exc, exceptions.ActivityError):
		return HTTPException(status_code=exc.status_code, detail=exc.detail)
	logger.exception("activity.unhandled_store_error", exc_info=exc)
	return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="store_unavailable")
