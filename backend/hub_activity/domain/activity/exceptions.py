"""Custom exceptions for activity services."""

from __future__ import annotations

from fastapi import status


class ActivityError(Exception):
	"""Base class for activity related errors."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	detail: str = "activity_error"

	def __init__(self, detail: str | None = None) -> None:
		super().__init__(detail or self.detail)
		if detail:
			self.detail = detail


class NoActiveSession(ActivityError):
	"""Raised when an operation needs a hub + user context that is not open."""

	status_code = status.HTTP_409_CONFLICT
	detail = "no_active_session"


class PushConfigurationError(ActivityError):
	"""Raised when push is enabled but the deployment identity is missing."""

	status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
	detail = "push_project_id_missing"
