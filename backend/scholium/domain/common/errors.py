"""Domain error taxonomy shared by the scholium, time-slot and realtime areas."""

from __future__ import annotations


class ScholiumError(RuntimeError):
	"""Base domain error carrying a stable code and an HTTP status hint."""

	status_code = 400

	def __init__(self, code: str, *, status_code: int | None = None, message: str | None = None) -> None:
		super().__init__(message or code)
		self.code = code
		if status_code is not None:
			self.status_code = status_code
		self.detail = code
		self.message = message or code


class PermissionDenied(ScholiumError):
	status_code = 403


class NotFound(ScholiumError):
	status_code = 404


class Conflict(ScholiumError):
	status_code = 409


class SlotValidationError(ScholiumError):
	"""A time-slot edit was rejected; persisted state is untouched."""

	status_code = 422


class InvalidSlotCount(SlotValidationError):
	pass


class InvalidTimeFormat(SlotValidationError):
	pass


class InvalidTimeRange(SlotValidationError):
	pass


class InvalidOrdering(SlotValidationError):
	pass


class TransportFailure(ScholiumError):
	"""Notifier breakage. Logged and counted; never fails the originating write."""

	status_code = 503
