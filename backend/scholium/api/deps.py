"""Request-scoped access to the components built in the application lifespan."""

from __future__ import annotations

from fastapi import Request

from scholium.domain.realtime.notifier import ChangeNotifier
from scholium.domain.scholiums.service import ScholiumService
from scholium.domain.timeslots.service import TimeSlotScheduler


def get_notifier(request: Request) -> ChangeNotifier:
	return request.app.state.notifier


def get_scholium_service(request: Request) -> ScholiumService:
	return request.app.state.scholium_service


def get_scheduler(request: Request) -> TimeSlotScheduler:
	return request.app.state.scheduler
