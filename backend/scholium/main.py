"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scholium.api import ops, realtime, scholiums, timeslots
from scholium.api.errors import install_error_handlers
from scholium.api.middleware_request_id import RequestIdMiddleware
from scholium.domain.realtime import build_notifier
from scholium.domain.realtime.sockets import ScholiumsNamespace
from scholium.domain.scholiums.service import ScholiumService
from scholium.domain.timeslots.service import TimeSlotScheduler
from scholium.infra import postgres
from scholium.obs import init as obs_init
from scholium.settings import settings

notifier = build_notifier(settings)
scholium_service = ScholiumService(notifier)
scheduler = TimeSlotScheduler(notifier, repository=scholium_service.repository)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	await notifier.start()
	try:
		yield
	finally:
		await notifier.stop()
		await postgres.close_pool()


app = FastAPI(title="Scholium Sync", lifespan=lifespan)
app.state.notifier = notifier
app.state.scholium_service = scholium_service
app.state.scheduler = scheduler
install_error_handlers(app)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

# Starlette disallows wildcard '*' with allow_credentials=True. Replace '*' with explicit origins.
if "*" in allow_origins:
	allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

# Use the same allowed origins for Socket.IO as for the REST API
sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins)
scholiums_namespace = ScholiumsNamespace(notifier, scholium_service.check_membership)
sio.register_namespace(scholiums_namespace)
app.state.scholiums_namespace = scholiums_namespace
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
obs_init(app)

# Ensure every request carries an X-Request-Id and make it available on request.state
app.add_middleware(RequestIdMiddleware)

app.include_router(scholiums.router)
app.include_router(timeslots.router)
app.include_router(realtime.router)
app.include_router(ops.router)
