"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from hub_activity import obs
from hub_activity.api import activity
from hub_activity.api.errors import install_error_handlers
from hub_activity.domain.activity.push import PushDeviceRegistry
from hub_activity.domain.activity.repo import ActivityRepository
from hub_activity.domain.activity.session import ActivitySession, SessionRegistry
from hub_activity.domain.activity.snapshots import BadgeSnapshotStore
from hub_activity.infra import postgres
from hub_activity.settings import settings


def build_registry(repository=None, snapshots: BadgeSnapshotStore | None = None) -> SessionRegistry:
	repository = repository or ActivityRepository()
	snapshots = snapshots or BadgeSnapshotStore()

	def _factory(user_id: str) -> ActivitySession:
		return ActivitySession(user_id, repository, snapshots=snapshots)

	return SessionRegistry(_factory, devices=PushDeviceRegistry(repository))


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	try:
		yield
	finally:
		await app.state.activity_sessions.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Hub Activity", lifespan=lifespan)
app.state.activity_sessions = build_registry()
install_error_handlers(app)
obs.init(app)

allow_origins = list(settings.cors_allow_origins or ())
if not allow_origins:
	allow_origins = ["http://localhost:8081", "http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

app.include_router(activity.router)


@app.get("/health/live")
async def live() -> dict[str, str]:
	return {"status": "ok"}


@app.get("/metrics")
async def metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
