from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, PlainTextResponse, StreamingResponse

from backend.app.models import (
    CandidateRecord,
    ChangeEvent,
    FunnelMetricsResponse,
    HireItem,
    HiresDebugResponse,
    SyncRowRequest,
    SyncRowResponse,
)
from backend.app.observability import ServiceMetrics, configure_logging, observe_request
from backend.app.persistence import CandidatePersistence, StorageError
from backend.app.services.dashboard import render_dashboard
from backend.app.services.funnel_metrics import compute_funnel_metrics
from backend.app.services.notifier import ChangeNotifier, event_stream
from backend.app.settings import Settings, load_settings
from backend.app.store import CandidateStore, StoreNotFoundError, StoreValidationError

logger = logging.getLogger("recruiting_dashboard.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    app.state.notifier.close()


def create_app() -> FastAPI:
    settings = load_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title="Recruiting KPI Dashboard API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    persistence = (
        CandidatePersistence(settings.database_url) if settings.persistence_enabled else None
    )
    service_metrics = ServiceMetrics()
    app.state.service_metrics = service_metrics
    app.state.store = CandidateStore(persistence=persistence, metrics=service_metrics)
    app.state.notifier = ChangeNotifier(
        max_pending_per_subscriber=settings.subscriber_queue_size,
        metrics=service_metrics,
    )
    app.state.settings = settings

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        return await observe_request(request, call_next, metrics=app.state.service_metrics)

    app.include_router(build_router())
    return app


def get_store(request: Request) -> CandidateStore:
    return request.app.state.store


def get_notifier(request: Request) -> ChangeNotifier:
    return request.app.state.notifier


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service_metrics(request: Request) -> ServiceMetrics:
    return request.app.state.service_metrics


def require_debug_routes(request: Request) -> None:
    if not get_settings(request).debug_routes_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


def build_router() -> APIRouter:
    router = APIRouter()

    @router.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "Recruiting KPI dashboard is running"

    @router.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/health/ready")
    def readiness(request: Request) -> dict[str, str]:
        settings = get_settings(request)
        persistence = get_store(request).persistence
        if settings.persistence_enabled and persistence and not persistence.ping():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="database unavailable",
            )
        return {"status": "ready"}

    @router.get("/ops/metrics", response_class=PlainTextResponse)
    def service_metrics(request: Request) -> Response:
        registry = get_service_metrics(request)
        return PlainTextResponse(
            registry.to_prometheus(connected_subscribers=get_notifier(request).subscriber_count)
        )

    @router.post("/sync-row", response_model=SyncRowResponse)
    async def sync_row(payload: SyncRowRequest, request: Request) -> SyncRowResponse:
        if not payload.candidate_id:
            get_service_metrics(request).record_rejected_row()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="candidate_id is required",
            )
        store = get_store(request)
        try:
            record = await run_in_threadpool(store.upsert, payload.to_record())
        except StoreValidationError as exc:
            get_service_metrics(request).record_rejected_row()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        except StorageError as exc:
            logger.exception("row_upsert_failed candidate_id=%s", payload.candidate_id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="database error",
            ) from exc
        get_notifier(request).broadcast(ChangeEvent.updated(record.candidate_id))
        return SyncRowResponse(upserted_candidate_id=record.candidate_id)

    @router.get("/metrics", response_model=FunnelMetricsResponse)
    def funnel_metrics(request: Request) -> FunnelMetricsResponse:
        return compute_funnel_metrics(get_store(request).list_candidates())

    @router.get("/events")
    async def change_events(request: Request) -> StreamingResponse:
        settings = get_settings(request)
        return StreamingResponse(
            event_stream(
                request,
                get_notifier(request),
                keepalive_seconds=settings.sse_keepalive_seconds,
            ),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @router.get("/dashboard", response_class=HTMLResponse)
    def dashboard(request: Request) -> HTMLResponse:
        return HTMLResponse(render_dashboard(get_settings(request).dashboard_refresh_seconds))

    @router.get("/debug/hires", response_model=HiresDebugResponse)
    def debug_hires(request: Request) -> HiresDebugResponse:
        require_debug_routes(request)
        hires = get_store(request).list_hires()
        return HiresDebugResponse(
            count=len(hires),
            hires=[
                HireItem(
                    candidate_id=record.candidate_id,
                    full_name=record.full_name,
                    hire_date=record.hire_date or "",
                )
                for record in hires
            ],
        )

    @router.get("/debug/candidates/{candidate_id}", response_model=CandidateRecord)
    def debug_candidate(candidate_id: str, request: Request) -> CandidateRecord:
        require_debug_routes(request)
        try:
            return get_store(request).get_candidate(candidate_id)
        except StoreNotFoundError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return router


app = create_app()
