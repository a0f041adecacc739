"""FastAPI application entrypoint and HTTP controllers.

This module exposes the quiz result store and the progress coordinator
to the mobile client. Controllers are intentionally thin: they accept
requests, delegate to the store or coordinator, and return JSON.

Endpoints implemented:
- GET /health
- POST /quiz-results
- GET /quiz-results
- GET /analytics/subjects
- GET /analytics/topics
- GET /analytics/overall
- GET /progress
- POST /progress/refresh
- PUT /progress/time-range
- DELETE /storage
"""

from contextlib import asynccontextmanager
from typing import List
import json
import logging
import time
import uuid

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .analytics.time_window import TimeRange, filter_by_time_range
from .config import settings
from .coordinator import ProgressDataCoordinator
from .database import create_db_and_tables
from .schemas import (
    ProgressSnapshot,
    QuizAnalytics,
    QuizResultIn,
    QuizResultOut,
    SubjectAnalytics,
    TopicAnalytics,
)
from .store import QuizResultStore

logger = logging.getLogger("quizprogress.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

STORE_UNAVAILABLE = "progress data is temporarily unavailable"

create_db_and_tables()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the store and coordinator for the app's lifetime.

    The coordinator subscribes to change notifications on creation and
    unsubscribes when the app shuts down.
    """
    store = QuizResultStore()
    coordinator = ProgressDataCoordinator(store, time_range=settings.DEFAULT_TIME_RANGE)
    app.state.store = store
    app.state.coordinator = coordinator
    await coordinator.start()
    try:
        yield
    finally:
        coordinator.close()


app = FastAPI(title="Quiz Progress API", lifespan=lifespan)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _request_log_line(request: Request, req_id: str, started: float, status_code=None) -> str:
    payload = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
    }
    if status_code is not None:
        payload["status_code"] = status_code
    return json.dumps(payload, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.exception("request_failed %s", _request_log_line(request, req_id, started))
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path != "/health":
        logger.info("request_done %s", _request_log_line(request, req_id, started, response.status_code))
    return response


def get_store(request: Request) -> QuizResultStore:
    return request.app.state.store


def get_coordinator(request: Request) -> ProgressDataCoordinator:
    return request.app.state.coordinator


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/quiz-results", response_model=QuizResultOut)
async def save_quiz_result(payload: QuizResultIn, store: QuizResultStore = Depends(get_store)):
    """Record a completed quiz.

    The score is computed server-side from the submitted counts. Saving
    notifies the progress coordinator, which rebuilds its summary.
    """
    try:
        return await store.save_quiz_results(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/quiz-results", response_model=List[QuizResultOut])
async def list_quiz_results(time_range: TimeRange = TimeRange.ALL, store: QuizResultStore = Depends(get_store)):
    """Return stored results inside `time_range`, newest first."""
    try:
        history = await store.get_quiz_history()
    except Exception:
        logger.exception("failed to read quiz history")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)
    return filter_by_time_range(history, time_range, field="timestamp")


@app.get("/analytics/subjects", response_model=List[SubjectAnalytics])
async def subject_analytics(time_range: TimeRange = TimeRange.ALL, store: QuizResultStore = Depends(get_store)):
    """Per-subject rollups for subjects attempted inside `time_range`."""
    try:
        subjects = await store.get_all_subject_analytics()
    except Exception:
        logger.exception("failed to build subject analytics")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)
    return filter_by_time_range(subjects, time_range)


@app.get("/analytics/topics", response_model=List[TopicAnalytics])
async def topic_analytics(time_range: TimeRange = TimeRange.ALL, store: QuizResultStore = Depends(get_store)):
    """Per-topic rollups for topics attempted inside `time_range`."""
    try:
        topics = await store.get_all_topic_analytics()
    except Exception:
        logger.exception("failed to build topic analytics")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)
    return filter_by_time_range(topics, time_range)


@app.get("/analytics/overall", response_model=QuizAnalytics)
async def overall_analytics(store: QuizResultStore = Depends(get_store)):
    """Whole-history totals, per-mode accuracy and the current streak."""
    try:
        return await store.get_quiz_analytics()
    except Exception:
        logger.exception("failed to build overall analytics")
        raise HTTPException(status_code=503, detail=STORE_UNAVAILABLE)


@app.get("/progress", response_model=ProgressSnapshot)
async def get_progress(coordinator: ProgressDataCoordinator = Depends(get_coordinator)):
    """Current progress summary for the selected window.

    Refreshes already triggered by writes are awaited so a read that
    follows a save reflects it.
    """
    await coordinator.wait_for_pending()
    return coordinator.snapshot()


@app.post("/progress/refresh", response_model=ProgressSnapshot)
async def refresh_progress(coordinator: ProgressDataCoordinator = Depends(get_coordinator)):
    """Rebuild the summary for the current window."""
    await coordinator.refresh()
    return coordinator.snapshot()


@app.put("/progress/time-range", response_model=ProgressSnapshot)
async def select_time_range(time_range: TimeRange, coordinator: ProgressDataCoordinator = Depends(get_coordinator)):
    """Switch the window (`week`, `month` or `all`) and rebuild the summary."""
    await coordinator.select_time_range(time_range)
    return coordinator.snapshot()


@app.delete("/storage")
async def clear_storage(store: QuizResultStore = Depends(get_store)):
    """Delete every stored result and reset the streak."""
    await store.clear_all()
    return {"cleared": True}
