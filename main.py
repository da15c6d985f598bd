"""
ScrapeGuard Detection API

FastAPI application exposing:
- POST   /sessions                      → 201 session snapshot
- POST   /sessions/{id}/events          → 204 (no body)
- POST   /sessions/{id}/fingerprint     → session snapshot
- GET    /sessions/{id}                 → session snapshot
- DELETE /sessions/{id}                 → 204 (no body)

Two periodic tickers drive every session: the session-length check and
the score decay. Handlers and tickers share the server event loop, so each
engine is driven serially. Redis and Supabase calls run on worker threads
so the loop is never blocked. The session-check tick also evicts sessions
idle for longer than session_idle_ttl_ms.
"""

import asyncio
from contextlib import asynccontextmanager
import logging
import uuid
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, status, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from core.config import EngineConfig
from core.dispatcher import TickKind
from core.engine import DetectionEngine
from core.mitigation import (
    CompositeSink,
    DecisionSink,
    DenyListSink,
    LoggingSink,
    ReportingSink,
)
from core.registry import SessionExistsError, SessionNotFoundError, SessionRegistry
from core.scheduler import PeriodicTicker
from core.schemas.inputs import (
    CreateSessionPayload,
    EventBatchPayload,
    FingerprintPayload,
)
from core.schemas.outputs import ScoreReport, SessionSnapshot
from persistence.repository import GuardRepository
from persistence.reporter import ScoreReporter


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

load_dotenv()

API_VERSION = "1.0.0"


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    config: Optional[EngineConfig] = None
    registry: Optional[SessionRegistry] = None
    decisions: Optional[DecisionSink] = None
    reporter: Optional[ScoreReporter] = None
    report_sink: Optional[ReportingSink] = None
    deny_list_sink: Optional[DenyListSink] = None
    repo: Optional[GuardRepository] = None
    tickers: List[PeriodicTicker] = []


state = AppState()


def _log_background_failure(future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"Background side effect failed: {future.exception()}")


def run_off_loop(fn, *args) -> None:
    """
    Run a blocking side effect (Supabase insert, Redis write) on the
    default executor. Sinks fire inside handlers and ticks, which both run
    on the server loop, so the loop is never blocked by reporting.
    """
    future = asyncio.get_running_loop().run_in_executor(None, fn, *args)
    future.add_done_callback(_log_background_failure)


def forget_session(session_id: str) -> None:
    """Drop per-session sink bookkeeping once a session is gone."""
    state.decisions.forget(session_id)
    state.report_sink.forget(session_id)


def build_engine(session_id: str, user_agent: Optional[str]) -> DetectionEngine:
    """Engine factory used by the session registry."""
    sinks = [LoggingSink(), state.decisions, state.report_sink]
    if state.deny_list_sink is not None:
        sinks.append(state.deny_list_sink)
    return DetectionEngine(
        config=state.config,
        threshold_crossed_action=CompositeSink(sinks),
        session_id=session_id,
        user_agent=user_agent,
    )


def session_check_tick() -> None:
    """Evict idle sessions, then run the session checks on the rest."""
    state.registry.evict_idle()
    state.registry.tick_all(TickKind.SESSION_CHECK)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting ScrapeGuard Detection API...")
    state.config = EngineConfig.from_env()  # ConfigurationError aborts startup
    state.decisions = DecisionSink()
    state.reporter = ScoreReporter()
    state.report_sink = ReportingSink(state.reporter, submit=run_off_loop)
    try:
        state.repo = GuardRepository()
    except Exception as e:
        logger.warning(f"Redis unavailable, fingerprint deny-list and rate guard disabled: {e}")
        state.repo = None
    state.deny_list_sink = (
        DenyListSink(state.repo, submit=run_off_loop) if state.repo is not None else None
    )
    state.registry = SessionRegistry(build_engine, on_evict=forget_session)

    state.tickers = [
        PeriodicTicker(
            "session_check",
            state.config.session_length_check_interval_ms,
            session_check_tick,
        ),
        PeriodicTicker(
            "decay",
            state.config.decay_interval_ms,
            lambda: state.registry.tick_all(TickKind.DECAY),
        ),
    ]
    for ticker in state.tickers:
        ticker.start()
    logger.info("ScrapeGuard ready")

    yield

    # Shutdown
    logger.info("Shutting down ScrapeGuard Detection API...")
    for ticker in state.tickers:
        await ticker.stop()
    state.registry.clear()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="ScrapeGuard",
    description="Behavioral anomaly scoring for interactive sessions",
    version=API_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Events are posted from the guarded pages
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_engine(session_id: str) -> DetectionEngine:
    try:
        return state.registry.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _snapshot(engine: DetectionEngine) -> SessionSnapshot:
    return engine.snapshot(decision=state.decisions.decision_for(engine.session_id))


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": API_VERSION,
        "sessions": len(state.registry) if state.registry else 0,
    }


# =============================================================================
# Session Endpoints
# =============================================================================

@app.post("/sessions", response_model=SessionSnapshot, status_code=status.HTTP_201_CREATED)
async def create_session(request: Request, payload: Optional[CreateSessionPayload] = None):
    """
    Start a detection session.

    - Runs the one-time environment check against the user agent
    - The user agent defaults to the request header
    """
    payload = payload or CreateSessionPayload()
    session_id = payload.session_id or uuid.uuid4().hex
    user_agent = payload.user_agent or request.headers.get("user-agent")

    try:
        engine = state.registry.create(session_id, user_agent=user_agent)
    except SessionExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return _snapshot(engine)


@app.post("/sessions/{session_id}/events", status_code=status.HTTP_204_NO_CONTENT)
async def ingest_events(session_id: str, payload: EventBatchPayload):
    """
    Ingest an ordered batch of interaction events.

    - Malformed events are dropped individually
    - Never returns security decisions
    """
    engine = _get_engine(session_id)

    # Rate limiting
    if state.repo is not None and not await run_in_threadpool(state.repo.check_event_rate_limit, session_id):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded (max {GuardRepository.EVENT_RATE_LIMIT} batches/sec)"
        )

    for raw_event in payload.events:
        engine.on_event(raw_event)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/fingerprint", response_model=SessionSnapshot)
async def submit_fingerprint(session_id: str, payload: FingerprintPayload):
    """
    Cross-check the fingerprint provider's visitor id and report it.

    - A session already over the threshold puts its visitor id on the
      shared deny-list
    """
    engine = _get_engine(session_id)

    known_bot = False
    if state.repo is not None:
        known_bot = await run_in_threadpool(state.repo.is_known_bot_fingerprint, payload.visitor_id)

    engine.on_fingerprint(payload.visitor_id, known_bot=known_bot)
    if engine.aggregator.is_flagged and not known_bot and state.deny_list_sink is not None:
        state.deny_list_sink.add(payload.visitor_id, session_id)

    await run_in_threadpool(state.reporter.report, ScoreReport(
        identifier=payload.visitor_id,
        current_score=engine.score,
        reasons=list(engine.state.recent_reasons),
    ))
    return _snapshot(engine)


@app.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str):
    """Current score, decision and recent reasons for a session."""
    return _snapshot(_get_engine(session_id))


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(session_id: str):
    """End a session and discard its state."""
    try:
        state.registry.discard(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    forget_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
