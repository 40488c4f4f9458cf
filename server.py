#!/usr/bin/env python3
"""
Workout Session Server: FastAPI + WebSocket bridge between the
presentation layer and one WorkoutSession.

Screens forward intents (start/pause/resume/complete/abandon, set logging)
over REST and render the session snapshot pushed over /ws once per tick
and after every transition. Adherence stats are computed on demand from
the backend's session history.

Usage:
    SMARTLIFT_API_URL=http://localhost:3000 python3 server.py
    # Open ws://<host>:8000/ws for live session updates
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError, field_validator

import app_config
from adherence import compute_adherence
from completion_survey import CompletionSurvey
from rest_sync import RestSyncAdapter
from session_errors import InvalidPauseReason, InvalidTransition, SessionBusy, SyncFailure
from session_models import Routine
from ticker import Ticker
from workout_session import WorkoutSession

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("server")


def ticker_factory():
    return Ticker(app_config.tick_interval())


@asynccontextmanager
async def lifespan(application):
    global loop, msg_queue, adapter

    loop = asyncio.get_running_loop()
    msg_queue = asyncio.Queue(maxsize=500)
    state["running"] = True
    if adapter is None:
        adapter = RestSyncAdapter()

    broadcast_task = asyncio.create_task(broadcast_loop())
    log.info(f"Server started, backend {getattr(adapter, 'base_url', adapter)}")

    yield

    # Shutdown
    state["running"] = False
    broadcast_task.cancel()
    if sess is not None:
        sess.close()
    if isinstance(adapter, RestSyncAdapter):
        await adapter.aclose()
    log.info("Server stopped")


app = FastAPI(title="Workout Session Engine", lifespan=lifespan)

# CORS for the Expo dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:8081", "http://127.0.0.1:8081"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Async bridge ---
loop: asyncio.AbstractEventLoop = None
msg_queue: asyncio.Queue = None
adapter = None
sess: WorkoutSession = None

state = {"running": True}


def _enqueue(msg):
    if msg_queue is None:
        return
    try:
        msg_queue.put_nowait(msg)
    except asyncio.QueueFull:
        try:
            msg_queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            msg_queue.put_nowait(msg)
        except asyncio.QueueFull:
            pass


def push_msg(msg):
    """on_update callback for the session; runs on the event loop thread."""
    _enqueue(msg)


# --- WebSocket manager ---


class ConnectionManager:
    def __init__(self):
        self.connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.connections.append(ws)

    def disconnect(self, ws: WebSocket):
        if ws in self.connections:
            self.connections.remove(ws)

    async def broadcast(self, msg: dict):
        data = json.dumps(msg)
        dead = []
        for ws in self.connections:
            try:
                await ws.send_text(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


manager = ConnectionManager()


async def broadcast_loop():
    while state["running"]:
        try:
            msg = await asyncio.wait_for(msg_queue.get(), timeout=0.5)
            await manager.broadcast(msg)
        except asyncio.TimeoutError:
            pass
        except Exception:
            log.debug("broadcast error", exc_info=True)
            await asyncio.sleep(0.1)


def session_state():
    if sess is None:
        return {"type": "session", "status": None}
    return sess.to_dict()


# --- Error mapping ---


def _error(message, status_code, **extra):
    return JSONResponse({"error": message, **extra}, status_code=status_code)


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return _error(str(exc), 409, status=exc.status, operation=exc.operation)


@app.exception_handler(SessionBusy)
async def session_busy_handler(request: Request, exc: SessionBusy):
    return _error(str(exc), 409, in_flight=exc.in_flight)


@app.exception_handler(InvalidPauseReason)
async def pause_reason_handler(request: Request, exc: InvalidPauseReason):
    return _error(str(exc), 422)


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return _error("invalid value", 422, detail=exc.errors(include_url=False, include_context=False))


@app.exception_handler(IndexError)
async def index_handler(request: Request, exc: IndexError):
    return _error(str(exc), 422)


# --- Pydantic models ---


class StartRequest(BaseModel):
    routine: Routine


class PauseRequest(BaseModel):
    reason: str


class SetUpdateRequest(BaseModel):
    exercise_index: int
    set_index: int
    weight: float | None = None
    reps: int | None = None
    completed: bool | None = None


class AddSetRequest(BaseModel):
    exercise_index: int


class RestoreRequest(BaseModel):
    remote_id: str

    @field_validator("remote_id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return str(v)


def _require_session():
    if sess is None:
        raise InvalidTransition("absent", "act on")
    return sess


def _replace_session(new_sess):
    global sess
    if sess is not None:
        # A finished session may still be delivering its last sync op
        sess.on_update = None
        sess.close()
    sess = new_sess


# --- REST endpoints ---


@app.get("/api/session")
async def get_session():
    return session_state()


@app.get("/api/pause-reasons")
async def get_pause_reasons():
    return WorkoutSession.pause_reason_options()


@app.post("/api/session/start")
async def api_start(req: StartRequest):
    if sess is not None and sess.status.active:
        raise InvalidTransition(sess.status.value, "start another session over")
    new_sess = WorkoutSession(
        req.routine,
        adapter,
        ticker=ticker_factory(),
        on_update=push_msg,
        retry_max_delay=app_config.retry_max_delay(),
    )
    try:
        await new_sess.start()
    except SyncFailure as e:
        new_sess.close()
        return _error("could not start workout", 502, detail=str(e), kind=e.kind.value)
    _replace_session(new_sess)
    return sess.to_dict()


@app.post("/api/session/pause")
async def api_pause(req: PauseRequest):
    _require_session().pause(req.reason)
    return sess.to_dict()


@app.post("/api/session/resume")
async def api_resume():
    _require_session().resume()
    return sess.to_dict()


@app.post("/api/session/complete")
async def api_complete(survey: CompletionSurvey | None = None):
    _require_session().complete(survey)
    return sess.to_dict()


@app.post("/api/session/abandon")
async def api_abandon():
    _require_session().abandon()
    return sess.to_dict()


@app.post("/api/session/sets")
async def api_update_set(req: SetUpdateRequest):
    updated = _require_session().update_set(
        req.exercise_index, req.set_index, weight=req.weight, reps=req.reps, completed=req.completed
    )
    return updated.model_dump()


@app.post("/api/session/sets/add")
async def api_add_set(req: AddSetRequest):
    return _require_session().add_set(req.exercise_index).model_dump()


@app.get("/api/sessions/active")
async def api_active_sessions():
    try:
        records = await adapter.active_sessions()
    except SyncFailure as e:
        return _error("could not load active workouts", 502, detail=str(e))
    return [r.model_dump(mode="json") for r in records]


@app.post("/api/session/restore")
async def api_restore(req: RestoreRequest):
    if sess is not None and sess.status.active:
        raise InvalidTransition(sess.status.value, "restore another session over")
    try:
        records = await adapter.active_sessions()
    except SyncFailure as e:
        return _error("could not load active workouts", 502, detail=str(e))
    record = next((r for r in records if str(r.id) == req.remote_id), None)
    if record is None:
        return _error("no active workout with that id", 404)
    _replace_session(
        WorkoutSession.restore(
            record,
            adapter,
            ticker=ticker_factory(),
            on_update=push_msg,
            retry_max_delay=app_config.retry_max_delay(),
        )
    )
    return sess.to_dict()


@app.get("/api/stats")
async def api_stats():
    try:
        history = await adapter.fetch_history()
    except SyncFailure as e:
        return _error("could not load workout history", 502, detail=str(e))
    return compute_adherence(history).model_dump()


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await manager.connect(ws)
    try:
        await ws.send_text(json.dumps(session_state()))
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(ws)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
