"""
payassist/api/app.py

FastAPI surface for the PayAssist orchestrator. It only forwards caller
input into the orchestrator and relays its events.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import json
import logging

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from payassist import __version__, config
from payassist.agent.orchestrator import ConversationOrchestrator
from payassist.logging_config import setup_logging
from payassist.runtime import build_orchestrator
from payassist.schemas.api_models import (
    ChatRequest,
    ChatResponse,
    HistoryResponse,
    ResetResponse,
    SessionRequest,
    SessionResponse,
)
from payassist.services.errors import PaymentsError

logger = logging.getLogger("payassist.api")


def _orchestrator(request: Request) -> ConversationOrchestrator:
    return request.app.state.orchestrator


def _require_thread(orchestrator: ConversationOrchestrator, thread_id: str) -> None:
    if orchestrator.session_manager.get_session(thread_id) is None:
        raise HTTPException(status_code=404, detail="Unknown or expired thread")


def create_app(orchestrator: Optional[ConversationOrchestrator] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 80)
        logger.info("PAYASSIST API STARTUP")
        owned = orchestrator is None
        app.state.orchestrator = orchestrator or await build_orchestrator()
        logger.info("=" * 80)
        try:
            yield
        finally:
            logger.info("PAYASSIST API SHUTDOWN")
            if owned:
                await app.state.orchestrator.services.close()

    app = FastAPI(title="PayAssist", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy"}

    @app.post("/api/session", response_model=SessionResponse)
    async def start_session(body: SessionRequest, request: Request):
        if not body.token:
            raise HTTPException(status_code=400, detail="token is required")
        try:
            thread_id, user = await _orchestrator(request).start_session(body.token, body.thread_id)
        except PaymentsError as exc:
            raise HTTPException(status_code=401, detail=exc.message)
        return SessionResponse(thread_id=thread_id, user=user.model_dump(mode="json"))

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(body: ChatRequest, request: Request):
        orchestrator_ = _orchestrator(request)
        _require_thread(orchestrator_, body.thread_id)
        result = await orchestrator_.handle_turn(body.thread_id, body.message)
        return ChatResponse(thread_id=body.thread_id, response_text=result.response_text, events=result.events)

    @app.get("/api/session/{thread_id}/history", response_model=HistoryResponse)
    async def history(thread_id: str, request: Request):
        orchestrator_ = _orchestrator(request)
        _require_thread(orchestrator_, thread_id)
        return HistoryResponse(thread_id=thread_id, messages=orchestrator_.session_manager.get_history(thread_id))

    @app.post("/api/session/{thread_id}/reset", response_model=ResetResponse)
    async def reset(thread_id: str, request: Request):
        orchestrator_ = _orchestrator(request)
        _require_thread(orchestrator_, thread_id)
        return ResetResponse(previous_thread_id=thread_id, thread_id=orchestrator_.reset_thread(thread_id))

    @app.websocket("/ws")
    async def websocket_chat(ws: WebSocket):
        """
        JSON frames in:  {"type": "start", "token": ...}
                         {"type": "message", "text": ...}
                         {"type": "reset"}
        JSON frames out: {"type": "session", ...} and one frame per StreamEvent.
        """
        await ws.accept()
        logger.info("WS: connection opened from %s", ws.client)
        orchestrator_: ConversationOrchestrator = ws.app.state.orchestrator
        thread_id: Optional[str] = None

        async def send(payload: Dict[str, Any]) -> None:
            await ws.send_text(json.dumps(payload))

        try:
            while True:
                raw_text = await ws.receive_text()
                try:
                    data = json.loads(raw_text)
                except json.JSONDecodeError:
                    await send({"type": "error", "content": "invalid_json"})
                    continue

                msg_type = data.get("type")
                if msg_type == "start":
                    try:
                        thread_id, user = await orchestrator_.start_session(
                            data.get("token") or "", data.get("thread_id")
                        )
                    except PaymentsError as exc:
                        await send({"type": "error", "content": exc.message})
                        continue
                    await send({"type": "session", "thread_id": thread_id, "user": user.model_dump(mode="json")})
                    continue

                if msg_type == "message":
                    thread_id = data.get("thread_id") or thread_id
                    text = (data.get("text") or "").strip()
                    if not thread_id:
                        await send({"type": "error", "content": "Send a start frame first."})
                        continue
                    if not text:
                        await send({"type": "error", "content": "empty_message"})
                        continue
                    async for event in orchestrator_.stream_turn(thread_id, text):
                        await send(event.model_dump())
                    continue

                if msg_type == "reset":
                    if not thread_id:
                        await send({"type": "error", "content": "Send a start frame first."})
                        continue
                    previous, thread_id = thread_id, orchestrator_.reset_thread(thread_id)
                    await send({"type": "session_reset", "previous_thread_id": previous, "thread_id": thread_id})
                    continue

                await send({"type": "error", "content": f"unknown_type_{msg_type}"})

        except WebSocketDisconnect:
            logger.info("WS: client disconnected %s", ws.client)

    return app


def run() -> None:
    setup_logging()
    uvicorn.run(create_app(), host=config.API_HOST, port=config.API_PORT)
