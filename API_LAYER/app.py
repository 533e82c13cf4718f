# app.py
import logging
import json
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel, field_validator
from asyncio import Lock
from web3 import Web3

from config import DEBUG, GATEWAY_BACKEND
from executors.chat import ChatExecutor
from executors.confirmation import ConfirmationExecutor
from services.session import SessionRegistry, build_session_registry


# -----------------------------
# Structured Logging Setup
# -----------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "time": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "name": record.name,
                "message": record.getMessage(),
                "exception": record.exc_text,
            }
        )


logger = logging.getLogger("intentarc_api")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(JSONFormatter())
if not logger.handlers:
    logger.addHandler(handler)

# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="IntentArc API", version="1.0")

ERROR_TYPES = {
    400: "bad_request",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
    503: "unavailable",
    504: "timeout",
}

# -----------------------------
# Metrics
# -----------------------------
metrics_lock = Lock()
request_counters = {
    "chat": 0,
    "proposal": 0,
    "balance": 0,
    "help": 0,
    "failure": 0,
    "confirm": 0,
    "cancel": 0,
    "total": 0,
    "errors": 0,
}

# -----------------------------
# Pydantic Models
# -----------------------------
class ChatRequest(BaseModel):
    session_id: str
    sender_address: str
    text: str

    @field_validator("session_id", "text")
    @classmethod
    def not_blank(cls, v: str):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("sender_address")
    @classmethod
    def sender_is_address(cls, v: str):
        v = (v or "").strip()
        if not Web3.is_address(v):
            raise ValueError("sender_address must be a 0x wallet address")
        return Web3.to_checksum_address(v)


class SessionRequest(BaseModel):
    session_id: str

# -----------------------------
# Error envelope
# -----------------------------
def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": ERROR_TYPES.get(status_code, "internal_error"), "message": message}},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", []) if p != "body")
    return error_response(422, f"{field}: {first.get('msg', 'invalid request')}".strip(": "))

# -----------------------------
# Startup / Shutdown Events
# -----------------------------
@app.on_event("startup")
async def startup():
    # A registry already on app.state (tests, embedding) is kept as is
    if getattr(app.state, "registry", None) is None:
        app.state.registry = build_session_registry()
        logger.info(f"✅ Session registry ready (gateway={GATEWAY_BACKEND})")
    app.state.chat_executor = ChatExecutor()
    app.state.confirm_executor = ConfirmationExecutor("confirm")
    app.state.cancel_executor = ConfirmationExecutor("cancel")


@app.on_event("shutdown")
async def shutdown():
    registry: SessionRegistry = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.close_all()
        app.state.registry = None
        logger.info("✅ Sessions closed")


def get_registry() -> SessionRegistry:
    registry = getattr(app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return registry


def get_session(session_id: str):
    session = get_registry().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return session

# -----------------------------
# API Endpoints
# -----------------------------
@app.get("/")
async def root():
    return {"message": "IntentArc API is running."}


@app.get("/health")
async def health() -> Dict[str, Any]:
    registry = getattr(app.state, "registry", None)
    return {
        "status": "ok" if registry is not None else "starting",
        "gateway": GATEWAY_BACKEND,
        "sessions": len(registry.sessions) if registry is not None else 0,
    }


@app.get("/metrics")
async def metrics() -> Dict[str, Any]:
    async with metrics_lock:
        return request_counters.copy()


@app.post("/chat")
async def chat(request: ChatRequest):
    async with metrics_lock:
        request_counters["total"] += 1
        request_counters["chat"] += 1

    try:
        logger.info(
            f"[REQUEST_START] session_id={request.session_id}, text_length={len(request.text)}"
        )
        try:
            session = get_registry().get_or_create(request.session_id, request.sender_address)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))

        response = await app.state.chat_executor.execute(session, request.text)
        async with metrics_lock:
            if response["type"] in request_counters:
                request_counters[response["type"]] += 1
        return response

    except HTTPException:
        async with metrics_lock:
            request_counters["errors"] += 1
        raise
    except Exception as e:
        async with metrics_lock:
            request_counters["errors"] += 1

        logger.exception(
            f"[ERROR] session_id={request.session_id}, exception={e}"
        )

        raise HTTPException(
            status_code=500,
            detail=str(e) if DEBUG else "An unexpected error occurred",
        )


@app.post("/confirm")
async def confirm(request: SessionRequest):
    async with metrics_lock:
        request_counters["total"] += 1
        request_counters["confirm"] += 1
    session = get_session(request.session_id)
    logger.info(f"[CONFIRM] session_id={request.session_id}")
    return await app.state.confirm_executor.execute(session)


@app.post("/cancel")
async def cancel(request: SessionRequest):
    async with metrics_lock:
        request_counters["total"] += 1
        request_counters["cancel"] += 1
    session = get_session(request.session_id)
    logger.info(f"[CANCEL] session_id={request.session_id}")
    return await app.state.cancel_executor.execute(session)


@app.get("/sessions/{session_id}")
async def session_status(session_id: str):
    return get_session(session_id).snapshot()


@app.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    if not await get_registry().close(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return {"message": f"Session {session_id} closed."}


# -----------------------------
# Entrypoint
# -----------------------------
import os
import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("API_LAYER.app:app", host="0.0.0.0", port=port, workers=1)
