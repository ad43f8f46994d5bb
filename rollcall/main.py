from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from rollcall.api.deps import get_store
from rollcall.api.routes import attendance, calendar, health, identities, recognitions
from rollcall.core.config import get_settings
from rollcall.core.logger import setup_logger
from rollcall.ws.manager import GLOBAL_TOPIC, ws_manager

settings = get_settings()
setup_logger(settings)
logger = logging.getLogger("rollcall.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_store()
    logger.info("Attendance store ready (%s)", settings.database_url.split("://", 1)[0])
    yield
    logger.info("Shutting down; %d live connection(s) open", ws_manager.active)


app = FastAPI(title=settings.app_name, version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(identities.router, prefix=settings.api_prefix)
app.include_router(recognitions.router, prefix=settings.api_prefix)
app.include_router(attendance.router, prefix=settings.api_prefix)
app.include_router(calendar.router, prefix=settings.api_prefix)


@app.websocket("/ws/attendance")
async def attendance_socket(websocket: WebSocket):
    topic = websocket.query_params.get("topic") or GLOBAL_TOPIC
    if topic != GLOBAL_TOPIC and not topic.startswith(f"{GLOBAL_TOPIC}:"):
        await websocket.close(code=4404)
        return

    await ws_manager.connect(websocket, topic=topic)
    try:
        while True:
            message = await websocket.receive_text()
            if message.lower() == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        logger.exception("Attendance socket on %s failed", topic)
        await ws_manager.disconnect(websocket)
