from __future__ import annotations
import asyncio
import json
import logging
from typing import List, Literal, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from romcoach.calibration.ladder import LadderStatus
from romcoach.common.events import EventType, to_payload
from romcoach.feedback.classifier import Phase
from romcoach.feedback.rules import EXERCISE_ALIASES, EXERCISE_RULES
from romcoach.pose.landmarks import LandmarkFrame
from romcoach.runtime.session import SessionManager

logger = logging.getLogger(__name__)


class LandmarkIn(BaseModel):
    x: float
    y: float
    visibility: float = 0.0


class LandmarksMessage(BaseModel):
    type: Literal["landmarks"] = "landmarks"
    ts: Optional[float] = Field(None, description="Frame time in seconds; server clock if omitted")
    landmarks: List[Optional[LandmarkIn]] = Field(default_factory=list)
    mirror: Optional[bool] = Field(None, description="Override the manager's mirroring flag")


def status_message(st) -> dict:
    kind = EventType.CALIBRATION_STATUS if isinstance(st, LadderStatus) else EventType.FEEDBACK_STATUS
    return {"type": kind.value, **to_payload(st)}


def create_app(manager: Optional[SessionManager] = None) -> FastAPI:
    app = FastAPI(title="romcoach")
    mgr = manager or SessionManager()
    clients: Set[WebSocket] = set()
    app.state.manager = mgr
    app.state.clients = clients

    async def broadcast(obj: dict):
        dead = []
        for ws in list(clients):
            try:
                await ws.send_text(json.dumps(obj))
            except Exception:
                dead.append(ws)
        for d in dead:
            clients.discard(d)

    # let the manager emit events to all WS clients
    def _sink(ev: dict):
        try:
            asyncio.get_running_loop().create_task(broadcast(ev))
        except RuntimeError:
            logger.debug("no event loop for broadcast; dropping %s", ev.get("type"))

    mgr.set_event_sink(_sink)

    @app.get("/favicon.ico")
    async def favicon():
        return Response(status_code=204)

    @app.get("/sessions/current")
    async def current():
        return JSONResponse(mgr.status())

    @app.get("/calibration")
    async def get_calibration():
        rec = mgr.current_calibration()
        if rec is None:
            raise HTTPException(status_code=404, detail="no calibration on record")
        return JSONResponse(rec.model_dump(by_alias=True))

    @app.post("/calibration/start")
    async def start_calibration():
        mgr.start_calibration()
        return mgr.status()

    @app.post("/calibration/reset")
    async def reset_calibration():
        mgr.reset_calibration()
        return mgr.status()

    @app.post("/exercise/start")
    async def start_exercise(exercise: str, level: int = 1, levels: int = 3):
        name = EXERCISE_ALIASES.get(exercise, exercise)
        if name not in EXERCISE_RULES:
            raise HTTPException(status_code=422, detail=f"unknown exercise: {exercise}")
        mgr.start_exercise(name, level=level, levels=levels)
        return mgr.status()

    @app.post("/exercise/level")
    async def set_level(level: int, levels: int):
        if mgr.feedback_session is None:
            raise HTTPException(status_code=409, detail="no exercise running")
        mgr.set_level(level, levels)
        return mgr.status()

    @app.post("/exercise/phase")
    async def set_phase(phase: Phase):
        if not mgr.set_phase(phase):
            raise HTTPException(status_code=409, detail="no exercise running")
        return mgr.status()

    @app.post("/exercise/stop")
    async def stop_exercise():
        mgr.stop_exercise()
        return mgr.status()

    @app.websocket("/ws/landmarks")
    async def ws_landmarks(ws: WebSocket):
        await ws.accept()
        clients.add(ws)
        await broadcast({"type": EventType.TRACE.value, "msg": "ws: client connected"})
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    msg = LandmarksMessage.model_validate_json(raw)
                except ValidationError:
                    # ignore anything that is not a landmark frame
                    continue
                frame = LandmarkFrame.from_list([p.model_dump() if p else None for p in msg.landmarks])
                st = mgr.push_frame(frame, msg.ts, mirrored=msg.mirror)
                if st is not None:
                    await ws.send_text(json.dumps(status_message(st)))
        except WebSocketDisconnect:
            pass
        finally:
            clients.discard(ws)
            await broadcast({"type": EventType.TRACE.value, "msg": "ws closed"})

    return app


app = create_app()
