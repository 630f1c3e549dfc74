"""FastAPI bridge exposing session operations and the event stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from snapsolve.core.session import SessionController

logger = logging.getLogger(__name__)

EVENT_POLL_INTERVAL = 0.1


def create_app(session: SessionController) -> FastAPI:
    """Create the bridge app for one session.

    Args:
        session: Session whose operations and events are exposed. Stored on
            app.state.session and closed when the app shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.session.aclose()

    app = FastAPI(title="snapsolve bridge", version="0.1.0", lifespan=lifespan)
    app.state.session = session

    @app.post("/capture")
    async def capture() -> dict[str, Any]:
        result = await app.state.session.trigger_capture()
        return result.to_payload()

    @app.get("/queues/{role}")
    async def list_queue(role: str) -> list[dict[str, Any]]:
        try:
            entries = await app.state.session.list_queue(role)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=f"Unknown queue: {role}") from e
        return [asdict(entry) for entry in entries]

    @app.delete("/screenshots/{ref:path}")
    async def delete_screenshot(ref: str) -> dict[str, Any]:
        result = await app.state.session.delete_image(ref)
        return result.to_payload()

    @app.post("/process")
    async def process() -> dict[str, Any]:
        result = await app.state.session.trigger_process()
        return result.to_payload()

    @app.post("/reset")
    async def reset() -> dict[str, Any]:
        result = await app.state.session.trigger_reset()
        return result.to_payload()

    @app.get("/state")
    async def state() -> dict[str, Any]:
        return app.state.session.state()

    @app.websocket("/ws/events")
    async def events_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        events = app.state.session.events
        try:
            last_event_id = int(websocket.query_params.get("since", "0"))
        except ValueError:
            last_event_id = 0
        try:
            while True:
                for event in events.get_events_since(last_event_id):
                    await websocket.send_json(event)
                    last_event_id = int(event["id"])
                # Client messages are ignored; receiving surfaces disconnects.
                try:
                    await asyncio.wait_for(websocket.receive_text(), timeout=EVENT_POLL_INTERVAL)
                except TimeoutError:
                    pass
        except WebSocketDisconnect:
            logger.debug("Events WebSocket client disconnected")
        except Exception as e:
            logger.warning(f"Events stream error: {e}")

    return app
