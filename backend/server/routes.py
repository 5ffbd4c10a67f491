"""
Route registration for the voice relay API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

from fastapi import WebSocket, WebSocketDisconnect, FastAPI

from observability.logger import log_event
from server.transport import WebSocketTransport
from session.gateway import SessionGateway
from session.pipeline import ReplyPipeline


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        """
        Main WebSocket endpoint for device sessions.

        One connection = one session = one gateway. Replies go back on
        this connection only.
        """
        await ws.accept()

        # Pipeline is pulled from app state
        pipeline: ReplyPipeline = app.state.pipeline

        gateway = SessionGateway(
            config=app.state.config,
            pipeline=pipeline,
            transport=WebSocketTransport(ws),
        )

        try:
            await gateway.on_ws_connect()

            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    await gateway.on_text_message(msg["text"])

                elif msg.get("bytes") is not None:
                    await gateway.on_binary_message(msg["bytes"])

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            }, level="ERROR")
            await gateway.on_ws_disconnect(reason="server_error")
