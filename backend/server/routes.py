"""
Route registration for the login API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the gateway to the WebSocket lifecycle
- Pump session states to the client concurrently with inbound commands
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio

from fastapi import WebSocket, WebSocketDisconnect, FastAPI

from observability.logger import describe_exception, log_event
from protocol.messages import encode_state
from session.gateway import LoginGateway, GatewayResult


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = LoginGateway(
            config=app.state.config,
            accounts=app.state.accounts,
        )

        pump: asyncio.Task[None] | None = None

        try:
            result = await gateway.on_ws_connect()
            await _flush_gateway_result(ws, result)

            pump = asyncio.create_task(_pump_states(ws, gateway))

            while True:
                text = await ws.receive_text()
                result = await gateway.on_json_message(text)
                await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                **describe_exception(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            if pump is not None:
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)


async def _pump_states(ws: WebSocket, gateway: LoginGateway) -> None:
    """
    Forward every session state to the client until the stream ends.

    The stream ends when the coordinator shuts down on disconnect.
    """
    subscription = gateway.states()
    try:
        async for state in subscription:
            await ws.send_json(encode_state(state))
    finally:
        subscription.close()


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_json(msg)
