# backend/protocol/messages.py
"""
JSON message protocol for the login WebSocket.

- Client → Server (commands):
    {"type": "START_ANONYMOUS"}
    {"type": "REQUEST_EXTERNAL_TOKEN"}
    {"type": "FEDERATED_LOGIN", "token": "<identity token>"}
    {"type": "FORCE_RELINK"}

- Server → Client:
    {"type": "SESSION_INIT", "session_id": "..."}
    {"type": "SESSION_STATE", "state": "<StateKind>"}
    Failed states additionally carry:
    {"error": {"type": "<exception class>", "message": "..."},
     "already_linked": true|false}

Usage example:

    try:
        command = decode_client_message(text)
    except MessageProtocolError as e:
        log_event({"event_type": "MESSAGE_REJECTED", "error": str(e)})
    else:
        coordinator.submit(command)

    await ws.send_json(encode_state(state))
"""

from __future__ import annotations

import json
from typing import Any

from login.commands import (
    FederatedLogin,
    ForceRelinkIfAlreadyLinked,
    RequestExternalToken,
    SessionCommand,
    StartAnonymous,
)
from login.states import Failed, SessionState
from models.identity import ExternalToken


MSG_START_ANONYMOUS = "START_ANONYMOUS"
MSG_REQUEST_EXTERNAL_TOKEN = "REQUEST_EXTERNAL_TOKEN"
MSG_FEDERATED_LOGIN = "FEDERATED_LOGIN"
MSG_FORCE_RELINK = "FORCE_RELINK"

MSG_SESSION_INIT = "SESSION_INIT"
MSG_SESSION_STATE = "SESSION_STATE"


# -------------------------
# Exceptions
# -------------------------

class MessageProtocolError(Exception):
    """Base class for message protocol errors."""


class MalformedMessage(MessageProtocolError):
    """
    Raised when a payload is not a JSON object.

    The message is unsafe to process and must be dropped.
    """


class UnknownMessageType(MessageProtocolError):
    """Raised when `type` is missing or not a known command."""


class InvalidToken(MessageProtocolError):
    """Raised when FEDERATED_LOGIN has no usable token."""


# -------------------------
# Client → Server
# -------------------------

def decode_client_message(payload: str) -> SessionCommand:
    """
    Decode a client JSON message into a SessionCommand.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedMessage(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessage(f"Expected a JSON object, got {type(data).__name__}")

    msg_type = data.get("type")

    if msg_type == MSG_START_ANONYMOUS:
        return StartAnonymous()
    if msg_type == MSG_REQUEST_EXTERNAL_TOKEN:
        return RequestExternalToken()
    if msg_type == MSG_FORCE_RELINK:
        return ForceRelinkIfAlreadyLinked()
    if msg_type == MSG_FEDERATED_LOGIN:
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise InvalidToken("FEDERATED_LOGIN requires a non-empty string token")
        return FederatedLogin(token=ExternalToken(token))

    raise UnknownMessageType(f"Unknown message type: {msg_type!r}")


# -------------------------
# Server → Client
# -------------------------

def encode_session_init(session_id: str) -> dict[str, Any]:
    return {"type": MSG_SESSION_INIT, "session_id": session_id}


def encode_state(state: SessionState) -> dict[str, Any]:
    """
    Encode a session state as a JSON-ready dict.
    """
    msg: dict[str, Any] = {
        "type": MSG_SESSION_STATE,
        "state": state.kind.value,
    }

    if isinstance(state, Failed):
        msg["error"] = {
            "type": type(state.cause).__name__,
            "message": str(state.cause),
        }
        msg["already_linked"] = state.already_linked

    return msg
