"""
Login gateway.

Responsibilities:
- Owns LoginSession lifecycle (one per WebSocket connection)
- Tracks connection_status independently of session state
- Wires the per-connection coordinator to the in-memory backend
- Routes inbound JSON messages -> session commands
- Exposes the coordinator's state stream for the transport to pump

NOT responsible for:
- Any state machine logic
- Sending on the socket (see server.routes)
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from uuid import uuid4

from adapters.memory import (
    AccountTagsSource,
    AccountTagWriter,
    LocalAccounts,
    LocalAuthSession,
    StaticTagTemplatesSource,
    default_tag_templates,
)
from constants import ID_HEX_CHARS, PAYLOAD_PREVIEW_CHARS, SESSION_ID_PREFIX
from login.broadcast import StateSubscription
from login.coordinator import SessionCoordinator
from login.states import SessionState
from observability.logger import log_event
from protocol.messages import (
    MessageProtocolError,
    decode_client_message,
    encode_session_init,
)
from session.connection_status import ConnectionStatus
from session.login_session import LoginSession

if TYPE_CHECKING:
    from config import AppConfig

# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{uuid4().hex[:ID_HEX_CHARS]}"


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client right away. Session states
        are NOT included; they flow through states().
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# LoginGateway
# ------------------------------------------------------------------

class LoginGateway:
    """One gateway == one connection == one login session."""

    def __init__(
        self,
        *,
        config: AppConfig,
        accounts: LocalAccounts,
    ) -> None:
        self._config = config
        self._accounts = accounts
        self.session: LoginSession | None = None

    async def on_ws_connect(self) -> GatewayResult:
        """Called when a WebSocket connection is established."""
        session_id = _new_session_id()

        self.session = LoginSession(session_id=session_id)
        self.session.connection_status = ConnectionStatus.UP

        auth = LocalAuthSession(self._accounts)
        self.session.attach_auth(auth)

        templates = default_tag_templates() if self._config.seed_default_tags else ()

        coordinator = SessionCoordinator(
            anonymous_auth=auth.login_anonymously,
            federated_auth=auth.login_with_external_token,
            existing_tags=AccountTagsSource(self._accounts, auth),
            default_tags=StaticTagTemplatesSource(templates),
            tag_writer=AccountTagWriter(self._accounts, auth),
        )
        self.session.attach_coordinator(coordinator)
        coordinator.start()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_CONNECTED",
            **self.session.log_context(),
        })

        return GatewayResult(outbound_json=(encode_session_init(session_id),))

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called when the WebSocket disconnects."""
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        self.session.connection_status = ConnectionStatus.DOWN

        coordinator = self.session.coordinator
        if coordinator is not None:
            await coordinator.shutdown()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "reason": reason,
            **self.session.log_context(),
        })

        return GatewayResult()

    def states(self) -> StateSubscription[SessionState]:
        """Subscribe to this session's state stream (current state first)."""
        coordinator = self._require_coordinator()
        return coordinator.observe_state()

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON to the coordinator."""
        if self.session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:PAYLOAD_PREVIEW_CHARS],
            })
            return GatewayResult()

        try:
            command = decode_client_message(payload)
        except MessageProtocolError as e:
            # Payload preview omitted: it may contain an identity token
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_REJECTED",
                "error_type": type(e).__name__,
                "error": str(e),
                **self.session.log_context(),
            })
            return GatewayResult(outbound_json=({
                "type": "PROTOCOL_ERROR",
                "error": type(e).__name__,
                "message": str(e),
            },))

        self._require_coordinator().submit(command)

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "COMMAND_SUBMITTED",
            "command_type": command.command_type.value,
            **self.session.log_context(),
        })

        return GatewayResult()

    def _require_coordinator(self) -> SessionCoordinator:
        assert self.session is not None, "on_ws_connect() must run first"
        coordinator = self.session.coordinator
        assert coordinator is not None, "Coordinator must exist before dispatch"
        return coordinator
