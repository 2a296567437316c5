# pylint: disable=missing-module-docstring,missing-function-docstring

from fastapi.testclient import TestClient

from config import AppConfig
from server.app import create_app


def make_client() -> TestClient:
    config = AppConfig(
        env="test",
        log_level="INFO",
        enable_json_logs=True,
        server_host="127.0.0.1",
        server_port=8000,
        seed_default_tags=True,
    )
    return TestClient(create_app(config))


def receive_until(ws, state: str) -> list[str]:
    seen: list[str] = []
    while not seen or seen[-1] != state:
        msg = ws.receive_json()
        if msg["type"] == "SESSION_STATE":
            seen.append(msg["state"])
    return seen


def test_health():
    client = make_client()

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_websocket_anonymous_login():
    client = make_client()

    with client.websocket_connect("/ws") as ws:
        init = ws.receive_json()
        assert init["type"] == "SESSION_INIT"
        assert ws.receive_json() == {"type": "SESSION_STATE", "state": "IDLE"}

        ws.send_json({"type": "START_ANONYMOUS"})

        assert receive_until(ws, "AUTHENTICATED") == [
            "AUTHENTICATING_ANONYMOUSLY",
            "AUTHENTICATED",
        ]


def test_websocket_already_linked_then_force_relink():
    client = make_client()

    with client.websocket_connect("/ws") as owner:
        owner.receive_json()
        owner.send_json({"type": "FEDERATED_LOGIN", "token": "identity-1"})
        receive_until(owner, "AUTHENTICATED")

    with client.websocket_connect("/ws") as guest:
        guest.receive_json()
        guest.send_json({"type": "START_ANONYMOUS"})
        receive_until(guest, "AUTHENTICATED")

        guest.send_json({"type": "FEDERATED_LOGIN", "token": "identity-1"})
        receive_until(guest, "AUTHENTICATING_WITH_FEDERATED_IDENTITY")
        failed = guest.receive_json()
        assert failed["state"] == "FAILED"
        assert failed["already_linked"] is True

        guest.send_json({"type": "FORCE_RELINK"})
        assert receive_until(guest, "AUTHENTICATED") == [
            "AUTHENTICATING_WITH_FEDERATED_IDENTITY",
            "AUTHENTICATED",
        ]


def test_websocket_protocol_error():
    client = make_client()

    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.receive_json()

        ws.send_text("not json")

        msg = ws.receive_json()
        assert msg["type"] == "PROTOCOL_ERROR"
        assert msg["error"] == "MalformedMessage"
