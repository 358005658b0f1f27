from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient
from services.relay.app.config import RelayConfig
from services.relay.app.main import create_app
from services.relay.app.relay.runtime import RelayRuntime
from services.relay.app.services.store_memory import MemoryStoreGateway
from services.relay.app.services.transport_http import HttpBridgeTransport
from services.relay.app.services.transport_mock import MockTransport

DESTINATION = "120363000000000000@g.us"


@pytest.fixture()
def mock_client() -> TestClient:
    runtime = RelayRuntime(
        RelayConfig(destination_id=DESTINATION),
        transport=MockTransport(),
        store=MemoryStoreGateway(),
    )
    with TestClient(create_app(runtime)) as c:
        yield c


@pytest.fixture()
def bridge_requests() -> list[httpx.Request]:
    return []


@pytest.fixture()
def bridge_client(bridge_requests: list[httpx.Request]) -> TestClient:
    def handler(request: httpx.Request) -> httpx.Response:
        bridge_requests.append(request)
        return httpx.Response(200, json=[])

    transport = HttpBridgeTransport(
        base_url="http://bridge.test",
        transport=httpx.MockTransport(handler),
    )
    runtime = RelayRuntime(
        RelayConfig(destination_id=DESTINATION, transport="http", webhook_token="s3cret"),
        transport=transport,
        store=MemoryStoreGateway(),
    )
    with TestClient(create_app(runtime)) as c:
        yield c


def test_health(mock_client: TestClient) -> None:
    r = mock_client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_relay_status(mock_client: TestClient) -> None:
    r = mock_client.get("/v1/relay/status")
    assert r.status_code == 200
    body = r.json()
    assert body["server_running"] is True
    assert body["destination_configured"] is True
    assert body["failed"] is False
    assert body["max_reconnect_attempts"] == 5


def test_webhook_rejected_for_transport_without_webhooks(mock_client: TestClient) -> None:
    r = mock_client.post("/v1/transport/webhook", json={"event": "ready", "payload": {}})
    assert r.status_code == 409


def test_webhook_requires_token(bridge_client: TestClient) -> None:
    r = bridge_client.post("/v1/transport/webhook", json={"event": "ready"})
    assert r.status_code == 401

    r = bridge_client.post(
        "/v1/transport/webhook",
        json={"event": "ready"},
        headers={"X-Relay-Webhook-Token": "wrong"},
    )
    assert r.status_code == 401


def test_webhook_accepts_known_events(
    bridge_client: TestClient, bridge_requests: list[httpx.Request]
) -> None:
    r = bridge_client.post(
        "/v1/transport/webhook",
        json={"event": "ready", "payload": {}},
        headers={"X-Relay-Webhook-Token": "s3cret"},
    )
    assert r.status_code == 200
    assert r.json() == {"accepted": True, "signal": "ready"}
    assert bridge_requests[0].url.path == "/api/sessions/start"


def test_webhook_rejects_unknown_event(bridge_client: TestClient) -> None:
    r = bridge_client.post(
        "/v1/transport/webhook",
        json={"event": "typing", "payload": {}},
        headers={"X-Relay-Webhook-Token": "s3cret"},
    )
    assert r.status_code == 422
    assert "Unknown webhook event" in r.json()["detail"]


def test_webhook_validates_body(bridge_client: TestClient) -> None:
    r = bridge_client.post(
        "/v1/transport/webhook",
        json={"event": ""},
        headers={"X-Relay-Webhook-Token": "s3cret"},
    )
    assert r.status_code == 422
