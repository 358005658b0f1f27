import pytest
from services.relay.app.config import RelayConfig
from services.relay.app.services.store_factory import get_store
from services.relay.app.services.transport_base import TransportNotConfiguredError
from services.relay.app.services.transport_factory import get_transport


def test_get_transport_defaults_to_mock(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RELAY_TRANSPORT", raising=False)
    transport = get_transport(RelayConfig.from_env())
    assert transport.name == "MOCK"


def test_get_transport_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="Unknown RELAY_TRANSPORT"):
        get_transport(RelayConfig(transport="nope"))


def test_http_transport_needs_a_url() -> None:
    with pytest.raises(TransportNotConfiguredError, match="RELAY_TRANSPORT_URL"):
        get_transport(RelayConfig(transport="http"))


def test_http_transport_from_config() -> None:
    transport = get_transport(
        RelayConfig(transport="http", transport_url="http://bridge.test", transport_session="pay")
    )
    assert transport.name == "HTTP_BRIDGE"
    assert transport.session == "pay"


def test_get_store_defaults_to_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RELAY_STORE", raising=False)
    assert get_store(RelayConfig.from_env()).name == "MEMORY"


def test_get_store_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="Unknown RELAY_STORE"):
        get_store(RelayConfig(store="mongo"))


def test_sql_store_from_config(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELAY_DB_AUTO_CREATE", "true")
    store = get_store(
        RelayConfig(store="sql", database_url=f"sqlite+pysqlite:///{tmp_path / 'f.db'}")
    )
    assert store.name == "SQL"


def test_firestore_store_from_config(monkeypatch: pytest.MonkeyPatch) -> None:
    from services.relay.app.services import store_firestore

    calls: list[dict] = []

    def fake_client(**kwargs):
        calls.append(kwargs)
        return object()

    monkeypatch.setattr(store_firestore, "firestore_client", fake_client)

    store = get_store(
        RelayConfig(
            store="firestore",
            firebase_service_account='{"project_id": "p"}',
            firebase_project_id="payments-prod",
        )
    )

    assert store.name == "FIRESTORE"
    assert calls == [
        {
            "raw_json": '{"project_id": "p"}',
            "path": "firebase-service-account.json",
            "project_id": "payments-prod",
        }
    ]
