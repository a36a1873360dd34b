"""API tests over the in-memory store. /health does not require Neo4j."""

import pytest
from fastapi.testclient import TestClient

from api import main as api_main
from api.main import app
from lovesignal.application.ports import StoreUnavailableError
from lovesignal.infrastructure import InMemoryDocumentStore, Settings


@pytest.fixture
def client():
    app.state.settings = Settings(store_backend="memory")
    app.state.store = InMemoryDocumentStore()
    api_main.get_session.cache_clear()
    yield TestClient(app)
    api_main.get_session.cache_clear()
    app.state.store = None
    app.state.settings = None


def _as(user_id: str) -> dict:
    return {"X-User-Id": user_id}


def _signup(client, user_id: str, username: str) -> None:
    r = client.post(
        "/accounts",
        json={"username": username, "email": f"{username}@example.com"},
        headers=_as(user_id),
    )
    assert r.status_code == 201


def _befriend(client, requester: str, requestee: str, requestee_username: str) -> str:
    r = client.post(
        "/contacts/requests", json={"username": requestee_username}, headers=_as(requester)
    )
    contact_id = r.json()["contact_id"]
    r = client.post(f"/contacts/{contact_id}/accept", headers=_as(requestee))
    assert r.status_code == 200
    return contact_id


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_identity_header_required(client):
    assert client.get("/accounts/me").status_code == 401
    assert client.get("/contacts", headers=_as("  ")).status_code == 401


def test_create_account_and_lookup(client):
    r = client.post(
        "/accounts",
        json={"username": "Alice", "email": "alice@example.com"},
        headers=_as("uid-alice"),
    )
    assert r.status_code == 201
    assert r.json() == {
        "identity_id": "uid-alice",
        "username": "alice",
        "email": "alice@example.com",
    }

    assert client.get("/accounts/me", headers=_as("uid-alice")).json()["username"] == "alice"
    assert client.get("/users/ALICE").json()["identity_id"] == "uid-alice"
    assert client.get("/users/nobody").status_code == 404
    assert client.get("/accounts/me", headers=_as("uid-ghost")).status_code == 404


def test_duplicate_username_conflict(client):
    _signup(client, "uid-alice", "alice")
    r = client.post(
        "/accounts",
        json={"username": "ALICE", "email": "other@example.com"},
        headers=_as("uid-other"),
    )
    assert r.status_code == 409


def test_short_username_rejected(client):
    r = client.post(
        "/accounts", json={"username": "al", "email": "al@example.com"}, headers=_as("uid-al")
    )
    assert r.status_code == 400


def test_contact_flow(client):
    _signup(client, "uid-alice", "alice")
    _signup(client, "uid-bob", "bob")

    r = client.post("/contacts/requests", json={"username": "bob"}, headers=_as("uid-alice"))
    assert r.status_code == 201
    contact_id = r.json()["contact_id"]
    assert r.json()["status"] == "pending"

    again = client.post("/contacts/requests", json={"username": "bob"}, headers=_as("uid-alice"))
    assert again.status_code == 200

    incoming = client.get("/contacts/requests/incoming", headers=_as("uid-bob")).json()
    assert [(c["contact_id"], c["username"]) for c in incoming] == [(contact_id, "alice")]
    outgoing = client.get("/contacts/requests/outgoing", headers=_as("uid-alice")).json()
    assert [c["username"] for c in outgoing] == ["bob"]

    denied = client.post(f"/contacts/{contact_id}/accept", headers=_as("uid-alice"))
    assert denied.status_code == 403

    accepted = client.post(f"/contacts/{contact_id}/accept", headers=_as("uid-bob"))
    assert accepted.json() == {"contact_id": contact_id, "status": "accepted"}
    assert [c["username"] for c in client.get("/contacts", headers=_as("uid-alice")).json()] == [
        "bob"
    ]


def test_contact_request_errors(client):
    _signup(client, "uid-alice", "alice")
    r = client.post("/contacts/requests", json={"username": "alice"}, headers=_as("uid-alice"))
    assert r.status_code == 400
    r = client.post("/contacts/requests", json={"username": "nobody"}, headers=_as("uid-alice"))
    assert r.status_code == 404
    assert client.post("/contacts/nope/decline", headers=_as("uid-alice")).status_code == 404


def test_decline_removes_request(client):
    _signup(client, "uid-alice", "alice")
    _signup(client, "uid-bob", "bob")
    r = client.post("/contacts/requests", json={"username": "bob"}, headers=_as("uid-alice"))
    contact_id = r.json()["contact_id"]
    r = client.post(f"/contacts/{contact_id}/decline", headers=_as("uid-bob"))
    assert r.json()["status"] == "declined"
    assert client.get("/contacts/requests/incoming", headers=_as("uid-bob")).json() == []


def test_signal_flow_dashboard_and_report(client):
    _signup(client, "uid-alice", "alice")
    _signup(client, "uid-bob", "bob")
    _befriend(client, "uid-alice", "uid-bob", "bob")

    r = client.post(
        "/signals",
        json={"message": "thank you", "type": "praise", "recipient_username": "bob"},
        headers=_as("uid-alice"),
    )
    assert r.status_code == 201
    first_id = r.json()["signal_id"]
    r = client.post(
        "/signals",
        json={"message": "you listened", "type": "listening", "contact_identity_id": "uid-alice"},
        headers=_as("uid-bob"),
    )
    assert r.status_code == 201

    logs = client.get("/signals/logs", headers=_as("uid-alice")).json()
    assert [(e["direction"], e["counterpart_username"]) for e in logs] == [
        ("received", "bob"),
        ("sent", "bob"),
    ]

    dashboard = client.get("/dashboard", headers=_as("uid-alice")).json()
    # sqrt(10 * 1 + 15 * 1) = 5
    assert dashboard == {"sent": 1, "received": 1, "love_index": 5, "policy": "bounded_growth"}

    report = {row["category"]: row for row in client.get("/report", headers=_as("uid-alice")).json()}
    assert report["praise"] == {"category": "praise", "sent": 1, "received": 0}
    assert report["listening"] == {"category": "listening", "sent": 0, "received": 1}
    assert set(report) == set(client.get("/categories").json())

    r = client.patch(f"/signals/{first_id}", json={"message": "thanks!"}, headers=_as("uid-bob"))
    assert r.status_code == 403
    r = client.patch(f"/signals/{first_id}", json={"message": "thanks!"}, headers=_as("uid-alice"))
    assert r.status_code == 200
    assert client.delete(f"/signals/{first_id}", headers=_as("uid-alice")).status_code == 200
    assert client.get("/dashboard", headers=_as("uid-alice")).json()["sent"] == 0


def test_signal_validation(client):
    _signup(client, "uid-alice", "alice")
    _signup(client, "uid-bob", "bob")
    r = client.post("/signals", json={"message": "hi", "type": "praise"}, headers=_as("uid-alice"))
    assert r.status_code == 400
    r = client.post(
        "/signals",
        json={"message": " ", "type": "praise", "recipient_username": "bob"},
        headers=_as("uid-alice"),
    )
    assert r.status_code == 400
    r = client.post(
        "/signals",
        json={"message": "hi", "type": "hug", "recipient_username": "bob"},
        headers=_as("uid-alice"),
    )
    assert r.status_code == 400
    r = client.post(
        "/signals",
        json={"message": "hi", "type": "praise", "contact_identity_id": "uid-bob"},
        headers=_as("uid-alice"),
    )
    assert r.status_code == 404


class _DownStore(InMemoryDocumentStore):
    def get(self, collection, record_id):
        raise StoreUnavailableError("backend down")

    def query(self, collection, query):
        raise StoreUnavailableError("backend down")


@pytest.mark.parametrize(
    "path",
    [
        "/contacts",
        "/contacts/requests/incoming",
        "/contacts/requests/outgoing",
        "/signals/logs",
        "/dashboard",
        "/report",
        "/accounts/me",
    ],
)
def test_store_outage_is_service_unavailable(client, path):
    app.state.store = _DownStore()
    r = client.get(path, headers=_as("uid-alice"))
    assert r.status_code == 503


def test_send_to_contact_during_outage(client):
    app.state.store = _DownStore()
    r = client.post(
        "/signals",
        json={"message": "hi", "type": "praise", "contact_identity_id": "uid-bob"},
        headers=_as("uid-alice"),
    )
    assert r.status_code == 503


def test_session_cache_is_bounded(client):
    for i in range(api_main.SESSION_CACHE_SIZE + 5):
        api_main.get_session(f"uid-{i}", app)
    info = api_main.get_session.cache_info()
    assert info.currsize == api_main.SESSION_CACHE_SIZE
    first = api_main.get_session("uid-0", app)
    assert api_main.get_session("uid-0", app) is first
