"""
FastAPI backend: REST API over the love signal core.
Run with uvicorn: uvicorn api.main:app --reload

The caller's identity (issued by the external identity provider) arrives in
the X-User-Id header.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root (when run from repo root or from Docker)
for path in (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path.cwd() / ".env",
):
    if path.exists():
        load_dotenv(path)
        break

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from neo4j import GraphDatabase
from pydantic import BaseModel

from lovesignal.application import (
    AccountService,
    AlreadyExists,
    AuthFailed,
    ByContact,
    ByIdentity,
    ByUsername,
    ContactService,
    ContactView,
    NotFound,
    PermissionDenied,
    ProfileCache,
    SelfReferenceError,
    SignalLedger,
    SignalPatch,
    StoreUnavailable,
    ValidationError,
    is_failure,
)
from lovesignal.application.ports import StoreUnavailableError
from lovesignal.domain import Profile, get_policy
from lovesignal.infrastructure import (
    InMemoryDocumentStore,
    Neo4jDocumentStore,
    Settings,
    ensure_document_constraint,
    load_settings,
)
from lovesignal.infrastructure.settings import STORE_MEMORY

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"

_FAILURE_STATUS = {
    NotFound: 404,
    AlreadyExists: 409,
    PermissionDenied: 403,
    SelfReferenceError: 400,
    ValidationError: 400,
    StoreUnavailable: 503,
    AuthFailed: 401,
}


@dataclass
class UserSession:
    """Per-identity services sharing one profile cache."""

    profiles: ProfileCache
    contacts: ContactService
    signals: SignalLedger


# Per-user sessions are cached (same identity keeps the same profile cache)
SESSION_CACHE_SIZE = 1024


def _get_settings(app: FastAPI) -> Settings:
    if getattr(app.state, "settings", None) is None:
        app.state.settings = load_settings()
    return app.state.settings


def _create_store(app: FastAPI):
    settings = _get_settings(app)
    if settings.store_backend == STORE_MEMORY:
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()
    driver = GraphDatabase.driver(
        settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password)
    )
    app.state.driver = driver
    ensure_document_constraint(driver)
    return Neo4jDocumentStore(driver)


def _get_cached_store(app: FastAPI):
    if getattr(app.state, "store", None) is None:
        app.state.store = _create_store(app)
    return app.state.store


@lru_cache(maxsize=SESSION_CACHE_SIZE)
def get_session(user_id: str, app: FastAPI) -> UserSession:
    """Per-user session; the least recently used one is dropped past SESSION_CACHE_SIZE."""
    store = _get_cached_store(app)
    settings = _get_settings(app)
    profiles = ProfileCache(store)
    try:
        profiles.get(user_id)
    except StoreUnavailableError as e:
        logger.warning("Profile warm-up for %s failed: %s", user_id, e)
    contacts = ContactService(store, profiles)
    signals = SignalLedger(
        store,
        profiles,
        contacts=contacts,
        categories=settings.categories,
        policy=get_policy(settings.love_index_policy),
        allow_edits=settings.allow_signal_edits,
    )
    return UserSession(profiles, contacts, signals)


def _require_user(x_user_id: str | None) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail=f"{USER_ID_HEADER} header is required")
    return user_id


def _detail(result: object) -> str:
    for attr in ("reason", "message"):
        value = getattr(result, attr, None)
        if value:
            return value
    if isinstance(result, NotFound):
        return f"{result.what} not found"
    return f"{result.what} already exists"


def _raise_for(result: object) -> None:
    """Raise HTTPException for failure results; return for successes."""
    if is_failure(result):
        raise HTTPException(status_code=_FAILURE_STATUS[type(result)], detail=_detail(result))


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = None
    app.state.driver = None
    try:
        _get_cached_store(app)
        yield
    finally:
        get_session.cache_clear()
        if getattr(app.state, "driver", None) is not None:
            app.state.driver.close()


app = FastAPI(title="Love Signal API", lifespan=lifespan)


# --- REST: health ---


@app.get("/health")
def health():
    return {"status": "ok"}


# --- REST: accounts ---


class CreateProfileBody(BaseModel):
    username: str
    email: str


class ProfileItem(BaseModel):
    identity_id: str
    username: str
    email: str = ""


def _profile_item(profile: Profile) -> ProfileItem:
    return ProfileItem(
        identity_id=profile.identity_id, username=profile.username, email=profile.email
    )


@app.post("/accounts")
def create_account(
    body: CreateProfileBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    accounts = AccountService(_get_cached_store(request.app))
    result = accounts.create_profile(user_id, body.username, body.email)
    _raise_for(result)
    get_session(user_id, request.app).profiles.seed(result.profile)
    return JSONResponse(
        content=_profile_item(result.profile).model_dump(), status_code=201
    )


@app.get("/accounts/me")
def get_me(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    result = AccountService(_get_cached_store(request.app)).get_profile(user_id)
    _raise_for(result)
    return _profile_item(result)


@app.get("/users/{username}")
def find_user(username: str, request: Request):
    result = AccountService(_get_cached_store(request.app)).find_by_username(username)
    _raise_for(result)
    return _profile_item(result)


# --- REST: contacts ---


class ContactRequestBody(BaseModel):
    username: str


class ContactItem(BaseModel):
    contact_id: str
    status: str
    counterpart_id: str
    username: str
    requester_id: str
    created_at: str | None = None


def _contact_item(view: ContactView) -> ContactItem:
    return ContactItem(
        contact_id=view.contact_id,
        status=view.status.value,
        counterpart_id=view.counterpart_id,
        username=view.username,
        requester_id=view.requester_id,
        created_at=_iso(view.created_at),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@app.post("/contacts/requests")
def request_contact(
    body: ContactRequestBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    result = get_session(user_id, request.app).contacts.request_contact(user_id, body.username)
    _raise_for(result)
    return JSONResponse(
        content={"contact_id": result.contact_id, "status": result.status.value},
        status_code=201 if result.created else 200,
    )


@app.post("/contacts/{contact_id}/accept")
def accept_contact(
    contact_id: str,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    result = get_session(user_id, request.app).contacts.accept_request(contact_id, user_id)
    _raise_for(result)
    return {"contact_id": contact_id, "status": "accepted"}


@app.post("/contacts/{contact_id}/decline")
def decline_contact(
    contact_id: str,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    result = get_session(user_id, request.app).contacts.decline_request(contact_id, user_id)
    _raise_for(result)
    return {"contact_id": contact_id, "status": "declined"}


@app.get("/contacts")
def list_contacts(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    views = get_session(user_id, request.app).contacts.list_contacts(user_id)
    _raise_for(views)
    return [_contact_item(v) for v in views]


@app.get("/contacts/requests/incoming")
def list_incoming(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    views = get_session(user_id, request.app).contacts.list_incoming_requests(user_id)
    _raise_for(views)
    return [_contact_item(v) for v in views]


@app.get("/contacts/requests/outgoing")
def list_outgoing(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    views = get_session(user_id, request.app).contacts.list_outgoing_requests(user_id)
    _raise_for(views)
    return [_contact_item(v) for v in views]


# --- REST: signals ---


class SendSignalBody(BaseModel):
    message: str
    type: str
    recipient_username: str | None = None
    contact_identity_id: str | None = None
    recipient_id: str | None = None


class EditSignalBody(BaseModel):
    message: str | None = None
    type: str | None = None
    recipient_id: str | None = None


class LogItem(BaseModel):
    signal_id: str
    direction: str
    counterpart_id: str
    counterpart_username: str
    message: str
    type: str
    timestamp: str


@app.get("/categories")
def list_categories(request: Request):
    return list(_get_settings(request.app).categories)


@app.post("/signals")
def send_signal(
    body: SendSignalBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    if body.recipient_username:
        target = ByUsername(body.recipient_username)
    elif body.contact_identity_id:
        target = ByContact(body.contact_identity_id)
    elif body.recipient_id:
        target = ByIdentity(body.recipient_id)
    else:
        raise HTTPException(status_code=400, detail="A recipient is required")
    result = get_session(user_id, request.app).signals.send_signal(
        user_id, target, body.message, body.type
    )
    _raise_for(result)
    return JSONResponse(
        content={"signal_id": result.signal_id, "recipient_id": result.recipient_id},
        status_code=201,
    )


@app.patch("/signals/{signal_id}")
def edit_signal(
    signal_id: str,
    body: EditSignalBody,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    patch = SignalPatch(message=body.message, type=body.type, recipient_id=body.recipient_id)
    result = get_session(user_id, request.app).signals.edit_signal(signal_id, user_id, patch)
    _raise_for(result)
    return {"signal_id": signal_id}


@app.delete("/signals/{signal_id}")
def delete_signal(
    signal_id: str,
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    result = get_session(user_id, request.app).signals.delete_signal(signal_id, user_id)
    _raise_for(result)
    return {"signal_id": signal_id}


@app.get("/signals/logs")
def list_logs(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    """One-shot read of the live log: subscribe, take the first emission, tear down."""
    user_id = _require_user(x_user_id)
    stream = get_session(user_id, request.app).signals.stream_logs(user_id)
    _raise_for(stream)
    with stream:
        entries = stream.entries
    return [
        LogItem(
            signal_id=e.signal_id,
            direction=e.direction.value,
            counterpart_id=e.counterpart_id,
            counterpart_username=e.counterpart_username,
            message=e.message,
            type=e.type,
            timestamp=e.timestamp.isoformat(),
        )
        for e in entries
    ]


@app.get("/dashboard")
def dashboard(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    signals = get_session(user_id, request.app).signals
    counts = signals.counts(user_id)
    _raise_for(counts)
    love_index = signals.love_index(user_id)
    _raise_for(love_index)
    return {
        "sent": counts.sent,
        "received": counts.received,
        "love_index": love_index,
        "policy": _get_settings(request.app).love_index_policy,
    }


@app.get("/report")
def report(
    request: Request,
    x_user_id: str | None = Header(None, alias=USER_ID_HEADER),
):
    user_id = _require_user(x_user_id)
    rows = get_session(user_id, request.app).signals.compute_report_breakdown(user_id)
    _raise_for(rows)
    return [{"category": r.category, "sent": r.sent, "received": r.received} for r in rows]
