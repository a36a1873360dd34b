"""Contact requests, acceptance, and listing. One instance per session."""

import logging
from collections.abc import Callable

from lovesignal.application.account_service import identity_for_username
from lovesignal.application.dto import (
    ContactAccepted,
    ContactBook,
    ContactDeclined,
    ContactRequested,
    ContactView,
    NotFound,
    PermissionDenied,
    SelfReferenceError,
    StoreUnavailable,
    ValidationError,
)
from lovesignal.application.ports import (
    CONTACTS,
    PROFILES,
    SERVER_TIMESTAMP,
    Change,
    DocumentStore,
    Filter,
    KeyExistsError,
    Query,
    RecordNotFoundError,
    StoreUnavailableError,
    Subscription,
    array_contains,
)
from lovesignal.application.profile_cache import ProfileCache
from lovesignal.domain import Contact, ContactStatus, contact_key
from lovesignal.domain.contact_machine import ACCEPT, DECLINE, transition

logger = logging.getLogger(__name__)


class ContactService:
    """Core flow: request -> pending -> accepted, or declined (record removed)."""

    def __init__(
        self,
        store: DocumentStore,
        profiles: ProfileCache | None = None,
    ) -> None:
        self._store = store
        self._profiles = profiles if profiles is not None else ProfileCache(store)

    # --- mutations ---

    def request_contact(
        self, requester_id: str, requestee_username: str
    ) -> ContactRequested | NotFound | SelfReferenceError | ValidationError | StoreUnavailable:
        """Ask the user with this username to become a contact. Idempotent per pair."""
        if not (requestee_username or "").strip():
            return ValidationError(reason="Username is required.")
        try:
            requestee_id = identity_for_username(self._store, requestee_username)
        except StoreUnavailableError as e:
            logger.warning("Username lookup failed: %s", e)
            return StoreUnavailable()
        if requestee_id is None:
            return NotFound(what="username", key=requestee_username.strip().lower())
        return self._request(requester_id, requestee_id)

    def request_contact_by_id(
        self, requester_id: str, requestee_id: str
    ) -> ContactRequested | NotFound | SelfReferenceError | ValidationError | StoreUnavailable:
        """Same as request_contact, addressed by identity id."""
        if not (requestee_id or "").strip():
            return ValidationError(reason="Identity id is required.")
        if requester_id != requestee_id:
            try:
                if self._store.get(PROFILES, requestee_id) is None:
                    return NotFound(what="profile", key=requestee_id)
            except StoreUnavailableError as e:
                logger.warning("Profile lookup failed: %s", e)
                return StoreUnavailable()
        return self._request(requester_id, requestee_id)

    def _request(
        self, requester_id: str, requestee_id: str
    ) -> ContactRequested | SelfReferenceError | StoreUnavailable:
        if requester_id == requestee_id:
            return SelfReferenceError(reason="You cannot add yourself as a contact.")
        contact = Contact(requester_id=requester_id, requestee_id=requestee_id)
        try:
            existing = self._store.get(CONTACTS, contact.id)
            if existing is not None:
                return ContactRequested(
                    contact_id=contact.id,
                    status=ContactStatus(existing["status"]),
                    created=False,
                )
            self._store.create(
                CONTACTS,
                contact.id,
                {
                    "participants": list(contact.participants),
                    "requesterId": requester_id,
                    "requesteeId": requestee_id,
                    "status": ContactStatus.PENDING.value,
                    "createdAt": SERVER_TIMESTAMP,
                },
            )
        except KeyExistsError:
            return self._existing_request(contact.id)
        except StoreUnavailableError as e:
            logger.warning("Contact request failed: %s", e)
            return StoreUnavailable()
        logger.info("Contact requested %s -> %s", requester_id, requestee_id)
        return ContactRequested(contact_id=contact.id, status=ContactStatus.PENDING)

    def _existing_request(self, contact_id: str) -> ContactRequested | StoreUnavailable:
        """Lost a create race with the other participant; their record stands."""
        try:
            existing = self._store.get(CONTACTS, contact_id)
        except StoreUnavailableError as e:
            logger.warning("Contact fetch failed: %s", e)
            return StoreUnavailable()
        status = ContactStatus(existing["status"]) if existing else ContactStatus.PENDING
        return ContactRequested(contact_id=contact_id, status=status, created=False)

    def accept_request(
        self, contact_id: str, caller_id: str
    ) -> ContactAccepted | NotFound | PermissionDenied | StoreUnavailable:
        """Requestee accepts a pending request."""
        checked = self._check_transition(contact_id, caller_id, ACCEPT)
        if not isinstance(checked, Contact):
            return checked
        try:
            self._store.update(
                CONTACTS,
                contact_id,
                {"status": ContactStatus.ACCEPTED.value, "acceptedAt": SERVER_TIMESTAMP},
            )
        except RecordNotFoundError:
            return NotFound(what="contact", key=contact_id)
        except StoreUnavailableError as e:
            logger.warning("Accept failed: %s", e)
            return StoreUnavailable()
        logger.info("Contact %s accepted", contact_id)
        return ContactAccepted(contact_id=contact_id)

    def decline_request(
        self, contact_id: str, caller_id: str
    ) -> ContactDeclined | NotFound | PermissionDenied | StoreUnavailable:
        """Requestee declines a pending request. The record is deleted, not flagged."""
        checked = self._check_transition(contact_id, caller_id, DECLINE)
        if not isinstance(checked, Contact):
            return checked
        try:
            self._store.delete(CONTACTS, contact_id)
        except RecordNotFoundError:
            return NotFound(what="contact", key=contact_id)
        except StoreUnavailableError as e:
            logger.warning("Decline failed: %s", e)
            return StoreUnavailable()
        logger.info("Contact %s declined", contact_id)
        return ContactDeclined(contact_id=contact_id)

    def _check_transition(
        self, contact_id: str, caller_id: str, event: str
    ) -> Contact | NotFound | PermissionDenied | StoreUnavailable:
        try:
            record = self._store.get(CONTACTS, contact_id)
        except StoreUnavailableError as e:
            logger.warning("Contact fetch failed: %s", e)
            return StoreUnavailable()
        if record is None:
            return NotFound(what="contact", key=contact_id)
        contact = Contact.from_record(record)
        if caller_id != contact.requestee_id:
            logger.debug("%s by %s on %s denied: not requestee", event, caller_id, contact_id)
            return PermissionDenied(reason="Only the requestee can answer this request.")
        if transition(contact.status.value, event) is None:
            return PermissionDenied(reason=f"Request is already {contact.status.value}.")
        return contact

    # --- reads ---

    def list_contacts(self, identity_id: str) -> list[ContactView] | StoreUnavailable:
        """Accepted contacts of identity_id, resolved to the counterpart's profile."""
        return self._views(
            identity_id,
            array_contains(
                "participants", identity_id, Filter("status", ContactStatus.ACCEPTED.value)
            ),
        )

    def list_incoming_requests(self, identity_id: str) -> list[ContactView] | StoreUnavailable:
        """Pending requests addressed to identity_id."""
        return self._views(
            identity_id,
            Query(
                filters=(
                    Filter("requesteeId", identity_id),
                    Filter("status", ContactStatus.PENDING.value),
                )
            ),
        )

    def list_outgoing_requests(self, identity_id: str) -> list[ContactView] | StoreUnavailable:
        """Pending requests sent by identity_id."""
        return self._views(
            identity_id,
            Query(
                filters=(
                    Filter("requesterId", identity_id),
                    Filter("status", ContactStatus.PENDING.value),
                )
            ),
        )

    def is_contact(self, identity_id: str, other_id: str) -> bool | StoreUnavailable:
        """True when the two identities have an accepted contact record."""
        if identity_id == other_id:
            return False
        try:
            record = self._store.get(CONTACTS, contact_key(identity_id, other_id))
        except StoreUnavailableError as e:
            logger.warning("Contact check failed: %s", e)
            return StoreUnavailable()
        return record is not None and record.get("status") == ContactStatus.ACCEPTED.value

    def watch_contacts(
        self, identity_id: str, on_update: Callable[[ContactBook], None]
    ) -> "ContactWatch | StoreUnavailable":
        """Live ContactBook for identity_id. Call unsubscribe() when done."""
        try:
            return ContactWatch(self._store, self._profiles, identity_id, on_update)
        except StoreUnavailableError as e:
            logger.warning("Contact watch failed: %s", e)
            return StoreUnavailable()

    def _views(self, identity_id: str, query: Query) -> list[ContactView] | StoreUnavailable:
        try:
            records = self._store.query(CONTACTS, query)
            return [
                to_view(Contact.from_record(r), identity_id, self._profiles) for r in records
            ]
        except StoreUnavailableError as e:
            logger.warning("Contact listing failed: %s", e)
            return StoreUnavailable()


def to_view(contact: Contact, identity_id: str, profiles: ProfileCache) -> ContactView:
    other_id = contact.other(identity_id)
    return ContactView(
        contact_id=contact.id,
        status=contact.status,
        counterpart=profiles.get(other_id),
        counterpart_id=other_id,
        requester_id=contact.requester_id,
        created_at=contact.created_at,
    )


class ContactWatch:
    """Subscription over every contact record of one identity.

    Re-emits the whole ContactBook on each change.
    """

    def __init__(
        self,
        store: DocumentStore,
        profiles: ProfileCache,
        identity_id: str,
        on_update: Callable[[ContactBook], None],
    ) -> None:
        self._profiles = profiles
        self._identity_id = identity_id
        self._on_update = on_update
        self._records: dict[str, Contact] = {}
        self._ready = False
        self._subscription: Subscription = store.subscribe(
            CONTACTS, array_contains("participants", identity_id), self._apply
        )
        self._ready = True
        try:
            self._emit()
        except StoreUnavailableError:
            self._subscription.unsubscribe()
            raise

    def _apply(self, change: Change) -> None:
        record_id = change.record["id"]
        if change.kind == "removed":
            self._records.pop(record_id, None)
        else:
            self._records[record_id] = Contact.from_record(change.record)
        if self._ready:
            self._emit()

    @property
    def book(self) -> ContactBook:
        contacts, incoming, outgoing = [], [], []
        for contact in self._records.values():
            view = to_view(contact, self._identity_id, self._profiles)
            if contact.status is ContactStatus.ACCEPTED:
                contacts.append(view)
            elif contact.requestee_id == self._identity_id:
                incoming.append(view)
            else:
                outgoing.append(view)
        return ContactBook(contacts=contacts, incoming=incoming, outgoing=outgoing)

    def _emit(self) -> None:
        self._on_update(self.book)

    @property
    def active(self) -> bool:
        return self._subscription.active

    def unsubscribe(self) -> None:
        self._subscription.unsubscribe()
