"""Signal ledger: append signals, stream the love log, aggregate counts and reports."""

import logging
from collections.abc import Callable, Sequence

from lovesignal.application.account_service import identity_for_username
from lovesignal.application.contact_service import ContactService
from lovesignal.application.dto import (
    ByContact,
    ByIdentity,
    ByUsername,
    LogEntry,
    NotFound,
    PermissionDenied,
    RecipientTarget,
    SelfReferenceError,
    SignalCounts,
    SignalDeleted,
    SignalPatch,
    SignalSent,
    SignalUpdated,
    StoreUnavailable,
    ValidationError,
)
from lovesignal.application.log_stream import LogStream
from lovesignal.application.ports import (
    SERVER_TIMESTAMP,
    SIGNALS,
    DocumentStore,
    RecordNotFoundError,
    StoreUnavailableError,
    where,
)
from lovesignal.application.profile_cache import ProfileCache
from lovesignal.domain import DEFAULT_SIGNAL_CATEGORIES, Signal
from lovesignal.domain.love_index import LoveIndexPolicy, bounded_growth
from lovesignal.domain.report import CategoryBreakdown, breakdown_by_category, count_directions

logger = logging.getLogger(__name__)


class SignalLedger:
    """
    Append-only log of signals between identities.

    With allow_edits=True the sender may also edit or delete their own
    signals; the recipient never can.
    """

    def __init__(
        self,
        store: DocumentStore,
        profiles: ProfileCache | None = None,
        *,
        contacts: ContactService | None = None,
        categories: Sequence[str] = DEFAULT_SIGNAL_CATEGORIES,
        policy: LoveIndexPolicy = bounded_growth,
        allow_edits: bool = True,
    ) -> None:
        self._store = store
        self._profiles = profiles if profiles is not None else ProfileCache(store)
        self._contacts = contacts
        self._categories = tuple(categories)
        self._policy = policy
        self._allow_edits = allow_edits

    @property
    def categories(self) -> tuple[str, ...]:
        return self._categories

    def send_signal(
        self,
        sender_id: str,
        target: RecipientTarget,
        message: str,
        signal_type: str,
    ) -> SignalSent | NotFound | SelfReferenceError | ValidationError | StoreUnavailable:
        """Append a new signal. Never merges with or overwrites an existing record."""
        message_clean = (message or "").strip()
        invalid = self._validate(message_clean, signal_type)
        if invalid is not None:
            return invalid
        try:
            recipient = self._resolve(sender_id, target)
        except StoreUnavailableError as e:
            logger.warning("Recipient lookup failed: %s", e)
            return StoreUnavailable()
        if not isinstance(recipient, str):
            return recipient
        if recipient == sender_id:
            return SelfReferenceError(reason="You cannot send a signal to yourself.")
        try:
            record = self._store.create(
                SIGNALS,
                None,
                {
                    "senderId": sender_id,
                    "recipientId": recipient,
                    "message": message_clean,
                    "type": signal_type,
                    "timestamp": SERVER_TIMESTAMP,
                },
            )
        except StoreUnavailableError as e:
            logger.warning("Send signal failed: %s", e)
            return StoreUnavailable()
        logger.info("Signal %s (%s) %s -> %s", record["id"], signal_type, sender_id, recipient)
        return SignalSent(signal_id=record["id"], recipient_id=recipient)

    def _validate(self, message: str | None, signal_type: str | None) -> ValidationError | None:
        if message is not None and not message:
            return ValidationError(reason="Message is required.")
        if signal_type is not None and signal_type not in self._categories:
            return ValidationError(reason=f"Unknown signal type '{signal_type}'.")
        return None

    def _resolve(
        self, sender_id: str, target: RecipientTarget
    ) -> str | NotFound | ValidationError | StoreUnavailable:
        if isinstance(target, ByUsername):
            identity_id = identity_for_username(self._store, target.username)
            if identity_id is None:
                return NotFound(what="username", key=(target.username or "").strip().lower())
            return identity_id
        if isinstance(target, ByContact):
            if target.identity_id == sender_id:
                return target.identity_id
            if self._contacts is None:
                return NotFound(what="contact", key=target.identity_id)
            linked = self._contacts.is_contact(sender_id, target.identity_id)
            if isinstance(linked, StoreUnavailable):
                return linked
            if not linked:
                return NotFound(what="contact", key=target.identity_id)
            return target.identity_id
        if isinstance(target, ByIdentity):
            identity_id = (target.identity_id or "").strip()
            if not identity_id:
                return ValidationError(reason="Recipient id is required.")
            return identity_id
        return ValidationError(reason="Unsupported recipient target.")

    def edit_signal(
        self, signal_id: str, caller_id: str, patch: SignalPatch
    ) -> (
        SignalUpdated
        | NotFound
        | PermissionDenied
        | SelfReferenceError
        | ValidationError
        | StoreUnavailable
    ):
        """Sender-only edit of message, type, or recipient. Last write wins."""
        owned = self._owned(signal_id, caller_id)
        if not isinstance(owned, Signal):
            return owned
        if patch.is_empty():
            return SignalUpdated(signal_id=signal_id)
        message = patch.message.strip() if patch.message is not None else None
        invalid = self._validate(message, patch.type)
        if invalid is not None:
            return invalid
        fields: dict = {"updatedAt": SERVER_TIMESTAMP}
        if message is not None:
            fields["message"] = message
        if patch.type is not None:
            fields["type"] = patch.type
        if patch.recipient_id is not None:
            recipient = patch.recipient_id.strip()
            if not recipient:
                return ValidationError(reason="Recipient id is required.")
            if recipient == owned.sender_id:
                return SelfReferenceError(reason="You cannot send a signal to yourself.")
            fields["recipientId"] = recipient
        try:
            self._store.update(SIGNALS, signal_id, fields)
        except RecordNotFoundError:
            return NotFound(what="signal", key=signal_id)
        except StoreUnavailableError as e:
            logger.warning("Edit signal failed: %s", e)
            return StoreUnavailable()
        logger.info("Signal %s edited by %s", signal_id, caller_id)
        return SignalUpdated(signal_id=signal_id)

    def delete_signal(
        self, signal_id: str, caller_id: str
    ) -> SignalDeleted | NotFound | PermissionDenied | StoreUnavailable:
        """Sender-only removal."""
        owned = self._owned(signal_id, caller_id)
        if not isinstance(owned, Signal):
            return owned
        try:
            self._store.delete(SIGNALS, signal_id)
        except RecordNotFoundError:
            return NotFound(what="signal", key=signal_id)
        except StoreUnavailableError as e:
            logger.warning("Delete signal failed: %s", e)
            return StoreUnavailable()
        logger.info("Signal %s deleted by %s", signal_id, caller_id)
        return SignalDeleted(signal_id=signal_id)

    def _owned(
        self, signal_id: str, caller_id: str
    ) -> Signal | NotFound | PermissionDenied | StoreUnavailable:
        if not self._allow_edits:
            return PermissionDenied(reason="Signals cannot be changed once sent.")
        try:
            record = self._store.get(SIGNALS, signal_id)
        except StoreUnavailableError as e:
            logger.warning("Signal fetch failed: %s", e)
            return StoreUnavailable()
        if record is None:
            return NotFound(what="signal", key=signal_id)
        signal = Signal.from_record(record)
        if signal.sender_id != caller_id:
            logger.debug("Change of %s by %s denied: not sender", signal_id, caller_id)
            return PermissionDenied(reason="Only the sender can change this signal.")
        return signal

    def stream_logs(
        self,
        identity_id: str,
        on_update: Callable[[list[LogEntry]], None] | None = None,
    ) -> LogStream | StoreUnavailable:
        """Subscribe to the merged love log of identity_id."""
        try:
            return LogStream(
                self._store,
                self._profiles,
                identity_id,
                on_update,
                categories=self._categories,
                policy=self._policy,
            )
        except StoreUnavailableError as e:
            logger.warning("Log stream failed: %s", e)
            return StoreUnavailable()

    def _signals_of(self, identity_id: str) -> list[Signal]:
        records = self._store.query(SIGNALS, where(senderId=identity_id))
        records += self._store.query(SIGNALS, where(recipientId=identity_id))
        return [Signal.from_record(r) for r in records]

    def counts(self, identity_id: str) -> SignalCounts | StoreUnavailable:
        try:
            signals = self._signals_of(identity_id)
        except StoreUnavailableError as e:
            logger.warning("Signal count failed: %s", e)
            return StoreUnavailable()
        sent, received = count_directions(signals, identity_id)
        return SignalCounts(sent=sent, received=received)

    def love_index(self, identity_id: str) -> int | StoreUnavailable:
        counts = self.counts(identity_id)
        if isinstance(counts, StoreUnavailable):
            return counts
        return self._policy(counts.sent, counts.received)

    def compute_report_breakdown(
        self, identity_id: str
    ) -> list[CategoryBreakdown] | StoreUnavailable:
        """Per-category sent/received counts over the fixed category set."""
        try:
            signals = self._signals_of(identity_id)
        except StoreUnavailableError as e:
            logger.warning("Report query failed: %s", e)
            return StoreUnavailable()
        return breakdown_by_category(signals, identity_id, self._categories)
