"""In-memory identity provider: email/password accounts and anonymous sessions."""

import threading
import uuid

from passlib.context import CryptContext

from lovesignal.application.ports import AuthCallback, AuthError
from lovesignal.infrastructure.listeners import ListenerSubscription

PASSWORD_MIN_LENGTH = 6

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class InMemoryIdentityProvider:
    """One active identity at a time, like a client SDK session."""

    def __init__(self) -> None:
        self._accounts: dict[str, tuple[str, str]] = {}  # email -> (id, password hash)
        self._current: str | None = None
        self._callbacks: dict[int, AuthCallback] = {}
        self._next_key = 0
        self._lock = threading.Lock()

    def sign_up(self, email: str, password: str) -> str:
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise AuthError(AuthError.INVALID_CREDENTIALS, "invalid email")
        if len(password or "") < PASSWORD_MIN_LENGTH:
            raise AuthError(AuthError.WEAK_PASSWORD)
        password_hash = pwd_context.hash(password)
        with self._lock:
            if email in self._accounts:
                raise AuthError(AuthError.EMAIL_IN_USE)
            identity_id = uuid.uuid4().hex
            self._accounts[email] = (identity_id, password_hash)
        self._set_current(identity_id)
        return identity_id

    def sign_in(self, email: str, password: str) -> str:
        account = self._accounts.get((email or "").strip().lower())
        if account is None:
            raise AuthError(AuthError.INVALID_CREDENTIALS)
        identity_id, password_hash = account
        if not pwd_context.verify(password or "", password_hash):
            raise AuthError(AuthError.INVALID_CREDENTIALS)
        self._set_current(identity_id)
        return identity_id

    def sign_in_anonymously(self) -> str:
        identity_id = f"anon-{uuid.uuid4().hex}"
        self._set_current(identity_id)
        return identity_id

    def sign_out(self) -> None:
        self._set_current(None)

    def current_identity(self) -> str | None:
        return self._current

    def on_auth_state_change(self, callback: AuthCallback) -> ListenerSubscription:
        with self._lock:
            key = self._next_key
            self._next_key += 1
            self._callbacks[key] = callback
        callback(self._current)
        return ListenerSubscription(self, key)

    def remove(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def _set_current(self, identity_id: str | None) -> None:
        with self._lock:
            self._current = identity_id
            callbacks = list(self._callbacks.values())
        for callback in callbacks:
            callback(identity_id)
