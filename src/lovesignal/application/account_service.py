"""Registration, sign-in, and profile lookup on top of an identity provider."""

import logging

from lovesignal.application.dto import (
    AlreadyExists,
    AuthFailed,
    NotFound,
    Registered,
    SignedIn,
    StoreUnavailable,
    ValidationError,
)
from lovesignal.application.ports import (
    PROFILES,
    USERNAMES,
    AuthCallback,
    AuthError,
    DocumentStore,
    IdentityProvider,
    KeyExistsError,
    StoreUnavailableError,
    Subscription,
    WriteOp,
)
from lovesignal.domain import Profile, normalize_username
from lovesignal.domain.entities import USERNAME_MIN_LENGTH

logger = logging.getLogger(__name__)

AUTH_MESSAGES = {
    AuthError.INVALID_CREDENTIALS: "Sign-in failed. Check your email and password.",
    AuthError.EMAIL_IN_USE: "This email is already registered.",
    AuthError.WEAK_PASSWORD: "Password is too weak; use at least 6 characters.",
}
AUTH_FALLBACK_MESSAGE = "Something went wrong, please try again later."


def auth_message(error: AuthError) -> str:
    """User-displayable text for a provider failure. Never exposes provider codes."""
    return AUTH_MESSAGES.get(error.code, AUTH_FALLBACK_MESSAGE)


def identity_for_username(store: DocumentStore, username: str) -> str | None:
    """Resolve a username to its identity id via the reservation record."""
    final_username = normalize_username(username)
    if not final_username:
        return None
    reservation = store.get(USERNAMES, final_username)
    if reservation is None:
        return None
    return reservation.get("identityId")


def _validate(username: str, email: str) -> ValidationError | None:
    if len(username) < USERNAME_MIN_LENGTH:
        return ValidationError(
            reason=f"Username must be at least {USERNAME_MIN_LENGTH} characters."
        )
    if not email:
        return ValidationError(reason="Email is required.")
    return None


class AccountService:
    """Profiles are created exactly once, together with their username reservation."""

    def __init__(self, store: DocumentStore, identity: IdentityProvider | None = None) -> None:
        self._store = store
        self._identity = identity

    def register(
        self, email: str, password: str, username: str
    ) -> Registered | AlreadyExists | ValidationError | AuthFailed | StoreUnavailable:
        """Sign up with the identity provider, then reserve the username and create the profile."""
        if self._identity is None:
            raise RuntimeError("register requires an identity provider")
        final_username = normalize_username(username)
        email = (email or "").strip()
        invalid = _validate(final_username, email)
        if invalid is not None:
            return invalid

        # Fast path only; the atomic batch below is what enforces uniqueness.
        try:
            if self._store.get(USERNAMES, final_username) is not None:
                return AlreadyExists(what="username", key=final_username)
        except StoreUnavailableError as e:
            logger.warning("Username check failed: %s", e)
            return StoreUnavailable()

        try:
            identity_id = self._identity.sign_up(email, password)
        except AuthError as e:
            logger.info("Sign-up rejected (%s)", e.code)
            return AuthFailed(message=auth_message(e))
        result = self.create_profile(identity_id, final_username, email)
        if not isinstance(result, Registered):
            logger.info("Profile creation for %s failed; signing out", identity_id)
            self._identity.sign_out()
        return result

    def create_profile(
        self, identity_id: str, username: str, email: str
    ) -> Registered | AlreadyExists | ValidationError | StoreUnavailable:
        """Create profile + username reservation as one all-or-nothing batch."""
        final_username = normalize_username(username)
        email = (email or "").strip()
        invalid = _validate(final_username, email)
        if invalid is not None:
            return invalid
        if not identity_id or not identity_id.strip():
            return ValidationError(reason="Identity id is required.")

        profile = Profile(identity_id=identity_id, username=final_username, email=email)
        ops = [
            WriteOp(
                "create",
                PROFILES,
                identity_id,
                {"identityId": identity_id, "username": final_username, "email": email},
            ),
            WriteOp("create", USERNAMES, final_username, {"identityId": identity_id}),
        ]
        try:
            self._store.batch(ops)
        except KeyExistsError as e:
            what = "username" if e.collection == USERNAMES else "profile"
            logger.info("Registration lost on %s/%s", e.collection, e.record_id)
            return AlreadyExists(what=what, key=e.record_id)
        except StoreUnavailableError as e:
            logger.warning("Registration batch failed: %s", e)
            return StoreUnavailable()
        logger.info("Registered %s as @%s", identity_id, final_username)
        return Registered(profile=profile)

    def sign_in(self, email: str, password: str) -> SignedIn | AuthFailed:
        if self._identity is None:
            raise RuntimeError("sign_in requires an identity provider")
        try:
            identity_id = self._identity.sign_in((email or "").strip(), password)
        except AuthError as e:
            logger.info("Sign-in rejected (%s)", e.code)
            return AuthFailed(message=auth_message(e))
        profile = self.get_profile(identity_id)
        return SignedIn(
            identity_id=identity_id,
            profile=profile if isinstance(profile, Profile) else None,
        )

    def sign_out(self) -> None:
        if self._identity is not None:
            self._identity.sign_out()

    def ensure_identity(self) -> str:
        """Current identity, or a fresh anonymous one when no session exists."""
        if self._identity is None:
            raise RuntimeError("ensure_identity requires an identity provider")
        current = self._identity.current_identity()
        if current:
            return current
        identity_id = self._identity.sign_in_anonymously()
        logger.info("Signed in anonymously as %s", identity_id)
        return identity_id

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        if self._identity is None:
            raise RuntimeError("on_auth_state_change requires an identity provider")
        return self._identity.on_auth_state_change(callback)

    def get_profile(self, identity_id: str) -> Profile | NotFound | StoreUnavailable:
        try:
            record = self._store.get(PROFILES, identity_id)
        except StoreUnavailableError as e:
            logger.warning("Profile fetch failed: %s", e)
            return StoreUnavailable()
        if record is None:
            return NotFound(what="profile", key=identity_id)
        return Profile.from_record(record)

    def find_by_username(self, username: str) -> Profile | NotFound | StoreUnavailable:
        """Exact lookup by case-folded username."""
        final_username = normalize_username(username)
        if not final_username:
            return NotFound(what="username", key="")
        try:
            identity_id = identity_for_username(self._store, final_username)
        except StoreUnavailableError as e:
            logger.warning("Username lookup failed: %s", e)
            return StoreUnavailable()
        if identity_id is None:
            return NotFound(what="username", key=final_username)
        return self.get_profile(identity_id)
