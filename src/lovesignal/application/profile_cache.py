"""Read-through cache of identity id -> Profile, scoped to one session.

Profiles are immutable, so entries never expire. If profile editing is ever
added, this cache needs invalidation.
"""

import logging

from lovesignal.application.ports import PROFILES, DocumentStore
from lovesignal.domain import Profile

logger = logging.getLogger(__name__)


class ProfileCache:
    """One instance per session; not shared between concurrent sessions."""

    def __init__(self, store: DocumentStore, owner: Profile | None = None) -> None:
        self._store = store
        self._by_id: dict[str, Profile] = {}
        self.lookups = 0
        if owner is not None:
            self._by_id[owner.identity_id] = owner

    def get(self, identity_id: str) -> Profile | None:
        """Return the profile, reading through to the store on a miss. Misses are not cached."""
        cached = self._by_id.get(identity_id)
        if cached is not None:
            return cached
        self.lookups += 1
        record = self._store.get(PROFILES, identity_id)
        if record is None:
            logger.debug("No profile for identity %s", identity_id)
            return None
        profile = Profile.from_record(record)
        self._by_id[identity_id] = profile
        return profile

    def seed(self, profile: Profile) -> None:
        self._by_id[profile.identity_id] = profile

    def __contains__(self, identity_id: str) -> bool:
        return identity_id in self._by_id
