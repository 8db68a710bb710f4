"""
Blocklist
=========
Read-only view of the persisted block record. Entries are managed
out-of-band by operators; this service only answers membership.

Record shape (collection "blocklist", key = lower-cased address):
    {"wallet": "0x...", "reason": "...", "blocked_at": "...", "blocked_by": "..."}
"""
from bountyboard.services.durable_cache import DurableCache


class Blocklist:

    def __init__(self, cache: DurableCache) -> None:
        self._cache = cache

    def is_blocked(self, identity: str) -> bool:
        if not identity:
            return False
        return self._cache.has(identity.lower())

    def __len__(self) -> int:
        return len(self._cache)
