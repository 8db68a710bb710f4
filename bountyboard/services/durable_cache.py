"""
Durable Cache
=============
Write-through map between process memory and the remote row store.

Reads:
    - get / has / values are synchronous against memory
    - get() may fall back to a secondary key space (e.g. bounty UUID)
      when the primary key misses

Writes:
    - set / delete change memory immediately, then queue a best-effort
      remote write on the background writer (fire-and-forget)
    - a failed remote write is logged and does NOT roll back memory;
      memory is authoritative for the lifetime of the process
    - insert() is awaited because the store assigns the key
    - compare_and_set() is awaited and is the only conditional write; it
      drains the write-behind queue before issuing the conditional write

Cold Start:
    - load() pulls every row into memory and then opens the readiness gate
    - a missing store key or a failed read degrades to memory-only; the
      gate still opens so the service keeps serving
    - request handling must await ready() first (see main.py middleware)

No in-process locking is needed: handlers run on one event loop and only
suspend at I/O boundaries.
"""
import asyncio
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from bountyboard.services.background import BackgroundQueue
from bountyboard.services.row_store import RowStoreError, SupabaseRowStore

logger = logging.getLogger(__name__)


class DurableCache:
    """
    In-memory view of one collection, mirrored to the row store.

    Usage:
        cache = DurableCache("bounties", store, writer, secondary_field="uuid")
        await cache.load()
        cache.set("42", {"uuid": "abc", "title": "Hello"})
        cache.get("abc")   # secondary lookup → same document
    """

    def __init__(
        self,
        collection: str,
        store: Optional[SupabaseRowStore],
        writer: BackgroundQueue,
        secondary_field: Optional[str] = None,
    ) -> None:
        self.collection = collection
        self._store = store
        self._writer = writer
        self._secondary_field = secondary_field
        self._cache: Dict[str, dict] = {}
        # secondary value → primary key
        self._secondary: Dict[str, str] = {}
        self._loaded = asyncio.Event()

    # -----------------------------------------------------------------------
    # Readiness
    # -----------------------------------------------------------------------
    @property
    def is_durable(self) -> bool:
        return self._store is not None

    @property
    def is_ready(self) -> bool:
        return self._loaded.is_set()

    async def ready(self) -> None:
        await self._loaded.wait()

    async def load(self) -> int:
        """
        Populate memory from the row store and open the readiness gate.

        Returns
        -------
        int
            Number of rows loaded (0 in memory-only mode or on failure).
        """
        if self._loaded.is_set():
            return len(self._cache)
        try:
            if self._store is None:
                logger.info("[STORE] No row store configured, memory-only for %s", self.collection)
                return 0
            try:
                rows = await self._store.get_all(self.collection)
            except RowStoreError as e:
                logger.error("[STORE] Load failed for %s, serving from memory: %s", self.collection, e)
                return 0
            for key, doc in rows:
                self._put_local(key, doc)
            logger.info("[STORE] Loaded %d items for %s", len(rows), self.collection)
            return len(rows)
        finally:
            self._loaded.set()

    # -----------------------------------------------------------------------
    # Synchronous reads
    # -----------------------------------------------------------------------
    def _resolve(self, key: str) -> Optional[str]:
        key = str(key)
        if key in self._cache:
            return key
        if self._secondary_field:
            return self._secondary.get(key)
        return None

    def get(self, key: str) -> Optional[dict]:
        resolved = self._resolve(key)
        return self._cache.get(resolved) if resolved is not None else None

    def resolve_key(self, key: str) -> Optional[str]:
        """Primary key for ``key`` (which may be a secondary value)."""
        return self._resolve(key)

    def has(self, key: str) -> bool:
        return self._resolve(key) is not None

    def values(self) -> List[dict]:
        return list(self._cache.values())

    def items(self) -> List[Tuple[str, dict]]:
        return list(self._cache.items())

    def __len__(self) -> int:
        return len(self._cache)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._cache))

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------
    def _put_local(self, key: str, doc: dict) -> None:
        previous = self._cache.get(key)
        if previous is not None and self._secondary_field:
            old = previous.get(self._secondary_field)
            if old is not None and self._secondary.get(str(old)) == key:
                del self._secondary[str(old)]
        self._cache[key] = doc
        if self._secondary_field:
            value = doc.get(self._secondary_field)
            if value is not None:
                self._secondary[str(value)] = key

    def _drop_local(self, key: str) -> Optional[dict]:
        doc = self._cache.pop(key, None)
        if doc is not None and self._secondary_field:
            value = doc.get(self._secondary_field)
            if value is not None and self._secondary.get(str(value)) == key:
                del self._secondary[str(value)]
        return doc

    def set(self, key: str, doc: dict) -> None:
        """Write to memory now, persist in the background."""
        key = str(key)
        self._put_local(key, doc)
        self._persist(key, doc)

    def delete(self, key: str) -> bool:
        resolved = self._resolve(key)
        if resolved is None:
            return False
        self._drop_local(resolved)
        self._remove(resolved)
        return True

    def _persist(self, key: str, doc: dict) -> None:
        if self._store is None:
            return
        store, collection = self._store, self.collection
        self._writer.submit(
            f"persist {collection}/{key}",
            lambda: store.upsert(collection, key, doc),
        )

    def _remove(self, key: str) -> None:
        if self._store is None:
            return
        store, collection = self._store, self.collection
        self._writer.submit(
            f"remove {collection}/{key}",
            lambda: store.delete(collection, key),
        )

    def _next_local_key(self) -> str:
        numeric = [int(k) for k in self._cache if k.isdigit()]
        return str(max(numeric, default=0) + 1)

    async def insert(self, doc: dict) -> str:
        """
        Insert a new document and return its store-assigned key.

        Falls back to a locally generated numeric key when the store is
        absent or the insert fails.
        """
        key: Optional[str] = None
        if self._store is not None:
            try:
                key = await self._store.insert(self.collection, doc)
            except RowStoreError as e:
                logger.error("[STORE] Insert failed for %s, keeping in memory only: %s", self.collection, e)
        if key is None:
            key = self._next_local_key()
        self._put_local(key, doc)
        return key

    async def compare_and_set(self, key: str, doc: dict, field: str, expected: str) -> bool:
        """
        Conditionally replace ``key`` with ``doc`` if ``field`` still equals ``expected``.

        With a row store the predicate is evaluated by the store inside the
        write itself. Without one this degrades to an in-process
        check-then-set that is NOT safe across processes.

        Returns
        -------
        bool
            True if the write took effect, False if the predicate no longer held.

        Raises
        ------
        RowStoreError
            The row store was configured but could not be reached.
        """
        key = str(key)
        if self._store is None:
            logger.warning(
                "[STORE] Non-atomic compare-and-set fallback for %s/%s "
                "(memory-only mode, concurrent writers can lose updates)",
                self.collection, key,
            )
            current = self._cache.get(key)
            if current is None or current.get(field) != expected:
                return False
            self._put_local(key, doc)
            return True

        # queued write-behind must land first or the predicate sees stale rows
        await self._writer.drain()
        matched = await self._store.conditional_update(self.collection, key, doc, field, expected)
        if matched:
            self._put_local(key, doc)
        return matched

    async def refresh(self, key: str) -> Optional[dict]:
        """
        Re-read one document from the store into memory. Memory-only: returns memory.

        Raises
        ------
        RowStoreError
            The store could not be read; memory is left untouched.
        """
        key = str(key)
        if self._store is None:
            return self._cache.get(key)
        doc = await self._store.get(self.collection, key)
        if doc is None:
            self._drop_local(key)
            return None
        self._put_local(key, doc)
        return doc

    async def flush(self) -> None:
        """Wait for every queued remote write to finish."""
        await self._writer.drain()


class CacheRegistry:
    """
    One DurableCache per collection, sharing a row store and a write-behind queue.

    Usage:
        registry = CacheRegistry(store)
        bounties = registry.collection("bounties", secondary_field="uuid")
        await registry.load_all()
    """

    def __init__(self, store: Optional[SupabaseRowStore], writer: Optional[BackgroundQueue] = None) -> None:
        self.store = store
        self.writer = writer or BackgroundQueue("store-writer")
        self._caches: Dict[str, DurableCache] = {}

    @property
    def is_durable(self) -> bool:
        return self.store is not None

    def collection(self, name: str, secondary_field: Optional[str] = None) -> DurableCache:
        if name not in self._caches:
            self._caches[name] = DurableCache(name, self.store, self.writer, secondary_field)
        return self._caches[name]

    async def load_all(self) -> None:
        if self.store is not None:
            await self.store.open()
        await asyncio.gather(*(c.load() for c in self._caches.values()))

    async def ready(self) -> None:
        await asyncio.gather(*(c.ready() for c in self._caches.values()))

    @property
    def is_ready(self) -> bool:
        return all(c.is_ready for c in self._caches.values())

    async def close(self) -> None:
        await self.writer.close()
        if self.store is not None:
            await self.store.close()
