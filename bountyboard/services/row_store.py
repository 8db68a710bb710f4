"""
Row Store
=========
Async client for the durable row store: a mapping of
(collection, key) → JSON document served over the PostgREST HTTP API.

Table layout (one table per collection):
    id          text primary key, defaulted from a sequence when omitted
    data        jsonb document
    updated_at  timestamptz

Operations:
    get_all             — every (key, document) pair in a collection
    get                 — one document by key
    insert              — store assigns the key, returned to the caller
    upsert              — write a document under an explicit key
    conditional_update  — write only if data->>field still equals expected;
                          returns False when zero rows matched
    delete              — remove one key

Failure Model:
    Any transport or HTTP error raises RowStoreError. Callers decide whether
    to degrade (cache reads) or surface UpstreamUnavailable (claims).
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class RowStoreError(Exception):
    """Raised when the row store cannot be reached or rejects a request."""


class SupabaseRowStore:
    """
    PostgREST-backed row store.

    Usage:
        store = SupabaseRowStore(url, key)
        await store.open()
        key = await store.insert("bounties", {"title": "..."})
        ok = await store.conditional_update("bounties", key, doc, "status", "open")
        await store.close()
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 20.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http: Optional[httpx.AsyncClient] = None

    # -----------------------------------------------------------------------
    # HTTP client lifecycle
    # -----------------------------------------------------------------------
    async def open(self) -> None:
        await self._get_http()

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.timeout),
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _request(
        self,
        method: str,
        collection: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        prefer: str = "return=representation",
    ) -> list:
        http = await self._get_http()
        try:
            resp = await http.request(
                method, f"/{collection}", params=params, json=json,
                headers={"Prefer": prefer},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RowStoreError(
                f"{method} {collection} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RowStoreError(f"{method} {collection} failed: {e}") from e

        if method == "DELETE" or not resp.content:
            return []
        rows = resp.json()
        return rows if isinstance(rows, list) else [rows]

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat()

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------
    async def get_all(self, collection: str) -> List[Tuple[str, dict]]:
        rows = await self._request("GET", collection, params={"select": "id,data"})
        return [(str(r["id"]), r.get("data") or {}) for r in rows]

    async def get(self, collection: str, key: str) -> Optional[dict]:
        rows = await self._request(
            "GET", collection, params={"select": "id,data", "id": f"eq.{key}"}
        )
        return rows[0].get("data") if rows else None

    async def insert(self, collection: str, doc: dict) -> str:
        rows = await self._request(
            "POST", collection, json={"data": doc, "updated_at": self._timestamp()}
        )
        if not rows:
            raise RowStoreError(f"POST {collection} returned no row")
        return str(rows[0]["id"])

    async def upsert(self, collection: str, key: str, doc: dict) -> None:
        await self._request(
            "POST", collection,
            json={"id": key, "data": doc, "updated_at": self._timestamp()},
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def conditional_update(
        self, collection: str, key: str, doc: dict, field: str, expected: str
    ) -> bool:
        # The predicate travels inside the write's filter, so a concurrent
        # writer that got there first leaves this PATCH matching zero rows.
        rows = await self._request(
            "PATCH", collection,
            params={"id": f"eq.{key}", f"data->>{field}": f"eq.{expected}"},
            json={"data": doc, "updated_at": self._timestamp()},
        )
        return len(rows) > 0

    async def delete(self, collection: str, key: str) -> None:
        await self._request(
            "DELETE", collection, params={"id": f"eq.{key}"}, prefer="return=minimal"
        )
