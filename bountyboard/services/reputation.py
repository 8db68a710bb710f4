"""
Identity / Reputation Client
============================
Talks to the external identity service that maps wallet addresses to
agent ids, records reputation feedback, and verifies signatures.

Contract:
    GET  {base}/agents/{address}       → {"agent_id": 2108 | null}
    POST {base}/feedback               {agent_id, value, tag1, tag2, endpoint} → {"tx_hash": ...}
    POST {base}/verify-signature       {address, message, signature} → {"valid": bool}

Locally Registered Agents:
    A client may tell us its agent id when claiming. The mapping is kept in
    memory and consulted before the remote lookup.

Delivery:
    Feedback posting is fire-and-forget (queued by the engine). Idempotency
    and delivery guarantees belong to the remote service.
"""
import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class IdentityServiceError(Exception):
    """The identity service was unreachable or refused the request."""


class ReputationClient:

    def __init__(self, base_url: Optional[str], timeout: float = 20.0) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.known_agents: Dict[str, int] = {}
        self._http: Optional[httpx.AsyncClient] = None

    @property
    def available(self) -> bool:
        return self.base_url is not None

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    async def _call(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        if not self.available:
            raise IdentityServiceError("Identity service not configured")
        http = await self._get_http()
        try:
            resp = await http.request(method, f"{self.base_url}{path}", json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise IdentityServiceError(f"Identity service returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise IdentityServiceError(f"Identity service unreachable: {e}") from e
        return data if isinstance(data, dict) else {}

    # -----------------------------------------------------------------------
    # Agent ids
    # -----------------------------------------------------------------------
    def register_agent(self, address: str, agent_id: int) -> None:
        self.known_agents[address.lower()] = agent_id
        logger.info("[REPUTATION] Registered agent mapping: %s -> %d", address, agent_id)

    async def get_agent_id(self, address: str) -> Optional[int]:
        normalized = address.lower()
        if normalized in self.known_agents:
            return self.known_agents[normalized]
        if not self.available:
            return None
        data = await self._call("GET", f"/agents/{normalized}")
        agent_id = data.get("agent_id")
        return int(agent_id) if agent_id is not None else None

    # -----------------------------------------------------------------------
    # Feedback
    # -----------------------------------------------------------------------
    async def post_feedback(
        self,
        agent_id: int,
        value: int,
        tag1: str,
        tag2: str = "",
        endpoint: str = "",
    ) -> Dict[str, Any]:
        logger.info("[REPUTATION] Posting feedback for agent %d: value=%d, tag1=%s", agent_id, value, tag1)
        data = await self._call("POST", "/feedback", {
            "agent_id": agent_id,
            "value": value,
            "tag1": tag1,
            "tag2": tag2,
            "endpoint": endpoint,
        })
        return {"success": True, "agent_id": agent_id, "tx_hash": data.get("tx_hash")}

    async def post_bounty_reputation(
        self,
        address: str,
        value: int,
        tag1: str,
        tag2: str = "",
        endpoint: str = "",
    ) -> Dict[str, Any]:
        """Resolve the agent id for ``address`` and post feedback, skipping when impossible."""
        if not self.available:
            logger.info("[REPUTATION] Skipping - identity service not configured")
            return {"success": False, "reason": "not-initialized"}
        agent_id = await self.get_agent_id(address)
        if agent_id is None:
            logger.info("[REPUTATION] Skipping - no agent ID for wallet %s", address)
            return {"success": False, "reason": "no-agent-id", "wallet": address}
        return await self.post_feedback(agent_id, value, tag1, tag2, endpoint)

    # -----------------------------------------------------------------------
    # Signatures
    # -----------------------------------------------------------------------
    async def verify_signature(self, address: str, message: str, signature: str) -> bool:
        """
        Ask the identity service whether ``signature`` over ``message`` was made by ``address``.

        Raises
        ------
        IdentityServiceError
            If the service is not configured or unreachable.
        """
        data = await self._call("POST", "/verify-signature", {
            "address": address.lower(),
            "message": message,
            "signature": signature,
        })
        return bool(data.get("valid"))
