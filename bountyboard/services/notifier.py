"""
Webhook Notifier
================
Registry of notification sinks and fire-and-forget delivery of
new-bounty events.

Payload (POST, JSON):
    {
      "type": "new_bounty",
      "bounty": {id, title, description, reward, rewardFormatted, tags,
                 deadline, requirements, claimUrl, detailsUrl},
      "timestamp": <epoch ms>
    }

Delivery:
    - one background job per registered endpoint, queued on the
      notification queue; the request that created the bounty never waits
    - a failed delivery is logged by the queue and dropped (no retries)
"""
import logging
import uuid
from typing import Callable, List, Optional
from urllib.parse import urlparse

import httpx

from bountyboard.core.errors import InvalidInput
from bountyboard.models.agent import Webhook
from bountyboard.models.bounty import Bounty
from bountyboard.services.background import BackgroundQueue
from bountyboard.services.durable_cache import DurableCache
from bountyboard.utils.clock import now_ms

logger = logging.getLogger(__name__)


def validate_endpoint(endpoint: str) -> str:
    """Return ``endpoint`` if it is an absolute http(s) URL, else raise InvalidInput."""
    parsed = urlparse(endpoint or "")
    if not parsed.scheme or not parsed.netloc:
        raise InvalidInput("Invalid webhook endpoint URL")
    if parsed.scheme not in ("http", "https"):
        raise InvalidInput("Webhook endpoint must be http or https")
    return endpoint


class WebhookNotifier:

    def __init__(
        self,
        cache: DurableCache,
        queue: BackgroundQueue,
        public_base_url: str,
        timeout: float = 10.0,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._cache = cache
        self._queue = queue
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = timeout
        self._clock = clock
        self._http: Optional[httpx.AsyncClient] = None

    async def _get_http(self) -> httpx.AsyncClient:
        """Lazy-initialise the HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                timeout=httpx.Timeout(self.timeout),
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    # -----------------------------------------------------------------------
    # Registry
    # -----------------------------------------------------------------------
    def register(
        self,
        name: str,
        endpoint: str,
        agent_address: Optional[str] = None,
        key: Optional[str] = None,
    ) -> Webhook:
        """
        Register (or replace) a notification sink.

        Parameters
        ----------
        key : str, optional
            Registry key. Agent-owned webhooks use the agent address so
            re-registering replaces the previous endpoint.
        """
        if not name or not endpoint:
            raise InvalidInput("name and endpoint required")
        validate_endpoint(endpoint)
        webhook = Webhook(
            id=key or str(uuid.uuid4()),
            name=name,
            endpoint=endpoint,
            agent_address=agent_address.lower() if agent_address else None,
            created_at=self._clock(),
        )
        self._cache.set(webhook.id, webhook.model_dump())
        logger.info("[WEBHOOK] Registered: %s -> %s", name, endpoint)
        return webhook

    def list(self) -> List[Webhook]:
        return [Webhook.model_validate(doc) for doc in self._cache.values()]

    def __len__(self) -> int:
        return len(self._cache)

    # -----------------------------------------------------------------------
    # Delivery
    # -----------------------------------------------------------------------
    def build_payload(self, bounty: Bounty) -> dict:
        return {
            "type": "new_bounty",
            "bounty": {
                "id": bounty.id,
                "title": bounty.title,
                "description": bounty.description,
                "reward": bounty.reward,
                "rewardFormatted": bounty.reward_formatted,
                "tags": bounty.tags,
                "deadline": bounty.deadline,
                "requirements": bounty.requirements,
                "claimUrl": f"{self.public_base_url}/bounties/{bounty.id}/claim",
                "detailsUrl": f"{self.public_base_url}/bounties/{bounty.id}",
            },
            "timestamp": self._clock(),
        }

    def notify_new_bounty(self, bounty: Bounty) -> int:
        """
        Queue one delivery per registered webhook.

        Returns
        -------
        int
            Number of deliveries queued.
        """
        payload = self.build_payload(bounty)
        queued = 0
        for webhook in self.list():
            endpoint, name = webhook.endpoint, webhook.name
            if self._queue.submit(
                f"webhook {name} bounty {bounty.id}",
                lambda endpoint=endpoint, name=name: self._deliver(name, endpoint, payload),
            ):
                queued += 1
        if queued:
            logger.info("[NOTIFY] Queued %d webhook deliveries for bounty %s", queued, bounty.id)
        return queued

    async def _deliver(self, name: str, endpoint: str, payload: dict) -> None:
        http = await self._get_http()
        resp = await http.post(endpoint, json=payload)
        resp.raise_for_status()
        logger.info("[NOTIFY] Delivered to %s: %d", name, resp.status_code)
