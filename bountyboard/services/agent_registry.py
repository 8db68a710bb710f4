"""
Agent Registry
==============
Long-lived identity records, keyed by lower-cased address and mirrored to
the row store through the "agents" collection.

Completion side effect:
    record_completion() adds the fixed reputation award, bumps the
    completed counter and accumulates the net reward earned.
"""
import logging
from typing import Callable, List, Optional

from bountyboard.core.constants import REPUTATION_AWARD
from bountyboard.core.errors import InvalidInput, NotFound
from bountyboard.models.agent import Agent
from bountyboard.models.updates import AgentPatch
from bountyboard.services.durable_cache import DurableCache
from bountyboard.services.notifier import WebhookNotifier
from bountyboard.services.reputation import ReputationClient
from bountyboard.utils.clock import now_ms

logger = logging.getLogger(__name__)


class AgentRegistry:

    def __init__(
        self,
        cache: DurableCache,
        notifier: Optional[WebhookNotifier] = None,
        reputation: Optional[ReputationClient] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._cache = cache
        self._notifier = notifier
        self._reputation = reputation
        self._clock = clock

    def register(
        self,
        address: str,
        name: str,
        capabilities: Optional[List[str]] = None,
        endpoint: Optional[str] = None,
        webhook_url: Optional[str] = None,
        agent_id: Optional[int] = None,
    ) -> Agent:
        if not address or not name:
            raise InvalidInput("address and name required")
        normalized = address.lower()
        existing = self.get(normalized)
        now = self._clock()
        agent = Agent(
            address=normalized,
            name=name,
            capabilities=capabilities or [],
            endpoint=endpoint,
            agent_id=agent_id,
            reputation=existing.reputation if existing else 0,
            completed_bounties=existing.completed_bounties if existing else 0,
            total_earned=existing.total_earned if existing else 0,
            created_at=existing.created_at if existing else now,
            updated_at=now if existing else None,
        )
        self._cache.set(normalized, agent.model_dump())
        logger.info("[AGENT] Registered %s (%s)", name, normalized)

        if webhook_url and self._notifier is not None:
            self._notifier.register(name, webhook_url, agent_address=normalized, key=normalized)
        if agent_id is not None and self._reputation is not None:
            self._reputation.register_agent(normalized, agent_id)
        return agent

    def get(self, address: str) -> Optional[Agent]:
        doc = self._cache.get(address.lower())
        return Agent.model_validate(doc) if doc is not None else None

    def require(self, address: str) -> Agent:
        agent = self.get(address)
        if agent is None:
            raise NotFound("Agent not found")
        return agent

    def update(self, address: str, patch: AgentPatch) -> Agent:
        agent = self.require(address)
        changes = patch.changed_fields()
        if not changes:
            return agent
        updated = agent.model_copy(update={**changes, "updated_at": self._clock()})
        self._cache.set(updated.address, updated.model_dump())
        logger.info("[AGENT] Updated %s: %s", updated.address, ", ".join(sorted(changes)))
        return updated

    def record_completion(self, address: str, net_reward: int) -> Optional[Agent]:
        """Apply the completion award. Unregistered addresses are skipped."""
        agent = self.get(address)
        if agent is None:
            logger.info("[AGENT] No registered agent for %s, reputation not updated", address)
            return None
        agent.reputation += REPUTATION_AWARD
        agent.completed_bounties += 1
        agent.total_earned += net_reward
        agent.updated_at = self._clock()
        self._cache.set(agent.address, agent.model_dump())
        logger.info(
            "[AGENT] %s reputation %d (+%d), completed %d",
            agent.address, agent.reputation, REPUTATION_AWARD, agent.completed_bounties,
        )
        return agent

    def __len__(self) -> int:
        return len(self._cache)
