"""
Application Container
=====================
Builds every component from config and wires them together. Nothing else
reads configuration; components receive their collaborators here.

Lifecycle:
    container = build_container()
    await container.start()    # start workers and sweeper, load caches in the background
    ...
    await container.close()    # drain queues, close HTTP clients
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from bountyboard.core import config
from bountyboard.core.constants import ACTION_CLAIM, ACTION_CREATE, ACTION_SUBMIT
from bountyboard.engine.anti_gaming import AntiGamingPolicy
from bountyboard.engine.lifecycle import BountyEngine
from bountyboard.llm.client import AdvisoryGrader
from bountyboard.services.admission import AdmissionLimiter
from bountyboard.services.agent_registry import AgentRegistry
from bountyboard.services.background import BackgroundQueue
from bountyboard.services.blocklist import Blocklist
from bountyboard.services.durable_cache import CacheRegistry
from bountyboard.services.notifier import WebhookNotifier
from bountyboard.services.payment import PaymentExecutor
from bountyboard.services.rate_limiter import RateLimiter
from bountyboard.services.reputation import ReputationClient
from bountyboard.services.row_store import SupabaseRowStore

logger = logging.getLogger(__name__)


@dataclass
class Container:
    caches: CacheRegistry
    outbound: BackgroundQueue
    rate_limiter: RateLimiter
    notifier: WebhookNotifier
    payments: PaymentExecutor
    reputation: ReputationClient
    advisory: AdvisoryGrader
    agents: AgentRegistry
    engine: BountyEngine
    internal_key: Optional[str] = None
    treasury_address: str = ""
    _load_task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)

    @property
    def is_ready(self) -> bool:
        return self.caches.is_ready

    async def ready(self) -> None:
        await self.caches.ready()

    async def start(self) -> None:
        """Start workers and begin the cache load. Requests wait on ready()."""
        self.caches.writer.start()
        self.outbound.start()
        self.rate_limiter.start()
        self._load_task = asyncio.create_task(self._load())

    async def _load(self) -> None:
        await self.caches.load_all()
        logger.info(
            "[STARTUP] Ready (durable=%s, payments=%s, reputation=%s, advisory=%s)",
            self.caches.is_durable, self.payments.available,
            self.reputation.available, self.advisory.available,
        )

    async def close(self) -> None:
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            try:
                await self._load_task
            except asyncio.CancelledError:
                pass
        await self.rate_limiter.stop()
        await self.outbound.close()
        await self.caches.close()
        await self.notifier.close()
        await self.payments.close()
        await self.reputation.close()
        await self.advisory.close()
        logger.info("[SHUTDOWN] Container closed")

    def is_moderator(self, key: Optional[str]) -> bool:
        return bool(self.internal_key) and key == self.internal_key


def build_container(store: Optional[SupabaseRowStore] = None, internal_key: Optional[str] = None) -> Container:
    """
    Build the component graph.

    Parameters
    ----------
    store : SupabaseRowStore, optional
        Row store to use. Defaults to one built from SUPABASE_URL /
        SUPABASE_SERVICE_ROLE_KEY, or memory-only when the key is unset.
    internal_key : str, optional
        Moderator key. Defaults to INTERNAL_KEY.
    """
    if store is None and config.SUPABASE_URL and config.SUPABASE_KEY:
        store = SupabaseRowStore(config.SUPABASE_URL, config.SUPABASE_KEY, config.OUTBOUND_TIMEOUT_SECONDS)
    if store is None:
        logger.warning("[STARTUP] No row store configured, running memory-only")

    caches = CacheRegistry(store)
    bounties = caches.collection("bounties", secondary_field="uuid")
    agents_cache = caches.collection("agents")
    webhooks_cache = caches.collection("webhooks")
    blocklist_cache = caches.collection("blocklist")

    outbound = BackgroundQueue("outbound")
    rate_limiter = RateLimiter(
        {
            ACTION_CLAIM: config.RATE_LIMIT_MAX_CLAIMS,
            ACTION_SUBMIT: config.RATE_LIMIT_MAX_SUBMISSIONS,
            ACTION_CREATE: config.RATE_LIMIT_MAX_CREATES,
        },
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        sweep_interval_seconds=config.RATE_LIMIT_SWEEP_SECONDS,
    )
    notifier = WebhookNotifier(webhooks_cache, outbound, config.PUBLIC_BASE_URL, config.OUTBOUND_TIMEOUT_SECONDS)
    payments = PaymentExecutor(
        config.PAYMENT_EXECUTOR_URL, config.PAYMENT_EXECUTOR_TOKEN, config.OUTBOUND_TIMEOUT_SECONDS
    )
    reputation = ReputationClient(config.IDENTITY_SERVICE_URL, config.OUTBOUND_TIMEOUT_SECONDS)
    advisory = AdvisoryGrader(config.OPENAI_API_KEY, config.OPENAI_BASE_URL, config.OPENAI_MODEL)
    agents = AgentRegistry(agents_cache, notifier=notifier, reputation=reputation)

    engine = BountyEngine(
        bounties,
        rate_limiter=rate_limiter,
        admission=AdmissionLimiter(config.MAX_ACTIVE_CLAIMS),
        policy=AntiGamingPolicy(),
        blocklist=Blocklist(blocklist_cache),
        agents=agents,
        notifier=notifier,
        payments=payments,
        reputation=reputation,
        advisory=advisory,
        outbound=outbound,
        public_base_url=config.PUBLIC_BASE_URL,
    )
    return Container(
        caches=caches,
        outbound=outbound,
        rate_limiter=rate_limiter,
        notifier=notifier,
        payments=payments,
        reputation=reputation,
        advisory=advisory,
        agents=agents,
        engine=engine,
        internal_key=internal_key if internal_key is not None else config.INTERNAL_KEY,
        treasury_address=config.TREASURY_ADDRESS,
    )
