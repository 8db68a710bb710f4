"""
Shared fixtures: a controllable clock and an in-memory row store whose
conditional update really evaluates its predicate at write time.
"""
import asyncio
import copy
from typing import Dict, List, Optional, Tuple

import pytest

from bountyboard.core.constants import USDC_UNIT
from bountyboard.engine.lifecycle import BountyEngine
from bountyboard.services.admission import AdmissionLimiter
from bountyboard.services.agent_registry import AgentRegistry
from bountyboard.services.blocklist import Blocklist
from bountyboard.services.durable_cache import CacheRegistry
from bountyboard.services.rate_limiter import RateLimiter
from bountyboard.services.row_store import RowStoreError

T0 = 1_700_000_000_000
CREATOR = "0xcreator000000000000000000000000000000001"
AGENT_A = "0xagent0000000000000000000000000000000000a"
AGENT_B = "0xagent0000000000000000000000000000000000b"


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> int:
        self.now += int(seconds * 1000)
        return self.now


class FakeRowStore:
    """Dict-backed stand-in for SupabaseRowStore."""

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, dict]] = {}
        self.next_id = 1
        self.fail_reads = False
        self.fail_writes = False
        self.conditional_calls = 0

    def _table(self, collection: str) -> Dict[str, dict]:
        return self.tables.setdefault(collection, {})

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def get_all(self, collection: str) -> List[Tuple[str, dict]]:
        if self.fail_reads:
            raise RowStoreError("GET failed: connection refused")
        return [(k, copy.deepcopy(v)) for k, v in self._table(collection).items()]

    async def get(self, collection: str, key: str) -> Optional[dict]:
        if self.fail_reads:
            raise RowStoreError("GET failed: connection refused")
        doc = self._table(collection).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert(self, collection: str, doc: dict) -> str:
        if self.fail_writes:
            raise RowStoreError("POST failed: connection refused")
        key = str(self.next_id)
        self.next_id += 1
        self._table(collection)[key] = copy.deepcopy(doc)
        return key

    async def upsert(self, collection: str, key: str, doc: dict) -> None:
        if self.fail_writes:
            raise RowStoreError("POST failed: connection refused")
        self._table(collection)[key] = copy.deepcopy(doc)

    async def conditional_update(self, collection: str, key: str, doc: dict, field: str, expected: str) -> bool:
        self.conditional_calls += 1
        # yield so concurrent claimants interleave like real network calls
        await asyncio.sleep(0)
        if self.fail_writes:
            raise RowStoreError("PATCH failed: connection refused")
        current = self._table(collection).get(key)
        if current is None or str(current.get(field)) != expected:
            return False
        self._table(collection)[key] = copy.deepcopy(doc)
        return True

    async def delete(self, collection: str, key: str) -> None:
        if self.fail_writes:
            raise RowStoreError("DELETE failed: connection refused")
        self._table(collection).pop(key, None)


def build_engine(
    store=None,
    clock=None,
    payments=None,
    reputation=None,
    limits=None,
    max_active_claims: int = 3,
) -> BountyEngine:
    clock = clock or FakeClock()
    caches = CacheRegistry(store)
    limiter = RateLimiter(limits or {"claim": 100, "submit": 100, "create": 100}, clock=clock)
    agents = AgentRegistry(caches.collection("agents"), reputation=reputation, clock=clock)
    return BountyEngine(
        caches.collection("bounties", secondary_field="uuid"),
        rate_limiter=limiter,
        admission=AdmissionLimiter(max_active_claims),
        blocklist=Blocklist(caches.collection("blocklist")),
        agents=agents,
        payments=payments,
        reputation=reputation,
        clock=clock,
    )


async def create_bounty(engine: BountyEngine, reward: int = 5 * USDC_UNIT, **kwargs):
    return await engine.create(
        kwargs.pop("creator", CREATOR),
        kwargs.pop("title", "Write a thread about the bounty board"),
        kwargs.pop("description", "Explain how agents claim and complete work."),
        reward,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeRowStore()
