"""
Rate Limiter
============
Per-identity, per-action fixed-window counter.

Algorithm (per (identity, action) key):
    1. No entry, or now - window_start > window → count = 0, window restarts now
    2. count >= limit[action] → reject, retry_after = ceil((window_start + window - now) / 1000)
    3. otherwise count += 1 and accept

Boundary Bursts:
    This is a fixed window, not a token bucket or sliding log. A client can
    spend its full limit at the very end of one window and again at the
    start of the next, i.e. up to 2 × limit in quick succession. Kept on
    purpose; changing it changes what the configured limits mean.

Eviction:
    A background sweep runs every sweep_interval seconds and evicts keys
    whose window started more than two windows ago.

Scope:
    Counters live in this process only. A restart resets them and
    horizontally scaled instances do not share them.
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from bountyboard.core.constants import ACTION_CLAIM
from bountyboard.core.errors import RateLimited
from bountyboard.utils.clock import now_ms

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    window_start: int   # epoch ms


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int = 0   # seconds


class RateLimiter:
    """
    Fixed-window limiter keyed by (identity, action).

    Usage:
        limiter = RateLimiter({"claim": 3, "submit": 5, "create": 2})
        decision = limiter.check("0xabc", "claim")
        limiter.enforce("0xabc", "claim")   # raises RateLimited
    """

    def __init__(
        self,
        limits: Dict[str, int],
        window_seconds: int = 60,
        sweep_interval_seconds: int = 60,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.limits = dict(limits)
        self.window_ms = window_seconds * 1000
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], RateLimitEntry] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def limit_for(self, action: str) -> int:
        return self.limits.get(action, self.limits.get(ACTION_CLAIM, 0))

    def check(self, identity: str, action: str) -> RateDecision:
        """Count one attempt of ``action`` by ``identity`` and decide."""
        key = (identity.lower(), action)
        now = self._clock()
        entry = self._entries.get(key)

        if entry is None or (now - entry.window_start) > self.window_ms:
            entry = RateLimitEntry(count=0, window_start=now)
            self._entries[key] = entry

        if entry.count >= self.limit_for(action):
            retry_after = math.ceil((entry.window_start + self.window_ms - now) / 1000)
            return RateDecision(allowed=False, retry_after=max(retry_after, 1))

        entry.count += 1
        return RateDecision(allowed=True)

    def enforce(self, identity: str, action: str) -> None:
        """check() that raises RateLimited on rejection."""
        decision = self.check(identity, action)
        if not decision.allowed:
            logger.info("[RATE LIMITED] %s hit %s rate limit (retry in %ds)",
                        identity, action, decision.retry_after)
            raise RateLimited(
                f"Too many {action} requests. Please wait before trying again.",
                retry_after=decision.retry_after,
            )

    def sweep(self) -> int:
        """Evict entries idle for more than two windows. Returns eviction count."""
        now = self._clock()
        stale = [
            key for key, entry in self._entries.items()
            if (now - entry.window_start) > self.window_ms * 2
        ]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Rate limiter evicted %d stale entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    # -----------------------------------------------------------------------
    # Background sweep
    # -----------------------------------------------------------------------
    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            self.sweep()

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(
                self._sweep_loop(), name="rate-limit-sweeper"
            )

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
