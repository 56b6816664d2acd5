"""
Rate-Limit Ledger
=================

Shared state behind the guardrail engine's cooldown and per-run quota checks.

Two implementations sit behind one interface:
- CacheLedger: redis, atomic via ``SET NX`` and ``INCR``. Precise.
- DecisionLogLedger: the durable decision log. Cooldowns are answered by
  scanning recent executed/approved decisions for the same (entity, action);
  quotas are not tracked and always read as unconsumed.

FailoverLedger routes each operation to the cache and degrades to the
decision log when the cache is unreachable. Degrading is expected behaviour,
not an error: precision is traded for availability.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from adforge.memory.long_term import ACTIVE_DECISION_STATUSES, LongTermMemory

logger = logging.getLogger(__name__)

COOLDOWN_PREFIX = "agent:cooldown:"
TOOLCALLS_PREFIX = "agent:toolcalls:"
TOOLCALLS_TTL_SECONDS = 3600

# Exceptions that mean "the cache is not there right now"
CACHE_UNAVAILABLE = (RedisError, OSError, asyncio.TimeoutError)


def cooldown_key(entity_id: str, tool_name: str) -> str:
    return f"{COOLDOWN_PREFIX}{entity_id}:{tool_name}"


def toolcalls_key(session_id: str, tool_name: str) -> str:
    return f"{TOOLCALLS_PREFIX}{session_id}:{tool_name}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitLedger(ABC):
    """Cooldown stamps keyed by (entity, tool) and call counters keyed by (session, tool)."""

    @abstractmethod
    async def try_stamp_cooldown(
        self, entity_id: str, tool_name: str, cooldown_minutes: float
    ) -> Optional[datetime]:
        """
        Atomically claim the cooldown window for (entity, tool).

        Returns:
            None if the window was free and is now claimed, otherwise the
            time the existing cooldown expires
        """

    @abstractmethod
    async def release_cooldown(self, entity_id: str, tool_name: str) -> None:
        """Drop a claim taken by ``try_stamp_cooldown`` for a call that was not approved."""

    @abstractmethod
    async def reserve_call(self, session_id: str, tool_name: str, limit: int) -> bool:
        """Atomically count one call unless the session already reached ``limit``."""

    @abstractmethod
    async def release_call(self, session_id: str, tool_name: str) -> None:
        """Give back a reservation for a call that was not approved."""

    @abstractmethod
    async def count_call(self, session_id: str, tool_name: str) -> None:
        """Count an approved call for a tool without a quota."""

    @abstractmethod
    async def get_call_count(self, session_id: str, tool_name: str) -> int: ...


class CacheLedger(RateLimitLedger):
    """Redis-backed ledger. Expects a client created with ``decode_responses=True``."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def try_stamp_cooldown(
        self, entity_id: str, tool_name: str, cooldown_minutes: float
    ) -> Optional[datetime]:
        key = cooldown_key(entity_id, tool_name)
        window_ms = max(1, int(cooldown_minutes * 60_000))

        # Two attempts: the existing stamp may expire between SET and GET
        for _ in range(2):
            until = _now() + timedelta(milliseconds=window_ms)
            if await self.redis.set(key, until.isoformat(), nx=True, px=window_ms):
                return None
            existing = await self.redis.get(key)
            if existing is not None:
                if isinstance(existing, bytes):
                    existing = existing.decode()
                return datetime.fromisoformat(existing)
        return until

    async def release_cooldown(self, entity_id: str, tool_name: str) -> None:
        await self.redis.delete(cooldown_key(entity_id, tool_name))

    async def reserve_call(self, session_id: str, tool_name: str, limit: int) -> bool:
        key = toolcalls_key(session_id, tool_name)
        count = await self.redis.incr(key)
        if count == 1:
            await self.redis.expire(key, TOOLCALLS_TTL_SECONDS)
        if count > limit:
            await self.redis.decr(key)
            return False
        return True

    async def release_call(self, session_id: str, tool_name: str) -> None:
        key = toolcalls_key(session_id, tool_name)
        if await self.redis.decr(key) < 0:
            await self.redis.set(key, 0, ex=TOOLCALLS_TTL_SECONDS)

    async def count_call(self, session_id: str, tool_name: str) -> None:
        key = toolcalls_key(session_id, tool_name)
        if await self.redis.incr(key) == 1:
            await self.redis.expire(key, TOOLCALLS_TTL_SECONDS)

    async def get_call_count(self, session_id: str, tool_name: str) -> int:
        value = await self.redis.get(toolcalls_key(session_id, tool_name))
        return int(value) if value is not None else 0


class DecisionLogLedger(RateLimitLedger):
    """
    Durable fallback answering cooldowns from the decision log.

    Claims made in this process are held in memory until their window ends, so
    two concurrent calls on one key cannot both pass here either. Quotas are
    not tracked.
    """

    def __init__(self, long_term: LongTermMemory):
        self.long_term = long_term
        self._claims: dict[tuple[str, str], datetime] = {}
        self._lock = asyncio.Lock()

    async def try_stamp_cooldown(
        self, entity_id: str, tool_name: str, cooldown_minutes: float
    ) -> Optional[datetime]:
        key = (entity_id, tool_name)
        window = timedelta(minutes=cooldown_minutes)
        async with self._lock:
            now = _now()
            claimed_until = self._claims.get(key)
            if claimed_until is not None and claimed_until > now:
                return claimed_until

            try:
                latest = await self.long_term.find_latest_decision(
                    entity_id,
                    tool_name,
                    since=(now - window).replace(tzinfo=None),
                    statuses=ACTIVE_DECISION_STATUSES,
                )
            except SQLAlchemyError as e:
                logger.warning("Decision log unavailable for cooldown %s/%s: %s", entity_id, tool_name, e)
                latest = None

            if latest is not None:
                return latest.created_at.replace(tzinfo=timezone.utc) + window

            self._claims[key] = now + window
            return None

    async def release_cooldown(self, entity_id: str, tool_name: str) -> None:
        async with self._lock:
            self._claims.pop((entity_id, tool_name), None)

    async def reserve_call(self, session_id: str, tool_name: str, limit: int) -> bool:
        return True

    async def release_call(self, session_id: str, tool_name: str) -> None:
        return None

    async def count_call(self, session_id: str, tool_name: str) -> None:
        return None

    async def get_call_count(self, session_id: str, tool_name: str) -> int:
        return 0


class FailoverLedger(RateLimitLedger):
    """Cache first; decision log when the cache is unreachable."""

    def __init__(
        self,
        primary: RateLimitLedger,
        fallback: RateLimitLedger,
        timeout: Optional[float] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self.timeout = timeout

    async def _route(self, operation: str, *args):
        try:
            call = getattr(self.primary, operation)(*args)
            if self.timeout:
                return await asyncio.wait_for(call, timeout=self.timeout)
            return await call
        except CACHE_UNAVAILABLE as e:
            logger.warning("Rate-limit cache unavailable for %s, using decision log: %s", operation, e)
            return await getattr(self.fallback, operation)(*args)

    async def try_stamp_cooldown(
        self, entity_id: str, tool_name: str, cooldown_minutes: float
    ) -> Optional[datetime]:
        return await self._route("try_stamp_cooldown", entity_id, tool_name, cooldown_minutes)

    async def release_cooldown(self, entity_id: str, tool_name: str) -> None:
        # The claim may live in either store depending on when the cache dropped
        await self.fallback.release_cooldown(entity_id, tool_name)
        try:
            call = self.primary.release_cooldown(entity_id, tool_name)
            if self.timeout:
                await asyncio.wait_for(call, timeout=self.timeout)
            else:
                await call
        except CACHE_UNAVAILABLE as e:
            logger.warning("Could not release cooldown %s/%s in cache: %s", entity_id, tool_name, e)

    async def reserve_call(self, session_id: str, tool_name: str, limit: int) -> bool:
        return await self._route("reserve_call", session_id, tool_name, limit)

    async def release_call(self, session_id: str, tool_name: str) -> None:
        await self._route("release_call", session_id, tool_name)

    async def count_call(self, session_id: str, tool_name: str) -> None:
        await self._route("count_call", session_id, tool_name)

    async def get_call_count(self, session_id: str, tool_name: str) -> int:
        return await self._route("get_call_count", session_id, tool_name)


def create_ledger(
    long_term: LongTermMemory,
    redis: Optional[Redis] = None,
    timeout: Optional[float] = None,
) -> RateLimitLedger:
    """
    Build the ledger for a deployment.

    Args:
        long_term: Durable decision log (always available as the fallback)
        redis: Cache client; without one the decision log is used directly
        timeout: Per-operation bound on cache calls (seconds)
    """
    fallback = DecisionLogLedger(long_term)
    if redis is None:
        return fallback
    return FailoverLedger(CacheLedger(redis), fallback, timeout=timeout)
