"""
Working Memory - Shared Short-Lived Cache
=========================================

Key/value state with a default expiry of a few hours, shared by every run of
an agent. It carries state from one run to the next (for example the last
run's outcome); it is not used to pass data within a run.

Keys are per agent, not per run, so concurrent runs of one agent may
interleave writes. Last write wins.

An unreachable cache is logged and behaves as empty.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

WORKING_PREFIX = "agent:working:"
DEFAULT_TTL_SECONDS = 4 * 60 * 60


def agent_state_key(agent_id: str) -> str:
    return f"state:{agent_id}"


class WorkingMemory:
    """JSON values in redis under a common prefix."""

    def __init__(
        self,
        redis: Optional[Redis],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        timeout: Optional[float] = None,
    ):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout

    def _key(self, key: str) -> str:
        return f"{WORKING_PREFIX}{key}"

    async def _call(self, coro):
        if self.timeout:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        return await coro

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if self.redis is None:
            return False
        try:
            await self._call(self.redis.set(
                self._key(key),
                json.dumps(value, default=str),
                ex=ttl_seconds or self.ttl_seconds,
            ))
            return True
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning("Working memory set %s failed: %s", key, e)
            return False

    async def get(self, key: str, default: Any = None) -> Any:
        if self.redis is None:
            return default
        try:
            raw = await self._call(self.redis.get(self._key(key)))
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning("Working memory get %s failed: %s", key, e)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Working memory value for %s is not JSON, ignoring", key)
            return default

    async def delete(self, key: str) -> bool:
        if self.redis is None:
            return False
        try:
            await self._call(self.redis.delete(self._key(key)))
            return True
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.warning("Working memory delete %s failed: %s", key, e)
            return False

    async def get_agent_state(self, agent_id: str) -> Optional[dict[str, Any]]:
        return await self.get(agent_state_key(agent_id))

    async def set_agent_state(self, agent_id: str, state: dict[str, Any]) -> bool:
        return await self.set(agent_state_key(agent_id), state)
