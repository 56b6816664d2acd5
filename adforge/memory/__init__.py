"""
Memory Module - Tiered Memory Service
=====================================

Three tiers behind one service:

1. **Session** - one durable record per run (status, summary, tool calls)
2. **Working** - short-lived shared cache carrying state between runs
3. **Long-term** - durable decision log and knowledge base

Usage:
    from adforge.memory import MemoryService

    memory = MemoryService(session_maker, redis=redis_client)

    await memory.sessions.create_session(session_id, agent_id, "analyst", "user_chat")
    await memory.long_term.store_knowledge("us-broad-works", "Broad targeting wins in US")

    # Digest injected into the system prompt
    context = await memory.build_context(agent_id, organization_id)
"""

import json
import logging
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adforge.memory.long_term import (
    DecisionRecord,
    DecisionStatus,
    KnowledgeCategory,
    KnowledgeEntry,
    KnowledgeSource,
    LongTermMemory,
    OutcomeAssessment,
)
from adforge.memory.session import SessionMemory, SessionRecord, SessionStatus
from adforge.memory.working import WorkingMemory

logger = logging.getLogger(__name__)

NO_CONTEXT = "No prior context available."

# Digest bounds
DIGEST_DECISION_DAYS = 3
DIGEST_DECISION_LIMIT = 10
DIGEST_KNOWLEDGE_LIMIT = 10


def format_decision_line(decision: DecisionRecord) -> str:
    line = (
        f"- [{decision.created_at:%Y-%m-%d %H:%M}] {decision.action} on "
        f"{decision.entity_type} {decision.entity_id}: {decision.reason} ({decision.status})"
    )
    if decision.outcome and decision.outcome.get("assessment"):
        line += f" -> outcome: {decision.outcome['assessment']}"
    return line


def format_knowledge_line(entry: KnowledgeEntry) -> str:
    return f"- [{entry.category}] {entry.content} (confidence: {entry.confidence:.2f})"


class MemoryService:
    """
    Facade over the three memory tiers.

    Provides:
    - ``sessions``: per-run records
    - ``working``: cross-run cache
    - ``long_term``: decisions and knowledge
    - ``build_context``: bounded prompt digest
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        redis: Optional[Redis] = None,
        cache_timeout: Optional[float] = None,
    ):
        self.sessions = SessionMemory(session_maker)
        self.working = WorkingMemory(redis, timeout=cache_timeout)
        self.long_term = LongTermMemory(session_maker)

    async def build_context(self, agent_id: str, organization_id: Optional[str] = None) -> str:
        """
        Assemble the memory digest for a run.

        Sections (each omitted when empty): the agent's recent decisions, the
        highest-confidence knowledge visible to the organization, and the
        agent's working-state snapshot.
        """
        sections: list[str] = []

        try:
            decisions = await self.long_term.get_agent_recent_decisions(
                agent_id, limit=DIGEST_DECISION_LIMIT, days=DIGEST_DECISION_DAYS
            )
        except SQLAlchemyError as e:
            logger.warning("Could not load recent decisions for %s: %s", agent_id, e)
            decisions = []
        if decisions:
            lines = [f"## Recent Agent Decisions (last {DIGEST_DECISION_DAYS} days)"]
            lines.extend(format_decision_line(d) for d in decisions)
            sections.append("\n".join(lines))

        try:
            knowledge = await self.long_term.retrieve_knowledge(
                organization_id, limit=DIGEST_KNOWLEDGE_LIMIT
            )
        except SQLAlchemyError as e:
            logger.warning("Could not load knowledge for %s: %s", organization_id, e)
            knowledge = []
        if knowledge:
            lines = ["## Accumulated Knowledge"]
            lines.extend(format_knowledge_line(k) for k in knowledge)
            sections.append("\n".join(lines))

        state = await self.working.get_agent_state(agent_id)
        if state:
            sections.append("## Current Working State\n" + json.dumps(state, indent=2, default=str))

        if not sections:
            return NO_CONTEXT
        return "\n\n".join(sections)


__all__ = [
    "MemoryService",
    "SessionMemory",
    "SessionRecord",
    "SessionStatus",
    "WorkingMemory",
    "LongTermMemory",
    "DecisionRecord",
    "DecisionStatus",
    "OutcomeAssessment",
    "KnowledgeEntry",
    "KnowledgeCategory",
    "KnowledgeSource",
    "NO_CONTEXT",
]
