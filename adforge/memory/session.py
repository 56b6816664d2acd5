"""
Session Memory - One Record per Run
===================================

Created when a run starts, appended with tool-call batches while it runs and
finalized with status, summary and counters when it ends.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adforge.db.models import AgentSession, utcnow
from adforge.tools.registry import ToolCallRecord

logger = logging.getLogger(__name__)

SUMMARY_LIMIT = 2000


class SessionStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    NEEDS_APPROVAL = "needs_approval"
    MAX_ITERATIONS = "max_iterations"
    CANCELLED = "cancelled"


@dataclass
class SessionRecord:
    id: str
    agent_id: str
    role: str
    trigger_type: str
    status: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    parent_session_id: Optional[str] = None
    input_context: dict[str, Any] = field(default_factory=dict)
    summary: Optional[str] = None
    error: Optional[str] = None
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    decisions_made: list[str] = field(default_factory=list)
    iterations: int = 0
    duration_ms: int = 0
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "role": self.role,
            "trigger_type": self.trigger_type,
            "status": self.status,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "parent_session_id": self.parent_session_id,
            "input_context": self.input_context,
            "summary": self.summary,
            "error": self.error,
            "tool_calls": self.tool_calls,
            "decisions_made": self.decisions_made,
            "iterations": self.iterations,
            "duration_ms": self.duration_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_model(cls, row: AgentSession) -> "SessionRecord":
        return cls(
            id=row.id,
            agent_id=row.agent_id,
            role=row.role,
            trigger_type=row.trigger_type,
            status=row.status,
            organization_id=row.organization_id,
            user_id=row.user_id,
            parent_session_id=row.parent_session_id,
            input_context=row.input_context or {},
            summary=row.summary,
            error=row.error,
            tool_calls=list(row.tool_calls or []),
            decisions_made=list(row.decisions_made or []),
            iterations=row.iterations,
            duration_ms=row.duration_ms,
            created_at=row.created_at,
            completed_at=row.completed_at,
        )


class SessionMemory:
    """Per-run session records. Write failures are logged, never raised."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create_session(
        self,
        session_id: str,
        agent_id: str,
        role: str,
        trigger_type: str,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        parent_session_id: Optional[str] = None,
        input_context: Optional[dict[str, Any]] = None,
    ) -> bool:
        try:
            async with self.session_maker() as session:
                session.add(AgentSession(
                    id=session_id,
                    agent_id=agent_id,
                    role=role,
                    trigger_type=trigger_type,
                    organization_id=organization_id,
                    user_id=user_id,
                    parent_session_id=parent_session_id,
                    input_context=input_context or {},
                    status=SessionStatus.RUNNING.value,
                    tool_calls=[],
                    decisions_made=[],
                ))
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("Failed to create session %s: %s", session_id, e)
            return False

    async def update_session(self, session_id: str, **changes: Any) -> bool:
        """Set columns on a session record."""
        try:
            async with self.session_maker() as session:
                row = await session.get(AgentSession, session_id)
                if row is None:
                    logger.warning("Session %s not found for update", session_id)
                    return False
                for name, value in changes.items():
                    setattr(row, name, value)
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("Failed to update session %s: %s", session_id, e)
            return False

    async def append_tool_calls(self, session_id: str, records: Iterable[ToolCallRecord]) -> bool:
        """Append a batch of tool-call records to the session."""
        batch = [r.to_dict() for r in records]
        if not batch:
            return True
        try:
            async with self.session_maker() as session:
                row = await session.get(AgentSession, session_id)
                if row is None:
                    logger.warning("Session %s not found for tool-call append", session_id)
                    return False
                # Reassign so the JSON column is flagged dirty
                row.tool_calls = list(row.tool_calls or []) + batch
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("Failed to append tool calls to session %s: %s", session_id, e)
            return False

    async def finalize_session(
        self,
        session_id: str,
        status: SessionStatus,
        summary: Optional[str],
        iterations: int,
        duration_ms: int,
        decisions_made: Optional[list[str]] = None,
        error: Optional[str] = None,
    ) -> bool:
        return await self.update_session(
            session_id,
            status=status.value,
            summary=(summary or "")[:SUMMARY_LIMIT],
            iterations=iterations,
            duration_ms=duration_ms,
            decisions_made=list(decisions_made or []),
            error=error,
            completed_at=utcnow(),
        )

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        async with self.session_maker() as session:
            row = await session.get(AgentSession, session_id)
            return SessionRecord.from_model(row) if row else None

    async def list_sessions(self, agent_id: Optional[str] = None, limit: int = 20) -> list[SessionRecord]:
        """Most recent sessions, optionally for one agent."""
        query = select(AgentSession).order_by(AgentSession.created_at.desc()).limit(limit)
        if agent_id:
            query = query.where(AgentSession.agent_id == agent_id)
        async with self.session_maker() as session:
            rows = (await session.execute(query)).scalars().all()
            return [SessionRecord.from_model(row) for row in rows]
