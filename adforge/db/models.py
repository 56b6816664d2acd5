"""
Database Models for AdForge
===========================

SQLAlchemy models for run sessions, executed decisions and accumulated
knowledge. Timestamps are stored as naive UTC.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from sqlalchemy import String, Integer, Float, DateTime, JSON, Text, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current time as naive UTC (portable across SQLite and server databases)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class AgentSession(Base):
    """One record per runtime run."""
    __tablename__ = "agent_sessions"

    # Using string for UUID to be SQLite friendly
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(64), index=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    role: Mapped[str] = mapped_column(String(20))
    trigger_type: Mapped[str] = mapped_column(String(20))  # user_chat, scheduled_run, api_trigger, orchestrator
    parent_session_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    input_context: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    status: Mapped[str] = mapped_column(String(20), default="running")  # running, completed, failed, max_iterations, ...
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tool_calls: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    decisions_made: Mapped[List[str]] = mapped_column(JSON, default=list)
    iterations: Mapped[int] = mapped_column(Integer, default=0)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class AgentDecision(Base):
    """Durable record of a write action taken by an agent."""
    __tablename__ = "agent_decisions"
    __table_args__ = (
        Index("ix_agent_decisions_entity_action", "entity_id", "action", "created_at"),
        Index("ix_agent_decisions_agent_created", "agent_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(String(64))
    session_id: Mapped[str] = mapped_column(String(36), index=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(64))  # tool name
    entity_type: Mapped[str] = mapped_column(String(20))
    entity_id: Mapped[str] = mapped_column(String(128))
    platform: Mapped[str] = mapped_column(String(20), default="facebook")
    account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    reason: Mapped[str] = mapped_column(Text, default="")
    input_params: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    result: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="executed")
    # executed, pending_approval, approved, rejected, failed, rolled_back

    # Filled later by an outcome evaluator
    outcome: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class AgentKnowledge(Base):
    """A confidence-scored fact, unique per (key, organization)."""
    __tablename__ = "agent_knowledge"
    __table_args__ = (
        UniqueConstraint("key", "organization_id", name="uq_agent_knowledge_key_org"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(200), index=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    category: Mapped[str] = mapped_column(String(30), default="general")
    content: Mapped[str] = mapped_column(Text)
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    source: Mapped[str] = mapped_column(String(30), default="agent_learning")
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    related_entities: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
    validation_count: Mapped[int] = mapped_column(Integer, default=1)
    created_by_agent: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
