"""
Long-Term Memory - Decisions and Knowledge
==========================================

Durable, append-mostly history:
- Decisions: one record per executed write action, later annotated with an
  outcome assessment by an external evaluator
- Knowledge: confidence-scored facts, unique per (key, organization),
  re-affirmed rather than duplicated and never deleted

Writes never raise. A failed audit write is logged and the caller carries on.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adforge.db.models import AgentDecision, AgentKnowledge, utcnow

logger = logging.getLogger(__name__)

# Confidence gained each time a fact is re-affirmed without an explicit score
REAFFIRM_CONFIDENCE_STEP = 0.1


class DecisionStatus(Enum):
    EXECUTED = "executed"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


# Statuses that count as "this change happened" for cooldown purposes
ACTIVE_DECISION_STATUSES = (DecisionStatus.EXECUTED.value, DecisionStatus.APPROVED.value)


class OutcomeAssessment(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class KnowledgeCategory(Enum):
    PRODUCT = "product"
    AUDIENCE = "audience"
    CREATIVE = "creative"
    CAMPAIGN_STRATEGY = "campaign_strategy"
    MARKET = "market"
    GENERAL = "general"


class KnowledgeSource(Enum):
    AGENT_LEARNING = "agent_learning"
    USER_INPUT = "user_input"
    DATA_ANALYSIS = "data_analysis"
    OUTCOME_EVALUATION = "outcome_evaluation"


@dataclass
class DecisionRecord:
    """A write action an agent took."""
    agent_id: str
    session_id: str
    action: str
    entity_type: str
    entity_id: str
    reason: str
    organization_id: Optional[str] = None
    platform: str = "facebook"
    account_id: Optional[str] = None
    input_params: dict[str, Any] = field(default_factory=dict)
    result: Optional[dict[str, Any]] = None
    status: str = DecisionStatus.EXECUTED.value
    outcome: Optional[dict[str, Any]] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "session_id": self.session_id,
            "organization_id": self.organization_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "platform": self.platform,
            "account_id": self.account_id,
            "reason": self.reason,
            "input_params": self.input_params,
            "result": self.result,
            "status": self.status,
            "outcome": self.outcome,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_model(cls, row: AgentDecision) -> "DecisionRecord":
        return cls(
            id=row.id,
            agent_id=row.agent_id,
            session_id=row.session_id,
            organization_id=row.organization_id,
            action=row.action,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            platform=row.platform,
            account_id=row.account_id,
            reason=row.reason,
            input_params=row.input_params or {},
            result=row.result,
            status=row.status,
            outcome=row.outcome,
            created_at=row.created_at,
        )


@dataclass
class KnowledgeEntry:
    """A durable, confidence-scored fact."""
    key: str
    content: str
    organization_id: Optional[str] = None
    category: str = KnowledgeCategory.GENERAL.value
    confidence: float = 0.5
    source: str = KnowledgeSource.AGENT_LEARNING.value
    tags: list[str] = field(default_factory=list)
    related_entities: list[dict[str, Any]] = field(default_factory=list)
    validation_count: int = 1
    created_by_agent: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "content": self.content,
            "organization_id": self.organization_id,
            "category": self.category,
            "confidence": self.confidence,
            "source": self.source,
            "tags": self.tags,
            "related_entities": self.related_entities,
            "validation_count": self.validation_count,
            "created_by_agent": self.created_by_agent,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_model(cls, row: AgentKnowledge) -> "KnowledgeEntry":
        return cls(
            key=row.key,
            content=row.content,
            organization_id=row.organization_id,
            category=row.category,
            confidence=row.confidence,
            source=row.source,
            tags=list(row.tags or []),
            related_entities=list(row.related_entities or []),
            validation_count=row.validation_count,
            created_by_agent=row.created_by_agent,
            updated_at=row.updated_at,
        )


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class LongTermMemory:
    """Decision log and knowledge base over the durable store."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    # =========================================================================
    # Decisions
    # =========================================================================

    async def record_decision(self, record: DecisionRecord) -> Optional[DecisionRecord]:
        """Persist a decision. Returns None (after logging) if the write failed."""
        try:
            async with self.session_maker() as session:
                session.add(AgentDecision(
                    id=record.id,
                    agent_id=record.agent_id,
                    session_id=record.session_id,
                    organization_id=record.organization_id,
                    action=record.action,
                    entity_type=record.entity_type,
                    entity_id=record.entity_id,
                    platform=record.platform,
                    account_id=record.account_id,
                    reason=record.reason,
                    input_params=record.input_params,
                    result=record.result,
                    status=record.status,
                    outcome=record.outcome,
                    created_at=record.created_at,
                ))
                await session.commit()
            return record
        except SQLAlchemyError as e:
            logger.error("Failed to record decision %s on %s: %s", record.action, record.entity_id, e)
            return None

    async def update_decision_status(self, decision_id: str, status: DecisionStatus) -> bool:
        try:
            async with self.session_maker() as session:
                row = await session.get(AgentDecision, decision_id)
                if row is None:
                    return False
                row.status = status.value
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("Failed to update decision %s: %s", decision_id, e)
            return False

    async def record_outcome(
        self,
        decision_id: str,
        assessment: OutcomeAssessment,
        metrics_before: Optional[dict[str, Any]] = None,
        metrics_after: Optional[dict[str, Any]] = None,
        notes: str = "",
    ) -> bool:
        """Attach an outcome assessment to an earlier decision."""
        outcome = {
            "assessment": assessment.value,
            "metrics_before": metrics_before or {},
            "metrics_after": metrics_after or {},
            "notes": notes,
            "evaluated_at": utcnow().isoformat(),
        }
        try:
            async with self.session_maker() as session:
                row = await session.get(AgentDecision, decision_id)
                if row is None:
                    return False
                row.outcome = outcome
                await session.commit()
            return True
        except SQLAlchemyError as e:
            logger.error("Failed to record outcome for decision %s: %s", decision_id, e)
            return False

    async def get_decision(self, decision_id: str) -> Optional[DecisionRecord]:
        async with self.session_maker() as session:
            row = await session.get(AgentDecision, decision_id)
            return DecisionRecord.from_model(row) if row else None

    async def get_recent_decisions(
        self,
        entity_id: str,
        action: Optional[str] = None,
        limit: int = 10,
        days: float = 7,
        statuses: Optional[Iterable[str]] = None,
    ) -> list[DecisionRecord]:
        """Decisions on an entity within a lookback window, newest first."""
        since = utcnow() - timedelta(days=days)
        query = select(AgentDecision).where(
            AgentDecision.entity_id == entity_id,
            AgentDecision.created_at >= since,
        )
        if action:
            query = query.where(AgentDecision.action == action)
        if statuses:
            query = query.where(AgentDecision.status.in_(list(statuses)))
        query = query.order_by(AgentDecision.created_at.desc()).limit(limit)

        async with self.session_maker() as session:
            result = await session.execute(query)
            return [DecisionRecord.from_model(row) for row in result.scalars().all()]

    async def find_latest_decision(
        self,
        entity_id: str,
        action: str,
        since: datetime,
        statuses: Iterable[str] = ACTIVE_DECISION_STATUSES,
    ) -> Optional[DecisionRecord]:
        """Most recent decision for (entity, action) at or after ``since``."""
        query = (
            select(AgentDecision)
            .where(
                AgentDecision.entity_id == entity_id,
                AgentDecision.action == action,
                AgentDecision.status.in_(list(statuses)),
                AgentDecision.created_at >= since,
            )
            .order_by(AgentDecision.created_at.desc())
            .limit(1)
        )
        async with self.session_maker() as session:
            result = await session.execute(query)
            row = result.scalars().first()
            return DecisionRecord.from_model(row) if row else None

    async def get_agent_recent_decisions(
        self,
        agent_id: str,
        limit: int = 20,
        days: float = 3,
    ) -> list[DecisionRecord]:
        """An agent's own recent decisions, newest first."""
        since = utcnow() - timedelta(days=days)
        query = (
            select(AgentDecision)
            .where(AgentDecision.agent_id == agent_id, AgentDecision.created_at >= since)
            .order_by(AgentDecision.created_at.desc())
            .limit(limit)
        )
        async with self.session_maker() as session:
            result = await session.execute(query)
            return [DecisionRecord.from_model(row) for row in result.scalars().all()]

    # =========================================================================
    # Knowledge
    # =========================================================================

    async def store_knowledge(
        self,
        key: str,
        content: str,
        organization_id: Optional[str] = None,
        category: KnowledgeCategory = KnowledgeCategory.GENERAL,
        confidence: Optional[float] = None,
        source: KnowledgeSource = KnowledgeSource.AGENT_LEARNING,
        tags: Optional[list[str]] = None,
        related_entities: Optional[list[dict[str, Any]]] = None,
        agent_id: Optional[str] = None,
    ) -> Optional[KnowledgeEntry]:
        """
        Insert or re-affirm a fact.

        A new (key, organization) pair is inserted. An existing one has its
        content, category, source, tags and related entities replaced, its
        validation count incremented, and its confidence set to the supplied
        value or, when none is given, raised by a fixed step capped at 1.0.
        """
        for attempt in range(2):
            try:
                return await self._upsert_knowledge(
                    key, content, organization_id, category, confidence,
                    source, tags, related_entities, agent_id,
                )
            except IntegrityError:
                # A concurrent writer inserted the same key; retry as an update
                if attempt == 0:
                    continue
                logger.error("Failed to store knowledge %s: concurrent insert", key)
                return None
            except SQLAlchemyError as e:
                logger.error("Failed to store knowledge %s: %s", key, e)
                return None
        return None

    async def _upsert_knowledge(
        self,
        key: str,
        content: str,
        organization_id: Optional[str],
        category: KnowledgeCategory,
        confidence: Optional[float],
        source: KnowledgeSource,
        tags: Optional[list[str]],
        related_entities: Optional[list[dict[str, Any]]],
        agent_id: Optional[str],
    ) -> KnowledgeEntry:
        async with self.session_maker() as session:
            query = select(AgentKnowledge).where(AgentKnowledge.key == key)
            if organization_id is None:
                query = query.where(AgentKnowledge.organization_id.is_(None))
            else:
                query = query.where(AgentKnowledge.organization_id == organization_id)
            row = (await session.execute(query)).scalars().first()

            if row is None:
                row = AgentKnowledge(
                    key=key,
                    organization_id=organization_id,
                    category=category.value,
                    content=content,
                    confidence=_clamp(confidence if confidence is not None else 0.5),
                    source=source.value,
                    tags=list(tags or []),
                    related_entities=list(related_entities or []),
                    validation_count=1,
                    created_by_agent=agent_id,
                )
                session.add(row)
            else:
                row.content = content
                row.category = category.value
                row.source = source.value
                if tags is not None:
                    row.tags = list(tags)
                if related_entities is not None:
                    row.related_entities = list(related_entities)
                row.validation_count = (row.validation_count or 0) + 1
                if confidence is not None:
                    row.confidence = _clamp(confidence)
                else:
                    row.confidence = _clamp((row.confidence or 0.0) + REAFFIRM_CONFIDENCE_STEP)
                row.updated_at = utcnow()

            await session.commit()
            return KnowledgeEntry.from_model(row)

    async def get_knowledge(self, key: str, organization_id: Optional[str] = None) -> Optional[KnowledgeEntry]:
        query = select(AgentKnowledge).where(AgentKnowledge.key == key)
        if organization_id is None:
            query = query.where(AgentKnowledge.organization_id.is_(None))
        else:
            query = query.where(AgentKnowledge.organization_id == organization_id)
        async with self.session_maker() as session:
            row = (await session.execute(query)).scalars().first()
            return KnowledgeEntry.from_model(row) if row else None

    async def retrieve_knowledge(
        self,
        organization_id: Optional[str] = None,
        category: Optional[KnowledgeCategory] = None,
        tags: Optional[list[str]] = None,
        limit: int = 20,
    ) -> list[KnowledgeEntry]:
        """
        Organization-scoped plus global facts, by confidence then recency.

        Tag filtering matches entries sharing at least one tag.
        """
        query = select(AgentKnowledge)
        if organization_id is not None:
            query = query.where(or_(
                AgentKnowledge.organization_id == organization_id,
                AgentKnowledge.organization_id.is_(None),
            ))
        else:
            query = query.where(AgentKnowledge.organization_id.is_(None))
        if category is not None:
            query = query.where(AgentKnowledge.category == category.value)
        query = query.order_by(AgentKnowledge.confidence.desc(), AgentKnowledge.updated_at.desc())

        # Tags live in a JSON column, so filter after loading when asked to
        if not tags:
            query = query.limit(limit)

        async with self.session_maker() as session:
            rows = (await session.execute(query)).scalars().all()

        entries = [KnowledgeEntry.from_model(row) for row in rows]
        if tags:
            wanted = set(tags)
            entries = [e for e in entries if wanted.intersection(e.tags)][:limit]
        return entries
