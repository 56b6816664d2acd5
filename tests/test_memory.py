"""
Tests for the memory tiers: sessions, working memory, long-term memory and
the prompt digest.
"""

from datetime import timedelta

import pytest
from fakeredis import FakeServer
from fakeredis.aioredis import FakeRedis

from adforge.db.models import utcnow
from adforge.memory import NO_CONTEXT, MemoryService
from adforge.memory.long_term import (
    DecisionRecord,
    DecisionStatus,
    KnowledgeCategory,
    OutcomeAssessment,
)
from adforge.memory.session import SessionStatus
from adforge.memory.working import WorkingMemory
from adforge.tools.registry import GuardrailCheckResult, ToolCallRecord, ToolResult


def decision(entity_id="c1", action="pause_entity", agent_id="agent-1", **kwargs) -> DecisionRecord:
    return DecisionRecord(
        agent_id=agent_id,
        session_id=kwargs.pop("session_id", "s1"),
        action=action,
        entity_type="campaign",
        entity_id=entity_id,
        reason=kwargs.pop("reason", "Poor ROAS"),
        **kwargs,
    )


# =============================================================================
# Session Memory
# =============================================================================

class TestSessionMemory:
    """Tests for per-run session records."""

    @pytest.mark.asyncio
    async def test_create_and_finalize(self, memory):
        assert await memory.sessions.create_session(
            "s1", "agent-1", "analyst", "user_chat",
            organization_id="org-1", input_context={"message": "hi"},
        )

        running = await memory.sessions.get_session("s1")
        assert running.status == "running"
        assert running.tool_calls == []

        assert await memory.sessions.finalize_session(
            "s1", SessionStatus.COMPLETED, "All good", iterations=2, duration_ms=40,
            decisions_made=["d1"],
        )
        done = await memory.sessions.get_session("s1")
        assert done.status == "completed"
        assert done.summary == "All good"
        assert done.iterations == 2
        assert done.decisions_made == ["d1"]
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_append_tool_calls(self, memory):
        await memory.sessions.create_session("s1", "agent-1", "executor", "user_chat")
        record = ToolCallRecord(
            tool_name="pause_entity",
            args={"entityId": "c1"},
            result=ToolResult.ok({"status": "PAUSED"}),
            guardrail_check=GuardrailCheckResult(approved=True),
            call_id="call_1",
        )

        await memory.sessions.append_tool_calls("s1", [record])
        await memory.sessions.append_tool_calls("s1", [record])

        session = await memory.sessions.get_session("s1")
        assert len(session.tool_calls) == 2
        restored = ToolCallRecord.from_dict(session.tool_calls[0])
        assert restored.tool_name == "pause_entity"
        assert restored.result.data == {"status": "PAUSED"}
        assert restored.guardrail_check.approved

    @pytest.mark.asyncio
    async def test_summary_truncated(self, memory):
        await memory.sessions.create_session("s1", "agent-1", "analyst", "user_chat")

        await memory.sessions.finalize_session("s1", SessionStatus.COMPLETED, "x" * 5000, 1, 1)

        assert len((await memory.sessions.get_session("s1")).summary) == 2000

    @pytest.mark.asyncio
    async def test_update_missing_session(self, memory):
        assert not await memory.sessions.update_session("nope", status="failed")

    @pytest.mark.asyncio
    async def test_list_sessions_filters_agent(self, memory):
        await memory.sessions.create_session("s1", "agent-1", "analyst", "user_chat")
        await memory.sessions.create_session("s2", "agent-2", "analyst", "user_chat")

        sessions = await memory.sessions.list_sessions(agent_id="agent-2")

        assert [s.id for s in sessions] == ["s2"]


# =============================================================================
# Working Memory
# =============================================================================

class TestWorkingMemory:
    """Tests for the short-lived shared cache."""

    @pytest.mark.asyncio
    async def test_round_trip_with_expiry(self, redis_client):
        working = WorkingMemory(redis_client)

        assert await working.set("focus", {"campaign": "c1"})

        assert await working.get("focus") == {"campaign": "c1"}
        assert 0 < await redis_client.ttl("agent:working:focus") <= 4 * 60 * 60

    @pytest.mark.asyncio
    async def test_missing_key_returns_default(self, redis_client):
        working = WorkingMemory(redis_client)

        assert await working.get("absent", default="none") == "none"

    @pytest.mark.asyncio
    async def test_delete(self, redis_client):
        working = WorkingMemory(redis_client)
        await working.set("k", 1)

        await working.delete("k")

        assert await working.get("k") is None

    @pytest.mark.asyncio
    async def test_non_json_value_ignored(self, redis_client):
        working = WorkingMemory(redis_client)
        await redis_client.set("agent:working:k", "{not json")

        assert await working.get("k") is None

    @pytest.mark.asyncio
    async def test_no_cache_behaves_as_empty(self):
        working = WorkingMemory(None)

        assert not await working.set("k", 1)
        assert await working.get("k", default=0) == 0
        assert await working.get_agent_state("agent-1") is None

    @pytest.mark.asyncio
    async def test_unreachable_cache_behaves_as_empty(self):
        server = FakeServer()
        server.connected = False
        client = FakeRedis(server=server, decode_responses=True)
        working = WorkingMemory(client)

        assert not await working.set("k", 1)
        assert await working.get("k") is None
        assert not await working.delete("k")
        await client.aclose()


# =============================================================================
# Decisions
# =============================================================================

class TestDecisions:
    """Tests for the durable decision log."""

    @pytest.mark.asyncio
    async def test_record_and_get(self, memory):
        saved = await memory.long_term.record_decision(decision(input_params={"entityId": "c1"}))

        loaded = await memory.long_term.get_decision(saved.id)
        assert loaded.action == "pause_entity"
        assert loaded.status == "executed"
        assert loaded.input_params == {"entityId": "c1"}

    @pytest.mark.asyncio
    async def test_recent_decisions_newest_first(self, memory):
        now = utcnow()
        await memory.long_term.record_decision(decision(reason="old", created_at=now - timedelta(hours=2)))
        await memory.long_term.record_decision(decision(reason="new", created_at=now))
        await memory.long_term.record_decision(decision(action="adjust_budget", reason="budget"))

        all_actions = await memory.long_term.get_recent_decisions("c1")
        pauses = await memory.long_term.get_recent_decisions("c1", action="pause_entity")

        assert len(all_actions) == 3
        assert [d.reason for d in pauses] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_lookback_window(self, memory):
        await memory.long_term.record_decision(decision(created_at=utcnow() - timedelta(days=10)))

        assert await memory.long_term.get_recent_decisions("c1", days=7) == []
        assert len(await memory.long_term.get_recent_decisions("c1", days=30)) == 1

    @pytest.mark.asyncio
    async def test_find_latest_respects_status(self, memory):
        since = utcnow() - timedelta(hours=1)
        await memory.long_term.record_decision(decision(status=DecisionStatus.FAILED.value))

        assert await memory.long_term.find_latest_decision("c1", "pause_entity", since) is None

        await memory.long_term.record_decision(decision(status=DecisionStatus.EXECUTED.value))
        assert await memory.long_term.find_latest_decision("c1", "pause_entity", since) is not None

    @pytest.mark.asyncio
    async def test_status_and_outcome_updates(self, memory):
        saved = await memory.long_term.record_decision(decision())

        assert await memory.long_term.update_decision_status(saved.id, DecisionStatus.ROLLED_BACK)
        assert await memory.long_term.record_outcome(
            saved.id, OutcomeAssessment.POSITIVE,
            metrics_before={"roas": 0.8}, metrics_after={"roas": 1.6}, notes="Recovered",
        )

        loaded = await memory.long_term.get_decision(saved.id)
        assert loaded.status == "rolled_back"
        assert loaded.outcome["assessment"] == "positive"
        assert loaded.outcome["metrics_after"] == {"roas": 1.6}

    @pytest.mark.asyncio
    async def test_updates_on_missing_decision(self, memory):
        assert not await memory.long_term.update_decision_status("nope", DecisionStatus.APPROVED)
        assert not await memory.long_term.record_outcome("nope", OutcomeAssessment.NEUTRAL)

    @pytest.mark.asyncio
    async def test_agent_recent_decisions(self, memory):
        await memory.long_term.record_decision(decision(agent_id="agent-1"))
        await memory.long_term.record_decision(decision(agent_id="agent-2"))

        mine = await memory.long_term.get_agent_recent_decisions("agent-1")

        assert [d.agent_id for d in mine] == ["agent-1"]


# =============================================================================
# Knowledge
# =============================================================================

class TestKnowledge:
    """Tests for the confidence-scored knowledge base."""

    @pytest.mark.asyncio
    async def test_insert(self, memory):
        entry = await memory.long_term.store_knowledge(
            "audience:us-broad", "US broad beats interests", organization_id="org-1",
            category=KnowledgeCategory.AUDIENCE, tags=["us"],
        )

        assert entry.confidence == 0.5
        assert entry.validation_count == 1
        assert entry.category == "audience"

    @pytest.mark.asyncio
    async def test_reaffirm_raises_confidence(self, memory):
        await memory.long_term.store_knowledge("k", "first", organization_id="org-1")
        entry = await memory.long_term.store_knowledge("k", "second", organization_id="org-1")

        assert entry.validation_count == 2
        assert entry.confidence == pytest.approx(0.6)
        assert entry.content == "second"
        assert len(await memory.long_term.retrieve_knowledge("org-1")) == 1

    @pytest.mark.asyncio
    async def test_confidence_clamped(self, memory):
        entry = await memory.long_term.store_knowledge("k", "c", confidence=1.7)
        assert entry.confidence == 1.0

        for _ in range(3):
            entry = await memory.long_term.store_knowledge("k", "c")
        assert entry.confidence == 1.0
        assert entry.validation_count == 4

    @pytest.mark.asyncio
    async def test_same_key_per_organization(self, memory):
        await memory.long_term.store_knowledge("k", "org one", organization_id="org-1")
        await memory.long_term.store_knowledge("k", "org two", organization_id="org-2")

        one = await memory.long_term.get_knowledge("k", "org-1")
        two = await memory.long_term.get_knowledge("k", "org-2")
        assert one.content == "org one"
        assert two.content == "org two"

    @pytest.mark.asyncio
    async def test_retrieve_scoping_and_order(self, memory):
        await memory.long_term.store_knowledge("global", "applies everywhere", confidence=0.9)
        await memory.long_term.store_knowledge("mine", "org one fact", organization_id="org-1", confidence=0.7)
        await memory.long_term.store_knowledge("theirs", "org two fact", organization_id="org-2", confidence=0.99)

        visible = await memory.long_term.retrieve_knowledge("org-1")
        global_only = await memory.long_term.retrieve_knowledge(None)

        assert [e.key for e in visible] == ["global", "mine"]
        assert [e.key for e in global_only] == ["global"]

    @pytest.mark.asyncio
    async def test_retrieve_filters(self, memory):
        await memory.long_term.store_knowledge("a", "a", category=KnowledgeCategory.MARKET, tags=["us", "q4"])
        await memory.long_term.store_knowledge("b", "b", category=KnowledgeCategory.MARKET, tags=["uk"])
        await memory.long_term.store_knowledge("c", "c", category=KnowledgeCategory.CREATIVE, tags=["us"])

        market = await memory.long_term.retrieve_knowledge(category=KnowledgeCategory.MARKET)
        tagged = await memory.long_term.retrieve_knowledge(tags=["us"])

        assert {e.key for e in market} == {"a", "b"}
        assert {e.key for e in tagged} == {"a", "c"}


# =============================================================================
# Prompt Digest
# =============================================================================

class TestBuildContext:
    """Tests for the memory digest placed in system prompts."""

    @pytest.mark.asyncio
    async def test_empty(self, memory):
        assert await memory.build_context("agent-1", "org-1") == NO_CONTEXT

    @pytest.mark.asyncio
    async def test_all_sections(self, memory):
        saved = await memory.long_term.record_decision(decision(reason="ROAS 0.4 for 5 days"))
        await memory.long_term.record_outcome(saved.id, OutcomeAssessment.POSITIVE)
        await memory.long_term.store_knowledge(
            "k", "Video beats static in US", organization_id="org-1",
            category=KnowledgeCategory.CREATIVE, confidence=0.8,
        )
        await memory.working.set_agent_state("agent-1", {"last_status": "completed"})

        digest = await memory.build_context("agent-1", "org-1")

        assert "## Recent Agent Decisions (last 3 days)" in digest
        assert "pause_entity on campaign c1: ROAS 0.4 for 5 days (executed) -> outcome: positive" in digest
        assert "## Accumulated Knowledge" in digest
        assert "- [creative] Video beats static in US (confidence: 0.80)" in digest
        assert "## Current Working State" in digest
        assert '"last_status": "completed"' in digest

    @pytest.mark.asyncio
    async def test_other_agents_decisions_excluded(self, memory):
        await memory.long_term.record_decision(decision(agent_id="agent-2"))

        assert await memory.build_context("agent-1") == NO_CONTEXT

    @pytest.mark.asyncio
    async def test_without_cache(self, session_maker):
        memory = MemoryService(session_maker)

        assert await memory.build_context("agent-1") == NO_CONTEXT
