"""
Memory Tools
============

Lets agents write to and read from long-term memory during a run:

- remember_insight: store or re-affirm a fact in the knowledge base
- recall_knowledge: read facts visible to the organization
- recall_decisions: past actions taken on an entity, with outcomes

These touch only the agent's own memory, never a platform, so they are not
write tools for guardrail purposes and are available in every mode.
"""

import re
from typing import Any

from adforge.agent_config import AgentContext
from adforge.memory.long_term import KnowledgeCategory, KnowledgeSource, LongTermMemory
from adforge.tools.registry import EntityType, ToolCategory, ToolDefinition, ToolResult
from adforge.tools.schema import array, integer, number, obj, string

KEY_MAX_LENGTH = 80

CATEGORIES = [c.value for c in KnowledgeCategory]


def insight_key(category: str, content: str) -> str:
    """Stable key for an insight stored without one."""
    slug = re.sub(r"[^a-z0-9]+", "-", content.lower()).strip("-")
    return f"{category}:{slug}"[:KEY_MAX_LENGTH]


def create_memory_tools(long_term: LongTermMemory) -> list[ToolDefinition]:
    """Build the memory tool catalog over the long-term tier."""

    async def remember_insight(args: dict[str, Any], context: AgentContext) -> ToolResult:
        content = args["content"].strip()
        if not content:
            return ToolResult.fail("Insight content is empty")
        category = KnowledgeCategory(args.get("category") or KnowledgeCategory.GENERAL.value)
        key = args.get("key") or insight_key(category.value, content)

        entry = await long_term.store_knowledge(
            key,
            content,
            organization_id=context.organization_id,
            category=category,
            confidence=args.get("confidence"),
            source=KnowledgeSource.AGENT_LEARNING,
            tags=args.get("tags"),
            related_entities=[{"id": e} for e in args.get("relatedEntities") or []] or None,
            agent_id=context.agent_id,
        )
        if entry is None:
            return ToolResult.fail(f"Could not store insight {key}")
        return ToolResult.ok({
            "key": entry.key,
            "confidence": entry.confidence,
            "validationCount": entry.validation_count,
        })

    async def recall_knowledge(args: dict[str, Any], context: AgentContext) -> ToolResult:
        category = args.get("category")
        entries = await long_term.retrieve_knowledge(
            context.organization_id,
            category=KnowledgeCategory(category) if category else None,
            tags=args.get("tags"),
            limit=args.get("limit") or 20,
        )
        return ToolResult.ok(
            [
                {
                    "key": e.key,
                    "category": e.category,
                    "content": e.content,
                    "confidence": e.confidence,
                    "tags": e.tags,
                    "validationCount": e.validation_count,
                }
                for e in entries
            ],
            count=len(entries),
        )

    async def recall_decisions(args: dict[str, Any], context: AgentContext) -> ToolResult:
        decisions = await long_term.get_recent_decisions(
            args["entityId"],
            action=args.get("action"),
            limit=args.get("limit") or 10,
            days=args.get("days") or 30,
        )
        return ToolResult.ok(
            [
                {
                    "action": d.action,
                    "entityType": d.entity_type,
                    "entityId": d.entity_id,
                    "reason": d.reason,
                    "status": d.status,
                    "params": d.input_params,
                    "outcome": d.outcome,
                    "createdAt": d.created_at.isoformat(),
                }
                for d in decisions
            ],
            count=len(decisions),
        )

    return [
        ToolDefinition(
            name="remember_insight",
            description=(
                "Store a lesson or insight for future runs, e.g. \"US broad targeting "
                "outperforms interest stacks for product X\". Storing the same key again "
                "re-affirms it and raises its confidence."
            ),
            category=ToolCategory.SYSTEM,
            parameters=obj({
                "content": string("The insight, in plain language"),
                "category": string("Knowledge category", enum=CATEGORIES),
                "key": string("Stable identifier; derived from the content when omitted"),
                "confidence": number("Confidence between 0 and 1"),
                "tags": array("Tags for later lookup", string("Tag")),
                "relatedEntities": array("Related campaign/ad set/material IDs", string("Entity ID")),
            }, required=["content"]),
            handler=remember_insight,
            entity_type=EntityType.KNOWLEDGE,
        ),
        ToolDefinition(
            name="recall_knowledge",
            description="Recall accumulated insights, highest confidence first. Optionally filter by category or tags.",
            category=ToolCategory.SYSTEM,
            parameters=obj({
                "category": string("Knowledge category", enum=CATEGORIES),
                "tags": array("Match entries sharing any of these tags", string("Tag")),
                "limit": integer("Max entries (default 20)"),
            }),
            handler=recall_knowledge,
            entity_type=EntityType.KNOWLEDGE,
        ),
        ToolDefinition(
            name="recall_decisions",
            description=(
                "Recall actions previously taken on a campaign, ad set or ad, with their "
                "outcomes. Use it to avoid repeating changes and to learn from results."
            ),
            category=ToolCategory.SYSTEM,
            parameters=obj({
                "entityId": string("Entity ID"),
                "action": string("Only this tool name (e.g. adjust_budget)"),
                "days": integer("Lookback window in days (default 30)"),
                "limit": integer("Max records (default 10)"),
            }, required=["entityId"]),
            handler=recall_decisions,
            entity_type=EntityType.KNOWLEDGE,
        ),
    ]
