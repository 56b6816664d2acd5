"""
Multi-Agent Orchestrator
========================

Coordinates the role agents:

- Automated pipeline (scheduled runs): Analyst -> recommendations -> Executor
- User-directed runs: route a message to the role its wording asks for

Routing uses keyword vocabularies checked in a fixed precedence:
planning, then execution, then creative; anything else goes to the analyst.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from adforge.agent_config import AgentConfig, AgentMode, AgentRole, TriggerType
from adforge.agents import run_role
from adforge.config import AdForgeSettings
from adforge.db import init_db
from adforge.guardrails import GuardrailEngine
from adforge.ledger import create_ledger
from adforge.memory import MemoryService
from adforge.model_client import AnthropicModelClient, ModelClient
from adforge.platforms import PlatformClients
from adforge.runtime import AgentRunResult, AgentRuntime, RunStatus
from adforge.tools.catalog import build_registry

logger = logging.getLogger(__name__)

ANALYSIS_SUMMARY_LIMIT = 2000
MAX_INSTRUCTION_RECOMMENDATIONS = 20
NO_ACTION_EXCERPT = 500

# Checked in this order; first vocabulary with a match wins
ROUTING_VOCABULARIES: list[tuple[AgentRole, tuple[str, ...]]] = [
    (AgentRole.PLANNER, ("plan", "strategy", "launch", "new campaign", "design", "structure")),
    (AgentRole.EXECUTOR, (
        "pause", "resume", "create", "adjust budget", "increase", "decrease",
        "execute", "stop", "turn off",
    )),
    (AgentRole.CREATIVE, ("creative", "material", "fatigue", "image", "video", "asset")),
]

FALLBACK_ACTIONS = ("SCALE", "PAUSE", "REDUCE")

_JSON_BLOCK = re.compile(r"```json\s*(.*?)```", re.DOTALL)


def classify_intent(message: str) -> AgentRole:
    """Pick the role a free-text request is meant for. Keywords match anywhere, even inside words."""
    lower = message.lower()
    for role, keywords in ROUTING_VOCABULARIES:
        if any(k in lower for k in keywords):
            return role
    return AgentRole.ANALYST


def extract_recommendations(summary: str) -> list[Any]:
    """
    Pull recommendations out of an analyst's final text.

    Tries, in order: a fenced ```json block with a ``recommendations`` list,
    the whole text as JSON, then a line scan for SCALE/PAUSE/REDUCE, each
    such line becoming a medium-priority recommendation.
    """
    if not summary:
        return []

    match = _JSON_BLOCK.search(summary)
    candidate = match.group(1) if match else summary
    try:
        parsed = json.loads(candidate)
    except (TypeError, ValueError):
        parsed = None

    if isinstance(parsed, dict):
        recommendations = parsed.get("recommendations") or []
        return list(recommendations) if isinstance(recommendations, list) else []
    if match is not None:
        logger.warning("Analyst JSON block could not be parsed, scanning lines instead")

    return [
        {"action": line.strip(), "priority": "medium"}
        for line in summary.splitlines()
        if any(action in line for action in FALLBACK_ACTIONS)
    ]


def _describe(rec: Any) -> str:
    if isinstance(rec, str):
        return rec
    if not isinstance(rec, dict):
        return str(rec)
    action = rec.get("action", "")
    target = f"{rec.get('entityType') or ''} {rec.get('entityId') or ''}".strip()
    reason = rec.get("reason") or action
    line = f"{action} - {target}: {reason}" if target else f"{action}: {reason}"
    change = rec.get("suggestedChange")
    if change:
        line += f" (suggested change: {json.dumps(change)})"
    return line


def build_execution_instructions(analysis_summary: str, recommendations: list[Any]) -> str:
    """Executor task text built from an analysis and its recommendations."""
    lines = [
        "Execute the following recommendations from the performance analysis:",
        "",
        "Analysis Summary:",
        (analysis_summary or "")[:ANALYSIS_SUMMARY_LIMIT],
        "",
        "Specific actions to take:",
    ]
    for i, rec in enumerate(recommendations[:MAX_INSTRUCTION_RECOMMENDATIONS], start=1):
        lines.append(f"{i}. {_describe(rec)}")
    lines.extend([
        "",
        "Execute each action in order. Skip any that fail guardrail checks. Report results for each.",
    ])
    return "\n".join(lines)


@dataclass
class OrchestrationResult:
    analysis: AgentRunResult
    overall_status: str
    summary: str
    execution: Optional[AgentRunResult] = None
    recommendations: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "analysis": self.analysis.to_dict(),
            "execution": self.execution.to_dict() if self.execution else None,
            "recommendations": self.recommendations,
            "overall_status": self.overall_status,
            "summary": self.summary,
        }


class Orchestrator:
    """
    Entry point for callers: per-role runs, the optimization pipeline and
    user-directed routing, all on one shared runtime.
    """

    def __init__(self, runtime: AgentRuntime):
        self.runtime = runtime

    async def run_analyst(
        self,
        config: AgentConfig,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        message: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
    ) -> AgentRunResult:
        return await run_role(self.runtime, AgentRole.ANALYST, config, organization_id, user_id, message, credentials)

    async def run_planner(
        self,
        config: AgentConfig,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        message: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
    ) -> AgentRunResult:
        return await run_role(self.runtime, AgentRole.PLANNER, config, organization_id, user_id, message, credentials)

    async def run_executor(
        self,
        config: AgentConfig,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        message: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
    ) -> AgentRunResult:
        return await run_role(self.runtime, AgentRole.EXECUTOR, config, organization_id, user_id, message, credentials)

    async def run_creative_agent(
        self,
        config: AgentConfig,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        message: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
    ) -> AgentRunResult:
        return await run_role(self.runtime, AgentRole.CREATIVE, config, organization_id, user_id, message, credentials)

    async def run_optimization_pipeline(
        self,
        config: AgentConfig,
        organization_id: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
    ) -> OrchestrationResult:
        """
        Analyst, then (in auto mode, when there is something to do) Executor.

        Returns:
            OrchestrationResult with overall status ``failed`` when the
            analysis failed, ``partial`` when execution did not complete and
            ``completed`` otherwise
        """
        started = time.perf_counter()
        logger.info("Starting optimization pipeline for agent %s", config.name)

        analysis = await run_role(
            self.runtime, AgentRole.ANALYST, config, organization_id,
            credentials=credentials, trigger_type=TriggerType.SCHEDULED_RUN,
        )
        if analysis.status == RunStatus.FAILED:
            logger.error("Analyst failed: %s", analysis.error)
            return OrchestrationResult(
                analysis=analysis,
                overall_status="failed",
                summary=f"Analysis failed: {analysis.error}",
            )

        recommendations = extract_recommendations(analysis.summary)
        if not recommendations:
            logger.info("No actionable recommendations from analyst")
            return OrchestrationResult(
                analysis=analysis,
                overall_status="completed",
                summary=(
                    "Analysis completed. No actionable recommendations. "
                    f"{(analysis.summary or '')[:NO_ACTION_EXCERPT]}"
                ),
            )

        if config.mode != AgentMode.AUTO:
            logger.info('Mode is "%s", not auto-executing %d recommendations', config.mode.value, len(recommendations))
            return OrchestrationResult(
                analysis=analysis,
                overall_status="completed",
                recommendations=recommendations,
                summary=(
                    f"Analysis completed with {len(recommendations)} recommendations. "
                    f'Mode is "{config.mode.value}", not auto-executing.'
                ),
            )

        execution = await run_role(
            self.runtime, AgentRole.EXECUTOR, config, organization_id,
            message=build_execution_instructions(analysis.summary, recommendations),
            credentials=credentials,
            trigger_type=TriggerType.ORCHESTRATOR,
            parent_session_id=analysis.session_id,
        )
        overall = "completed" if execution.status == RunStatus.COMPLETED else "partial"
        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Pipeline finished in %dms: analyst=%s, executor=%s",
            duration_ms, analysis.status.value, execution.status.value,
        )
        return OrchestrationResult(
            analysis=analysis,
            execution=execution,
            overall_status=overall,
            recommendations=recommendations,
            summary=(
                f"Optimization pipeline completed. Analyst found {len(recommendations)} recommendations. "
                f"Executor: {execution.status.value}. Total: {duration_ms}ms."
            ),
        )

    async def run_user_directed(
        self,
        config: AgentConfig,
        organization_id: Optional[str],
        user_id: Optional[str],
        message: str,
        role_override: Optional[AgentRole] = None,
        credentials: Optional[dict[str, Any]] = None,
    ) -> AgentRunResult:
        """Route a user's message to the explicitly requested or inferred role."""
        role = role_override or classify_intent(message)
        logger.info("Routing user message to %s agent", role.value)
        return await run_role(
            self.runtime, role, config, organization_id, user_id, message, credentials,
            trigger_type=TriggerType.USER_CHAT,
        )


async def create_orchestrator_async(
    settings: AdForgeSettings,
    clients: PlatformClients,
    model_client: Optional[ModelClient] = None,
    redis: Optional[Redis] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    use_cache: bool = True,
) -> Orchestrator:
    """
    Wire up an orchestrator from settings.

    Args:
        settings: Runtime settings (database, cache, model, timeouts)
        clients: Platform collaborators
        model_client: Model client (Anthropic from settings when omitted)
        redis: Cache client (created from ``settings.redis_url`` when omitted)
        session_maker: Database sessions (``init_db`` on settings when omitted)
        use_cache: Set False to run on the durable store alone
    """
    if session_maker is None:
        session_maker = await init_db(settings.database_url)
    if redis is None and use_cache and settings.redis_url:
        redis = Redis.from_url(settings.redis_url, decode_responses=True)
    if not use_cache:
        redis = None

    memory = MemoryService(session_maker, redis=redis, cache_timeout=settings.cache_timeout)
    registry = build_registry(clients, memory, tool_timeout=settings.tool_timeout)
    ledger = create_ledger(memory.long_term, redis=redis, timeout=settings.cache_timeout)
    guardrails = GuardrailEngine(ledger)
    if model_client is None:
        model_client = AnthropicModelClient(
            settings.api_key,
            settings.default_model,
            max_tokens=settings.max_tokens,
            timeout=settings.model_timeout,
        )

    runtime = AgentRuntime(registry, guardrails, memory, model_client, settings=settings)
    return Orchestrator(runtime)
