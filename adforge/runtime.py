"""
Agent Runtime
=============

The tool-calling control loop shared by every role.

One run goes:

    INIT -> ITERATING -> COMPLETED | MAX_ITERATIONS | FAILED

INIT creates the session record, narrows the tool catalog to the role,
assembles the system prompt (role prompt, memory digest, guardrail banner)
and sends the opening message. Each iteration takes the model's turn: a
text-only turn completes the run; otherwise every requested call is checked
by the guardrail engine, approved calls are executed through the registry and
all results go back to the model as one batch.

Calls within one iteration run concurrently and are isolated from each other.
Terminal states are returned, never raised.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from adforge.agent_config import (
    MODE_DESCRIPTIONS,
    AgentConfig,
    AgentContext,
    AgentRole,
    TriggerType,
    create_agent_context,
)
from adforge.config import AdForgeSettings
from adforge.guardrails import GuardrailEngine
from adforge.memory import MemoryService
from adforge.memory.long_term import DecisionRecord, DecisionStatus
from adforge.memory.session import SessionStatus
from adforge.model_client import (
    FunctionCall,
    FunctionResponse,
    ModelClient,
    ModelClientError,
    ModelTurn,
)
from adforge.prompts import load_prompt
from adforge.tools.registry import (
    CREATED_ID_FIELDS,
    GuardrailCheckResult,
    ToolArgumentError,
    ToolCallRecord,
    ToolCategory,
    ToolDefinition,
    ToolRegistry,
    ToolResult,
)

logger = logging.getLogger(__name__)

NO_CREDENTIAL = "LLM API key not configured"
BLOCKED_PREFIX = "BLOCKED by guardrails: "
DEFAULT_DECISION_REASON = "Agent automated action"
UNKNOWN_ENTITY = "unknown"


class RunStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    MAX_ITERATIONS = "max_iterations"


@dataclass
class RoleProfile:
    """
    How the shared runtime is specialised for one role.

    ``categories`` and ``tool_names`` filter the registry together: a tool is
    offered only if it passes every filter that is set.
    """
    role: AgentRole
    prompt_name: str
    default_task: str
    categories: Optional[tuple[ToolCategory, ...]] = None
    tool_names: Optional[tuple[str, ...]] = None


@dataclass
class AgentRunResult:
    """What a caller gets back from one run."""
    session_id: Optional[str]
    agent_id: str
    role: str
    status: RunStatus
    summary: str = ""
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    total_iterations: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status != RunStatus.FAILED

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "agent_id": self.agent_id,
            "role": self.role,
            "status": self.status.value,
            "summary": self.summary,
            "tool_calls": [r.to_dict() for r in self.tool_calls],
            "decisions": list(self.decisions),
            "total_iterations": self.total_iterations,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


def _format_money(value: Optional[float]) -> str:
    return f"${value:,.2f}" if value is not None else "not set"


def build_guardrail_banner(context: AgentContext) -> str:
    """Policy summary appended to every system prompt."""
    objectives = context.objectives
    accounts = context.scope.ad_account_ids
    lines = [
        "# Guardrails",
        f"- Operating mode: {MODE_DESCRIPTIONS[context.mode]}",
        f"- Daily budget limit: {_format_money(objectives.daily_budget_limit)}",
        f"- Target ROAS: {objectives.target_roas if objectives.target_roas is not None else 'not set'}",
        f"- Max CPA: {_format_money(objectives.max_cpa)}",
        f"- Accounts in scope: {', '.join(accounts) if accounts else 'all accessible accounts'}",
    ]
    if objectives.target_countries:
        lines.append(f"- Target countries: {', '.join(objectives.target_countries)}")
    return "\n".join(lines)


def _platform_for(tool: ToolDefinition) -> str:
    if tool.category in (ToolCategory.FACEBOOK, ToolCategory.TIKTOK):
        return tool.category.value
    return "internal"


def _decision_entity_id(tool: ToolDefinition, record: ToolCallRecord) -> str:
    """Entity named by the arguments, else one created by the call, else unknown."""
    entity_id = tool.entity_id_from(record.args)
    if entity_id:
        return entity_id
    data = record.result.data
    if isinstance(data, dict):
        for key in CREATED_ID_FIELDS:
            if data.get(key):
                return str(data[key])
    return UNKNOWN_ENTITY


class AgentRuntime:
    """
    Runs role-specialised agents against one registry, engine and memory.

    Args:
        registry: Tool catalog shared by every role
        guardrails: Policy engine consulted before each call
        memory: Session, working and long-term tiers
        model_client: Generative model with function calling
        settings: Time bounds for model calls
    """

    def __init__(
        self,
        registry: ToolRegistry,
        guardrails: GuardrailEngine,
        memory: MemoryService,
        model_client: ModelClient,
        settings: Optional[AdForgeSettings] = None,
    ):
        self.registry = registry
        self.guardrails = guardrails
        self.memory = memory
        self.model_client = model_client
        self.settings = settings or AdForgeSettings()

    async def build_system_prompt(self, context: AgentContext, profile: RoleProfile) -> str:
        base = context.config.system_prompt_override or load_prompt(profile.prompt_name)
        digest = await self.memory.build_context(context.agent_id, context.organization_id)
        return "\n\n".join([
            base.strip(),
            "# Memory & Context\n" + digest,
            build_guardrail_banner(context),
        ])

    async def _ask(self, call) -> ModelTurn:
        """Await one model request within the configured bound."""
        try:
            if self.settings.model_timeout:
                return await asyncio.wait_for(call, timeout=self.settings.model_timeout)
            return await call
        except asyncio.TimeoutError as e:
            raise ModelClientError(f"Model call timed out after {self.settings.model_timeout}s") from e

    async def run(
        self,
        config: AgentConfig,
        profile: RoleProfile,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        message: Optional[str] = None,
        credentials: Optional[dict[str, Any]] = None,
        trigger_type: TriggerType = TriggerType.USER_CHAT,
        parent_session_id: Optional[str] = None,
    ) -> AgentRunResult:
        """
        Execute one run to a terminal state.

        Args:
            config: The agent's configuration (copied for the run)
            profile: Role specialisation (prompt, tool filters, default task)
            organization_id: Organization the run acts for
            user_id: Initiating user, if any
            message: Opening user message (the role's default task when omitted)
            credentials: Platform credentials for this run
            trigger_type: What started the run
            parent_session_id: Session that spawned this one, if any

        Returns:
            AgentRunResult; failures are reported in ``status`` and ``error``
        """
        started = time.perf_counter()
        role = profile.role.value

        if not self.model_client.is_configured:
            logger.error("Cannot run %s agent %s: %s", role, config.id, NO_CREDENTIAL)
            return AgentRunResult(
                session_id=None,
                agent_id=config.id,
                role=role,
                status=RunStatus.FAILED,
                error=NO_CREDENTIAL,
            )

        config = config.with_role(profile.role)
        context = create_agent_context(config, organization_id, user_id, credentials)
        message = message or profile.default_task

        await self.memory.sessions.create_session(
            context.session_id,
            context.agent_id,
            role,
            trigger_type.value,
            organization_id=context.organization_id,
            user_id=user_id,
            parent_session_id=parent_session_id,
            input_context={"message": message},
        )

        tools = self.registry.select(profile.categories, profile.tool_names)
        offered = {t.name: t for t in tools}

        tool_calls: list[ToolCallRecord] = []
        decisions: list[str] = []
        iteration = 0
        last_text = ""
        status = RunStatus.FAILED
        summary = ""
        error: Optional[str] = None

        logger.info(
            "Starting %s run %s for agent %s (%s, %d tools)",
            role, context.session_id, context.agent_id, context.mode.value, len(tools),
        )

        try:
            system_prompt = await self.build_system_prompt(context, profile)
            conversation = self.model_client.start_conversation(
                system_prompt,
                [t.declaration() for t in tools],
                model=config.model,
                temperature=config.temperature,
            )
            turn = await self._ask(conversation.send_message(message))

            while iteration < config.max_iterations:
                iteration += 1
                if turn.text:
                    last_text = turn.text

                if not turn.has_function_calls:
                    status = RunStatus.COMPLETED
                    summary = turn.text
                    break

                logger.info(
                    "Iteration %d: %d tool call(s): %s",
                    iteration, len(turn.function_calls), ", ".join(c.name for c in turn.function_calls),
                )
                records = await asyncio.gather(
                    *(self._run_call(call, context, offered) for call in turn.function_calls)
                )
                tool_calls.extend(records)
                await self.memory.sessions.append_tool_calls(context.session_id, records)

                for record in records:
                    decision_id = await self._record_decision(record, context, offered)
                    if decision_id:
                        decisions.append(decision_id)

                turn = await self._ask(conversation.send_function_responses([
                    FunctionResponse(
                        call_id=record.call_id or "",
                        name=record.tool_name,
                        response=record.result.to_dict(),
                        is_error=not record.success,
                    )
                    for record in records
                ]))
            else:
                if turn.text:
                    last_text = turn.text
                if turn.has_function_calls:
                    status = RunStatus.MAX_ITERATIONS
                    summary = last_text or f"Stopped after reaching the limit of {config.max_iterations} iterations"
                    logger.warning("Run %s reached max iterations (%d)", context.session_id, config.max_iterations)
                else:
                    status = RunStatus.COMPLETED
                    summary = turn.text
        except ModelClientError as e:
            status = RunStatus.FAILED
            error = str(e)
            summary = last_text
            logger.error("Run %s failed: %s", context.session_id, e)
        except Exception as e:
            status = RunStatus.FAILED
            error = f"{type(e).__name__}: {e}"
            summary = last_text
            logger.exception("Run %s failed unexpectedly", context.session_id)

        duration_ms = int((time.perf_counter() - started) * 1000)
        await self._finish(context, status, summary, iteration, duration_ms, decisions, error)

        logger.info(
            "Run %s %s: %d iterations, %d tool calls, %d decisions, %dms",
            context.session_id, status.value, iteration, len(tool_calls), len(decisions), duration_ms,
        )
        return AgentRunResult(
            session_id=context.session_id,
            agent_id=context.agent_id,
            role=role,
            status=status,
            summary=summary,
            tool_calls=tool_calls,
            decisions=decisions,
            total_iterations=iteration,
            duration_ms=duration_ms,
            error=error,
        )

    # =========================================================================
    # Tool calls
    # =========================================================================

    async def _run_call(
        self,
        call: FunctionCall,
        context: AgentContext,
        offered: dict[str, ToolDefinition],
    ) -> ToolCallRecord:
        """Check and execute one call. Never raises, so siblings are unaffected."""
        try:
            return await self._guarded_execute(call, context, offered)
        except Exception as e:
            logger.exception("Tool call %s could not be evaluated", call.name)
            return ToolCallRecord(
                tool_name=call.name,
                args=dict(call.args or {}),
                result=ToolResult.fail(f"Tool execution failed: {e}"),
                guardrail_check=GuardrailCheckResult(approved=False, reason=f"Guardrail evaluation failed: {e}"),
                call_id=call.id,
            )

    async def _guarded_execute(
        self,
        call: FunctionCall,
        context: AgentContext,
        offered: dict[str, ToolDefinition],
    ) -> ToolCallRecord:
        args = call.args if isinstance(call.args, dict) else {}
        tool = offered.get(call.name)
        if tool is None:
            record = self.registry.not_found_record(call.name, args, available=offered)
            record.call_id = call.id
            return record

        # Validate before the guardrail so a rejected call claims no cooldown or quota
        try:
            args = self.registry.validate_args(tool, args)
        except ToolArgumentError as e:
            logger.info("Rejected arguments for %s: %s", tool.name, e)
            return self.registry.invalid_args_record(tool.name, call.args, e, call_id=call.id)

        check = await self.guardrails.check(tool, args, context)
        if not check.approved:
            logger.info("Blocked %s: %s", tool.name, check.reason)
            metadata = {"requires_human_approval": True} if check.requires_human_approval else {}
            return ToolCallRecord(
                tool_name=tool.name,
                args=dict(args),
                result=ToolResult.fail(f"{BLOCKED_PREFIX}{check.reason}", **metadata),
                guardrail_check=check,
                duration_ms=0,
                call_id=call.id,
            )

        record = await self.registry.execute(tool.name, args, context, guardrail_check=check, call_id=call.id)
        if check.warnings:
            record.result.metadata.setdefault("warnings", list(check.warnings))
        return record

    async def _record_decision(
        self,
        record: ToolCallRecord,
        context: AgentContext,
        offered: dict[str, ToolDefinition],
    ) -> Optional[str]:
        """Persist a Decision for a successful write call; returns its id."""
        tool = offered.get(record.tool_name)
        if tool is None or not tool.is_write or not record.success:
            return None

        args = record.args
        decision = DecisionRecord(
            agent_id=context.agent_id,
            session_id=context.session_id,
            organization_id=context.organization_id,
            action=tool.name,
            entity_type=tool.entity_type_from(args),
            entity_id=_decision_entity_id(tool, record),
            platform=_platform_for(tool),
            account_id=args.get("accountId") or args.get("advertiserId"),
            reason=args.get("reason") or DEFAULT_DECISION_REASON,
            input_params=dict(args),
            result=record.result.to_dict(),
            status=DecisionStatus.EXECUTED.value,
        )
        saved = await self.memory.long_term.record_decision(decision)
        return saved.id if saved else None

    # =========================================================================
    # Finalization
    # =========================================================================

    async def _finish(
        self,
        context: AgentContext,
        status: RunStatus,
        summary: str,
        iterations: int,
        duration_ms: int,
        decisions: Iterable[str],
        error: Optional[str],
    ) -> None:
        await self.memory.sessions.finalize_session(
            context.session_id,
            SessionStatus(status.value),
            summary,
            iterations=iterations,
            duration_ms=duration_ms,
            decisions_made=list(decisions),
            error=error,
        )
        await self.memory.working.set_agent_state(context.agent_id, {
            "last_session_id": context.session_id,
            "last_role": context.role.value,
            "last_status": status.value,
            "last_summary": (summary or "")[:500],
            "finished_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        })
