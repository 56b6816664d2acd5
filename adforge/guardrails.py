"""
Guardrail Engine
================

Policy evaluator consulted before every tool call.

Checks run in a fixed order and stop at the first rejection:

1. Permission       - the tool's required permission flag must be granted
2. Mode             - observe blocks writes; suggest blocks them for human approval
3. Budget           - proposed daily budget within [floor, ceiling]; warn near the ceiling
4. Cooldown         - one approved change per (entity, tool) per cooldown window
5. Per-run quota    - at most N calls of a tool per session
6. Change magnitude - relative change between current and proposed values

Cooldown and quota state lives in a RateLimitLedger; the engine itself keeps
no state between calls. A claim taken in step 4 or 5 is given back when a
later step rejects, so only approved calls consume them.
"""

import logging
from typing import Any, Optional

from adforge.agent_config import AgentContext, AgentMode
from adforge.ledger import RateLimitLedger
from adforge.tools.registry import GuardrailCheckResult, ToolDefinition, ToolGuardrails

logger = logging.getLogger(__name__)

DEFAULT_BUDGET_FLOOR = 5.0
BUDGET_WARNING_RATIO = 0.8


def _as_number(value: Any) -> Optional[float]:
    """Read a model-supplied numeric argument; anything unparseable is absent."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def reject(reason: str, **kwargs: Any) -> GuardrailCheckResult:
    return GuardrailCheckResult(approved=False, reason=reason, **kwargs)


class GuardrailEngine:
    """
    Approves, rejects or flags tool calls for human approval.

    Args:
        ledger: Shared cooldown/quota state
        budget_floor: Minimum daily budget for tools that don't declare their own
        warning_ratio: Fraction of the ceiling above which approved budgets warn
    """

    def __init__(
        self,
        ledger: RateLimitLedger,
        budget_floor: float = DEFAULT_BUDGET_FLOOR,
        warning_ratio: float = BUDGET_WARNING_RATIO,
    ):
        self.ledger = ledger
        self.budget_floor = budget_floor
        self.warning_ratio = warning_ratio

    async def check(
        self,
        tool: ToolDefinition,
        args: dict[str, Any],
        context: AgentContext,
    ) -> GuardrailCheckResult:
        """
        Evaluate one call.

        Args:
            tool: The tool being invoked
            args: The model-supplied arguments
            context: The run's context (mode, permissions, objectives, session)

        Returns:
            GuardrailCheckResult; never raises for policy outcomes
        """
        limits = tool.guardrails or ToolGuardrails()
        warnings: list[str] = []

        # 1. Permission
        permission = limits.required_permission
        if permission and not context.permissions.allows(permission):
            return reject(f'Permission denied: agent lacks "{permission}" permission')

        # 2. Mode
        if tool.is_write:
            if context.mode == AgentMode.OBSERVE:
                return reject(
                    f'Mode "observe" does not allow write operations. '
                    f'Tool "{tool.name}" is blocked.'
                )
            if context.mode == AgentMode.SUGGEST:
                return reject(
                    f'Mode "suggest" requires human approval for write operations. '
                    f'Tool "{tool.name}" was not executed.',
                    requires_human_approval=True,
                )

        # 3. Budget
        budget_verdict = self._check_budget(limits, args, context, warnings)
        if budget_verdict is not None:
            return budget_verdict

        # 4. Cooldown
        entity_id = tool.entity_id_from(args)
        stamped = False
        if limits.cooldown_minutes and entity_id:
            until = await self.ledger.try_stamp_cooldown(entity_id, tool.name, limits.cooldown_minutes)
            if until is not None:
                return reject(
                    f"Cooldown active: {tool.name} on {entity_id} was applied recently. "
                    f"Next change allowed after {until.isoformat()}",
                    cooldown_until=until,
                )
            stamped = True

        # 5. Per-run quota
        reserved = False
        if limits.max_calls_per_run:
            reserved = await self.ledger.reserve_call(context.session_id, tool.name, limits.max_calls_per_run)
            if not reserved:
                if stamped:
                    await self.ledger.release_cooldown(entity_id, tool.name)
                return reject(
                    f'Tool "{tool.name}" reached its limit of {limits.max_calls_per_run} calls per run'
                )

        # 6. Change magnitude
        if limits.max_change_percent is not None:
            current_arg, new_arg = limits.change_args
            current = _as_number(args.get(current_arg))
            proposed = _as_number(args.get(new_arg))
            if current is not None and proposed is not None and current > 0:
                change = abs(proposed - current) / current * 100
                if change > limits.max_change_percent:
                    if stamped:
                        await self.ledger.release_cooldown(entity_id, tool.name)
                    if reserved:
                        await self.ledger.release_call(context.session_id, tool.name)
                    return reject(
                        f"Budget change of {change:.1f}% exceeds max allowed "
                        f"{limits.max_change_percent:g}%"
                    )

        # 7. Approved: count the call against the session
        if not reserved:
            await self.ledger.count_call(context.session_id, tool.name)

        if warnings:
            logger.info("Guardrail warnings for %s: %s", tool.name, "; ".join(warnings))
        return GuardrailCheckResult(approved=True, warnings=warnings)

    def _check_budget(
        self,
        limits: ToolGuardrails,
        args: dict[str, Any],
        context: AgentContext,
        warnings: list[str],
    ) -> Optional[GuardrailCheckResult]:
        if not limits.budget_arg:
            return None
        budget = _as_number(args.get(limits.budget_arg))
        if budget is None:
            return None

        floor = limits.min_budget if limits.min_budget is not None else self.budget_floor
        if budget < floor:
            return reject(f"Budget ${budget:.2f} is below the minimum of ${floor:.2f}")

        ceiling = context.objectives.daily_budget_limit
        if ceiling:
            if budget > ceiling:
                return reject(f"Budget ${budget:.2f} exceeds the daily budget limit of ${ceiling:.2f}")
            if budget > ceiling * self.warning_ratio:
                warnings.append(
                    f"Budget ${budget:.2f} is above {self.warning_ratio:.0%} of the daily budget limit ${ceiling:.2f}"
                )
        return None
