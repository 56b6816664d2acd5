"""
Tool Registry
=============

Catalog of typed, named operations the model may call.

A registry is constructed explicitly and passed to the runtime; there is no
process-wide catalog. Each ToolDefinition carries a JSON-schema parameter
description, an async handler and the metadata the guardrail engine and the
decision log rely on (``is_write``, ``entity_type``, optional limits).

Execution never raises: unknown tools, invalid arguments, handler faults and
timeouts all come back as a ToolCallRecord whose result is a failure.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, create_model

from adforge.agent_config import AgentContext

logger = logging.getLogger(__name__)

ARG_SUMMARY_LIMIT = 200

# Argument names that identify the entity a call acts on, in lookup order
ENTITY_ID_ARGS = ("entityId", "campaignId", "adsetId", "adGroupId", "adId")

# Result fields that identify an entity created by a call
CREATED_ID_FIELDS = ("entityId", "campaignId", "adsetId", "adGroupId", "adId", "creativeId", "imageHash", "videoId")


class ToolCategory(Enum):
    FACEBOOK = "facebook"
    TIKTOK = "tiktok"
    DATA = "data"
    MATERIAL = "material"
    ANALYSIS = "analysis"
    SYSTEM = "system"


class EntityType(Enum):
    """Kind of platform object a tool acts on."""
    CAMPAIGN = "campaign"
    ADSET = "adset"
    AD = "ad"
    ADGROUP = "adgroup"
    CREATIVE = "creative"
    IMAGE = "image"
    VIDEO = "video"
    ACCOUNT = "account"
    MATERIAL = "material"
    KNOWLEDGE = "knowledge"
    UNKNOWN = "unknown"


@dataclass
class ToolGuardrails:
    """Per-tool limits enforced by the guardrail engine."""
    required_permission: Optional[str] = None
    cooldown_minutes: Optional[float] = None
    max_calls_per_run: Optional[int] = None
    max_change_percent: Optional[float] = None
    # Argument carrying a proposed daily budget, checked against floor/ceiling
    budget_arg: Optional[str] = None
    min_budget: Optional[float] = None
    # (current, proposed) argument names for the change-magnitude check
    change_args: tuple[str, str] = ("currentBudget", "newBudget")

    def to_dict(self) -> dict:
        return {
            "required_permission": self.required_permission,
            "cooldown_minutes": self.cooldown_minutes,
            "max_calls_per_run": self.max_calls_per_run,
            "max_change_percent": self.max_change_percent,
            "budget_arg": self.budget_arg,
            "min_budget": self.min_budget,
            "change_args": list(self.change_args),
        }


@dataclass
class ToolResult:
    """Outcome of one handler invocation."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, **metadata: Any) -> "ToolResult":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolResult":
        return cls(success=False, error=error, metadata=metadata)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload

    @classmethod
    def from_dict(cls, data: dict) -> "ToolResult":
        return cls(
            success=bool(data.get("success")),
            data=data.get("data"),
            error=data.get("error"),
            metadata=data.get("metadata") or {},
        )


@dataclass
class GuardrailCheckResult:
    """Verdict of the guardrail engine for one call."""
    approved: bool
    reason: Optional[str] = None
    requires_human_approval: bool = False
    warnings: list[str] = field(default_factory=list)
    cooldown_until: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "approved": self.approved,
            "reason": self.reason,
            "requires_human_approval": self.requires_human_approval,
            "warnings": list(self.warnings),
            "cooldown_until": self.cooldown_until.isoformat() if self.cooldown_until else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GuardrailCheckResult":
        until = data.get("cooldown_until")
        return cls(
            approved=bool(data.get("approved")),
            reason=data.get("reason"),
            requires_human_approval=bool(data.get("requires_human_approval", False)),
            warnings=list(data.get("warnings", [])),
            cooldown_until=datetime.fromisoformat(until) if until else None,
        )


ToolHandler = Callable[[dict[str, Any], AgentContext], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """A named operation the model can call."""
    name: str
    description: str
    category: ToolCategory
    parameters: dict[str, Any]
    handler: ToolHandler
    is_write: bool = False
    entity_type: EntityType = EntityType.UNKNOWN
    guardrails: Optional[ToolGuardrails] = None

    def entity_id_from(self, args: dict[str, Any]) -> Optional[str]:
        """Find the id of the entity a call acts on, if the arguments name one."""
        for key in ENTITY_ID_ARGS:
            value = args.get(key)
            if value not in (None, ""):
                return str(value)
        return None

    def entity_type_from(self, args: dict[str, Any]) -> str:
        """Entity type for a call; tools acting on several kinds take it from ``entityType``."""
        declared = args.get("entityType")
        if declared:
            return str(declared)
        return self.entity_type.value

    def declaration(self) -> dict[str, Any]:
        """Model-facing schema for this tool."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ToolCallRecord:
    """One attempted call, executed or not."""
    tool_name: str
    args: dict[str, Any]
    result: ToolResult
    guardrail_check: GuardrailCheckResult
    duration_ms: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    call_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.result.success

    def to_dict(self) -> dict:
        return {
            "tool_name": self.tool_name,
            "args": self.args,
            "result": self.result.to_dict(),
            "guardrail_check": self.guardrail_check.to_dict(),
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp,
            "call_id": self.call_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCallRecord":
        return cls(
            tool_name=data.get("tool_name", ""),
            args=data.get("args") or {},
            result=ToolResult.from_dict(data.get("result") or {}),
            guardrail_check=GuardrailCheckResult.from_dict(data.get("guardrail_check") or {}),
            duration_ms=int(data.get("duration_ms", 0)),
            timestamp=data.get("timestamp", ""),
            call_id=data.get("call_id"),
        )


class ToolArgumentError(ValueError):
    """Raised when call arguments do not match a tool's declared schema."""


# =============================================================================
# Schema Validation
# =============================================================================

_JSON_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "object": dict[str, Any],
}


def _python_type(schema: dict[str, Any]) -> Any:
    """Map a JSON-schema property to a Python annotation."""
    enum = schema.get("enum")
    if enum:
        return Literal[tuple(enum)]
    json_type = str(schema.get("type", "string")).lower()
    if json_type == "array":
        return list[_python_type(schema.get("items") or {})]
    return _JSON_TYPES.get(json_type, Any)


def build_args_model(tool_name: str, parameters: dict[str, Any]) -> type[BaseModel]:
    """Build a pydantic model that validates arguments for one tool."""
    required = set(parameters.get("required", []))
    model_fields: dict[str, Any] = {}
    for prop, schema in (parameters.get("properties") or {}).items():
        annotation = _python_type(schema)
        if prop in required:
            model_fields[prop] = (annotation, ...)
        else:
            model_fields[prop] = (Optional[annotation], None)
    return create_model(
        f"{tool_name}_args",
        __config__=ConfigDict(extra="ignore", coerce_numbers_to_str=True),
        **model_fields,
    )


def summarize_args(args: dict[str, Any]) -> dict[str, str]:
    """Stringify call arguments for logs, truncating long values."""
    summary = {}
    for key, value in args.items():
        text = value if isinstance(value, str) else repr(value)
        summary[key] = text[:ARG_SUMMARY_LIMIT]
    return summary


# =============================================================================
# Registry
# =============================================================================

class ToolRegistry:
    """
    Explicitly constructed tool catalog.

    Provides:
    - Registration (overwrite with a warning on name collision)
    - Filtered model-facing declarations
    - Guarded-by-caller execution with schema validation, timing and fault capture
    """

    def __init__(self, tool_timeout: Optional[float] = None):
        self.tool_timeout = tool_timeout
        self._tools: dict[str, ToolDefinition] = {}
        self._arg_models: dict[str, type[BaseModel]] = {}

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        self._tools[tool.name] = tool
        self._arg_models.pop(tool.name, None)

    def register_all(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self, categories: Optional[Iterable[ToolCategory]] = None) -> list[ToolDefinition]:
        if categories is None:
            return list(self._tools.values())
        wanted = set(categories)
        return [t for t in self._tools.values() if t.category in wanted]

    def select(
        self,
        categories: Optional[Iterable[ToolCategory]] = None,
        tool_names: Optional[Iterable[str]] = None,
    ) -> list[ToolDefinition]:
        """Tools passing every supplied filter (category membership, name allow-list)."""
        tools = self.list_tools(categories)
        if tool_names is not None:
            allowed = set(tool_names)
            tools = [t for t in tools if t.name in allowed]
        return tools

    def to_function_declarations(
        self,
        categories: Optional[Iterable[ToolCategory]] = None,
        tool_names: Optional[Iterable[str]] = None,
    ) -> list[dict[str, Any]]:
        """Model-callable schemas for the filtered catalog."""
        return [t.declaration() for t in self.select(categories, tool_names)]

    def validate_args(self, tool: ToolDefinition, args: Optional[dict[str, Any]]) -> dict[str, Any]:
        """
        Validate model-supplied arguments against the tool's schema.

        Returns:
            The coerced arguments, without unknown keys

        Raises:
            ToolArgumentError: If the arguments do not fit the schema
        """
        model = self._arg_models.get(tool.name)
        if model is None:
            model = build_args_model(tool.name, tool.parameters)
            self._arg_models[tool.name] = model

        if args is not None and not isinstance(args, dict):
            raise ToolArgumentError(f"arguments must be an object, got {type(args).__name__}")

        try:
            validated = model.model_validate(args or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            )
            raise ToolArgumentError(problems) from e
        return validated.model_dump(exclude_unset=True)

    def not_found_record(
        self,
        name: str,
        args: Optional[dict[str, Any]],
        available: Optional[Iterable[str]] = None,
    ) -> ToolCallRecord:
        """Failure record for a call naming a tool outside the catalog offered."""
        available = ", ".join(self.names() if available is None else available)
        return ToolCallRecord(
            tool_name=name,
            args=dict(args or {}),
            result=ToolResult.fail(f'Tool "{name}" not found. Available tools: {available}'),
            guardrail_check=GuardrailCheckResult(approved=False, reason="Tool not found"),
            duration_ms=0,
        )

    def invalid_args_record(
        self,
        name: str,
        args: Optional[dict[str, Any]],
        error: ToolArgumentError,
        guardrail_check: Optional[GuardrailCheckResult] = None,
        call_id: Optional[str] = None,
    ) -> ToolCallRecord:
        """Failure record for a call whose arguments do not fit the tool's schema."""
        return ToolCallRecord(
            tool_name=name,
            args=dict(args) if isinstance(args, dict) else {},
            result=ToolResult.fail(f'Invalid arguments for tool "{name}": {error}'),
            guardrail_check=guardrail_check or GuardrailCheckResult(approved=False, reason="Invalid arguments"),
            duration_ms=0,
            call_id=call_id,
        )

    async def execute(
        self,
        name: str,
        args: Optional[dict[str, Any]],
        context: AgentContext,
        guardrail_check: Optional[GuardrailCheckResult] = None,
        call_id: Optional[str] = None,
    ) -> ToolCallRecord:
        """
        Execute a tool by name.

        Args:
            name: Tool name as requested by the model
            args: Raw call arguments
            context: The run's context
            guardrail_check: Verdict that allowed this call (approved when omitted)
            call_id: Model-side id of the call, echoed on the record

        Returns:
            ToolCallRecord with timing; never raises
        """
        tool = self._tools.get(name)
        if tool is None:
            record = self.not_found_record(name, args)
            record.call_id = call_id
            return record

        check = guardrail_check or GuardrailCheckResult(approved=True)
        raw_args = dict(args) if isinstance(args, dict) else {}
        started = time.perf_counter()

        try:
            clean_args = self.validate_args(tool, args)
        except ToolArgumentError as e:
            return self.invalid_args_record(name, raw_args, e, guardrail_check=check, call_id=call_id)

        try:
            call = tool.handler(clean_args, context)
            if self.tool_timeout:
                result = await asyncio.wait_for(call, timeout=self.tool_timeout)
            else:
                result = await call
            if not isinstance(result, ToolResult):
                result = ToolResult.ok(result)
        except asyncio.TimeoutError:
            result = ToolResult.fail(f"Tool execution failed: timed out after {self.tool_timeout}s")
        except Exception as e:
            logger.warning("Tool %s raised: %s", name, e)
            result = ToolResult.fail(f"Tool execution failed: {e}")

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.debug("Tool %s(%s) -> success=%s in %dms", name, summarize_args(clean_args), result.success, duration_ms)

        return ToolCallRecord(
            tool_name=name,
            args=clean_args,
            result=result,
            guardrail_check=check,
            duration_ms=duration_ms,
            call_id=call_id,
        )
