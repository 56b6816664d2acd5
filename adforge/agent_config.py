"""
Agent Configuration
===================

Defines who an agent is and what it may do: role, operating mode, permission
set, account scope and numeric objectives. An AgentConfig is loaded before a
run and materialised into a fresh AgentContext for that run only.

Operating modes, from most to least restrictive:
- OBSERVE: read-only; every write tool is blocked outright
- SUGGEST: write tools are blocked but flagged for human approval
- AUTO:    write tools run, subject to the remaining guardrail checks
"""

import copy
import json
import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class AgentRole(Enum):
    """Specialised roles sharing the one runtime."""
    ANALYST = "analyst"
    PLANNER = "planner"
    EXECUTOR = "executor"
    CREATIVE = "creative"


class AgentMode(Enum):
    """How much an agent may change on the platforms."""
    OBSERVE = "observe"
    SUGGEST = "suggest"
    AUTO = "auto"


class AgentStatus(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DISABLED = "disabled"


class TriggerType(Enum):
    """What started a run."""
    USER_CHAT = "user_chat"
    SCHEDULED_RUN = "scheduled_run"
    API_TRIGGER = "api_trigger"
    ORCHESTRATOR = "orchestrator"


MODE_DESCRIPTIONS: dict[AgentMode, str] = {
    AgentMode.OBSERVE: "OBSERVE (read-only, no changes allowed)",
    AgentMode.SUGGEST: "SUGGEST (write actions need human approval)",
    AgentMode.AUTO: "AUTO (write actions execute within guardrails)",
}


@dataclass
class AgentPermissions:
    """Capability flags checked against each tool's required permission."""
    can_publish_ads: bool = False
    can_toggle_status: bool = True
    can_adjust_budget: bool = True
    can_adjust_bid: bool = False
    can_pause: bool = True
    can_resume: bool = True
    can_create_campaigns: bool = False
    can_modify_targeting: bool = False
    can_modify_creatives: bool = False

    def allows(self, permission: str) -> bool:
        """Check a permission flag by name; unknown names are never granted."""
        return bool(getattr(self, permission, False))

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AgentPermissions":
        data = data or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: bool(v) for k, v in data.items() if k in known})


@dataclass
class AgentScope:
    """Accounts and credentials an agent is allowed to touch."""
    ad_account_ids: list[str] = field(default_factory=list)
    fb_token_ids: list[str] = field(default_factory=list)
    tiktok_token_ids: list[str] = field(default_factory=list)
    facebook_app_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {f.name: list(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AgentScope":
        data = data or {}
        return cls(
            ad_account_ids=list(data.get("ad_account_ids", [])),
            fb_token_ids=list(data.get("fb_token_ids", [])),
            tiktok_token_ids=list(data.get("tiktok_token_ids", [])),
            facebook_app_ids=list(data.get("facebook_app_ids", [])),
        )


@dataclass
class AgentObjectives:
    """Numeric targets and ceilings the agent works towards."""
    target_roas: Optional[float] = None
    max_cpa: Optional[float] = None
    daily_budget_limit: Optional[float] = None
    monthly_budget_limit: Optional[float] = None
    target_countries: list[str] = field(default_factory=list)
    preferred_platform: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "target_roas": self.target_roas,
            "max_cpa": self.max_cpa,
            "daily_budget_limit": self.daily_budget_limit,
            "monthly_budget_limit": self.monthly_budget_limit,
            "target_countries": list(self.target_countries),
            "preferred_platform": self.preferred_platform,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AgentObjectives":
        data = data or {}

        def _num(key: str) -> Optional[float]:
            value = data.get(key)
            return float(value) if value is not None else None

        return cls(
            target_roas=_num("target_roas"),
            max_cpa=_num("max_cpa"),
            daily_budget_limit=_num("daily_budget_limit"),
            monthly_budget_limit=_num("monthly_budget_limit"),
            target_countries=list(data.get("target_countries", [])),
            preferred_platform=data.get("preferred_platform"),
        )


@dataclass
class AgentConfig:
    """Identity, policy and limits of one configured agent."""
    id: str
    name: str
    role: AgentRole = AgentRole.ANALYST
    mode: AgentMode = AgentMode.OBSERVE
    organization_id: Optional[str] = None
    status: AgentStatus = AgentStatus.ACTIVE
    permissions: AgentPermissions = field(default_factory=AgentPermissions)
    scope: AgentScope = field(default_factory=AgentScope)
    objectives: AgentObjectives = field(default_factory=AgentObjectives)
    system_prompt_override: Optional[str] = None
    model: Optional[str] = None
    max_iterations: int = 25
    temperature: float = 0.2

    def with_role(self, role: AgentRole) -> "AgentConfig":
        """Return a copy of this config running as a different role."""
        clone = copy.deepcopy(self)
        clone.role = role
        return clone

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "mode": self.mode.value,
            "organization_id": self.organization_id,
            "status": self.status.value,
            "permissions": self.permissions.to_dict(),
            "scope": self.scope.to_dict(),
            "objectives": self.objectives.to_dict(),
            "system_prompt_override": self.system_prompt_override,
            "model": self.model,
            "max_iterations": self.max_iterations,
            "temperature": self.temperature,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentConfig":
        """Create from dictionary."""
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            name=data.get("name", "agent"),
            role=AgentRole(data.get("role", AgentRole.ANALYST.value)),
            mode=AgentMode(data.get("mode", AgentMode.OBSERVE.value)),
            organization_id=data.get("organization_id"),
            status=AgentStatus(data.get("status", AgentStatus.ACTIVE.value)),
            permissions=AgentPermissions.from_dict(data.get("permissions")),
            scope=AgentScope.from_dict(data.get("scope")),
            objectives=AgentObjectives.from_dict(data.get("objectives")),
            system_prompt_override=data.get("system_prompt_override"),
            model=data.get("model"),
            max_iterations=int(data.get("max_iterations", 25)),
            temperature=float(data.get("temperature", 0.2)),
        )

    @classmethod
    def from_file(cls, path: Path) -> "AgentConfig":
        """Load an agent config from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


@dataclass
class AgentContext:
    """
    Per-run materialisation of an AgentConfig.

    Created fresh for every run and never persisted. The config held here is a
    private copy, so edits to the caller's config cannot leak into a run.
    """
    config: AgentConfig
    session_id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    credentials: dict[str, Any] = field(default_factory=dict)

    @property
    def agent_id(self) -> str:
        return self.config.id

    @property
    def role(self) -> AgentRole:
        return self.config.role

    @property
    def mode(self) -> AgentMode:
        return self.config.mode

    @property
    def permissions(self) -> AgentPermissions:
        return self.config.permissions

    @property
    def scope(self) -> AgentScope:
        return self.config.scope

    @property
    def objectives(self) -> AgentObjectives:
        return self.config.objectives

    def credential(self, name: str) -> Optional[Any]:
        return self.credentials.get(name)


def create_agent_context(
    config: AgentConfig,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    session_id: Optional[str] = None,
) -> AgentContext:
    """
    Materialise a run context from a config.

    Args:
        config: The agent's configuration (copied, never mutated)
        organization_id: Organization the run acts for (defaults to the config's)
        user_id: Initiating user, if any
        credentials: Platform credentials for this run
        session_id: Explicit session id (generated when omitted)

    Returns:
        A fresh AgentContext
    """
    return AgentContext(
        config=copy.deepcopy(config),
        session_id=session_id or str(uuid.uuid4()),
        organization_id=organization_id or config.organization_id,
        user_id=user_id,
        credentials=dict(credentials or {}),
    )
