"""
Role Agents
===========

The four roles are configuration applied to the shared AgentRuntime, not
separate loops:

- analyst:  read-only reporting and material analysis, produces recommendations
- planner:  read-only campaign design
- executor: carries out changes on Facebook and TikTok
- creative: read-only creative performance and fatigue analysis

Memory tools are offered to every role.
"""

from typing import Any, Optional

from adforge.agent_config import AgentConfig, AgentRole, TriggerType
from adforge.runtime import AgentRunResult, AgentRuntime, RoleProfile
from adforge.tools.registry import ToolCategory

MEMORY_TOOLS = ("remember_insight", "recall_knowledge", "recall_decisions")

ANALYST_TOOLS = (
    "query_accounts",
    "query_daily_metrics",
    "query_dashboard_summary",
    "query_account_performance",
    "query_campaign_performance",
    "query_country_performance",
    "get_campaign_details",
    "get_top_materials",
    "get_material_performance",
    "detect_creative_fatigue",
    "get_campaigns",
    "get_campaign_insights",
    "get_tiktok_campaigns",
    "get_tiktok_insights",
) + MEMORY_TOOLS

PLANNER_TOOLS = (
    "query_accounts",
    "query_account_performance",
    "query_campaign_performance",
    "query_country_performance",
    "get_campaign_details",
    "get_top_materials",
    "get_campaigns",
    "get_pages",
    "get_pixels",
    "search_interests",
    "search_locations",
) + MEMORY_TOOLS

CREATIVE_TOOLS = (
    "get_top_materials",
    "get_material_performance",
    "detect_creative_fatigue",
    "query_campaign_performance",
    "get_campaign_details",
) + MEMORY_TOOLS


ANALYST_PROFILE = RoleProfile(
    role=AgentRole.ANALYST,
    prompt_name="analyst",
    default_task=(
        "Analyze current ad performance across the accounts in scope and produce "
        "prioritized recommendations in the required JSON format."
    ),
    tool_names=ANALYST_TOOLS,
)

PLANNER_PROFILE = RoleProfile(
    role=AgentRole.PLANNER,
    prompt_name="planner",
    default_task="Review current performance and propose a campaign plan that meets the objectives.",
    tool_names=PLANNER_TOOLS,
)

EXECUTOR_PROFILE = RoleProfile(
    role=AgentRole.EXECUTOR,
    prompt_name="executor",
    default_task="Review campaigns in scope and carry out any clearly justified optimizations.",
    categories=(ToolCategory.FACEBOOK, ToolCategory.TIKTOK, ToolCategory.DATA, ToolCategory.SYSTEM),
)

CREATIVE_PROFILE = RoleProfile(
    role=AgentRole.CREATIVE,
    prompt_name="creative",
    default_task="Review creative material performance and identify fatigued materials that need a refresh.",
    categories=(ToolCategory.MATERIAL, ToolCategory.DATA, ToolCategory.SYSTEM),
    tool_names=CREATIVE_TOOLS,
)

PROFILES: dict[AgentRole, RoleProfile] = {
    AgentRole.ANALYST: ANALYST_PROFILE,
    AgentRole.PLANNER: PLANNER_PROFILE,
    AgentRole.EXECUTOR: EXECUTOR_PROFILE,
    AgentRole.CREATIVE: CREATIVE_PROFILE,
}


def get_profile(role: AgentRole) -> RoleProfile:
    return PROFILES[role]


async def run_role(
    runtime: AgentRuntime,
    role: AgentRole,
    config: AgentConfig,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    message: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    trigger_type: TriggerType = TriggerType.USER_CHAT,
    parent_session_id: Optional[str] = None,
) -> AgentRunResult:
    """Run ``config`` as ``role`` on the shared runtime."""
    return await runtime.run(
        config,
        get_profile(role),
        organization_id=organization_id,
        user_id=user_id,
        message=message,
        credentials=credentials,
        trigger_type=trigger_type,
        parent_session_id=parent_session_id,
    )


async def run_analyst(
    runtime: AgentRuntime,
    config: AgentConfig,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    message: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> AgentRunResult:
    return await run_role(runtime, AgentRole.ANALYST, config, organization_id, user_id, message, credentials, **kwargs)


async def run_planner(
    runtime: AgentRuntime,
    config: AgentConfig,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    message: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> AgentRunResult:
    return await run_role(runtime, AgentRole.PLANNER, config, organization_id, user_id, message, credentials, **kwargs)


async def run_executor(
    runtime: AgentRuntime,
    config: AgentConfig,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    message: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> AgentRunResult:
    return await run_role(runtime, AgentRole.EXECUTOR, config, organization_id, user_id, message, credentials, **kwargs)


async def run_creative_agent(
    runtime: AgentRuntime,
    config: AgentConfig,
    organization_id: Optional[str] = None,
    user_id: Optional[str] = None,
    message: Optional[str] = None,
    credentials: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> AgentRunResult:
    return await run_role(runtime, AgentRole.CREATIVE, config, organization_id, user_id, message, credentials, **kwargs)
