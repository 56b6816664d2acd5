"""
TikTok Tools
============

Campaign listing, reporting and status/budget updates for TikTok advertisers.
"""

from typing import Any

from adforge.agent_config import AgentContext
from adforge.platforms import TikTokAdsClient
from adforge.tools.registry import (
    EntityType,
    ToolCategory,
    ToolDefinition,
    ToolGuardrails,
    ToolResult,
)
from adforge.tools.schema import DATE_END, DATE_START, REASON, number, obj, string

NO_AUTH = "No TikTok access token available"


def _updates(args: dict[str, Any]) -> dict[str, Any]:
    updates: dict[str, Any] = {}
    if args.get("status"):
        updates["operation_status"] = args["status"]
    if args.get("budgetAmount"):
        updates["budget"] = args["budgetAmount"]
    return updates


def create_tiktok_tools(client: TikTokAdsClient) -> list[ToolDefinition]:
    """Build the TikTok tool catalog around a client."""

    async def get_tiktok_campaigns(args: dict[str, Any], context: AgentContext) -> ToolResult:
        auth = await client.resolve_auth(context)
        if auth is None:
            return ToolResult.fail(NO_AUTH)
        campaigns = await client.get_campaigns(args.get("advertiserId") or auth.advertiser_id, auth.token)
        return ToolResult.ok(campaigns, count=len(campaigns or []))

    async def get_tiktok_insights(args: dict[str, Any], context: AgentContext) -> ToolResult:
        auth = await client.resolve_auth(context)
        if auth is None:
            return ToolResult.fail(NO_AUTH)
        rows = await client.get_insights(
            args.get("advertiserId") or auth.advertiser_id,
            auth.token,
            level=args["level"],
            start_date=args["startDate"],
            end_date=args["endDate"],
        )
        return ToolResult.ok(rows)

    async def update_tiktok_campaign(args: dict[str, Any], context: AgentContext) -> ToolResult:
        auth = await client.resolve_auth(context)
        if auth is None:
            return ToolResult.fail(NO_AUTH)
        updates = _updates(args)
        if not updates:
            return ToolResult.fail("Nothing to update: provide status or budgetAmount")
        await client.update_campaign(args.get("advertiserId") or auth.advertiser_id, args["campaignId"], updates, auth.token)
        return ToolResult.ok({"campaignId": args["campaignId"], **updates})

    async def update_tiktok_adgroup(args: dict[str, Any], context: AgentContext) -> ToolResult:
        auth = await client.resolve_auth(context)
        if auth is None:
            return ToolResult.fail(NO_AUTH)
        updates = _updates(args)
        if not updates:
            return ToolResult.fail("Nothing to update: provide status or budgetAmount")
        await client.update_adgroup(args.get("advertiserId") or auth.advertiser_id, args["adGroupId"], updates, auth.token)
        return ToolResult.ok({"adGroupId": args["adGroupId"], **updates})

    advertiser_id = string("TikTok advertiser ID (defaults to the run's advertiser)")
    status = string("New status", enum=["ENABLE", "DISABLE"])
    budget = number("New daily budget amount")
    limits = ToolGuardrails(
        required_permission="can_adjust_budget",
        cooldown_minutes=240,
        budget_arg="budgetAmount",
    )

    return [
        ToolDefinition(
            name="get_tiktok_campaigns",
            description="Get all TikTok ad campaigns for the current advertiser.",
            category=ToolCategory.TIKTOK,
            parameters=obj({"advertiserId": advertiser_id}),
            handler=get_tiktok_campaigns,
            entity_type=EntityType.CAMPAIGN,
        ),
        ToolDefinition(
            name="get_tiktok_insights",
            description="Get TikTok campaign, ad group or ad performance for a date range.",
            category=ToolCategory.TIKTOK,
            parameters=obj({
                "advertiserId": advertiser_id,
                "level": string("Report level", enum=["AUCTION_CAMPAIGN", "AUCTION_ADGROUP", "AUCTION_AD"]),
                "startDate": DATE_START,
                "endDate": DATE_END,
            }, required=["level", "startDate", "endDate"]),
            handler=get_tiktok_insights,
            entity_type=EntityType.CAMPAIGN,
        ),
        ToolDefinition(
            name="update_tiktok_campaign",
            description="Update a TikTok campaign's status or budget.",
            category=ToolCategory.TIKTOK,
            parameters=obj({
                "campaignId": string("TikTok campaign ID"),
                "advertiserId": advertiser_id,
                "status": status,
                "budgetAmount": budget,
                "reason": REASON,
            }, required=["campaignId", "reason"]),
            handler=update_tiktok_campaign,
            is_write=True,
            entity_type=EntityType.CAMPAIGN,
            guardrails=limits,
        ),
        ToolDefinition(
            name="update_tiktok_adgroup",
            description="Update a TikTok ad group's status or budget.",
            category=ToolCategory.TIKTOK,
            parameters=obj({
                "adGroupId": string("TikTok ad group ID"),
                "advertiserId": advertiser_id,
                "status": status,
                "budgetAmount": budget,
                "reason": REASON,
            }, required=["adGroupId", "reason"]),
            handler=update_tiktok_adgroup,
            is_write=True,
            entity_type=EntityType.ADGROUP,
            guardrails=limits,
        ),
    ]
