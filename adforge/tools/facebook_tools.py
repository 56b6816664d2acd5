"""
Facebook Tools
==============

Read and write operations against Facebook ad accounts, backed by an injected
FacebookAdsClient. Write tools declare the permission and rate limits the
guardrail engine enforces before they run.
"""

from typing import Any

from adforge.agent_config import AgentContext
from adforge.platforms import FacebookAdsClient
from adforge.tools.registry import (
    EntityType,
    ToolCategory,
    ToolDefinition,
    ToolGuardrails,
    ToolResult,
)
from adforge.tools.schema import REASON, array, integer, number, obj, string

NO_TOKEN = "No Facebook access token available"

# Four hours between repeated status/budget changes on one entity
STATUS_COOLDOWN_MINUTES = 240

ENTITY_TYPES = ["campaign", "adset", "ad"]


def create_facebook_tools(client: FacebookAdsClient) -> list[ToolDefinition]:
    """Build the Facebook tool catalog around a client."""

    async def _token(context: AgentContext):
        return await client.resolve_token(context)

    # =========================================================================
    # Read Tools
    # =========================================================================

    async def get_campaigns(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        campaigns = await client.get_campaigns(args["accountId"], token, limit=args.get("limit") or 50)
        return ToolResult.ok(campaigns, count=len(campaigns))

    async def get_campaign_insights(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        rows = await client.get_insights(
            args["entityId"],
            token,
            level=args.get("level") or "campaign",
            date_preset=args.get("datePreset") or "last_7d",
        )
        return ToolResult.ok(rows, rows=len(rows))

    async def get_pages(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        return ToolResult.ok(await client.get_pages(args["accountId"], token))

    async def get_pixels(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        return ToolResult.ok(await client.get_pixels(args["accountId"], token))

    async def search_interests(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        return ToolResult.ok(await client.search_interests(args["query"], token))

    async def search_locations(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        return ToolResult.ok(await client.search_locations(args["query"], token))

    # =========================================================================
    # Write Tools
    # =========================================================================

    async def create_campaign(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        params = {
            "name": args["name"],
            "objective": args["objective"],
            "status": args["status"],
            "daily_budget": args.get("dailyBudget"),
            "bid_strategy": args.get("bidStrategy"),
        }
        created = await client.create_campaign(args["accountId"], token, params)
        return ToolResult.ok({"campaignId": created.get("id")})

    async def create_adset(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        promoted_object: dict[str, Any] = {}
        if args.get("pixelId"):
            promoted_object["pixel_id"] = args["pixelId"]
            if args.get("customEventType"):
                promoted_object["custom_event_type"] = args["customEventType"]
        params = {
            "campaign_id": args["campaignId"],
            "name": args["name"],
            "status": args["status"],
            "targeting": {"geo_locations": {"countries": args["countries"]}},
            "optimization_goal": args["optimizationGoal"],
            "billing_event": args["billingEvent"],
            "daily_budget": args.get("dailyBudget"),
            "promoted_object": promoted_object or None,
        }
        created = await client.create_adset(args["accountId"], token, params)
        return ToolResult.ok({"adsetId": created.get("id")})

    async def create_ad_creative(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        if not args.get("imageHash") and not args.get("videoId"):
            return ToolResult.fail("Either imageHash or videoId is required")
        params = {
            "name": args["name"],
            "page_id": args["pageId"],
            "message": args["message"],
            "link": args["linkUrl"],
            "headline": args.get("headline"),
            "description": args.get("description"),
            "call_to_action": args.get("callToAction"),
            "image_hash": args.get("imageHash"),
            "video_id": args.get("videoId"),
        }
        created = await client.create_ad_creative(args["accountId"], token, params)
        return ToolResult.ok({"creativeId": created.get("id")})

    async def create_ad(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        params = {
            "adset_id": args["adsetId"],
            "creative_id": args["creativeId"],
            "name": args["name"],
            "status": args.get("status") or "PAUSED",
        }
        created = await client.create_ad(args["accountId"], token, params)
        return ToolResult.ok({"adId": created.get("id")})

    async def adjust_budget(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        await client.update_budget(args["entityType"], args["entityId"], args["newBudget"], token)
        return ToolResult.ok({
            "entityId": args["entityId"],
            "previousBudget": args.get("currentBudget"),
            "newBudget": args["newBudget"],
        })

    async def _set_status(args: dict[str, Any], context: AgentContext, status: str) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        await client.update_status(args["entityType"], args["entityId"], status, token)
        return ToolResult.ok({"entityId": args["entityId"], "status": status})

    async def pause_entity(args: dict[str, Any], context: AgentContext) -> ToolResult:
        return await _set_status(args, context, "PAUSED")

    async def resume_entity(args: dict[str, Any], context: AgentContext) -> ToolResult:
        return await _set_status(args, context, "ACTIVE")

    async def upload_image(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        uploaded = await client.upload_image(args["accountId"], token, args["imageUrl"], args.get("name"))
        return ToolResult.ok({"imageHash": uploaded.get("hash")})

    async def upload_video(args: dict[str, Any], context: AgentContext) -> ToolResult:
        token = await _token(context)
        if not token:
            return ToolResult.fail(NO_TOKEN)
        uploaded = await client.upload_video(args["accountId"], token, args["videoUrl"], args.get("title"))
        return ToolResult.ok({"videoId": uploaded.get("id"), "thumbnailUrl": uploaded.get("thumbnail_url")})

    account_id = string("Ad account ID (without act_ prefix)")

    return [
        ToolDefinition(
            name="get_campaigns",
            description="List Facebook campaigns in an ad account with status, objective and budget.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "limit": integer("Max campaigns to return (default 50)"),
            }, required=["accountId"]),
            handler=get_campaigns,
            entity_type=EntityType.CAMPAIGN,
        ),
        ToolDefinition(
            name="get_campaign_insights",
            description="Get live performance insights (spend, impressions, clicks, purchases) for a campaign, ad set or ad.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "entityId": string("Campaign, ad set or ad ID"),
                "level": string("Level of the entity", enum=ENTITY_TYPES),
                "datePreset": string(
                    "Reporting window",
                    enum=["today", "yesterday", "last_3d", "last_7d", "last_14d", "last_30d"],
                ),
            }, required=["entityId"]),
            handler=get_campaign_insights,
            entity_type=EntityType.CAMPAIGN,
        ),
        ToolDefinition(
            name="get_pages",
            description="Get Facebook Pages available for an ad account. Needed for creating ad creatives.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({"accountId": account_id}, required=["accountId"]),
            handler=get_pages,
            entity_type=EntityType.ACCOUNT,
        ),
        ToolDefinition(
            name="get_pixels",
            description="Get Facebook Pixels for an ad account. Needed for conversion optimization.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({"accountId": account_id}, required=["accountId"]),
            handler=get_pixels,
            entity_type=EntityType.ACCOUNT,
        ),
        ToolDefinition(
            name="search_interests",
            description="Search interest audiences for ad targeting (e.g. 'fitness', 'cooking').",
            category=ToolCategory.FACEBOOK,
            parameters=obj({"query": string("Interest search query")}, required=["query"]),
            handler=search_interests,
        ),
        ToolDefinition(
            name="search_locations",
            description="Search geographic targeting locations (countries, regions, cities).",
            category=ToolCategory.FACEBOOK,
            parameters=obj({"query": string("Location search query")}, required=["query"]),
            handler=search_locations,
        ),
        ToolDefinition(
            name="create_campaign",
            description="Create a new Facebook ad campaign.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "name": string("Campaign name"),
                "objective": string("Campaign objective", enum=[
                    "OUTCOME_SALES", "OUTCOME_LEADS", "OUTCOME_ENGAGEMENT",
                    "OUTCOME_AWARENESS", "OUTCOME_TRAFFIC", "OUTCOME_APP_PROMOTION",
                ]),
                "status": string("Initial status", enum=["ACTIVE", "PAUSED"]),
                "dailyBudget": number("Daily budget in USD"),
                "bidStrategy": string("Bid strategy", enum=[
                    "LOWEST_COST_WITHOUT_CAP", "LOWEST_COST_WITH_BID_CAP", "COST_CAP",
                ]),
                "reason": REASON,
            }, required=["accountId", "name", "objective", "status", "reason"]),
            handler=create_campaign,
            is_write=True,
            entity_type=EntityType.CAMPAIGN,
            guardrails=ToolGuardrails(
                required_permission="can_create_campaigns",
                cooldown_minutes=5,
                max_calls_per_run=10,
                budget_arg="dailyBudget",
            ),
        ),
        ToolDefinition(
            name="create_adset",
            description="Create a new Facebook ad set within a campaign, with country targeting and an optimization goal.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "campaignId": string("Parent campaign ID"),
                "name": string("Ad set name"),
                "status": string("Initial status", enum=["ACTIVE", "PAUSED"]),
                "countries": array("Target country codes (e.g. [\"US\", \"GB\"])", string("Country code")),
                "optimizationGoal": string("What to optimize for", enum=[
                    "OFFSITE_CONVERSIONS", "APP_INSTALLS", "LINK_CLICKS", "IMPRESSIONS", "REACH", "VALUE",
                ]),
                "billingEvent": string("Billing event", enum=["IMPRESSIONS", "LINK_CLICKS"]),
                "dailyBudget": number("Daily budget in USD"),
                "pixelId": string("Pixel ID for conversion tracking"),
                "customEventType": string("Conversion event to optimize for", enum=[
                    "PURCHASE", "ADD_TO_CART", "INITIATED_CHECKOUT", "LEAD", "COMPLETE_REGISTRATION",
                ]),
                "reason": REASON,
            }, required=[
                "accountId", "campaignId", "name", "status", "countries",
                "optimizationGoal", "billingEvent", "reason",
            ]),
            handler=create_adset,
            is_write=True,
            entity_type=EntityType.ADSET,
            guardrails=ToolGuardrails(
                required_permission="can_create_campaigns",
                cooldown_minutes=5,
                max_calls_per_run=20,
                budget_arg="dailyBudget",
            ),
        ),
        ToolDefinition(
            name="create_ad_creative",
            description="Create an ad creative from an uploaded image hash or video ID.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "name": string("Creative name"),
                "pageId": string("Facebook Page ID"),
                "message": string("Primary text"),
                "linkUrl": string("Destination URL"),
                "headline": string("Ad headline"),
                "description": string("Ad description"),
                "callToAction": string("Call to action", enum=[
                    "SHOP_NOW", "LEARN_MORE", "SIGN_UP", "INSTALL_NOW", "BUY_NOW", "GET_OFFER",
                ]),
                "imageHash": string("Image hash from upload_image"),
                "videoId": string("Video ID from upload_video"),
                "reason": REASON,
            }, required=["accountId", "name", "pageId", "message", "linkUrl", "reason"]),
            handler=create_ad_creative,
            is_write=True,
            entity_type=EntityType.CREATIVE,
            guardrails=ToolGuardrails(required_permission="can_modify_creatives", max_calls_per_run=20),
        ),
        ToolDefinition(
            name="create_ad",
            description="Create an ad linking an ad set to a creative.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "adsetId": string("Ad set ID"),
                "creativeId": string("Creative ID from create_ad_creative"),
                "name": string("Ad name"),
                "status": string("Initial status", enum=["ACTIVE", "PAUSED"]),
                "reason": REASON,
            }, required=["accountId", "adsetId", "creativeId", "name", "reason"]),
            handler=create_ad,
            is_write=True,
            entity_type=EntityType.AD,
            guardrails=ToolGuardrails(required_permission="can_publish_ads", max_calls_per_run=50),
        ),
        ToolDefinition(
            name="adjust_budget",
            description="Change the daily budget of a campaign or ad set. Include the current budget so the size of the change can be checked.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "entityType": string("Entity type", enum=["campaign", "adset"]),
                "entityId": string("Campaign or ad set ID"),
                "newBudget": number("New daily budget in USD"),
                "currentBudget": number("Current daily budget in USD"),
                "reason": REASON,
            }, required=["entityType", "entityId", "newBudget", "reason"]),
            handler=adjust_budget,
            is_write=True,
            entity_type=EntityType.CAMPAIGN,
            guardrails=ToolGuardrails(
                required_permission="can_adjust_budget",
                cooldown_minutes=STATUS_COOLDOWN_MINUTES,
                max_change_percent=50,
                budget_arg="newBudget",
                min_budget=5,
                change_args=("currentBudget", "newBudget"),
            ),
        ),
        ToolDefinition(
            name="pause_entity",
            description="Pause a Facebook campaign, ad set or ad.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "entityType": string("Entity type", enum=ENTITY_TYPES),
                "entityId": string("Entity ID"),
                "reason": REASON,
            }, required=["entityType", "entityId", "reason"]),
            handler=pause_entity,
            is_write=True,
            entity_type=EntityType.CAMPAIGN,
            guardrails=ToolGuardrails(required_permission="can_pause", cooldown_minutes=STATUS_COOLDOWN_MINUTES),
        ),
        ToolDefinition(
            name="resume_entity",
            description="Resume (activate) a paused Facebook campaign, ad set or ad.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "entityType": string("Entity type", enum=ENTITY_TYPES),
                "entityId": string("Entity ID"),
                "reason": REASON,
            }, required=["entityType", "entityId", "reason"]),
            handler=resume_entity,
            is_write=True,
            entity_type=EntityType.CAMPAIGN,
            guardrails=ToolGuardrails(required_permission="can_resume", cooldown_minutes=STATUS_COOLDOWN_MINUTES),
        ),
        ToolDefinition(
            name="upload_image",
            description="Upload an image from a URL to an ad account. Returns an image hash for creatives.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "imageUrl": string("URL of the image"),
                "name": string("Image name"),
            }, required=["accountId", "imageUrl"]),
            handler=upload_image,
            is_write=True,
            entity_type=EntityType.IMAGE,
            guardrails=ToolGuardrails(required_permission="can_modify_creatives", max_calls_per_run=20),
        ),
        ToolDefinition(
            name="upload_video",
            description="Upload a video from a URL to an ad account. Returns a video ID for creatives.",
            category=ToolCategory.FACEBOOK,
            parameters=obj({
                "accountId": account_id,
                "videoUrl": string("URL of the video"),
                "title": string("Video title"),
            }, required=["accountId", "videoUrl"]),
            handler=upload_video,
            is_write=True,
            entity_type=EntityType.VIDEO,
            guardrails=ToolGuardrails(required_permission="can_modify_creatives", max_calls_per_run=10),
        ),
    ]
