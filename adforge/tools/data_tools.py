"""
Data Query Tools
================

Read access to the pre-aggregated reporting store: accounts, daily metrics,
dashboard totals and per-account/campaign/country breakdowns. Derived ratios
(ROAS, CPA, CTR) are computed here so every backend reports them the same way.
"""

from datetime import date, timedelta
from typing import Any, Optional

from adforge.agent_config import AgentContext
from adforge.platforms import ReportingStore
from adforge.tools.registry import EntityType, ToolCategory, ToolDefinition, ToolResult
from adforge.tools.schema import DATE_END, DATE_START, integer, obj, string

DEFAULT_LOOKBACK_DAYS = 7


def date_range(args: dict[str, Any], days: int = DEFAULT_LOOKBACK_DAYS) -> tuple[str, str]:
    """Resolve ``startDate``/``endDate`` arguments, defaulting to the last N days."""
    today = date.today()
    start = args.get("startDate") or (today - timedelta(days=days)).isoformat()
    end = args.get("endDate") or today.isoformat()
    return start, end


def _ratio(numerator: float, denominator: float, digits: int = 2) -> Optional[float]:
    if not denominator:
        return None
    return round(numerator / denominator, digits)


def enrich_metrics_row(row: dict[str, Any]) -> dict[str, Any]:
    """Add ROAS and CPA to a raw daily metrics row."""
    spend = float(row.get("spend_usd") or row.get("spend") or 0)
    value = float(row.get("purchase_value") or row.get("revenue") or 0)
    installs = float(row.get("installs") or 0)
    enriched = dict(row)
    enriched["roas"] = _ratio(value, spend) if spend > 0 else 0.0
    enriched["cpa"] = _ratio(spend, installs)
    return enriched


def summarize_totals(days: list[dict[str, Any]]) -> dict[str, Any]:
    """Sum daily aggregates and derive ROAS and CTR."""
    totals = {"spend": 0.0, "revenue": 0.0, "impressions": 0, "clicks": 0, "installs": 0}
    for day in days:
        totals["spend"] += float(day.get("spend") or 0)
        totals["revenue"] += float(day.get("revenue") or 0)
        totals["impressions"] += int(day.get("impressions") or 0)
        totals["clicks"] += int(day.get("clicks") or 0)
        totals["installs"] += int(day.get("installs") or 0)
    totals["spend"] = round(totals["spend"], 2)
    totals["revenue"] = round(totals["revenue"], 2)
    totals["roas"] = _ratio(totals["revenue"], totals["spend"]) or 0.0
    ctr = _ratio(totals["clicks"] * 100, totals["impressions"])
    totals["ctr"] = f"{ctr:.2f}%" if ctr is not None else "0%"
    return totals


def create_data_tools(store: ReportingStore) -> list[ToolDefinition]:
    """Build the reporting tool catalog around a store."""

    async def query_accounts(args: dict[str, Any], context: AgentContext) -> ToolResult:
        platform = args.get("platform")
        accounts = await store.accounts(
            context.organization_id,
            context.scope.ad_account_ids,
            None if platform in (None, "all") else platform,
        )
        return ToolResult.ok(accounts, count=len(accounts))

    async def query_daily_metrics(args: dict[str, Any], context: AgentContext) -> ToolResult:
        start, end = date_range(args)
        filters = {"level": args["level"]}
        for key in ("entityId", "accountId", "country"):
            if args.get(key):
                filters[key] = args[key]
        rows = await store.daily_metrics(filters, start, end, limit=args.get("limit") or 100)
        enriched = [enrich_metrics_row(r) for r in rows]
        return ToolResult.ok(enriched, rows=len(enriched), dateRange=f"{start} to {end}")

    async def query_dashboard_summary(args: dict[str, Any], context: AgentContext) -> ToolResult:
        start, end = date_range(args)
        days = await store.daily_totals(start, end)
        return ToolResult.ok({
            "dateRange": {"start": start, "end": end},
            "totals": summarize_totals(days),
            "daily": days,
        })

    async def query_account_performance(args: dict[str, Any], context: AgentContext) -> ToolResult:
        start, end = date_range(args)
        rows = await store.account_performance(start, end, context.scope.ad_account_ids)
        return ToolResult.ok(rows, count=len(rows))

    async def query_campaign_performance(args: dict[str, Any], context: AgentContext) -> ToolResult:
        start, end = date_range(args)
        account_ids = [args["accountId"]] if args.get("accountId") else context.scope.ad_account_ids
        rows = await store.campaign_performance(
            start,
            end,
            account_ids,
            sort_by=args.get("sortBy") or "spend",
            limit=args.get("limit") or 50,
        )
        return ToolResult.ok(rows, count=len(rows))

    async def query_country_performance(args: dict[str, Any], context: AgentContext) -> ToolResult:
        start, end = date_range(args)
        rows = await store.country_performance(start, end)
        return ToolResult.ok(rows, count=len(rows))

    async def get_campaign_details(args: dict[str, Any], context: AgentContext) -> ToolResult:
        details = await store.campaign_details(args["campaignId"])
        if not details:
            return ToolResult.fail(f"Campaign {args['campaignId']} not found")
        ad_sets = details.get("adSets") or []
        ads = details.get("ads") or []
        return ToolResult.ok({
            **details,
            "summary": {"totalAdSets": len(ad_sets), "totalAds": len(ads)},
        })

    period = {"startDate": DATE_START, "endDate": DATE_END}

    return [
        ToolDefinition(
            name="query_accounts",
            description="Get all ad accounts in scope with their basic info and status.",
            category=ToolCategory.DATA,
            parameters=obj({"platform": string("Filter by platform", enum=["facebook", "tiktok", "all"])}),
            handler=query_accounts,
            entity_type=EntityType.ACCOUNT,
        ),
        ToolDefinition(
            name="query_daily_metrics",
            description="Daily performance metrics (spend, impressions, clicks, ROAS, CPA) for accounts, campaigns, ad sets or ads.",
            category=ToolCategory.DATA,
            parameters=obj({
                "level": string("Level of the entity", enum=["account", "campaign", "adset", "ad"]),
                "entityId": string("Entity ID"),
                "accountId": string("Filter by account ID"),
                "country": string("Filter by country code"),
                "limit": integer("Max rows to return (default 100)"),
                **period,
            }, required=["level"]),
            handler=query_daily_metrics,
        ),
        ToolDefinition(
            name="query_dashboard_summary",
            description="Aggregated totals (spend, revenue, ROAS, impressions, clicks) across all accounts for a date range.",
            category=ToolCategory.DATA,
            parameters=obj(dict(period)),
            handler=query_dashboard_summary,
        ),
        ToolDefinition(
            name="query_account_performance",
            description="Per-account performance breakdown for a date range.",
            category=ToolCategory.DATA,
            parameters=obj(dict(period)),
            handler=query_account_performance,
            entity_type=EntityType.ACCOUNT,
        ),
        ToolDefinition(
            name="query_campaign_performance",
            description="Per-campaign performance breakdown with spend, ROAS, CPA and status.",
            category=ToolCategory.DATA,
            parameters=obj({
                "accountId": string("Filter by account ID"),
                "sortBy": string("Sort field", enum=["spend", "roas", "impressions"]),
                "limit": integer("Max rows (default 50)"),
                **period,
            }),
            handler=query_campaign_performance,
            entity_type=EntityType.CAMPAIGN,
        ),
        ToolDefinition(
            name="query_country_performance",
            description="Performance breakdown by country for a date range.",
            category=ToolCategory.DATA,
            parameters=obj(dict(period)),
            handler=query_country_performance,
        ),
        ToolDefinition(
            name="get_campaign_details",
            description="Detailed information about one campaign including its ad sets and ads.",
            category=ToolCategory.DATA,
            parameters=obj({"campaignId": string("Campaign ID")}, required=["campaignId"]),
            handler=get_campaign_details,
            entity_type=EntityType.CAMPAIGN,
        ),
    ]
