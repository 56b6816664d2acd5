"""
Material Library Tools
======================

Creative material ranking, per-material trends and fatigue detection.
"""

from datetime import date, timedelta
from typing import Any, Optional

from adforge.agent_config import AgentContext
from adforge.platforms import MaterialLibrary
from adforge.tools.registry import EntityType, ToolCategory, ToolDefinition, ToolResult
from adforge.tools.schema import DATE_END, DATE_START, integer, number, obj, string

# Materials below this lifetime spend are too thin to judge for fatigue
FATIGUE_MIN_SPEND = 50.0


def _mean(rows: list[dict[str, Any]], key: str) -> float:
    if not rows:
        return 0.0
    return sum(float(r.get(key) or 0) for r in rows) / len(rows)


def roas_trend(metrics: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Compare the latest three days against the three before them.

    ``metrics`` must be ordered newest first.
    """
    if len(metrics) < 3:
        return {"roasTrend": "insufficient_data"}
    recent = metrics[:3]
    older = metrics[3:6]
    avg_recent = _mean(recent, "roas")
    avg_older = _mean(older, "roas") if older else avg_recent
    if avg_recent > avg_older:
        trend = "improving"
    elif avg_recent < avg_older:
        trend = "declining"
    else:
        trend = "stable"
    return {
        "roasTrend": trend,
        "avgRecentRoas": round(avg_recent, 2),
        "avgOlderRoas": round(avg_older, 2),
    }


def ctr_decline(metrics: list[dict[str, Any]], mid_date: str) -> Optional[dict[str, float]]:
    """
    Percent CTR decline from the first half of a window to the second.

    Returns None when either half has fewer than two days or the first half
    had no clicks to decline from.
    """
    first = [m for m in metrics if str(m.get("date")) < mid_date]
    second = [m for m in metrics if str(m.get("date")) >= mid_date]
    if len(first) < 2 or len(second) < 2:
        return None
    first_ctr = _mean(first, "ctr")
    second_ctr = _mean(second, "ctr")
    if first_ctr <= 0:
        return None
    return {
        "decline": (first_ctr - second_ctr) / first_ctr * 100,
        "avgCtrFirst": round(first_ctr, 3),
        "avgCtrSecond": round(second_ctr, 3),
    }


def create_material_tools(library: MaterialLibrary) -> list[ToolDefinition]:
    """Build the material tool catalog around a library."""

    async def get_top_materials(args: dict[str, Any], context: AgentContext) -> ToolResult:
        material_type = args.get("materialType")
        materials = await library.top_materials(
            context.organization_id,
            sort_by=args.get("sortBy") or "roas",
            material_type=None if material_type in (None, "all") else material_type,
            min_spend=args.get("minSpend"),
            limit=args.get("limit") or 20,
        )
        return ToolResult.ok(materials, count=len(materials))

    async def get_material_performance(args: dict[str, Any], context: AgentContext) -> ToolResult:
        today = date.today()
        start = args.get("startDate") or (today - timedelta(days=14)).isoformat()
        end = args.get("endDate") or today.isoformat()
        metrics = await library.material_metrics(args["materialId"], start, end)
        return ToolResult.ok({"metrics": metrics, "trend": roas_trend(metrics)})

    async def detect_creative_fatigue(args: dict[str, Any], context: AgentContext) -> ToolResult:
        days = args.get("daysToAnalyze") or 14
        threshold = args.get("declineThreshold") or 20
        today = date.today()
        start = (today - timedelta(days=days)).isoformat()
        mid = (today - timedelta(days=days // 2)).isoformat()
        end = today.isoformat()

        materials = await library.active_materials(context.organization_id, FATIGUE_MIN_SPEND)
        fatigued = []
        for material in materials:
            material_id = str(material.get("id"))
            metrics = await library.material_metrics(material_id, start, end)
            decline = ctr_decline(metrics, mid)
            if decline is None or decline["decline"] < threshold:
                continue
            fatigued.append({
                "materialId": material_id,
                "name": material.get("name"),
                "type": material.get("type"),
                "ctrDecline": f"{decline['decline']:.1f}%",
                "avgCtrFirst": decline["avgCtrFirst"],
                "avgCtrSecond": decline["avgCtrSecond"],
                "recommendation": "Consider replacing or refreshing this creative",
            })

        return ToolResult.ok(
            fatigued,
            totalAnalyzed=len(materials),
            fatigued=len(fatigued),
            period=f"{start} to {end}",
        )

    return [
        ToolDefinition(
            name="get_top_materials",
            description="Best performing creative materials ranked by ROAS, spend, quality score or impressions.",
            category=ToolCategory.MATERIAL,
            parameters=obj({
                "sortBy": string("Rank by metric", enum=["roas", "spend", "qualityScore", "impressions"]),
                "materialType": string("Filter by material type", enum=["image", "video", "all"]),
                "minSpend": number("Minimum total spend (USD) to filter out low-data materials"),
                "limit": integer("Number of results (default 20)"),
            }),
            handler=get_top_materials,
            entity_type=EntityType.MATERIAL,
        ),
        ToolDefinition(
            name="get_material_performance",
            description="Daily metrics and ROAS trend for one material.",
            category=ToolCategory.MATERIAL,
            parameters=obj({
                "materialId": string("Material ID"),
                "startDate": DATE_START,
                "endDate": DATE_END,
            }, required=["materialId"]),
            handler=get_material_performance,
            entity_type=EntityType.MATERIAL,
        ),
        ToolDefinition(
            name="detect_creative_fatigue",
            description="Find active materials whose CTR declined between the first and second half of the analysis window.",
            category=ToolCategory.MATERIAL,
            parameters=obj({
                "daysToAnalyze": integer("Number of days to analyze (default 14)"),
                "declineThreshold": number("Minimum % CTR decline to flag (default 20)"),
            }),
            handler=detect_creative_fatigue,
            entity_type=EntityType.MATERIAL,
        ),
    ]
