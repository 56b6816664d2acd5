"""
Tests for the tool catalogs: Facebook, TikTok, reporting data, materials and
memory.
"""

from datetime import date, timedelta

import pytest

from adforge.agent_config import create_agent_context
from adforge.platforms import PlatformClients, PlatformError
from adforge.tools.catalog import build_registry
from adforge.tools.data_tools import date_range, enrich_metrics_row, summarize_totals
from adforge.tools.material_tools import ctr_decline, roas_trend
from adforge.tools.memory_tools import insight_key
from adforge.tools.registry import ToolCategory

from conftest import FB_CREDENTIALS, FakeFacebookClient, FakeMaterialLibrary, make_config


@pytest.fixture
def registry(clients, memory):
    return build_registry(clients, memory)


@pytest.fixture
def context():
    return create_agent_context(make_config(), credentials=FB_CREDENTIALS)


@pytest.fixture
def no_credentials():
    return create_agent_context(make_config())


# =============================================================================
# Catalog Assembly
# =============================================================================

class TestBuildRegistry:
    """Tests for assembling the registry from available collaborators."""

    @pytest.mark.asyncio
    async def test_all_catalogs(self, registry):
        categories = {t.category for t in registry.list_tools()}
        assert categories == {
            ToolCategory.FACEBOOK, ToolCategory.TIKTOK, ToolCategory.DATA,
            ToolCategory.MATERIAL, ToolCategory.SYSTEM,
        }
        assert "adjust_budget" in registry
        assert "update_tiktok_campaign" in registry
        assert "detect_creative_fatigue" in registry
        assert "remember_insight" in registry

    def test_missing_collaborators_register_nothing(self, reporting):
        registry = build_registry(PlatformClients(reporting=reporting))

        assert {t.category for t in registry.list_tools()} == {ToolCategory.DATA}

    def test_tool_timeout_passed_through(self):
        assert build_registry(PlatformClients(), tool_timeout=7).tool_timeout == 7

    @pytest.mark.asyncio
    async def test_every_write_tool_declares_a_permission(self, registry):
        writes = [t for t in registry.list_tools() if t.is_write]
        assert writes
        for t in writes:
            assert t.guardrails is not None and t.guardrails.required_permission, t.name


# =============================================================================
# Facebook
# =============================================================================

class TestFacebookTools:
    @pytest.mark.asyncio
    async def test_missing_token(self, registry, no_credentials, facebook):
        record = await registry.execute("get_campaigns", {"accountId": "1"}, no_credentials)

        assert record.result.error == "No Facebook access token available"
        assert facebook.calls == []

    @pytest.mark.asyncio
    async def test_get_campaigns(self, registry, context, facebook):
        record = await registry.execute("get_campaigns", {"accountId": "1", "limit": 1}, context)

        assert record.success
        assert record.result.metadata == {"count": 1}
        assert facebook.calls == [("get_campaigns", "1")]

    @pytest.mark.asyncio
    async def test_insights_defaults(self, registry, context, facebook):
        await registry.execute("get_campaign_insights", {"entityId": "c1"}, context)

        assert facebook.calls == [("get_insights", "c1", "campaign", "last_7d")]

    @pytest.mark.asyncio
    async def test_adjust_budget(self, registry, context, facebook):
        record = await registry.execute(
            "adjust_budget",
            {"entityType": "adset", "entityId": "as1", "newBudget": 40, "currentBudget": 30, "reason": "r"},
            context,
        )

        assert record.result.data == {"entityId": "as1", "previousBudget": 30, "newBudget": 40}
        assert facebook.calls == [("update_budget", "adset", "as1", 40)]

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, registry, context, facebook):
        paused = await registry.execute("pause_entity", {"entityType": "ad", "entityId": "ad1", "reason": "r"}, context)
        resumed = await registry.execute("resume_entity", {"entityType": "ad", "entityId": "ad1", "reason": "r"}, context)

        assert paused.result.data == {"entityId": "ad1", "status": "PAUSED"}
        assert resumed.result.data == {"entityId": "ad1", "status": "ACTIVE"}

    @pytest.mark.asyncio
    async def test_create_adset_params(self, registry, context, facebook):
        record = await registry.execute("create_adset", {
            "accountId": "1",
            "campaignId": "c1",
            "name": "US 25-44",
            "status": "PAUSED",
            "countries": ["US"],
            "optimizationGoal": "OFFSITE_CONVERSIONS",
            "billingEvent": "IMPRESSIONS",
            "pixelId": "px1",
            "customEventType": "PURCHASE",
            "reason": "Launch",
        }, context)

        assert record.success
        assert record.result.data == {"adsetId": "1001"}
        params = facebook.calls[0][2]
        assert params["targeting"] == {"geo_locations": {"countries": ["US"]}}
        assert params["promoted_object"] == {"pixel_id": "px1", "custom_event_type": "PURCHASE"}

    @pytest.mark.asyncio
    async def test_creative_needs_media(self, registry, context, facebook):
        record = await registry.execute("create_ad_creative", {
            "accountId": "1", "name": "n", "pageId": "p1", "message": "m",
            "linkUrl": "https://shop.example", "reason": "r",
        }, context)

        assert record.result.error == "Either imageHash or videoId is required"
        assert facebook.calls == []

    @pytest.mark.asyncio
    async def test_platform_error_becomes_failure(self, context):
        class RejectingFacebook(FakeFacebookClient):
            async def update_status(self, entity_type, entity_id, status, token):
                raise PlatformError("(#100) Invalid parameter", platform="facebook", code="100")

        registry = build_registry(PlatformClients(facebook=RejectingFacebook()))

        record = await registry.execute("pause_entity", {"entityType": "ad", "entityId": "ad1", "reason": "r"}, context)

        assert not record.success
        assert record.result.error == "Tool execution failed: (#100) Invalid parameter"

    @pytest.mark.asyncio
    async def test_uploads(self, registry, context):
        image = await registry.execute("upload_image", {"accountId": "1", "imageUrl": "https://x/a.png"}, context)
        video = await registry.execute("upload_video", {"accountId": "1", "videoUrl": "https://x/a.mp4"}, context)

        assert image.result.data == {"imageHash": "abc123hash"}
        assert video.result.data == {"videoId": "v42", "thumbnailUrl": "https://cdn.example/v42.jpg"}


# =============================================================================
# TikTok
# =============================================================================

class TestTikTokTools:
    @pytest.mark.asyncio
    async def test_missing_auth(self, registry, no_credentials):
        record = await registry.execute("get_tiktok_campaigns", {}, no_credentials)

        assert record.result.error == "No TikTok access token available"

    @pytest.mark.asyncio
    async def test_defaults_to_run_advertiser(self, registry, context, tiktok):
        await registry.execute("get_tiktok_campaigns", {}, context)
        await registry.execute("get_tiktok_campaigns", {"advertiserId": "other"}, context)

        assert tiktok.calls == [("get_campaigns", "adv1"), ("get_campaigns", "other")]

    @pytest.mark.asyncio
    async def test_update_campaign(self, registry, context, tiktok):
        record = await registry.execute(
            "update_tiktok_campaign",
            {"campaignId": "tt1", "status": "DISABLE", "budgetAmount": 50, "reason": "r"},
            context,
        )

        assert record.result.data == {"campaignId": "tt1", "operation_status": "DISABLE", "budget": 50}
        assert tiktok.calls == [("update_campaign", "adv1", "tt1", {"operation_status": "DISABLE", "budget": 50})]

    @pytest.mark.asyncio
    async def test_update_without_changes(self, registry, context, tiktok):
        record = await registry.execute("update_tiktok_adgroup", {"adGroupId": "ag1", "reason": "r"}, context)

        assert not record.success
        assert "Nothing to update" in record.result.error
        assert tiktok.calls == []


# =============================================================================
# Reporting Data
# =============================================================================

class TestDataHelpers:
    def test_enrich_row(self):
        row = enrich_metrics_row({"spend_usd": 200.0, "purchase_value": 500.0, "installs": 10})
        assert row["roas"] == 2.5
        assert row["cpa"] == 20.0

    def test_enrich_row_without_spend(self):
        row = enrich_metrics_row({"spend": 0, "revenue": 0, "installs": 0})
        assert row["roas"] == 0.0
        assert row["cpa"] is None

    def test_summarize_totals(self):
        totals = summarize_totals([
            {"spend": 100.0, "revenue": 250.0, "impressions": 10000, "clicks": 150},
            {"spend": 50.5, "revenue": 100.0, "impressions": 5000, "clicks": 50},
        ])
        assert totals["spend"] == 150.5
        assert totals["revenue"] == 350.0
        assert totals["roas"] == 2.33
        assert totals["ctr"] == "1.33%"

    def test_summarize_empty(self):
        totals = summarize_totals([])
        assert totals["roas"] == 0.0
        assert totals["ctr"] == "0%"

    def test_date_range_defaults(self):
        start, end = date_range({})
        assert end == date.today().isoformat()
        assert start == (date.today() - timedelta(days=7)).isoformat()
        assert date_range({"startDate": "2024-01-01", "endDate": "2024-01-31"}) == ("2024-01-01", "2024-01-31")


class TestDataTools:
    @pytest.mark.asyncio
    async def test_daily_metrics_filters(self, registry, context, reporting):
        record = await registry.execute(
            "query_daily_metrics",
            {"level": "campaign", "entityId": "c1", "startDate": "2024-05-01", "endDate": "2024-05-07"},
            context,
        )

        assert record.success
        assert record.result.metadata["dateRange"] == "2024-05-01 to 2024-05-07"
        assert record.result.data[0]["roas"] == 2.5
        assert reporting.calls == [
            ("daily_metrics", {"level": "campaign", "entityId": "c1"}, "2024-05-01", "2024-05-07", 100),
        ]

    @pytest.mark.asyncio
    async def test_accounts_use_scope(self, registry, reporting):
        config = make_config()
        config.scope.ad_account_ids = ["act_1"]
        context = create_agent_context(config)

        await registry.execute("query_accounts", {"platform": "all"}, context)

        assert reporting.calls == [("accounts", "org-1", ["act_1"], None)]

    @pytest.mark.asyncio
    async def test_campaign_performance_account_override(self, registry, context, reporting):
        await registry.execute("query_campaign_performance", {"accountId": "act_9", "sortBy": "roas"}, context)

        assert reporting.calls == [("campaign_performance", ["act_9"], "roas", 50)]

    @pytest.mark.asyncio
    async def test_campaign_details(self, registry, context):
        found = await registry.execute("get_campaign_details", {"campaignId": "c1"}, context)
        missing = await registry.execute("get_campaign_details", {"campaignId": "zz"}, context)

        assert found.result.data["summary"] == {"totalAdSets": 2, "totalAds": 3}
        assert missing.result.error == "Campaign zz not found"

    @pytest.mark.asyncio
    async def test_dashboard_summary(self, registry, context):
        record = await registry.execute("query_dashboard_summary", {}, context)

        assert record.result.data["totals"]["spend"] == 150.5
        assert len(record.result.data["daily"]) == 2


# =============================================================================
# Materials
# =============================================================================

def _days_ago(n: int) -> str:
    return (date.today() - timedelta(days=n)).isoformat()


class TestMaterialHelpers:
    def test_roas_trend(self):
        improving = [{"roas": 3}, {"roas": 3}, {"roas": 3}, {"roas": 1}, {"roas": 1}, {"roas": 1}]
        assert roas_trend(improving)["roasTrend"] == "improving"
        assert roas_trend(list(reversed(improving)))["roasTrend"] == "declining"
        assert roas_trend([{"roas": 2}] * 3)["roasTrend"] == "stable"
        assert roas_trend([{"roas": 2}]) == {"roasTrend": "insufficient_data"}

    def test_ctr_decline(self):
        metrics = [
            {"date": "2024-05-01", "ctr": 2.0},
            {"date": "2024-05-02", "ctr": 2.0},
            {"date": "2024-05-08", "ctr": 1.0},
            {"date": "2024-05-09", "ctr": 1.0},
        ]
        result = ctr_decline(metrics, "2024-05-08")
        assert result["decline"] == 50.0
        assert result["avgCtrFirst"] == 2.0

    def test_ctr_decline_needs_two_days_per_half(self):
        metrics = [{"date": "2024-05-01", "ctr": 2.0}, {"date": "2024-05-08", "ctr": 1.0}, {"date": "2024-05-09", "ctr": 1.0}]
        assert ctr_decline(metrics, "2024-05-08") is None


class TestMaterialTools:
    @pytest.mark.asyncio
    async def test_detect_fatigue(self, memory, context):
        fading = [
            {"date": _days_ago(13), "ctr": 2.0},
            {"date": _days_ago(12), "ctr": 2.2},
            {"date": _days_ago(3), "ctr": 1.0},
            {"date": _days_ago(2), "ctr": 1.1},
        ]
        steady = [
            {"date": _days_ago(13), "ctr": 2.0},
            {"date": _days_ago(12), "ctr": 2.0},
            {"date": _days_ago(3), "ctr": 1.9},
            {"date": _days_ago(2), "ctr": 2.0},
        ]
        library = FakeMaterialLibrary(metrics={"m1": fading, "m2": steady})
        registry = build_registry(PlatformClients(materials=library))

        record = await registry.execute("detect_creative_fatigue", {}, context)

        assert record.success
        assert [m["materialId"] for m in record.result.data] == ["m1"]
        assert record.result.data[0]["ctrDecline"] == "50.0%"
        assert record.result.metadata["totalAnalyzed"] == 2
        assert record.result.metadata["fatigued"] == 1

    @pytest.mark.asyncio
    async def test_material_performance_trend(self, context):
        library = FakeMaterialLibrary(metrics={"m1": [{"roas": 1}] * 6})
        registry = build_registry(PlatformClients(materials=library))

        record = await registry.execute("get_material_performance", {"materialId": "m1"}, context)

        assert record.result.data["trend"]["roasTrend"] == "stable"

    @pytest.mark.asyncio
    async def test_top_materials_type_filter(self, registry, context):
        record = await registry.execute("get_top_materials", {"materialType": "video"}, context)

        assert [m["id"] for m in record.result.data] == ["m1"]


# =============================================================================
# Memory Tools
# =============================================================================

class TestMemoryTools:
    def test_insight_key(self):
        assert insight_key("audience", "US Broad > Interests!") == "audience:us-broad-interests"
        assert len(insight_key("general", "word " * 50)) == 80

    @pytest.mark.asyncio
    async def test_remember_and_recall(self, registry, context, memory):
        first = await registry.execute(
            "remember_insight",
            {"content": "Video beats static in US", "category": "creative", "tags": ["us"]},
            context,
        )
        again = await registry.execute(
            "remember_insight",
            {"content": "Video beats static in US", "category": "creative"},
            context,
        )
        recalled = await registry.execute("recall_knowledge", {"tags": ["us"]}, context)

        assert first.result.data["validationCount"] == 1
        assert again.result.data["validationCount"] == 2
        assert again.result.data["key"] == "creative:video-beats-static-in-us"
        assert [k["content"] for k in recalled.result.data] == ["Video beats static in US"]

        stored = await memory.long_term.get_knowledge("creative:video-beats-static-in-us", "org-1")
        assert stored.created_by_agent == "agent-1"

    @pytest.mark.asyncio
    async def test_empty_insight_rejected(self, registry, context):
        record = await registry.execute("remember_insight", {"content": "   "}, context)

        assert record.result.error == "Insight content is empty"

    @pytest.mark.asyncio
    async def test_recall_decisions(self, registry, context, memory):
        from adforge.memory.long_term import DecisionRecord

        await memory.long_term.record_decision(DecisionRecord(
            agent_id="agent-1", session_id="s", action="adjust_budget",
            entity_type="campaign", entity_id="c1", reason="Scale",
            input_params={"newBudget": 120},
        ))

        record = await registry.execute("recall_decisions", {"entityId": "c1"}, context)

        assert record.result.metadata == {"count": 1}
        assert record.result.data[0]["action"] == "adjust_budget"
        assert record.result.data[0]["params"] == {"newBudget": 120}
