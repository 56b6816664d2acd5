"""
Shared fixtures: a temporary database, an in-memory redis, a scripted model
and in-memory platform collaborators.
"""

import uuid
from typing import Any, Callable, Optional, Union

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from adforge.agent_config import AgentConfig, AgentMode, AgentObjectives, AgentPermissions
from adforge.config import AdForgeSettings
from adforge.db import close_db, init_db, sqlite_url
from adforge.guardrails import GuardrailEngine
from adforge.ledger import create_ledger
from adforge.memory import MemoryService
from adforge.model_client import (
    FunctionCall,
    FunctionResponse,
    ModelClient,
    ModelConversation,
    ModelTurn,
)
from adforge.platforms import (
    FacebookAdsClient,
    MaterialLibrary,
    PlatformClients,
    ReportingStore,
    TikTokAdsClient,
)
from adforge.runtime import AgentRuntime
from adforge.tools.catalog import build_registry


# =============================================================================
# Scripted model
# =============================================================================

ScriptStep = Union[ModelTurn, Exception, Callable[["ScriptedConversation"], ModelTurn]]


def call(tool_name: str, **args: Any) -> FunctionCall:
    """A function-call request as the model would send it."""
    return FunctionCall(id=f"call_{uuid.uuid4().hex[:8]}", name=tool_name, args=args)


def calls_turn(*calls: FunctionCall, text: str = "") -> ModelTurn:
    return ModelTurn(text=text, function_calls=list(calls))


def text_turn(text: str) -> ModelTurn:
    return ModelTurn(text=text)


class ScriptedConversation(ModelConversation):
    def __init__(self, client: "ScriptedModelClient", system_instruction: str, tools: list[dict], model, temperature):
        self.client = client
        self.system_instruction = system_instruction
        self.tools = tools
        self.model = model
        self.temperature = temperature
        self.messages: list[str] = []
        self.response_batches: list[list[FunctionResponse]] = []

    async def send_message(self, text: str) -> ModelTurn:
        self.messages.append(text)
        return self.client.next_turn(self)

    async def send_function_responses(self, responses: list[FunctionResponse]) -> ModelTurn:
        self.response_batches.append(list(responses))
        return self.client.next_turn(self)

    @property
    def tool_names(self) -> list[str]:
        return [t["name"] for t in self.tools]


class ScriptedModelClient(ModelClient):
    """
    Plays back a fixed list of turns, one per model request.

    A step may be a ModelTurn, an exception to raise, or a callable that
    receives the conversation and returns a turn. Once the script runs out
    every request gets ``fallback``.
    """

    def __init__(
        self,
        script: Optional[list[ScriptStep]] = None,
        fallback: Optional[ScriptStep] = None,
        configured: bool = True,
    ):
        self.script = list(script or [])
        self.fallback = fallback if fallback is not None else text_turn("Done.")
        self.configured = configured
        self.conversations: list[ScriptedConversation] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def start_conversation(self, system_instruction, tools, model=None, temperature=0.2) -> ModelConversation:
        conversation = ScriptedConversation(self, system_instruction, tools, model, temperature)
        self.conversations.append(conversation)
        return conversation

    def next_turn(self, conversation: ScriptedConversation) -> ModelTurn:
        step = self.script.pop(0) if self.script else self.fallback
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(conversation)
        return step

    @property
    def last(self) -> ScriptedConversation:
        return self.conversations[-1]


# =============================================================================
# Fake platforms
# =============================================================================

class FakeFacebookClient(FacebookAdsClient):
    def __init__(self):
        self.calls: list[tuple] = []
        self.campaigns = [
            {"id": "c1", "name": "US Broad", "status": "ACTIVE", "daily_budget": 100},
            {"id": "c2", "name": "UK Interests", "status": "ACTIVE", "daily_budget": 50},
        ]
        self._next_id = 1000

    def _new_id(self) -> str:
        self._next_id += 1
        return str(self._next_id)

    async def get_campaigns(self, account_id, token, limit=50):
        self.calls.append(("get_campaigns", account_id))
        return self.campaigns[:limit]

    async def get_insights(self, entity_id, token, level, date_preset):
        self.calls.append(("get_insights", entity_id, level, date_preset))
        return [{"entity_id": entity_id, "spend": 120.0, "purchase_roas": 2.1}]

    async def get_pages(self, account_id, token):
        return [{"id": "p1", "name": "Brand Page"}]

    async def get_pixels(self, account_id, token):
        return [{"id": "px1", "name": "Main Pixel"}]

    async def search_interests(self, query, token):
        return [{"id": "i1", "name": query.title()}]

    async def search_locations(self, query, token):
        return [{"key": "US", "name": "United States"}]

    async def create_campaign(self, account_id, token, params):
        self.calls.append(("create_campaign", account_id, params))
        return {"id": self._new_id()}

    async def create_adset(self, account_id, token, params):
        self.calls.append(("create_adset", account_id, params))
        return {"id": self._new_id()}

    async def create_ad_creative(self, account_id, token, params):
        self.calls.append(("create_ad_creative", account_id, params))
        return {"id": self._new_id()}

    async def create_ad(self, account_id, token, params):
        self.calls.append(("create_ad", account_id, params))
        return {"id": self._new_id()}

    async def update_status(self, entity_type, entity_id, status, token):
        self.calls.append(("update_status", entity_type, entity_id, status))
        return {"success": True}

    async def update_budget(self, entity_type, entity_id, daily_budget, token):
        self.calls.append(("update_budget", entity_type, entity_id, daily_budget))
        return {"success": True}

    async def upload_image(self, account_id, token, image_url, name=None):
        self.calls.append(("upload_image", account_id, image_url))
        return {"hash": "abc123hash"}

    async def upload_video(self, account_id, token, video_url, title=None):
        self.calls.append(("upload_video", account_id, video_url))
        return {"id": "v42", "thumbnail_url": "https://cdn.example/v42.jpg"}

    def write_calls(self) -> list[tuple]:
        reads = {"get_campaigns", "get_insights"}
        return [c for c in self.calls if c[0] not in reads]


class FakeTikTokClient(TikTokAdsClient):
    def __init__(self):
        self.calls: list[tuple] = []

    async def get_campaigns(self, advertiser_id, token):
        self.calls.append(("get_campaigns", advertiser_id))
        return [{"campaign_id": "tt1", "campaign_name": "Spring Promo"}]

    async def get_insights(self, advertiser_id, token, level, start_date, end_date):
        self.calls.append(("get_insights", advertiser_id, level, start_date, end_date))
        return [{"campaign_id": "tt1", "spend": 80.0}]

    async def update_campaign(self, advertiser_id, campaign_id, updates, token):
        self.calls.append(("update_campaign", advertiser_id, campaign_id, updates))
        return {"ok": True}

    async def update_adgroup(self, advertiser_id, adgroup_id, updates, token):
        self.calls.append(("update_adgroup", advertiser_id, adgroup_id, updates))
        return {"ok": True}


class FakeReportingStore(ReportingStore):
    def __init__(self):
        self.calls: list[tuple] = []
        self.details = {
            "c1": {
                "id": "c1",
                "name": "US Broad",
                "adSets": [{"id": "as1"}, {"id": "as2"}],
                "ads": [{"id": "ad1"}, {"id": "ad2"}, {"id": "ad3"}],
            }
        }

    async def accounts(self, organization_id, account_ids, platform):
        self.calls.append(("accounts", organization_id, list(account_ids), platform))
        return [{"accountId": "act_1", "platform": platform or "facebook"}]

    async def daily_metrics(self, filters, start_date, end_date, limit):
        self.calls.append(("daily_metrics", filters, start_date, end_date, limit))
        return [
            {"date": end_date, "spend_usd": 200.0, "purchase_value": 500.0, "installs": 10},
            {"date": start_date, "spend": 0, "revenue": 0, "installs": 0},
        ]

    async def daily_totals(self, start_date, end_date):
        return [
            {"date": start_date, "spend": 100.0, "revenue": 250.0, "impressions": 10000, "clicks": 150, "installs": 5},
            {"date": end_date, "spend": 50.5, "revenue": 100.0, "impressions": 5000, "clicks": 50, "installs": 2},
        ]

    async def account_performance(self, start_date, end_date, account_ids):
        return [{"accountId": "act_1", "spend": 150.5, "roas": 2.3}]

    async def campaign_performance(self, start_date, end_date, account_ids, sort_by, limit):
        self.calls.append(("campaign_performance", list(account_ids), sort_by, limit))
        return [{"campaignId": "c1", "spend": 120.0, "roas": 3.1}]

    async def country_performance(self, start_date, end_date):
        return [{"country": "US", "spend": 90.0, "roas": 2.8}]

    async def campaign_details(self, campaign_id):
        return self.details.get(campaign_id)


class FakeMaterialLibrary(MaterialLibrary):
    def __init__(self, metrics: Optional[dict[str, list[dict]]] = None, materials: Optional[list[dict]] = None):
        self.metrics = metrics or {}
        self.materials = materials if materials is not None else [
            {"id": "m1", "name": "Hero video", "type": "video"},
            {"id": "m2", "name": "Static banner", "type": "image"},
        ]

    async def top_materials(self, organization_id, sort_by, material_type, min_spend, limit):
        rows = [m for m in self.materials if material_type is None or m["type"] == material_type]
        return rows[:limit]

    async def material_metrics(self, material_id, start_date, end_date):
        return self.metrics.get(material_id, [])

    async def active_materials(self, organization_id, min_spend):
        return list(self.materials)


@pytest.fixture
def facebook() -> FakeFacebookClient:
    return FakeFacebookClient()


@pytest.fixture
def tiktok() -> FakeTikTokClient:
    return FakeTikTokClient()


@pytest.fixture
def reporting() -> FakeReportingStore:
    return FakeReportingStore()


@pytest.fixture
def materials() -> FakeMaterialLibrary:
    return FakeMaterialLibrary()


@pytest.fixture
def clients(facebook, tiktok, reporting, materials) -> PlatformClients:
    return PlatformClients(facebook=facebook, tiktok=tiktok, reporting=reporting, materials=materials)


# =============================================================================
# Stores
# =============================================================================

@pytest_asyncio.fixture
async def session_maker(tmp_path):
    maker = await init_db(sqlite_url(tmp_path / "adforge.db"))
    yield maker
    await close_db()


@pytest_asyncio.fixture
async def redis_client():
    client = FakeRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def memory(session_maker, redis_client) -> MemoryService:
    return MemoryService(session_maker, redis=redis_client)


# =============================================================================
# Agents
# =============================================================================

FB_CREDENTIALS = {"facebook_token": "fb-test-token", "tiktok_token": "tt-token", "tiktok_advertiser_id": "adv1"}


def make_config(
    mode: AgentMode = AgentMode.AUTO,
    daily_budget_limit: Optional[float] = None,
    max_iterations: int = 25,
    **permissions: bool,
) -> AgentConfig:
    return AgentConfig(
        id="agent-1",
        name="Test Agent",
        mode=mode,
        organization_id="org-1",
        permissions=AgentPermissions(**permissions),
        objectives=AgentObjectives(daily_budget_limit=daily_budget_limit, target_roas=2.0),
        max_iterations=max_iterations,
    )


@pytest.fixture
def make_runtime(memory, clients, redis_client):
    """Factory: runtime over the shared fixtures with a given model script."""

    def _make(model_client: ModelClient, use_cache: bool = True) -> AgentRuntime:
        registry = build_registry(clients, memory)
        ledger = create_ledger(memory.long_term, redis=redis_client if use_cache else None)
        settings = AdForgeSettings(api_key="test-key", model_timeout=5, tool_timeout=5)
        return AgentRuntime(registry, GuardrailEngine(ledger), memory, model_client, settings=settings)

    return _make
