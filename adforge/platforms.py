"""
Platform Collaborators
======================

Abstract interfaces to the advertising platforms and to the reporting and
material stores. Concrete implementations (HTTP clients, database readers)
live outside this package and are injected when the tool catalog is built.

Every method is a fallible remote call: it returns plain data or raises
PlatformError. Tool handlers let PlatformError propagate; the registry turns
it into a failed ToolResult.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from adforge.agent_config import AgentContext


class PlatformError(Exception):
    """A platform or store call failed."""

    def __init__(self, message: str, platform: str = "", code: Optional[str] = None):
        super().__init__(message)
        self.platform = platform
        self.code = code


class FacebookAdsClient(ABC):
    """Read and write access to the Facebook Marketing API."""

    async def resolve_token(self, context: AgentContext) -> Optional[str]:
        """
        Access token for a run.

        The run's own credential wins; subclasses may fall back to tokens in
        the agent's scope or the organization's default token.
        """
        return context.credential("facebook_token")

    # Reads
    @abstractmethod
    async def get_campaigns(self, account_id: str, token: str, limit: int = 50) -> list[dict]: ...

    @abstractmethod
    async def get_insights(
        self, entity_id: str, token: str, level: str, date_preset: str
    ) -> list[dict]: ...

    @abstractmethod
    async def get_pages(self, account_id: str, token: str) -> list[dict]: ...

    @abstractmethod
    async def get_pixels(self, account_id: str, token: str) -> list[dict]: ...

    @abstractmethod
    async def search_interests(self, query: str, token: str) -> list[dict]: ...

    @abstractmethod
    async def search_locations(self, query: str, token: str) -> list[dict]: ...

    # Writes (each returns the created or updated object's id fields)
    @abstractmethod
    async def create_campaign(self, account_id: str, token: str, params: dict[str, Any]) -> dict: ...

    @abstractmethod
    async def create_adset(self, account_id: str, token: str, params: dict[str, Any]) -> dict: ...

    @abstractmethod
    async def create_ad_creative(self, account_id: str, token: str, params: dict[str, Any]) -> dict: ...

    @abstractmethod
    async def create_ad(self, account_id: str, token: str, params: dict[str, Any]) -> dict: ...

    @abstractmethod
    async def update_status(self, entity_type: str, entity_id: str, status: str, token: str) -> dict: ...

    @abstractmethod
    async def update_budget(self, entity_type: str, entity_id: str, daily_budget: float, token: str) -> dict: ...

    @abstractmethod
    async def upload_image(self, account_id: str, token: str, image_url: str, name: Optional[str] = None) -> dict: ...

    @abstractmethod
    async def upload_video(self, account_id: str, token: str, video_url: str, title: Optional[str] = None) -> dict: ...


@dataclass
class TikTokAuth:
    token: str
    advertiser_id: str


class TikTokAdsClient(ABC):
    """Read and write access to the TikTok Business API."""

    async def resolve_auth(self, context: AgentContext) -> Optional[TikTokAuth]:
        token = context.credential("tiktok_token")
        advertiser_id = context.credential("tiktok_advertiser_id")
        if token and advertiser_id:
            return TikTokAuth(token=token, advertiser_id=str(advertiser_id))
        return None

    @abstractmethod
    async def get_campaigns(self, advertiser_id: str, token: str) -> list[dict]: ...

    @abstractmethod
    async def get_insights(
        self, advertiser_id: str, token: str, level: str, start_date: str, end_date: str
    ) -> list[dict]: ...

    @abstractmethod
    async def update_campaign(self, advertiser_id: str, campaign_id: str, updates: dict[str, Any], token: str) -> dict: ...

    @abstractmethod
    async def update_adgroup(self, advertiser_id: str, adgroup_id: str, updates: dict[str, Any], token: str) -> dict: ...


class ReportingStore(ABC):
    """
    Pre-aggregated performance data.

    Row shapes are whatever the reporting backend stores; the tools only rely
    on the metric field names they aggregate (spend, revenue, impressions,
    clicks, installs, purchase_value, spend_usd).
    """

    @abstractmethod
    async def accounts(
        self, organization_id: Optional[str], account_ids: list[str], platform: Optional[str]
    ) -> list[dict]: ...

    @abstractmethod
    async def daily_metrics(self, filters: dict[str, Any], start_date: str, end_date: str, limit: int) -> list[dict]: ...

    @abstractmethod
    async def daily_totals(self, start_date: str, end_date: str) -> list[dict]: ...

    @abstractmethod
    async def account_performance(self, start_date: str, end_date: str, account_ids: list[str]) -> list[dict]: ...

    @abstractmethod
    async def campaign_performance(
        self, start_date: str, end_date: str, account_ids: list[str], sort_by: str, limit: int
    ) -> list[dict]: ...

    @abstractmethod
    async def country_performance(self, start_date: str, end_date: str) -> list[dict]: ...

    @abstractmethod
    async def campaign_details(self, campaign_id: str) -> Optional[dict]:
        """Campaign with ``adSets`` and ``ads`` lists, or None when unknown."""


class MaterialLibrary(ABC):
    """Creative material records and their daily metrics."""

    @abstractmethod
    async def top_materials(
        self,
        organization_id: Optional[str],
        sort_by: str,
        material_type: Optional[str],
        min_spend: Optional[float],
        limit: int,
    ) -> list[dict]: ...

    @abstractmethod
    async def material_metrics(self, material_id: str, start_date: str, end_date: str) -> list[dict]:
        """Daily rows (``date``, ``ctr``, ``roas``, ...) newest first."""

    @abstractmethod
    async def active_materials(self, organization_id: Optional[str], min_spend: float) -> list[dict]: ...


@dataclass
class PlatformClients:
    """The collaborators available to a deployment; absent ones register no tools."""
    facebook: Optional[FacebookAdsClient] = None
    tiktok: Optional[TikTokAdsClient] = None
    reporting: Optional[ReportingStore] = None
    materials: Optional[MaterialLibrary] = None
