"""
GDELT DOC 2.0 data source.

Fetches:
- Article lists (normalized into Article models)
- Volume timelines (raw article counts)
- Tone timelines
- Any other DOC API mode, passed through unmodified

All requests go through the shared UpstreamGateway, so every consuming
service shares one queue, one circuit breaker and one dedup cache.
"""

from enum import Enum
from typing import Any
from urllib.parse import quote

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from gateway.services.client import UpstreamGateway, get_gateway

# Unreserved marks stay literal; identical queries must yield identical dedup keys
_URI_COMPONENT_SAFE = "-_.!~*'()"


class GdeltMode(str, Enum):
    """DOC API output modes."""

    ARTLIST = "ArtList"
    TIMELINE_VOL = "TimelineVol"
    TIMELINE_VOL_RAW = "TimelineVolRaw"
    TIMELINE_TONE = "TimelineTone"
    TIMELINE_LANG = "TimelineLang"
    TIMELINE_SOURCE_COUNTRY = "TimelineSourceCountry"
    TONE_CHART = "ToneChart"


class Article(BaseModel):
    """Normalized article record."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = ""
    url: str = ""
    source: str = ""
    date: str = ""
    source_country: str = Field(default="", alias="sourceCountry")
    language: str = ""
    image: str = ""

    @classmethod
    def from_raw(cls, record: dict[str, Any]) -> "Article":
        return cls(
            title=record.get("title") or "",
            url=record.get("url") or "",
            source=record.get("domain") or "",
            date=record.get("seendate") or "",
            source_country=record.get("sourcecountry") or "",
            language=record.get("language") or "",
            image=record.get("socialimage") or "",
        )

    def to_dict(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)


def is_artlist(mode: GdeltMode | str) -> bool:
    value = mode.value if isinstance(mode, GdeltMode) else str(mode)
    return value.lower() == GdeltMode.ARTLIST.value.lower()


def normalize_articles(data: Any) -> list[Article]:
    """Map an ArtList payload to Article models, skipping malformed records."""
    if not isinstance(data, dict):
        return []
    records = data.get("articles") or []
    if not isinstance(records, list):
        return []
    return [Article.from_raw(r) for r in records if isinstance(r, dict)]


class GdeltSource:
    """
    GDELT DOC API data source.

    Usage:
        gdelt = GdeltSource(gateway)

        articles = await gdelt.fetch("earthquake", timespan="24h", caller="disasters")
        tone = await gdelt.fetch_tone("sanctions", caller="sanctions")
    """

    def __init__(self, gateway: UpstreamGateway | None = None, base_url: str | None = None):
        self.gateway = gateway or get_gateway()
        self.base_url = base_url or self.gateway.settings.base_url

    def build_url(
        self,
        query: str,
        max_records: int = 75,
        timespan: str = "7d",
        mode: GdeltMode | str = GdeltMode.ARTLIST,
    ) -> str:
        mode_value = mode.value if isinstance(mode, GdeltMode) else mode
        return (
            f"{self.base_url}?query={quote(query, safe=_URI_COMPONENT_SAFE)}"
            f"&mode={mode_value}&maxrecords={max_records}"
            f"&timespan={timespan}&format=json"
        )

    async def fetch(
        self,
        query: str,
        max_records: int = 75,
        timespan: str = "7d",
        mode: GdeltMode | str = GdeltMode.ARTLIST,
        caller: str = "unknown",
    ) -> list[Article] | Any:
        """
        Fetch DOC API results with rate limiting.

        Returns a list of Article for ArtList mode ([] on failure), otherwise
        the raw JSON ({} on failure).
        """
        url = self.build_url(query, max_records=max_records, timespan=timespan, mode=mode)

        if is_artlist(mode):
            data = await self.gateway.fetch(url, caller=caller, degraded={"articles": []})
            articles = normalize_articles(data)
            if not articles:
                logger.debug(f"[GDELT:{caller}] No articles for {query[:60]!r}")
            return articles

        return await self.gateway.fetch(url, caller=caller, degraded={})

    async def fetch_count(self, query: str, **kwargs: Any) -> Any:
        """Raw article-count timeline."""
        return await self.fetch(query, mode=GdeltMode.TIMELINE_VOL_RAW, **kwargs)

    async def fetch_tone(self, query: str, **kwargs: Any) -> Any:
        """Average tone timeline."""
        return await self.fetch(query, mode=GdeltMode.TIMELINE_TONE, **kwargs)

    async def fetch_raw(self, url: str, caller: str = "unknown") -> Any:
        """Rate-limited fetch of a custom URL. Returns {} on failure."""
        return await self.gateway.fetch(url, caller=caller, degraded={})

    def get_stats(self) -> dict[str, Any]:
        return self.gateway.get_stats().to_dict()
