import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from google import genai

from .assets import AssetUploader, ReadinessPoller
from .config import Settings
from .gemini import GeminiGenerator
from .rate_limit import RateLimiter, build_rate_limiter
from .scrapers import FirecrawlClient, ScrapeCreatorsClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived clients shared by every request"""
    settings: Settings
    http: httpx.AsyncClient
    genai_client: Optional[Any]
    uploader: AssetUploader
    poller: ReadinessPoller
    generator: GeminiGenerator
    scrapecreators: ScrapeCreatorsClient
    firecrawl: FirecrawlClient
    rate_limiter: RateLimiter

    async def aclose(self) -> None:
        await self.http.aclose()
        await self.rate_limiter.close()


def build_services(
    settings: Settings,
    genai_client: Optional[Any] = None,
    http: Optional[httpx.AsyncClient] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> Services:
    if genai_client is None and settings.google_api_key:
        genai_client = genai.Client(api_key=settings.google_api_key)
    if genai_client is None:
        logger.warning("⚠️ GOOGLE_GENAI_API_KEY not set, Gemini endpoints will fail")
    if not settings.scrapecreators_api_key:
        logger.warning("⚠️ SCRAPECREATORS_API_KEY not set")
    if not settings.firecrawl_api_key:
        logger.warning("⚠️ FIRECRAWL_API_KEY not set")

    if http is None:
        http = httpx.AsyncClient(timeout=settings.download_timeout, follow_redirects=True, max_redirects=5)

    return Services(
        settings=settings,
        http=http,
        genai_client=genai_client,
        uploader=AssetUploader(genai_client),
        poller=ReadinessPoller(
            genai_client,
            interval=settings.asset_poll_interval,
            timeout=settings.asset_poll_timeout,
        ),
        generator=GeminiGenerator(genai_client, model=settings.gemini_model),
        scrapecreators=ScrapeCreatorsClient(http, settings.scrapecreators_api_key),
        firecrawl=FirecrawlClient(http, settings.firecrawl_api_key),
        rate_limiter=rate_limiter or build_rate_limiter(settings.redis_url, settings.rate_limits),
    )
