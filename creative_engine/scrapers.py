import logging
import re
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import httpx

from .errors import (
    RemoteCallError,
    UpstreamAuthError,
    UpstreamConnectivity,
    UpstreamNotFound,
    UpstreamQuotaError,
    UpstreamRateLimited,
    ValidationError,
)

logger = logging.getLogger(__name__)

SCRAPECREATORS_BASE_URL = "https://api.scrapecreators.com"
FIRECRAWL_BASE_URL = "https://api.firecrawl.dev"


# --- HTTP ERROR CLASSIFICATION ---

def _upstream_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:500]
    return str(body)[:500]


def raise_for_upstream(response: httpx.Response, service: str, not_found: Optional[str] = None) -> None:
    """Map a third-party HTTP status onto the error taxonomy"""
    status = response.status_code
    if status < 400:
        return
    details = _upstream_message(response)
    if status in (401, 403):
        raise UpstreamAuthError(f"Invalid {service} API key", details=details)
    if status == 402:
        raise UpstreamQuotaError(f"No credits in {service}", details=details)
    if status == 404:
        raise UpstreamNotFound(not_found or f"Not found in {service}", details=details)
    if status == 429:
        raise UpstreamRateLimited(f"{service} rate limit exceeded. Please try again later.", details=details)
    raise RemoteCallError(f"Error calling {service}", details=f"HTTP {status}: {details}")


def classify_transport_error(exc: httpx.HTTPError, service: str) -> Exception:
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return UpstreamConnectivity(f"Could not connect to {service}", details=str(exc))
    return RemoteCallError(f"Error calling {service}", details=str(exc) or exc.__class__.__name__)


# --- AD LIBRARY ---

def extract_ad_id(url: str) -> str:
    """Numeric ad ID from a Meta Ad Library URL like https://www.facebook.com/ads/library/?id=869163755461256"""
    if not url or not url.strip():
        raise ValidationError("URL and analysis type are required")
    url = url.strip()

    ad_id = None
    try:
        ad_id = (parse_qs(urlparse(url).query).get("id") or [None])[0]
    except ValueError:
        ad_id = None
    if not ad_id:
        match = re.search(r"[?&]id=(\d+)", url)
        ad_id = match.group(1) if match else None
    if not ad_id and url.isdigit():
        ad_id = url

    if not ad_id or not ad_id.isdigit():
        raise ValidationError(
            "Could not extract the ad ID from the URL",
            details="Expected format: https://www.facebook.com/ads/library/?id=XXXXX",
        )
    return ad_id


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(data, list) or len(data) <= key:
                return None
            data = data[key]
        else:
            if not isinstance(data, dict):
                return None
            data = data.get(key)
        if data is None:
            return None
    return data


# Alternate locations, tried in order after snapshot.videos and snapshot.cards
_VIDEO_URL_PATHS: Tuple[Tuple[Any, ...], ...] = (
    ("video_sd_url",),
    ("video_sd_urls", 0),
    ("video", "sd_url"),
    ("video", "video_sd_url"),
    ("video_url",),
    ("videoUrl",),
    ("media", "video", "url"),
    ("media", "video_sd_url"),
    ("ad_snapshot", "video_sd_url"),
    ("video",),
    ("videos", 0, "url"),
)


def _first_string(values: Iterable[Any]) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def find_video_url(ad: Dict[str, Any]) -> Optional[str]:
    """Locate a playable video URL across the response shapes the Ad Library returns"""
    # Standard video ads
    first_video = _dig(ad, "snapshot", "videos", 0)
    url = _first_string([_dig(first_video, "video_sd_url"), _dig(first_video, "video_hd_url")])
    if url:
        return url

    # Dynamic Creative (DCO) ads keep videos on cards
    cards = _dig(ad, "snapshot", "cards")
    if isinstance(cards, list):
        for card in cards:
            url = _first_string([_dig(card, "video_sd_url"), _dig(card, "video_hd_url")])
            if url:
                return url

    return _first_string(_dig(ad, *path) for path in _VIDEO_URL_PATHS)


def _strip_webvtt(transcript: str) -> str:
    lines = []
    for line in transcript.splitlines():
        line = line.strip()
        if not line or line == "WEBVTT" or "-->" in line or line.isdigit():
            continue
        if line.startswith(("NOTE", "Kind:", "Language:")):
            continue
        lines.append(line)
    return " ".join(lines)


class ScrapeCreatorsClient:
    """Meta Ad Library lookups and TikTok/Instagram transcripts"""

    service = "ScrapeCreators"

    def __init__(self, http: httpx.AsyncClient, api_key: str, base_url: str = SCRAPECREATORS_BASE_URL):
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def _get(self, path: str, params: Dict[str, str], not_found: str) -> Any:
        if not self.api_key:
            raise UpstreamAuthError(f"Invalid {self.service} API key", details="SCRAPECREATORS_API_KEY is not set")
        try:
            response = await self.http.get(
                f"{self.base_url}{path}",
                params=params,
                headers={"x-api-key": self.api_key},
            )
        except httpx.HTTPError as e:
            raise classify_transport_error(e, self.service)
        raise_for_upstream(response, self.service, not_found=not_found)
        try:
            return response.json()
        except ValueError as e:
            raise RemoteCallError(f"Invalid response from {self.service}", details=str(e))

    async def fetch_ad(self, ad_id: str) -> Dict[str, Any]:
        logger.info(f"🔍 Fetching ad {ad_id} from the Ad Library")
        data = await self._get(
            "/v1/facebook/adLibrary/ad",
            {"id": ad_id, "get_transcript": "true"},
            not_found=f"Ad {ad_id} not found in the Ad Library",
        )
        if not isinstance(data, dict):
            raise RemoteCallError(f"Invalid response from {self.service}", details="Expected a JSON object")
        return data

    async def fetch_transcript(self, video_url: str) -> str:
        host = (urlparse(video_url).hostname or "").lower()
        if "tiktok.com" in host:
            path = "/v1/tiktok/video/transcript"
        elif "instagram.com" in host:
            path = "/v2/instagram/media/transcript"
        else:
            raise ValidationError("Please enter a TikTok or Instagram Reel URL", details=video_url)

        logger.info(f"📝 Fetching transcript for {video_url}")
        data = await self._get(path, {"url": video_url}, not_found="Video not found or has no transcript")

        raw = _dig(data, "transcript")
        if not isinstance(raw, str):
            # Instagram answers with a list of transcript objects
            raw = " ".join(
                t.get("text", "") for t in (_dig(data, "transcripts") or []) if isinstance(t, dict)
            )
        transcript = _strip_webvtt(raw or "")
        if not transcript:
            raise UpstreamNotFound("No transcript available for this video", details=video_url)
        return transcript


# --- FIRECRAWL ---

class FirecrawlClient:
    """Product page summary and branding extraction"""

    service = "Firecrawl"

    def __init__(self, http: httpx.AsyncClient, api_key: str, base_url: str = FIRECRAWL_BASE_URL):
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def scrape(self, url: str) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamAuthError(f"Invalid {self.service} API key", details="FIRECRAWL_API_KEY is not set")

        logger.info(f"🌐 Scraping {url}")
        try:
            response = await self.http.post(
                f"{self.base_url}/v2/scrape",
                json={"url": url, "formats": ["summary", "branding"]},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            raise classify_transport_error(e, self.service)
        raise_for_upstream(response, self.service, not_found="URL not found or could not be accessed")

        try:
            doc = response.json()
        except ValueError as e:
            raise RemoteCallError("Failed to scrape URL", details=str(e))
        if isinstance(doc, dict) and doc.get("error"):
            raise RemoteCallError("Failed to scrape URL", details=str(doc["error"]))

        summary = _first_string([
            _dig(doc, "data", "summary"),
            _dig(doc, "summary"),
            _dig(doc, "data", "metadata", "description"),
            _dig(doc, "metadata", "description"),
        ])
        if not summary:
            raise UpstreamNotFound(
                "No summary could be extracted from the URL",
                details="The scraped page did not contain a summary. Try a different URL or enter copywriting manually.",
            )

        branding = _dig(doc, "data", "branding") or _dig(doc, "branding")
        logger.info(f"✅ Summary extracted ({len(summary)} chars), branding: {'yes' if branding else 'no'}")
        return {
            "summary": summary,
            "branding": branding,
            "metadata": _dig(doc, "data", "metadata") or _dig(doc, "metadata"),
        }


# --- DOWNLOADS ---

def validate_http_url(url: str, field: str = "URL") -> str:
    parsed = urlparse((url or "").strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"Invalid {field} format", details=url)
    return parsed.geturl()


async def download(http: httpx.AsyncClient, url: str, timeout: float = 60.0) -> bytes:
    """Fetch a media file into memory; never written to disk"""
    logger.info(f"⬇️ Downloading {url}")
    try:
        response = await http.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as e:
        raise classify_transport_error(e, "video host")
    if response.status_code >= 400:
        raise RemoteCallError("Error downloading the video", details=f"HTTP {response.status_code}")

    content = response.content
    if not content:
        raise RemoteCallError("The downloaded video is empty", details="The video has no content")
    logger.info(f"✅ Downloaded {len(content):,} bytes")
    return content
