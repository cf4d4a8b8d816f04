import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel


# --- RATE LIMITS ---

class RateLimitRule(BaseModel):
    """Requests allowed per sliding window for one endpoint"""
    limit: int
    window_seconds: int = 3600


# Cost-weighted: the video analysis is by far the most expensive call
ENDPOINT_LIMITS: Dict[str, RateLimitRule] = {
    "analyze": RateLimitRule(limit=10),
    "generateStaticAd": RateLimitRule(limit=15),
    "generateProductVideo": RateLimitRule(limit=20),
    "generateViralScript": RateLimitRule(limit=20),
    "enhancePrompt": RateLimitRule(limit=30),
    "scrapeUrl": RateLimitRule(limit=50),
}


# --- SETTINGS ---

def _clean_firecrawl_key(key: str) -> str:
    # Keys pasted from the dashboard sometimes carry the prefix twice
    if key.startswith("fc-fc-"):
        return "fc-" + key[len("fc-fc-"):]
    return key


class Settings(BaseModel):
    """Process-wide configuration, read once at startup"""
    google_api_key: str = ""
    gemini_model: str = "gemini-3-pro-preview"
    scrapecreators_api_key: str = ""
    firecrawl_api_key: str = ""
    redis_url: str = ""
    api_key: str = ""                 # Access gate key (empty = gate disabled)
    app_env: str = "production"
    asset_poll_interval: float = 2.0  # seconds between readiness checks
    asset_poll_timeout: float = 60.0  # total readiness budget
    max_prompt_chars: int = 999
    download_timeout: float = 60.0
    port: int = 8080
    rate_limits: Dict[str, RateLimitRule] = ENDPOINT_LIMITS

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            google_api_key=env.get("GOOGLE_GENAI_API_KEY", ""),
            gemini_model=env.get("GEMINI_MODEL", "gemini-3-pro-preview"),
            scrapecreators_api_key=env.get("SCRAPECREATORS_API_KEY", ""),
            firecrawl_api_key=_clean_firecrawl_key(env.get("FIRECRAWL_API_KEY", "")),
            redis_url=env.get("REDIS_URL", ""),
            api_key=env.get("API_KEY", ""),
            app_env=env.get("APP_ENV", "production"),
            asset_poll_interval=float(env.get("ASSET_POLL_INTERVAL", 2.0)),
            asset_poll_timeout=float(env.get("ASSET_POLL_TIMEOUT", 60.0)),
            max_prompt_chars=int(env.get("MAX_PROMPT_CHARS", 999)),
            download_timeout=float(env.get("DOWNLOAD_TIMEOUT", 60.0)),
            port=int(env.get("PORT", 8080)),
        )
