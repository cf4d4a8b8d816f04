import os
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional, List, Dict, Any

from fastapi import FastAPI, HTTPException, Depends, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from creative_engine import __version__, workflows
from creative_engine.config import Settings
from creative_engine.errors import CreativeEngineError, RateLimitExceeded
from creative_engine.rate_limit import RateLimitResult, RedisSlidingWindow, client_identifier
from creative_engine.services import Services, build_services

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("creative_engine.api")


# --- LIFESPAN ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings.from_env()
    app.state.services = build_services(settings)
    logger.info(f"🚀 Ad Creative Engine {__version__} starting (model: {settings.gemini_model}, env: {settings.app_env})")
    try:
        yield
    finally:
        await app.state.services.aclose()
        logger.info("👋 Shut down")


app = FastAPI(title="Ad Creative Engine", version=__version__, lifespan=lifespan)


def get_services(request: Request) -> Services:
    return request.app.state.services


# --- API KEY AUTHENTICATION ---
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

async def verify_api_key(api_key: str = Depends(api_key_header), services: Services = Depends(get_services)):
    """Access gate: verify the shared API key for protected endpoints"""
    if not services.settings.api_key:
        # No API key set = no protection (for development)
        return True
    if api_key != services.settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return True


# --- RATE LIMITING ---

def rate_limited(endpoint: str):
    """Dependency that counts one request against ``endpoint``'s hourly quota"""
    async def check(request: Request, response: Response, services: Services = Depends(get_services)) -> RateLimitResult:
        result = await services.rate_limiter.check(endpoint, client_identifier(request.headers))
        if not result.allowed:
            raise RateLimitExceeded(result)
        response.headers.update(result.headers())
        return result
    return check


# --- ERROR ENVELOPES ---

def _debug_enabled(request: Request) -> bool:
    services = getattr(request.app.state, "services", None)
    return bool(services and services.settings.is_development)


@app.exception_handler(CreativeEngineError)
async def creative_engine_error_handler(request: Request, exc: CreativeEngineError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.url.path}: {exc}")
    else:
        logger.warning(f"⚠️ {request.url.path}: {exc.status_code} {exc}")
    content = exc.to_payload()
    if _debug_enabled(request):
        content["debug"] = "".join(traceback.format_exception(exc))
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": problems})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "details": None},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.url.path}")
    content = {"error": "Internal server error", "details": str(exc) or exc.__class__.__name__}
    if _debug_enabled(request):
        content["debug"] = "".join(traceback.format_exception(exc))
    return JSONResponse(status_code=500, content=content)


# --- REQUEST MODELS ---
# Field names follow the web client's camelCase JSON

class AnalyzeRequest(BaseModel):
    url: str = ""
    type: str = ""                         # psychological, storytelling, production
    productService: Optional[str] = None   # enables the Stage 2 adaptation
    productImage: Optional[str] = None     # data URL or bare base64


class ViralScriptRequest(BaseModel):
    videoUrl: Optional[str] = None         # TikTok or Instagram Reel
    videoPrompt: Optional[str] = None      # description, used when there is no URL
    productDescription: Optional[str] = None
    duration: Optional[int] = None         # seconds; 1 = "Default"


class AdaptScriptRequest(BaseModel):
    originalScript: str = ""
    duration: int = 0                      # 15, 20 or 30


class ProductVideoRequest(BaseModel):
    productImage: str = ""
    actionDescription: str = ""


class StaticAdRequest(BaseModel):
    staticAdImage: str = ""
    productImage: str = ""
    copywriting: Optional[str] = None      # manual copy, or the /scrape-url JSON when isUrlScraped
    isUrlScraped: bool = False


class EnhancePromptRequest(BaseModel):
    actionText: str = ""
    compositions: Optional[List[str]] = None
    composition: Optional[str] = None      # single-composition form
    lighting: Optional[str] = None
    duration: Optional[int] = None
    mainStyle: Optional[str] = None
    productFocus: Optional[str] = None
    allScenes: Optional[List[Dict[str, Any]]] = None
    currentSceneIndex: Optional[int] = None


class ScrapeRequest(BaseModel):
    url: str = ""


# --- ENDPOINTS ---

@app.post("/analyze")
async def analyze(
    request: AnalyzeRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("analyze")),
    services: Services = Depends(get_services),
):
    """Reverse-engineer a Meta Ad Library video ad (psychology, storytelling or production prompt)"""
    return await workflows.analyze_ad(
        services,
        url=request.url,
        analysis_type=request.type,
        product_service=request.productService,
        product_image=request.productImage,
    )


@app.post("/generate-viral-script")
async def generate_viral_script(
    request: ViralScriptRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("generateViralScript")),
    services: Services = Depends(get_services),
):
    return await workflows.generate_viral_script(
        services,
        video_url=request.videoUrl,
        video_prompt=request.videoPrompt,
        product_description=request.productDescription,
        duration=request.duration,
    )


@app.post("/adapt-viral-script")
async def adapt_viral_script(
    request: AdaptScriptRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("generateViralScript")),
    services: Services = Depends(get_services),
):
    """Shares the viral script quota"""
    return await workflows.adapt_viral_script(services, request.originalScript, request.duration)


@app.post("/generate-product-video")
async def generate_product_video(
    request: ProductVideoRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("generateProductVideo")),
    services: Services = Depends(get_services),
):
    return await workflows.generate_product_video(services, request.productImage, request.actionDescription)


@app.post("/generate-static-ad-prompt")
async def generate_static_ad_prompt(
    request: StaticAdRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("generateStaticAd")),
    services: Services = Depends(get_services),
):
    return await workflows.generate_static_ad_prompt(
        services,
        static_ad_image=request.staticAdImage,
        product_image=request.productImage,
        copywriting=request.copywriting,
        is_url_scraped=request.isUrlScraped,
    )


@app.post("/enhance-prompt")
async def enhance_prompt(
    request: EnhancePromptRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("enhancePrompt")),
    services: Services = Depends(get_services),
):
    compositions = request.compositions or ([request.composition] if request.composition else [])
    return await workflows.enhance_prompt(
        services,
        action_text=request.actionText,
        compositions=compositions,
        lighting=request.lighting,
        duration=request.duration,
        main_style=request.mainStyle,
        product_focus=request.productFocus,
        all_scenes=request.allScenes,
        current_scene_index=request.currentSceneIndex,
    )


@app.post("/scrape-url")
async def scrape_url(
    request: ScrapeRequest,
    _: bool = Depends(verify_api_key),
    __: RateLimitResult = Depends(rate_limited("scrapeUrl")),
    services: Services = Depends(get_services),
):
    return await workflows.scrape_url(services, request.url)


@app.get("/health")
async def health(services: Services = Depends(get_services)):
    backend = "redis" if isinstance(services.rate_limiter.backend, RedisSlidingWindow) else "memory"
    return {"status": "ok", "service": "ad-creative-engine", "rateLimitBackend": backend}


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port)
