"""
Endpoint workflows.

Each function takes the shared ``Services`` plus plain arguments and returns
the JSON-ready response body. HTTP concerns (auth, rate limits, envelopes)
stay in ``main.py``.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from .assets import AssetHandle, prepare_asset, prepare_assets
from .errors import CreativeEngineError, ValidationError
from .media import decode_data_url
from .pipeline import enforce_length, flatten_paragraph, run_stage
from .prompts import (
    ANALYSIS_TYPES,
    COPYWRITING_MARKER,
    NANO_BANANA_MARKER,
    REFERENCE_PROMPT_MARKER,
    VIDEO_ANIMATION_MARKER,
    EnhancementParams,
    build_adaptation_prompt,
    build_analysis_prompt,
    build_enhancement_prompt,
    build_length_optimization_prompt,
    build_product_video_prompt,
    build_script_adaptation_prompt,
    build_static_ad_adaptation_prompt,
    build_static_ad_analysis_prompt,
    build_viral_script_prompt,
)
from .scrapers import download, extract_ad_id, find_video_url, validate_http_url
from .sections import decode_sections, parse_copywriting_profile
from .services import Services

logger = logging.getLogger(__name__)

SCRIPT_DURATIONS = (15, 20, 30)


def _reoptimizer(services: Services, limit: int):
    async def reoptimize(text: str):
        return await services.generator.generate(
            build_length_optimization_prompt(text, limit),
            label="length optimization",
        )
    return reoptimize


# --- /analyze ---

async def analyze_ad(
    services: Services,
    url: str,
    analysis_type: str,
    product_service: Optional[str] = None,
    product_image: Optional[str] = None,
) -> Dict[str, Any]:
    """Reverse-engineer a Meta Ad Library video ad, then optionally adapt it to another product"""
    if not url or not analysis_type:
        raise ValidationError("URL and analysis type are required")
    if analysis_type not in ANALYSIS_TYPES:
        raise ValidationError("Invalid analysis type", details=f"Expected one of: {', '.join(ANALYSIS_TYPES)}")

    product_service = (product_service or "").strip() or None
    # Decode up front so malformed input is a 400, not a degraded Stage 2
    product_blob = decode_data_url(product_image, "productImage") if product_service and product_image else None

    ad_id = extract_ad_id(url)
    data = await services.scrapecreators.fetch_ad(ad_id)

    video_url = find_video_url(data)
    if not video_url:
        logger.warning(f"⚠️ Ad {ad_id} has no playable video")
        return {
            "success": False,
            "adId": ad_id,
            "type": analysis_type,
            "data": data,
            "message": "This ad does not contain a video. Only video ads can be analyzed.",
            "geminiAnalysis": None,
            "adaptedPrompt": None,
        }

    video = await download(services.http, video_url, timeout=services.settings.download_timeout)
    video_job = prepare_asset(services.uploader, services.poller, video, "video/mp4")
    del video

    image_handle: Optional[AssetHandle] = None
    if product_blob:
        image_job = prepare_asset(services.uploader, services.poller, *product_blob)
        del product_blob
        video_handle, image_result = await asyncio.gather(video_job, image_job, return_exceptions=True)
        if isinstance(video_handle, BaseException):
            raise video_handle
        if isinstance(image_result, CreativeEngineError):
            logger.warning(f"⚠️ Product image upload failed, Stage 2 skipped: {image_result}")
        elif isinstance(image_result, BaseException):
            raise image_result
        else:
            image_handle = image_result
    else:
        video_handle = await video_job

    stage1 = await run_stage(
        "analysis",
        lambda: services.generator.generate(
            build_analysis_prompt(analysis_type), [video_handle], label=f"{analysis_type} analysis"
        ),
        required=True,
        empty_message="Could not extract analysis text from Gemini response",
    )
    usage = stage1.usage

    adapted_prompt = None
    if product_service and stage1.usable and not (product_image and image_handle is None):
        assets = [image_handle] if image_handle else []
        stage2 = await run_stage(
            "adaptation",
            lambda: services.generator.generate(
                build_adaptation_prompt(analysis_type, stage1.text, product_service, bool(assets)),
                assets,
                label="adaptation",
            ),
            required=False,
        )
        usage = usage + stage2.usage
        if stage2.usable:
            adapted_prompt = flatten_paragraph(stage2.text)

    return {
        "success": True,
        "adId": ad_id,
        "type": analysis_type,
        "data": data,
        "geminiAnalysis": {"text": stage1.text, "fileUri": video_handle.uri},
        "adaptedPrompt": adapted_prompt,
        "usage": usage.to_dict(),
    }


# --- VIRAL SCRIPTS ---

async def generate_viral_script(
    services: Services,
    video_url: Optional[str] = None,
    video_prompt: Optional[str] = None,
    product_description: Optional[str] = None,
    duration: Optional[int] = None,
) -> Dict[str, Any]:
    if duration is not None and duration <= 0:
        raise ValidationError("Duration must be a positive number of seconds")

    transcript = None
    if video_url and video_url.strip():
        transcript = await services.scrapecreators.fetch_transcript(validate_http_url(video_url, "video URL"))
        source = transcript
    elif video_prompt and video_prompt.strip():
        source = video_prompt.strip()
    else:
        raise ValidationError("A TikTok/Instagram URL or a video description is required")

    stage = await run_stage(
        "viral script",
        lambda: services.generator.generate(
            build_viral_script_prompt(
                source,
                product_description=(product_description or "").strip() or None,
                duration=duration,
                from_transcript=transcript is not None,
            ),
            label="viral script",
        ),
        empty_message="Could not generate the script",
    )
    return {
        "success": True,
        "script": flatten_paragraph(stage.text),
        "transcript": transcript,
        "usage": stage.usage.to_dict(),
    }


async def adapt_viral_script(services: Services, original_script: str, duration: int) -> Dict[str, Any]:
    if not original_script or not original_script.strip():
        raise ValidationError("Original script is required")
    if duration not in SCRIPT_DURATIONS:
        raise ValidationError("Duration must be 15, 20, or 30 seconds")

    stage = await run_stage(
        "script adaptation",
        lambda: services.generator.generate(
            build_script_adaptation_prompt(original_script.strip(), duration),
            label=f"{duration}s script adaptation",
        ),
        empty_message="Could not adapt the script",
    )
    return {
        "success": True,
        "script": flatten_paragraph(stage.text),
        "usage": stage.usage.to_dict(),
    }


# --- PRODUCT VIDEO ---

async def generate_product_video(services: Services, product_image: str, action_description: str) -> Dict[str, Any]:
    if not product_image or not action_description or not action_description.strip():
        raise ValidationError("Product image and action description are required")

    limit = services.settings.max_prompt_chars
    handle = await prepare_asset(services.uploader, services.poller, *decode_data_url(product_image, "productImage"))

    stage = await run_stage(
        "product video",
        lambda: services.generator.generate(
            build_product_video_prompt(action_description.strip(), limit), [handle], label="product video"
        ),
        empty_message="Could not generate prompts",
    )
    sections = decode_sections(stage.text, [NANO_BANANA_MARKER, VIDEO_ANIMATION_MARKER])

    enforced = await enforce_length(sections[VIDEO_ANIMATION_MARKER], limit, _reoptimizer(services, limit))
    return {
        "success": True,
        "nanoBananaPrompt": sections[NANO_BANANA_MARKER].strip(),
        "videoPrompt": enforced.text,
        "usage": (stage.usage + enforced.usage).to_dict(),
    }


# --- STATIC ADS ---

def _scraped_copy(copywriting: Optional[str], is_url_scraped: bool):
    """(summary, branding) from the /scrape-url result the UI passes back as copywriting"""
    if not is_url_scraped or not copywriting:
        return None, None
    try:
        scraped = json.loads(copywriting)
    except ValueError:
        return copywriting, None
    if not isinstance(scraped, dict):
        return copywriting, None

    summary = scraped.get("summary")
    if not isinstance(summary, str):
        summary = None
    branding = scraped.get("branding") or None
    if branding is not None and not isinstance(branding, dict):
        logger.warning(f"⚠️ Ignoring scraped branding of type {type(branding).__name__}")
        branding = None
    if branding and not isinstance(branding.get("typography") or {}, dict):
        logger.warning("⚠️ Ignoring scraped typography that is not an object")
        branding = {k: v for k, v in branding.items() if k != "typography"}
    return summary or None, branding or None


def _clip(text: Optional[str], limit: int) -> Optional[str]:
    if not text:
        return None
    return text if len(text) <= limit else text[:limit] + "..."


def _branding_debug(branding: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not branding:
        return None
    typography = branding.get("typography") or None
    return {
        "colors": branding.get("colors") or None,
        "typography": {
            "fontFamilies": typography.get("fontFamilies"),
            "fontSizes": typography.get("fontSizes"),
        } if typography else None,
        "fonts": branding.get("fonts") or None,
    }


async def generate_static_ad_prompt(
    services: Services,
    static_ad_image: str,
    product_image: str,
    copywriting: Optional[str] = None,
    is_url_scraped: bool = False,
) -> Dict[str, Any]:
    if not static_ad_image or not product_image:
        raise ValidationError("Both static ad image and product image are required")

    limit = services.settings.max_prompt_chars
    scraped_summary, branding = _scraped_copy(copywriting, is_url_scraped)
    manual_copy = None if is_url_scraped else ((copywriting or "").strip() or None)

    ad_handle, product_handle = await prepare_assets(
        services.uploader,
        services.poller,
        [decode_data_url(static_ad_image, "staticAdImage"), decode_data_url(product_image, "productImage")],
    )

    stage1 = await run_stage(
        "static ad analysis",
        lambda: services.generator.generate(build_static_ad_analysis_prompt(), [ad_handle], label="static ad analysis"),
        empty_message="Could not analyze the static ad",
    )
    sections = decode_sections(stage1.text, [COPYWRITING_MARKER, REFERENCE_PROMPT_MARKER], required=())
    reference_prompt = sections.get(REFERENCE_PROMPT_MARKER)
    if not reference_prompt:
        logger.warning("⚠️ No reference prompt section in static ad analysis, using the full answer")
        reference_prompt = stage1.text
    profile = parse_copywriting_profile(sections[COPYWRITING_MARKER]) if COPYWRITING_MARKER in sections else None

    stage2 = await run_stage(
        "static ad adaptation",
        lambda: services.generator.generate(
            build_static_ad_adaptation_prompt(
                reference_prompt,
                profile=profile,
                copywriting=manual_copy,
                scraped_summary=scraped_summary,
                branding=branding,
                max_chars=limit,
            ),
            [product_handle],
            label="static ad adaptation",
        ),
        empty_message="Could not generate the adapted prompt",
    )
    enforced = await enforce_length(stage2.text, limit, _reoptimizer(services, limit))

    step2 = stage2.usage + enforced.usage
    return {
        "success": True,
        "prompt": enforced.text,
        "debug": {
            "copywritingProfile": profile.to_dict() if profile else None,
            "referencePrompt": _clip(reference_prompt, 1000),
            "scrapedSummary": _clip(scraped_summary, 500),
            "scrapedBranding": _branding_debug(branding),
        },
        "usage": {
            "step1": stage1.usage.to_dict(),
            "step2": step2.to_dict(),
            "total": (stage1.usage + step2).to_dict(),
        },
    }


# --- ENHANCE PROMPT ---

async def enhance_prompt(
    services: Services,
    action_text: str,
    compositions: Sequence[str],
    lighting: Optional[str],
    duration: Optional[int] = None,
    main_style: Optional[str] = None,
    product_focus: Optional[str] = None,
    all_scenes: Optional[List[Dict[str, Any]]] = None,
    current_scene_index: Optional[int] = None,
) -> Dict[str, Any]:
    compositions = [c for c in compositions if c]
    if not action_text or not compositions or not lighting:
        raise ValidationError("Action text, at least one composition, and lighting are required")

    first_scene_action = None
    if all_scenes and current_scene_index is not None:
        first = all_scenes[0]
        if isinstance(first, dict):
            first_scene_action = first.get("action") or None

    params = EnhancementParams(
        action_text=action_text,
        compositions=tuple(compositions),
        lighting=lighting,
        duration=duration,
        first_scene_action=first_scene_action,
        scene_index=current_scene_index,
        total_scenes=len(all_scenes) if all_scenes else 1,
        main_style=main_style or EnhancementParams.main_style,
        product_focus=product_focus or EnhancementParams.product_focus,
    )

    result = await services.generator.generate(build_enhancement_prompt(params), label="prompt enhancement")
    enhanced = flatten_paragraph(result.text)
    if not enhanced:
        logger.warning("⚠️ Enhancement returned no text, echoing the action text")
        enhanced = action_text

    return {
        "success": True,
        "originalText": action_text,
        "enhancedText": enhanced,
        "compositions": compositions,
        "lighting": lighting,
        "usage": result.usage.to_dict(),
    }


# --- SCRAPE URL ---

async def scrape_url(services: Services, url: str) -> Dict[str, Any]:
    if not url or not url.strip():
        raise ValidationError("URL is required")
    scraped = await services.firecrawl.scrape(validate_http_url(url))
    return {"success": True, **scraped}
