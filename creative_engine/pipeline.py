"""
Multi-stage orchestration primitives.

A stage is one generation round-trip. ``run_stage`` tags its outcome so a
later stage can check it before consuming the text: required stages raise,
optional stages degrade to a FAILED or EMPTY outcome and a log line.
``enforce_length`` implements the one re-optimization then word-boundary
truncation policy for length-capped artifacts.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from .errors import CreativeEngineError, EmptyGenerationResult
from .gemini import GenerationResult, Usage

logger = logging.getLogger(__name__)


class StageStatus(str, Enum):
    SUCCEEDED = "succeeded"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class StageOutcome:
    name: str
    status: StageStatus
    result: Optional[GenerationResult] = None
    error: Optional[CreativeEngineError] = None

    @property
    def usable(self) -> bool:
        return self.status is StageStatus.SUCCEEDED

    @property
    def text(self) -> Optional[str]:
        """Text only when the stage succeeded; never leaks an empty or failed stage downstream"""
        return self.result.text if self.usable and self.result else None

    @property
    def usage(self) -> Usage:
        return self.result.usage if self.result else Usage()


async def run_stage(
    name: str,
    call: Callable[[], Awaitable[GenerationResult]],
    required: bool = True,
    empty_message: Optional[str] = None,
) -> StageOutcome:
    logger.info(f"▶️ Stage {name} ({'required' if required else 'optional'})")
    try:
        result = await call()
    except CreativeEngineError as e:
        if required:
            raise
        logger.warning(f"⚠️ Optional stage {name} failed, keeping previous result: {e}")
        return StageOutcome(name=name, status=StageStatus.FAILED, error=e)

    if result.is_empty:
        if required:
            raise EmptyGenerationResult(empty_message, details=f"Stage {name} returned no text")
        logger.warning(f"⚠️ Optional stage {name} returned no text, keeping previous result")
        return StageOutcome(name=name, status=StageStatus.EMPTY, result=result)

    logger.info(f"✅ Stage {name} done ({len(result.text)} chars)")
    return StageOutcome(name=name, status=StageStatus.SUCCEEDED, result=result)


# --- LENGTH CONSTRAINT ---

def flatten_paragraph(text: str) -> str:
    """Collapse line breaks and runs of whitespace into a single paragraph"""
    return re.sub(r"\s+", " ", text or "").strip()


def truncate_at_word_boundary(text: str, limit: int) -> str:
    """
    Longest prefix of ``text`` within ``limit`` characters that ends on a
    complete word. A single word longer than ``limit`` yields an empty string.
    """
    if len(text) <= limit:
        return text
    if text[limit].isspace():
        return text[:limit].rstrip()
    head = text[:limit]
    cut = max(head.rfind(" "), head.rfind("\t"), head.rfind("\n"))
    if cut <= 0:
        return ""
    return head[:cut].rstrip(" ,;:-")


@dataclass
class LengthEnforcement:
    text: str
    original_length: int
    reoptimized: bool = False
    truncated: bool = False
    usage: Usage = field(default_factory=Usage)


async def enforce_length(
    text: str,
    limit: int,
    reoptimize: Callable[[str], Awaitable[GenerationResult]],
) -> LengthEnforcement:
    """
    Single paragraph, at most ``limit`` characters. Over the limit, exactly one
    re-optimization call is made; if its answer is still too long, empty, or
    the call fails, the best text available is cut at a word boundary.
    """
    text = flatten_paragraph(text)
    report = LengthEnforcement(text=text, original_length=len(text))
    if len(text) <= limit:
        return report

    logger.info(f"✂️ Output is {len(text)} characters, limit {limit}. Re-optimizing once...")
    report.reoptimized = True
    candidate = text
    try:
        result = await reoptimize(text)
        report.usage = result.usage
        optimized = flatten_paragraph(result.text)
        if optimized:
            candidate = optimized
    except CreativeEngineError as e:
        logger.error(f"❌ Re-optimization failed, truncating instead: {e}")

    if len(candidate) <= limit:
        logger.info(f"✅ Re-optimized to {len(candidate)} characters")
        report.text = candidate
        return report

    report.text = truncate_at_word_boundary(candidate, limit)
    if not report.text and candidate is not text:
        # The re-optimized answer has no word boundary within the limit; the original may
        report.text = truncate_at_word_boundary(text, limit)
    report.truncated = True
    logger.warning(f"⚠️ Still {len(candidate)} characters after re-optimization, truncated to {len(report.text)}")
    return report
