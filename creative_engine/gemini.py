"""
Generation call wrapper around ``google-genai``.

``GeminiGenerator.generate`` takes a prompt plus ACTIVE asset handles and
returns a ``GenerationResult``. SDK and transport failures are classified
into the service's error taxonomy; an empty model answer is a normal result
(``is_empty``), not an exception.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import httpx
from google.genai import errors as genai_errors
from google.genai import types

from .assets import AssetHandle
from .errors import (
    AssetNotReady,
    CreativeEngineError,
    RemoteCallError,
    UpstreamAuthError,
    UpstreamConnectivity,
    UpstreamNotFound,
    UpstreamRateLimited,
)

logger = logging.getLogger(__name__)

# USD per million tokens (input, output), used for server-side cost logs only
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    "gemini-3-pro-preview": (2.0, 12.0),
    "gemini-2.5-pro": (1.25, 10.0),
    "gemini-2.5-flash": (0.30, 2.50),
    "gemini-2.5-flash-lite": (0.10, 0.40),
}
DEFAULT_PRICING = MODEL_PRICING["gemini-3-pro-preview"]


# --- REQUEST ---

@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class AssetPart:
    uri: str
    mime_type: str


Part = Union[TextPart, AssetPart]


@dataclass(frozen=True)
class GenerationRequest:
    """One user turn: assets first, then the instruction text"""
    parts: Tuple[Part, ...]
    role: str = "user"

    @classmethod
    def build(cls, prompt: str, assets: Sequence[AssetHandle] = ()) -> "GenerationRequest":
        for asset in assets:
            if not asset.is_active:
                raise AssetNotReady(details=f"{asset.identifier or asset.uri} is {asset.state.value}")
        parts = tuple(AssetPart(uri=a.uri, mime_type=a.mime_type) for a in assets)
        return cls(parts=parts + (TextPart(prompt),))

    def to_contents(self) -> list:
        sdk_parts = []
        for part in self.parts:
            if isinstance(part, AssetPart):
                sdk_parts.append(types.Part.from_uri(file_uri=part.uri, mime_type=part.mime_type))
            else:
                sdk_parts.append(types.Part.from_text(text=part.text))
        return [types.Content(role=self.role, parts=sdk_parts)]


# --- RESULT ---

@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_response(cls, response: Any) -> "Usage":
        meta = getattr(response, "usage_metadata", None)
        if meta is None:
            return cls()
        prompt = getattr(meta, "prompt_token_count", None) or 0
        candidates = getattr(meta, "candidates_token_count", None) or 0
        total = getattr(meta, "total_token_count", None) or (prompt + candidates)
        return cls(input_tokens=prompt, output_tokens=candidates, total_tokens=total)

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def cost(self, model: str) -> Dict[str, float]:
        input_rate, output_rate = MODEL_PRICING.get(model, DEFAULT_PRICING)
        input_cost = self.input_tokens / 1_000_000 * input_rate
        output_cost = self.output_tokens / 1_000_000 * output_rate
        return {"input": input_cost, "output": output_cost, "total": input_cost + output_cost}

    def to_dict(self) -> Dict[str, int]:
        return {
            "promptTokenCount": self.input_tokens,
            "candidatesTokenCount": self.output_tokens,
            "totalTokenCount": self.total_tokens,
        }


@dataclass(frozen=True)
class TextExtraction:
    text: str
    source: str  # "candidates", "flat" or "empty"


def _candidate_parts_text(response: Any) -> Optional[str]:
    """candidates[0].content.parts[*].text, or None when any level is absent"""
    candidates = getattr(response, "candidates", None)
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    if content is None:
        return None
    parts = getattr(content, "parts", None)
    if not parts:
        return None
    return "".join(getattr(part, "text", None) or "" for part in parts)


def _flat_text(response: Any) -> Optional[str]:
    try:
        text = getattr(response, "text", None)
    except (ValueError, AttributeError):
        # Some SDK versions raise from the property when there are no text parts
        return None
    return text if isinstance(text, str) else None


def extract_text(response: Any) -> TextExtraction:
    """Walk the loosely typed response defensively; never raises"""
    text = _candidate_parts_text(response)
    if text and text.strip():
        return TextExtraction(text=text.strip(), source="candidates")

    text = _flat_text(response)
    if text and text.strip():
        return TextExtraction(text=text.strip(), source="flat")

    return TextExtraction(text="", source="empty")


@dataclass(frozen=True)
class GenerationResult:
    text: str
    source: str
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    raw: Any = None

    @property
    def is_empty(self) -> bool:
        return not self.text

    @property
    def cost(self) -> Dict[str, float]:
        return self.usage.cost(self.model)


# --- ERROR CLASSIFICATION ---

def classify_genai_error(exc: Exception, action: str = "calling Gemini") -> CreativeEngineError:
    """Re-classify an SDK or transport exception into the service taxonomy"""
    if isinstance(exc, CreativeEngineError):
        return exc

    if isinstance(exc, genai_errors.APIError):
        message = exc.message or str(exc)
        code = exc.code or 500
        if code in (401, 403) or "api key" in message.lower():
            return UpstreamAuthError("API configuration error. Please check your Gemini API key.", details=message)
        if code == 404:
            return UpstreamNotFound(f"Gemini resource not found while {action}", details=message)
        if code == 429:
            return UpstreamRateLimited("Gemini rate limit exceeded. Please try again later.", details=message)
        return RemoteCallError(f"Error {action}", details=message)

    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return UpstreamConnectivity("Could not reach Gemini", details=str(exc))

    return RemoteCallError(f"Error {action}", details=str(exc) or exc.__class__.__name__)


# --- GENERATOR ---

class GeminiGenerator:
    """Single-shot generate_content calls. No retries: one failure surfaces to the caller."""

    def __init__(self, client, model: str = "gemini-3-pro-preview"):
        self.client = client
        self.model = model

    async def generate(
        self,
        prompt: str,
        assets: Sequence[AssetHandle] = (),
        model: Optional[str] = None,
        label: str = "generation",
    ) -> GenerationResult:
        model = model or self.model
        request = GenerationRequest.build(prompt, assets)

        if self.client is None:
            raise UpstreamAuthError(
                "API configuration error. Please check your environment variables.",
                details="GOOGLE_GENAI_API_KEY is not set",
            )

        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=request.to_contents(),
            )
        except Exception as e:
            logger.error(f"❌ Gemini {label} failed: {e}")
            raise classify_genai_error(e, action=f"running {label}") from e

        extraction = extract_text(response)
        usage = Usage.from_response(response)
        result = GenerationResult(
            text=extraction.text,
            source=extraction.source,
            usage=usage,
            model=model,
            raw=response,
        )

        cost = result.cost
        logger.info(
            f"💰 {label}: {usage.input_tokens:,} in / {usage.output_tokens:,} out tokens, "
            f"${cost['input']:.6f} + ${cost['output']:.6f} = ${cost['total']:.6f}"
        )
        if result.is_empty:
            logger.warning(f"⚠️ {label}: no text in Gemini response")
        return result
