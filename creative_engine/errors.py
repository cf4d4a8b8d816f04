"""
Error taxonomy for the service.

Every remote call is re-classified into one of these before it reaches a
client. Each class owns the HTTP status it maps to; ``main.py`` turns any
``CreativeEngineError`` into the ``{error, details}`` envelope.
"""

from typing import Any, Dict, Iterable, Optional


class CreativeEngineError(Exception):
    """Base class: ``error`` is the public message, ``details`` the upstream cause."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, error: Optional[str] = None, details: Optional[str] = None):
        self.error = error or self.default_message
        self.details = details
        super().__init__(self.error if not details else f"{self.error}: {details}")

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.error, "details": self.details}

    def headers(self) -> Dict[str, str]:
        return {}


class ValidationError(CreativeEngineError):
    status_code = 400
    default_message = "Invalid request"


class UpstreamAuthError(CreativeEngineError):
    status_code = 401
    default_message = "Invalid API key for upstream service"


class UpstreamQuotaError(CreativeEngineError):
    status_code = 402
    default_message = "No credits left on upstream service"


class UpstreamNotFound(CreativeEngineError):
    status_code = 404
    default_message = "Resource not found"


class UpstreamRateLimited(CreativeEngineError):
    status_code = 429
    default_message = "Upstream rate limit exceeded. Please try again later."


class RemoteCallError(CreativeEngineError):
    status_code = 500
    default_message = "Upstream call failed"


class UploadError(RemoteCallError):
    default_message = "Error uploading file to Gemini"


class AssetProcessingFailed(RemoteCallError):
    default_message = "Gemini could not process the uploaded file"


class ReadinessTimeout(CreativeEngineError):
    default_message = "Timeout waiting for file to be ready"

    def __init__(self, last_state: str, waited: float):
        self.last_state = last_state
        self.waited = waited
        super().__init__(
            details=f"File did not reach ACTIVE after {waited:.0f} seconds. Current state: {last_state}"
        )


class MissingIdentifier(CreativeEngineError):
    default_message = "Failed to get file identifier"


class AssetNotReady(CreativeEngineError):
    default_message = "File referenced before it was ready"


class EmptyGenerationResult(CreativeEngineError):
    default_message = "Gemini returned no usable text"


class MalformedModelOutput(CreativeEngineError):
    default_message = "Model output did not follow the expected format"

    def __init__(self, missing: Iterable[str], error: Optional[str] = None):
        self.missing = list(missing)
        super().__init__(error, details=f"Missing sections: {', '.join(self.missing)}")


class UpstreamConnectivity(CreativeEngineError):
    status_code = 503
    default_message = "Could not reach upstream service"


class RateLimitExceeded(CreativeEngineError):
    status_code = 429
    default_message = "Rate limit exceeded"

    def __init__(self, result):
        self.result = result
        super().__init__(
            details=f"Rate limit exceeded. Please try again after {result.reset_seconds} seconds."
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload.update({
            "limit": self.result.limit,
            "remaining": self.result.remaining,
            "reset": self.result.reset_seconds,
        })
        return payload

    def headers(self) -> Dict[str, str]:
        headers = self.result.headers()
        headers["Retry-After"] = str(self.result.reset_seconds)
        return headers
