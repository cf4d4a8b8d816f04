"""
Remote asset handling for the Gemini Files API.

Uploads go through ``AssetUploader`` and come back as an ``AssetHandle`` in
``PENDING`` or ``ACTIVE`` state. ``ReadinessPoller`` is the only thing that
moves a handle forward; a handle must be ``ACTIVE`` before a generation call
may reference it.
"""

import asyncio
import io
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

import httpx
from google.genai import errors as genai_errors

from .errors import (
    AssetProcessingFailed,
    MissingIdentifier,
    ReadinessTimeout,
    UploadError,
    UpstreamAuthError,
    UpstreamConnectivity,
)
from .media import normalize_mime
from .retry import poll_until

logger = logging.getLogger(__name__)


class AssetState(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"

    @classmethod
    def from_remote(cls, raw: Any) -> "AssetState":
        """Map the SDK's FileState (enum or plain string) onto our three states"""
        name = str(getattr(raw, "name", raw) or "").upper()
        if name == "ACTIVE":
            return cls.ACTIVE
        if name == "FAILED":
            return cls.FAILED
        # PROCESSING, STATE_UNSPECIFIED, missing
        return cls.PENDING


@dataclass
class AssetHandle:
    """A file uploaded to and tracked by the Gemini Files API"""
    uri: str
    mime_type: str
    state: AssetState = AssetState.PENDING
    name: Optional[str] = None

    @classmethod
    def from_remote(cls, remote: Any, mime_type: str) -> "AssetHandle":
        return cls(
            uri=getattr(remote, "uri", None) or "",
            mime_type=getattr(remote, "mime_type", None) or mime_type,
            state=AssetState.from_remote(getattr(remote, "state", None)),
            name=getattr(remote, "name", None) or None,
        )

    @property
    def identifier(self) -> Optional[str]:
        """``name`` when the service gave one, else the last path segment of the URI"""
        if self.name:
            return self.name
        if self.uri:
            tail = self.uri.rstrip("/").split("/")[-1]
            return tail or None
        return None

    @property
    def is_active(self) -> bool:
        return self.state is AssetState.ACTIVE

    def refresh_from(self, remote: Any) -> "AssetHandle":
        self.state = AssetState.from_remote(getattr(remote, "state", None))
        self.uri = getattr(remote, "uri", None) or self.uri
        self.mime_type = getattr(remote, "mime_type", None) or self.mime_type
        return self


# --- UPLOADER ---

class AssetUploader:
    """Uploads in-memory bytes to the Files API. Nothing touches the disk."""

    def __init__(self, client):
        self.client = client

    async def upload(self, data: bytes, mime_type: str) -> AssetHandle:
        if self.client is None:
            raise UpstreamAuthError(
                "API configuration error. Please check your environment variables.",
                details="GOOGLE_GENAI_API_KEY is not set",
            )
        data, mime_type = normalize_mime(data, mime_type)
        size = len(data)
        buffer = io.BytesIO(data)
        # Only the BytesIO holds the bytes from here on
        del data

        try:
            remote = await self.client.aio.files.upload(
                file=buffer,
                config={"mime_type": mime_type},
            )
        except genai_errors.APIError as e:
            raise UploadError(details=e.message or str(e))
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise UpstreamConnectivity("Could not reach Gemini", details=str(e))
        except httpx.HTTPError as e:
            raise UploadError(details=str(e))
        finally:
            buffer.close()
            del buffer

        handle = AssetHandle.from_remote(remote, mime_type)
        logger.info(f"✅ Uploaded {size} bytes ({mime_type}) to Gemini: {handle.uri} [{handle.state.value}]")
        return handle


# --- READINESS ---

class ReadinessPoller:
    """Waits for an uploaded file to leave PENDING"""

    def __init__(
        self,
        client,
        interval: float = 2.0,
        timeout: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    async def wait_until_active(self, handle: AssetHandle) -> AssetHandle:
        if handle.is_active:
            return handle

        identifier = handle.identifier
        if not identifier:
            raise MissingIdentifier(details=f"No name or URI on uploaded file ({handle.mime_type})")

        logger.info(f"⏳ Waiting for {identifier} to become ACTIVE (state: {handle.state.value})")

        async def _check() -> AssetState:
            remote = await self.client.aio.files.get(name=identifier)
            handle.refresh_from(remote)
            logger.debug(f"File {identifier} state: {handle.state.value}")
            return handle.state

        outcome = await poll_until(
            _check,
            is_done=lambda state: state is not AssetState.PENDING,
            initial=handle.state,
            interval=self.interval,
            timeout=self.timeout,
            sleep=self._sleep,
            clock=self._clock,
            label=identifier,
        )

        if not outcome.done:
            raise ReadinessTimeout(last_state=handle.state.value, waited=outcome.elapsed)
        if handle.state is AssetState.FAILED:
            raise AssetProcessingFailed(details=f"File {identifier} ended in FAILED state")

        logger.info(f"✅ {identifier} ACTIVE after {outcome.attempts} checks ({outcome.elapsed:.1f}s)")
        return handle


async def prepare_asset(uploader: AssetUploader, poller: ReadinessPoller, data: bytes, mime_type: str) -> AssetHandle:
    """Upload then wait: the handle returned is always ACTIVE"""
    handle = await uploader.upload(data, mime_type)
    return await poller.wait_until_active(handle)


async def prepare_assets(
    uploader: AssetUploader,
    poller: ReadinessPoller,
    blobs: Sequence[Tuple[bytes, str]],
) -> List[AssetHandle]:
    """Upload independent blobs concurrently; handles come back in input order"""
    return list(await asyncio.gather(
        *(prepare_asset(uploader, poller, data, mime) for data, mime in blobs)
    ))
