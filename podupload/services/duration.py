"""
Duration Probe - best-effort playback duration of an uploaded asset.

Downloads the asset from its public URL and reads the duration with mutagen.
Failures never propagate: the result falls back to 0 seconds with a warning.
"""
import asyncio
import io
import logging
import math

import httpx
import mutagen

from ..models import DurationResult, UploadConfig
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)


def decode_duration(data: bytes) -> float:
    """Read the playback length in seconds from encoded audio bytes."""
    audio = mutagen.File(io.BytesIO(data))
    if audio is None or audio.info is None:
        raise ValueError("Unrecognized audio format")
    length = getattr(audio.info, "length", None)
    if length is None or not math.isfinite(length) or length <= 0:
        raise ValueError(f"Invalid duration in audio header: {length!r}")
    return float(length)


class HttpDurationProbe:
    """
    Probe duration over HTTP with its own timeout.

    Implements IDurationProbe. The timeout covers download and decode and is
    independent of the upload deadline.
    """

    def __init__(self, api_client: HTTPAPIClient, timeout: float = 10.0, max_bytes: int = 50 * 1024 * 1024):
        self._api = api_client
        self._timeout = timeout
        self._max_bytes = max_bytes

    @classmethod
    def from_config(cls, api_client: HTTPAPIClient, config: UploadConfig) -> "HttpDurationProbe":
        return cls(api_client, timeout=config.metadata_timeout, max_bytes=config.max_file_size_bytes)

    async def probe(self, url: str) -> DurationResult:
        try:
            seconds = await asyncio.wait_for(self._probe(url), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[duration] Timed out after {self._timeout:g}s reading {url}")
            return DurationResult.failed(f"Timed out after {self._timeout:g}s")
        except httpx.HTTPError as e:
            logger.warning(f"[duration] Could not download {url}: {e}")
            return DurationResult.failed(f"Download failed: {e}")
        except Exception as e:
            logger.warning(f"[duration] Could not read duration of {url}: {e}")
            return DurationResult.failed(str(e) or type(e).__name__)

        logger.info(f"[duration] {url}: {seconds:.1f}s")
        return DurationResult(seconds=seconds)

    async def _probe(self, url: str) -> float:
        data = await self._download(url)
        return await asyncio.to_thread(decode_duration, data)

    async def _download(self, url: str) -> bytes:
        buffer = bytearray()
        async with self._api.stream("GET", url) as response:
            response.raise_for_status()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > self._max_bytes:
                    raise ValueError(f"Asset exceeds {self._max_bytes} bytes")
        return bytes(buffer)


class NullDurationProbe:
    """Probe for assets without a duration (e.g. cover images)."""

    async def probe(self, url: str) -> DurationResult:
        return DurationResult(seconds=0.0)
