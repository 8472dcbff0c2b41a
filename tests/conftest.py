"""Shared fakes and fixtures for podupload tests."""
import asyncio
from pathlib import Path
from typing import List, Optional

import pytest

from podupload.models import MB, DurationResult, StorageHandle, UploadConfig, UploadRequest, UploadTarget


class FakeTransport:
    """
    In-memory ITransportClient.

    upload_gate, when set, holds upload_bytes until the event fires.
    resolve_results is consumed one entry per attempt: a URL, None, or an
    exception to raise. Once exhausted, resolve_url returns default_url.
    """

    name = "fake"

    def __init__(
        self,
        handle_id: str = "st_123",
        default_url: Optional[str] = "https://cdn.example.com/episode.mp3",
        upload_delay: float = 0.0,
        upload_gate: Optional[asyncio.Event] = None,
        upload_errors: Optional[List[Exception]] = None,
        resolve_results: Optional[list] = None,
    ):
        self.handle_id = handle_id
        self.default_url = default_url
        self.upload_delay = upload_delay
        self.upload_gate = upload_gate
        self.upload_errors = list(upload_errors or [])
        self.resolve_results = list(resolve_results or [])
        self.resolve_gate: Optional[asyncio.Event] = None
        self.target_calls = 0
        self.upload_calls = 0
        self.resolve_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.completed_uploads = 0

    @property
    def total_calls(self) -> int:
        return self.target_calls + self.upload_calls + self.resolve_calls

    async def obtain_upload_target(self, request: Optional[UploadRequest] = None) -> UploadTarget:
        self.target_calls += 1
        return UploadTarget(url="https://upload.example.com/slot/1")

    async def upload_bytes(self, target: UploadTarget, request: UploadRequest) -> StorageHandle:
        self.upload_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.upload_gate is not None:
                await self.upload_gate.wait()
            elif self.upload_delay:
                await asyncio.sleep(self.upload_delay)
            if self.upload_errors:
                raise self.upload_errors.pop(0)
            self.completed_uploads += 1
            return StorageHandle(id=self.handle_id, backend=self.name)
        finally:
            self.in_flight -= 1

    async def resolve_url(self, handle: StorageHandle) -> Optional[str]:
        self.resolve_calls += 1
        if self.resolve_gate is not None:
            await self.resolve_gate.wait()
        if self.resolve_results:
            result = self.resolve_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.default_url


class FakeProbe:
    """IDurationProbe returning a fixed duration after an optional delay."""

    def __init__(self, seconds: float = 125.4, delay: float = 0.0, gate: Optional[asyncio.Event] = None):
        self.seconds = seconds
        self.delay = delay
        self.gate = gate
        self.urls: List[str] = []

    async def probe(self, url: str) -> DurationResult:
        self.urls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        elif self.delay:
            await asyncio.sleep(self.delay)
        return DurationResult(seconds=self.seconds)


class Recorder:
    """Subscriber that keeps every snapshot it receives."""

    def __init__(self):
        self.snapshots = []

    def __call__(self, snapshot):
        self.snapshots.append(snapshot)

    @property
    def states(self):
        return [s.state for s in self.snapshots]

    @property
    def progress(self):
        return [s.progress_percent for s in self.snapshots]


@pytest.fixture
def fast_config():
    return UploadConfig(
        upload_deadline_ms=1000,
        resolve_max_retries=3,
        resolve_retry_delay_ms=5,
        metadata_timeout_ms=500,
        progress_tick_interval_ms=10,
    )


@pytest.fixture
def audio_request(tmp_path) -> UploadRequest:
    path = tmp_path / "episode.mp3"
    path.write_bytes(b"ID3" + b"\x00" * 1021)
    return UploadRequest.from_path(path)


def make_request(name: str = "episode.mp3", mime_type: str = "audio/mpeg", size_bytes: int = 8 * MB) -> UploadRequest:
    """Request for a file that is never read (fake transports only)."""
    return UploadRequest(path=Path("/nonexistent") / name, mime_type=mime_type, size_bytes=size_bytes)
