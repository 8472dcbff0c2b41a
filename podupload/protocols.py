"""
Protocols (Interfaces) for Dependency Inversion.

Following Interface Segregation Principle - small, focused interfaces.
"""
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from .models import DurationResult, StorageHandle, UploadRequest, UploadTarget


@runtime_checkable
class ITransportClient(Protocol):
    """Interface for a storage backend that accepts bytes and later yields a public URL."""

    name: str

    async def obtain_upload_target(self, request: Optional[UploadRequest] = None) -> UploadTarget:
        """Ask the backend where to send the bytes (request describes the file)."""
        ...

    async def upload_bytes(self, target: UploadTarget, request: UploadRequest) -> StorageHandle:
        """Send the file to target and return the backend's handle for it."""
        ...

    async def resolve_url(self, handle: StorageHandle) -> Optional[str]:
        """Return the public URL, or None if it is not available yet."""
        ...


@runtime_checkable
class IDurationProbe(Protocol):
    """Interface for best-effort duration extraction."""

    async def probe(self, url: str) -> DurationResult:
        """Return the playback duration of the asset at url. Never raises."""
        ...


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for HTTP operations."""

    async def request(self, method: str, url: str, retries: Optional[int] = None, **kwargs) -> Any:
        """Send a request, returning the response."""
        ...

    async def post_json(self, url: str, json: Dict, retries: Optional[int] = None, **kwargs) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        ...

    async def get_json(self, url: str, retries: Optional[int] = None, **kwargs) -> Any:
        """GET a URL and return the decoded JSON response."""
        ...
