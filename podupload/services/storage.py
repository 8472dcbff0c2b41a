"""
Storage API transport - first-party backend.

Talks to a Convex-style HTTP function API: a mutation issues a one-shot
upload URL, the bytes are POSTed there, and a second mutation turns the
returned storage id into a public URL once the file is served.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError, ServerError
from ..models import StorageHandle, UploadConfig, UploadRequest, UploadTarget
from ..protocols import IAPIClient

logger = logging.getLogger(__name__)


class StorageApiTransport:
    """
    Transport for the first-party storage mutation API.

    Implements ITransportClient.
    """

    name = "storage"

    def __init__(
        self,
        api_client: IAPIClient,
        base_url: str,
        upload_url_path: str = "files:generateUploadUrl",
        get_url_path: str = "podcasts:getUrl",
    ):
        """
        Initialize storage transport.

        Args:
            api_client: HTTP client for API calls
            base_url: Deployment URL (e.g. https://my-app.convex.cloud)
            upload_url_path: Mutation that returns an upload URL
            get_url_path: Mutation that maps a storage id to its public URL
        """
        if not base_url:
            raise ConfigurationError("storage_api_url is required for the storage backend")
        self._api = api_client
        self._base_url = base_url.rstrip("/")
        self._upload_url_path = upload_url_path
        self._get_url_path = get_url_path

    @classmethod
    def from_config(cls, api_client: IAPIClient, config: UploadConfig) -> "StorageApiTransport":
        return cls(
            api_client,
            base_url=config.storage_api_url or "",
            upload_url_path=config.storage_upload_url_path,
            get_url_path=config.storage_get_url_path,
        )

    async def obtain_upload_target(self, request: Optional[UploadRequest] = None) -> UploadTarget:
        value = await self._mutation(self._upload_url_path, {})
        if not isinstance(value, str) or not value:
            raise ServerError(f"{self._upload_url_path} returned no upload URL")
        logger.debug(f"[storage] Upload URL issued by {self._upload_url_path}")
        return UploadTarget(url=value)

    async def upload_bytes(self, target: UploadTarget, request: UploadRequest) -> StorageHandle:
        content = await asyncio.to_thread(request.path.read_bytes)
        headers = {"Content-Type": request.mime_type}
        headers.update(target.headers)

        response = await self._api.request("POST", target.url, retries=0, content=content, headers=headers)
        try:
            data = response.json()
        except ValueError:
            data = None
        storage_id = data.get("storageId") if isinstance(data, dict) else None
        if not storage_id:
            raise ServerError(f"Upload response for {request.filename} has no storageId")

        logger.info(f"[storage] Uploaded {request.filename} ({request.size_bytes} bytes) as {storage_id}")
        return StorageHandle(id=storage_id, backend=self.name)

    async def resolve_url(self, handle: StorageHandle) -> Optional[str]:
        # UrlResolver owns retries for this call
        value = await self._mutation(self._get_url_path, {"storageId": handle.id}, retries=0)
        return value or None

    async def _mutation(self, path: str, args: Dict[str, Any], retries: Optional[int] = None) -> Any:
        """Run a mutation and unwrap its value."""
        body = await self._api.post_json(
            f"{self._base_url}/api/mutation",
            json={"path": path, "args": args, "format": "json"},
            retries=retries,
        )
        if not isinstance(body, dict):
            raise ServerError(f"Unexpected response from mutation {path}")
        if body.get("status") != "success":
            raise ServerError(f"Mutation {path} failed: {body.get('errorMessage', 'unknown error')}")
        return body.get("value")
