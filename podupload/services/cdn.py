"""
CDN direct-upload transport - third-party backend.

The CDN API hands out a presigned form upload for one file; the bytes go
straight to object storage and the CDN publishes the file URL once it has
registered the upload, which is observed by polling.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from ..exceptions import ConfigurationError, ServerError
from ..models import StorageHandle, UploadConfig, UploadRequest, UploadTarget
from ..protocols import IAPIClient

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-uploadthing-api-key"


class CdnDirectTransport:
    """
    Transport for a presigned direct-upload CDN.

    Implements ITransportClient. Presigned uploads are issued per file, so
    obtain_upload_target() needs the request.
    """

    name = "cdn"

    def __init__(self, api_client: IAPIClient, api_url: str, api_key: Optional[str]):
        if not api_key:
            raise ConfigurationError("cdn_api_key is required for the cdn backend")
        self._api = api_client
        self._api_url = api_url.rstrip("/")
        self._headers = {API_KEY_HEADER: api_key}

    @classmethod
    def from_config(cls, api_client: IAPIClient, config: UploadConfig) -> "CdnDirectTransport":
        return cls(api_client, api_url=config.cdn_api_url, api_key=config.cdn_api_key)

    async def obtain_upload_target(self, request: Optional[UploadRequest] = None) -> UploadTarget:
        if request is None:
            raise ServerError("The CDN needs the file description to issue an upload target")

        body = await self._api.post_json(
            f"{self._api_url}/v6/uploadFiles",
            json={
                "files": [
                    {"name": request.filename, "size": request.size_bytes, "type": request.mime_type}
                ],
                "acl": "public-read",
                "contentDisposition": "inline",
            },
            headers=self._headers,
        )
        entry = _first_entry(body)
        url = entry.get("url")
        key = entry.get("key")
        if not url or not key:
            raise ServerError("CDN did not return a presigned upload")

        logger.debug(f"[cdn] Presigned upload issued for {request.filename} (key {key})")
        return UploadTarget(url=url, fields=dict(entry.get("fields") or {}), key=key)

    async def upload_bytes(self, target: UploadTarget, request: UploadRequest) -> StorageHandle:
        if not target.key:
            raise ServerError("Upload target has no file key")
        content = await asyncio.to_thread(request.path.read_bytes)

        await self._api.request(
            target.method,
            target.url,
            retries=0,
            data=target.fields,
            files={"file": (request.filename, content, request.mime_type)},
            headers=target.headers or None,
        )

        logger.info(f"[cdn] Uploaded {request.filename} ({request.size_bytes} bytes) as {target.key}")
        return StorageHandle(id=target.key, backend=self.name)

    async def resolve_url(self, handle: StorageHandle) -> Optional[str]:
        body = await self._api.get_json(
            f"{self._api_url}/v6/pollUpload/{handle.id}",
            retries=0,
            headers=self._headers,
        )
        if not isinstance(body, dict) or body.get("status") != "done":
            return None
        file_info = body.get("file") or {}
        return file_info.get("fileUrl") or file_info.get("url") or None


def _first_entry(body: Any) -> Dict[str, Any]:
    data = body.get("data") if isinstance(body, dict) else None
    if not data or not isinstance(data, list) or not isinstance(data[0], dict):
        raise ServerError("Unexpected response from CDN uploadFiles")
    return data[0]
