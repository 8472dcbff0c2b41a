"""
Podupload - Resilient media asset uploads for podcast publishing.

A single session moves a local file through validation, upload, public URL
resolution and duration extraction, reporting progress to subscribers.
The storage backend is swappable (storage API or direct CDN).

Usage:
    from podupload import UploadOrchestrator, UploadConfig, UploadRequest

    async with UploadOrchestrator(UploadConfig.from_env()) as uploader:
        uploader.subscribe(lambda snap: print(snap.step_label, snap.progress_percent))
        handle = uploader.start(UploadRequest.from_path("episode.mp3"))
        final = await handle.wait()

    # Retry after a timeout, network or server error
    if final.error and final.error.kind.retryable:
        final = await uploader.retry().wait()

    # Cover images through the same pipeline
    config = UploadConfig.image_defaults()
"""
from .exceptions import (
    BusyError,
    ConfigurationError,
    DeadlineExceeded,
    InvalidStateError,
    NetworkError,
    OperationCancelled,
    PodUploadError,
    ResolutionError,
    ServerError,
    TransportError,
)
from .models import (
    DurationResult,
    ErrorKind,
    ResolvedAsset,
    SessionError,
    SessionSnapshot,
    SessionState,
    StorageHandle,
    UploadConfig,
    UploadRequest,
    UploadTarget,
)
from .orchestrator import OperationHandle, UploadOrchestrator
from .services import (
    CdnDirectTransport,
    FileValidator,
    HTTPAPIClient,
    HttpDurationProbe,
    NullDurationProbe,
    StorageApiTransport,
)

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    "OperationHandle",
    # Models
    "DurationResult",
    "ErrorKind",
    "ResolvedAsset",
    "SessionError",
    "SessionSnapshot",
    "SessionState",
    "StorageHandle",
    "UploadConfig",
    "UploadRequest",
    "UploadTarget",
    # Services
    "CdnDirectTransport",
    "FileValidator",
    "HTTPAPIClient",
    "HttpDurationProbe",
    "NullDurationProbe",
    "StorageApiTransport",
    # Errors
    "BusyError",
    "ConfigurationError",
    "DeadlineExceeded",
    "InvalidStateError",
    "NetworkError",
    "OperationCancelled",
    "PodUploadError",
    "ResolutionError",
    "ServerError",
    "TransportError",
]
