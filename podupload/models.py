"""
Models for podupload.

Immutable dataclasses for requests, snapshots and results. UploadSession is
the one mutable record and is owned by the orchestrator.
"""
import mimetypes
import os
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .exceptions import ConfigurationError

MB = 1024 * 1024


class SessionState(Enum):
    """Upload session lifecycle state."""
    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    RESOLVING = "resolving"
    EXTRACTING_METADATA = "extracting_metadata"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETE, SessionState.ERROR, SessionState.CANCELLED)


class ErrorKind(Enum):
    """Kind of failure that ended a session."""
    INVALID_INPUT = "invalid_input"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    RESOLUTION_ERROR = "resolution_error"

    @property
    def retryable(self) -> bool:
        """Whether retry() may re-enter uploading after this failure."""
        return self in (ErrorKind.TIMEOUT, ErrorKind.NETWORK_ERROR, ErrorKind.SERVER_ERROR)


@dataclass(frozen=True)
class UploadRequest:
    """Immutable description of the file to upload."""
    path: Path
    mime_type: str
    size_bytes: int
    filename: str = ""

    def __post_init__(self):
        if not self.filename:
            object.__setattr__(self, "filename", Path(self.path).name)

    @classmethod
    def from_path(cls, path, mime_type: Optional[str] = None) -> "UploadRequest":
        """Build a request from a local file, guessing the MIME type if needed."""
        path = Path(path)
        if mime_type is None:
            mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            path=path,
            mime_type=mime_type or "application/octet-stream",
            size_bytes=path.stat().st_size,
        )


@dataclass(frozen=True)
class SessionError:
    """Structured error carried by a failed session."""
    kind: ErrorKind
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class UploadTarget:
    """Where and how the bytes should be sent, as issued by the backend."""
    url: str
    method: str = "POST"
    fields: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    key: Optional[str] = None


@dataclass(frozen=True)
class StorageHandle:
    """Opaque backend reference to uploaded bytes."""
    id: str
    backend: str = ""

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True)
class DurationResult:
    """Outcome of a duration probe. warning=True means seconds is a default."""
    seconds: float
    warning: bool = False
    detail: Optional[str] = None

    @classmethod
    def failed(cls, detail: str) -> "DurationResult":
        return cls(seconds=0.0, warning=True, detail=detail)


@dataclass(frozen=True)
class ResolvedAsset:
    """Terminal payload of a successful session."""
    public_url: str
    duration_seconds: float
    storage_handle: StorageHandle
    metadata_warning: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.public_url,
            "durationSeconds": self.duration_seconds,
            "storageHandle": self.storage_handle.id,
            "metadataWarning": self.metadata_warning,
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Point-in-time copy of a session, as delivered to subscribers."""
    session_id: str
    state: SessionState
    progress_percent: int
    step_label: str
    retry_count: int = 0
    error: Optional[SessionError] = None
    result: Optional[ResolvedAsset] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "state": self.state.value,
            "progressPercent": self.progress_percent,
            "stepLabel": self.step_label,
        }
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data


@dataclass
class UploadSession:
    """Mutable record of one upload's lifecycle."""
    request: UploadRequest
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    progress_percent: int = 0
    step_label: str = "Waiting for file"
    error: Optional[SessionError] = None
    retry_count: int = 0
    result: Optional[ResolvedAsset] = None

    def advance(self, percent: int) -> bool:
        """Raise progress to percent; returns False if it would not increase."""
        percent = min(int(percent), 100)
        if percent <= self.progress_percent:
            return False
        self.progress_percent = percent
        return True

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            state=self.state,
            progress_percent=self.progress_percent,
            step_label=self.step_label,
            retry_count=self.retry_count,
            error=self.error,
            result=self.result,
        )


_PROFILES: Dict[str, Dict[str, Any]] = {
    "default": {},
    "production": {
        "resolve_max_retries": 5,
        "resolve_retry_delay_ms": 2000,
    },
    # Must stay below the platform's function time limit.
    "serverless": {
        "upload_deadline_ms": 240_000,
        "resolve_max_retries": 5,
        "resolve_retry_delay_ms": 2000,
    },
}

_ENV_PREFIX = "PODUPLOAD_"


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for an orchestrator and its collaborators."""
    max_file_size_bytes: int = 50 * MB
    allowed_mime_prefix: str = "audio/"
    upload_deadline_ms: int = 60_000
    resolve_max_retries: int = 3
    resolve_retry_delay_ms: int = 1000
    metadata_timeout_ms: int = 10_000
    progress_tick_interval_ms: int = 500
    progress_ceiling_during_upload: int = 45
    progress_tick_step: int = 5
    probe_duration: bool = True
    # Transport
    backend: str = "storage"
    storage_api_url: Optional[str] = None
    storage_upload_url_path: str = "files:generateUploadUrl"
    storage_get_url_path: str = "podcasts:getUrl"
    cdn_api_url: str = "https://api.uploadthing.com"
    cdn_api_key: Optional[str] = None
    http_timeout: float = 60.0

    def __post_init__(self):
        if self.max_file_size_bytes <= 0:
            raise ConfigurationError("max_file_size_bytes must be positive")
        if self.resolve_max_retries < 1:
            raise ConfigurationError("resolve_max_retries must be at least 1")
        for name in (
            "upload_deadline_ms",
            "metadata_timeout_ms",
            "progress_tick_interval_ms",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.resolve_retry_delay_ms < 0:
            raise ConfigurationError("resolve_retry_delay_ms must not be negative")
        if not 0 < self.progress_ceiling_during_upload <= 100:
            raise ConfigurationError("progress_ceiling_during_upload must be within 1..100")
        if self.progress_tick_step <= 0:
            raise ConfigurationError("progress_tick_step must be positive")

    @property
    def upload_deadline(self) -> float:
        return self.upload_deadline_ms / 1000

    @property
    def resolve_retry_delay(self) -> float:
        return self.resolve_retry_delay_ms / 1000

    @property
    def metadata_timeout(self) -> float:
        return self.metadata_timeout_ms / 1000

    @property
    def progress_tick_interval(self) -> float:
        return self.progress_tick_interval_ms / 1000

    def with_overrides(self, **overrides) -> "UploadConfig":
        return replace(self, **overrides)

    @classmethod
    def for_profile(cls, profile: str = "default", **overrides) -> "UploadConfig":
        """Build a config from a named profile: default, production or serverless."""
        try:
            values = dict(_PROFILES[profile])
        except KeyError:
            raise ConfigurationError(
                f"Unknown profile '{profile}' (expected one of: {', '.join(_PROFILES)})"
            ) from None
        values.update(overrides)
        return cls(**values)

    @classmethod
    def for_backend(cls, backend: str, **overrides) -> "UploadConfig":
        """Defaults for a backend. The CDN caps audio uploads at 32 MB."""
        values: Dict[str, Any] = {"backend": backend}
        if backend == "cdn":
            values["max_file_size_bytes"] = 32 * MB
        values.update(overrides)
        return cls(**values)

    @classmethod
    def image_defaults(cls, **overrides) -> "UploadConfig":
        """Preset for cover images: 4 MB limit and no duration probe."""
        values: Dict[str, Any] = {
            "allowed_mime_prefix": "image/",
            "max_file_size_bytes": 4 * MB,
            "probe_duration": False,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "UploadConfig":
        """
        Build a config from PODUPLOAD_* environment variables.

        PODUPLOAD_PROFILE selects the base profile; every other field can be
        overridden by its upper-cased name, e.g. PODUPLOAD_UPLOAD_DEADLINE_MS.
        """
        env = os.environ if environ is None else environ
        profile = env.get(f"{_ENV_PREFIX}PROFILE", "default")
        overrides: Dict[str, Any] = {}
        for name, field_def in cls.__dataclass_fields__.items():
            raw = env.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            overrides[name] = _coerce(name, raw, field_def.default)
        return cls.for_profile(profile, **overrides)


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    raw = raw.strip()
    try:
        if isinstance(default, bool):
            if raw.lower() in {"1", "true", "yes", "on"}:
                return True
            if raw.lower() in {"0", "false", "no", "off"}:
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw.replace("_", ""))
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {_ENV_PREFIX}{name.upper()}: {raw!r}") from None
    return raw
