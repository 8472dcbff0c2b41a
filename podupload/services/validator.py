"""File validation - runs before any network call."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import MB, UploadConfig, UploadRequest


class ValidationFailure(Enum):
    INVALID_TYPE = "invalid_type"
    TOO_LARGE = "too_large"
    EMPTY = "empty"


@dataclass(frozen=True)
class ValidationResult:
    failure: Optional[ValidationFailure] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


class FileValidator:
    """Pure predicate over a request's declared MIME type and size."""

    def __init__(self, config: Optional[UploadConfig] = None):
        self._config = config or UploadConfig()

    def validate(self, request: UploadRequest) -> ValidationResult:
        prefix = self._config.allowed_mime_prefix
        if not (request.mime_type or "").lower().startswith(prefix.lower()):
            kind = prefix.rstrip("/") or "matching"
            return ValidationResult(
                ValidationFailure.INVALID_TYPE,
                f"Invalid file type '{request.mime_type}'. Please upload an {kind} file.",
            )

        limit = self._config.max_file_size_bytes
        if request.size_bytes > limit:
            return ValidationResult(
                ValidationFailure.TOO_LARGE,
                f"File too large ({request.size_bytes / MB:.1f} MB). "
                f"Please upload a file smaller than {limit / MB:g} MB.",
            )

        if request.size_bytes <= 0:
            return ValidationResult(ValidationFailure.EMPTY, f"File '{request.filename}' is empty.")

        return ValidationResult()
