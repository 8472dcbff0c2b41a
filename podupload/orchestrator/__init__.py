"""Orchestrator package - coordinates upload sessions."""
from .core import (
    COMPLETE_PROGRESS,
    EXTRACTING_PROGRESS,
    RESOLVING_PROGRESS,
    STEP_LABELS,
    UPLOAD_START_PROGRESS,
    VALIDATING_PROGRESS,
    OperationHandle,
    UploadOrchestrator,
)

__all__ = [
    "UploadOrchestrator",
    "OperationHandle",
    "STEP_LABELS",
    "VALIDATING_PROGRESS",
    "UPLOAD_START_PROGRESS",
    "RESOLVING_PROGRESS",
    "EXTRACTING_PROGRESS",
    "COMPLETE_PROGRESS",
]
