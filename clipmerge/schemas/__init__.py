"""
Pydantic schemas for request/response models.
"""

from clipmerge.schemas.requests import ClipInput, MergeClipsRequest
from clipmerge.schemas.responses import (
    HealthResponse,
    MergeClipsResponse,
    ReadinessResponse,
)

__all__ = [
    "ClipInput",
    "MergeClipsRequest",
    "MergeClipsResponse",
    "HealthResponse",
    "ReadinessResponse",
]
