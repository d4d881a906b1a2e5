"""Resource service adapter interfaces and models."""

from .interfaces import ResourceService, Session
from .models import (
    Batch,
    JumpHostCandidate,
    PrivateEndpoint,
    ResourceDetail,
    ResourcePage,
    ResourceSummary,
)

__all__ = [
    "ResourceService",
    "Session",
    "Batch",
    "JumpHostCandidate",
    "PrivateEndpoint",
    "ResourceDetail",
    "ResourcePage",
    "ResourceSummary",
]
