"""Pydantic schemas for API request/response models."""

from flowops.schemas.chat import ChatRequestBody, ChatResponse
from flowops.schemas.handoff import (
    AiArtifactRead,
    AiEnqueueResponse,
    HandoffListItem,
    HandoffRead,
    HandoffResolveRequest,
    HandoffSignalsRead,
)
from flowops.schemas.ops import InteractionRead, MetricsRead, OutboxEventRead

__all__ = [
    "ChatRequestBody",
    "ChatResponse",
    "AiArtifactRead",
    "AiEnqueueResponse",
    "HandoffListItem",
    "HandoffRead",
    "HandoffResolveRequest",
    "HandoffSignalsRead",
    "InteractionRead",
    "MetricsRead",
    "OutboxEventRead",
]
