"""
Pydantic schemas for remote API payloads.

These schemas define the canonical shapes the engines consume after the
response envelopes have been unwrapped.
"""

from .requests import (
    ChannelResult,
    Direction,
    DirectRequest,
    DirectRequestCreate,
    LatestRequest,
    MarkReadResult,
    RawProfile,
    RequestContext,
    RequestKind,
    RequestMetrics,
    RequestStatus,
)

__all__ = [
    "ChannelResult", "LatestRequest",
    "Direction", "RequestKind", "RequestStatus",
    "DirectRequest", "DirectRequestCreate", "RequestContext", "RawProfile",
    "MarkReadResult", "RequestMetrics",
]
