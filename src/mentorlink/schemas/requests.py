"""Mentorship request schemas as they arrive from the remote API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RequestKind(str, Enum):
    """The two independent request channels between a pair of users."""

    MENTOR_REQUEST = "mentor_request"  # requester wants target as mentor
    MENTEE_REQUEST = "mentee_request"  # requester offers to mentor target


class RequestStatus(str, Enum):
    """Lifecycle state of a single direct request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"


class Direction(str, Enum):
    """Direction of a request relative to the viewing user."""

    SENT = "sent"
    RECEIVED = "received"
    NONE = "none"


def _none_to_false(value: Any) -> Any:
    return False if value is None else value


class RawProfile(BaseModel):
    """Counterpart profile embedded in a request, with encrypted fields still opaque.

    Unknown keys are kept so encrypted fields added server-side remain
    reachable by the profile decryptor.
    """

    id: str
    username: str | None = None
    display_name: str | None = None
    email: str | None = None
    avatar: str | None = None
    job_title: str | None = None
    company: str | None = None
    company_encrypted: str | None = None
    career_level: str | None = None
    career_level_encrypted: str | None = None
    location: str | None = None
    location_encrypted: str | None = None
    affinity_tags: list[str] | str | None = None
    affinity_tags_encrypted: str | None = None
    years_experience: int | None = None
    mentor_bio: str | None = None
    mentor_expertise: list[str] | None = None
    mentor_industries: list[str] | None = None

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    @field_validator("affinity_tags", "mentor_expertise", "mentor_industries", mode="before")
    @classmethod
    def _loose_list(cls, value: Any) -> Any:
        # Circular at import time: services imports schemas
        from mentorlink.services.field_codec import FieldCodec

        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return FieldCodec.decode_list(value)

    @field_validator("years_experience", mode="before")
    @classmethod
    def _loose_years(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return None

    def as_record(self) -> dict[str, Any]:
        """Return the profile as a plain mapping including unknown keys."""
        return self.model_dump()


class RequestContext(BaseModel):
    """Viewer-relative context the server attaches to items of the all view."""

    is_sent: bool = Field(False, alias="isSent")
    is_received: bool = Field(False, alias="isReceived")
    other_user: RawProfile | None = Field(None, alias="otherUser")
    is_read: bool = Field(False, alias="isRead")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("is_sent", "is_received", "is_read", mode="before")
    @classmethod
    def _flags_may_be_null(cls, value: Any) -> Any:
        return _none_to_false(value)


class DirectRequest(BaseModel):
    """One directional connection proposal between two users."""

    id: str
    requester_id: str
    target_id: str = Field(alias="target_user_id")
    kind: RequestKind = Field(alias="request_type")
    status: RequestStatus = RequestStatus.PENDING
    message: str = ""
    created_at: datetime
    responded_at: datetime | None = None
    is_read_by_target: bool = False
    requester: RawProfile | None = None
    target_user: RawProfile | None = None
    request_context: RequestContext | None = Field(None, alias="requestContext")

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    @field_validator("message", mode="before")
    @classmethod
    def _message_may_be_null(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_read_by_target", mode="before")
    @classmethod
    def _read_flag_may_be_null(cls, value: Any) -> Any:
        return _none_to_false(value)

    @model_validator(mode="after")
    def _check_parties(self) -> DirectRequest:
        if self.requester_id == self.target_id:
            raise ValueError("requester_id and target_id must differ")
        return self


class LatestRequest(BaseModel):
    """Reference to the most recent request reported by a channel probe."""

    id: str | None = None
    kind: RequestKind | None = Field(None, alias="requestType")
    status: RequestStatus | None = None
    created_at: datetime | None = Field(None, alias="createdAt")
    direction: Direction | None = None

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    @field_validator("kind", "status", "direction", mode="before")
    @classmethod
    def _unknown_enum_to_none(cls, value: Any, info: Any) -> Any:
        if value is None or value == "":
            return None
        enum_type = {"kind": RequestKind, "status": RequestStatus, "direction": Direction}[
            info.field_name
        ]
        try:
            return enum_type(str(value).lower())
        except ValueError:
            return None


class ChannelResult(BaseModel):
    """Answer of one request-channel probe between the viewer and a counterpart."""

    has_sent_request: bool = Field(False, alias="hasSentRequest")
    has_received_request: bool = Field(False, alias="hasReceivedRequest")
    has_pending_request: bool = Field(False, alias="hasPendingRequest")
    has_active_request: bool = Field(False, alias="hasActiveRequest")
    latest_status: RequestStatus | None = Field(None, alias="latestStatus")
    latest_request: LatestRequest | None = Field(None, alias="latestRequest")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator(
        "has_sent_request",
        "has_received_request",
        "has_pending_request",
        "has_active_request",
        mode="before",
    )
    @classmethod
    def _flags_may_be_null(cls, value: Any) -> Any:
        return _none_to_false(value)

    @field_validator("latest_status", mode="before")
    @classmethod
    def _empty_status_to_none(cls, value: Any) -> Any:
        return value or None


class DirectRequestCreate(BaseModel):
    """Payload for sending a new direct request."""

    target_user_id: str = Field(..., serialization_alias="targetUserId")
    request_type: RequestKind = Field(..., serialization_alias="requestType")
    message: str = Field(..., min_length=1)


class MarkReadResult(BaseModel):
    """Result of the batch mark-as-read mutation."""

    count: int = 0

    @field_validator("count", mode="before")
    @classmethod
    def _count_may_be_null(cls, value: Any) -> Any:
        return 0 if value is None else value


class StatusBreakdown(BaseModel):
    pending: int = 0
    accepted: int = 0
    declined: int = 0
    cancelled: int = 0


class TypeBreakdown(BaseModel):
    mentor_requests: int = 0
    mentee_requests: int = 0


class DirectionMetrics(BaseModel):
    total: int = 0
    unread: int = 0
    by_status: StatusBreakdown = Field(default_factory=StatusBreakdown, alias="byStatus")
    by_type: TypeBreakdown = Field(default_factory=TypeBreakdown, alias="byType")

    model_config = ConfigDict(populate_by_name=True)


class RecentActivity(BaseModel):
    last_7_days: int = Field(0, alias="last7Days")
    last_30_days: int = Field(0, alias="last30Days")

    model_config = ConfigDict(populate_by_name=True)


class RequestMetrics(BaseModel):
    """Aggregate request counters for the viewer."""

    total: int = 0
    sent: DirectionMetrics = Field(default_factory=DirectionMetrics)
    received: DirectionMetrics = Field(default_factory=DirectionMetrics)
    total_unread: int = Field(0, alias="totalUnread")
    pending_received_unread: int = Field(0, alias="pendingReceivedUnread")
    recent_activity: RecentActivity = Field(default_factory=RecentActivity, alias="recentActivity")

    model_config = ConfigDict(populate_by_name=True)
