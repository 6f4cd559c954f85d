"""Relationship state between the viewer and one counterpart.

Two independent request channels (``mentor_request`` and ``mentee_request``)
exist between any pair of users. :class:`RelationshipResolver` merges the two
channel probes into a single :class:`RelationshipStatus`, and
:class:`ConnectionGate` decides from that status whether a new request may be
sent. :class:`RequestStateMachine` holds the lifecycle rules for a single
request.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from mentorlink.core.errors import InvalidTransitionError
from mentorlink.schemas.requests import (
    ChannelResult,
    Direction,
    DirectRequest,
    LatestRequest,
    RequestKind,
    RequestStatus,
)

ProbeOutcome = ChannelResult | BaseException | None


@dataclass(frozen=True)
class RelationshipStatus:
    """Resolved view between exactly two users, computed fresh on every probe."""

    has_sent: bool = False
    has_received: bool = False
    has_pending: bool = False
    has_active: bool = False
    direction: Direction = Direction.NONE
    latest: LatestRequest | None = None
    latest_status: RequestStatus | None = None

    @property
    def has_any(self) -> bool:
        return self.has_sent or self.has_received


NEUTRAL_STATUS = RelationshipStatus()


class RelationshipResolver:
    """Merge the two request-channel probes for a user pair."""

    @staticmethod
    def resolve(mentor: ProbeOutcome, mentee: ProbeOutcome) -> RelationshipStatus:
        """Resolve the relationship from the mentor and mentee channel probes.

        Args:
            mentor: Result of the ``mentor_request`` probe, or the exception it raised
            mentee: Result of the ``mentee_request`` probe, or the exception it raised

        Returns:
            The merged status; the neutral status if either probe failed
        """
        if not isinstance(mentor, ChannelResult) or not isinstance(mentee, ChannelResult):
            return NEUTRAL_STATUS

        has_sent = mentor.has_sent_request or mentee.has_sent_request
        has_received = mentor.has_received_request or mentee.has_received_request
        has_pending = mentor.has_pending_request or mentee.has_pending_request
        has_active = mentor.has_active_request or mentee.has_active_request

        # Mentor channel wins whenever it reports a status, regardless of timestamps
        latest_status = mentee.latest_status
        if mentor.latest_status is not None:
            latest_status = mentor.latest_status

        latest = RelationshipResolver._latest_request(mentor.latest_request, mentee.latest_request)

        if latest is not None and latest.direction not in (None, Direction.NONE):
            direction = latest.direction
        elif has_sent:
            direction = Direction.SENT
        elif has_received:
            direction = Direction.RECEIVED
        else:
            direction = Direction.NONE

        return RelationshipStatus(
            has_sent=has_sent,
            has_received=has_received,
            has_pending=has_pending,
            has_active=has_active,
            direction=direction,
            latest=latest,
            latest_status=latest_status,
        )

    @staticmethod
    def _latest_request(
        mentor: LatestRequest | None,
        mentee: LatestRequest | None,
    ) -> LatestRequest | None:
        if mentor is not None and mentee is not None:
            if mentor.created_at is not None and mentee.created_at is not None:
                return mentor if _utc(mentor.created_at) > _utc(mentee.created_at) else mentee
            return mentor if mentor.created_at is not None or mentee.created_at is None else mentee
        return mentor if mentor is not None else mentee


class ConnectionGate:
    """Decide whether a new request may be sent to a counterpart.

    Any existing request in either direction and of either kind blocks a new
    one: there is one thread per user pair, not per request kind.
    """

    @staticmethod
    def can_send(status: RelationshipStatus) -> bool:
        return not status.has_sent and not status.has_received


@dataclass(frozen=True)
class RelationshipNotice:
    """User-facing summary of an existing relationship."""

    level: str
    title: str
    message: str


def relationship_notice(status: RelationshipStatus, counterpart_name: str) -> RelationshipNotice | None:
    """Describe an existing relationship, or None when there is none."""
    if not status.has_any:
        return None

    if status.has_pending:
        if status.direction is Direction.RECEIVED:
            return RelationshipNotice(
                level="warning",
                title="Request Awaiting Your Response",
                message=f"{counterpart_name} has already sent you a mentorship request.",
            )
        return RelationshipNotice(
            level="warning",
            title="Request Already Sent",
            message=(
                f"You have already sent a mentorship request to {counterpart_name}. "
                "Please wait for their response."
            ),
        )

    if status.has_active:
        return RelationshipNotice(
            level="success",
            title="Already Connected",
            message=f"You already have an active mentorship relationship with {counterpart_name}.",
        )

    return RelationshipNotice(
        level="info",
        title="Request History",
        message=f"You have previously exchanged a request with {counterpart_name}.",
    )


# (current status, action) -> (next status, party allowed to act)
_TRANSITIONS: dict[tuple[RequestStatus, str], tuple[RequestStatus, str]] = {
    (RequestStatus.PENDING, "accept"): (RequestStatus.ACCEPTED, "target"),
    (RequestStatus.PENDING, "decline"): (RequestStatus.DECLINED, "target"),
    (RequestStatus.PENDING, "cancel"): (RequestStatus.CANCELLED, "requester"),
}


class RequestStateMachine:
    """Lifecycle rules for a single direct request."""

    ACTIONS = ("accept", "decline", "cancel")

    @staticmethod
    def check(request: DirectRequest, action: str, actor_id: str) -> RequestStatus:
        """Validate ``action`` by ``actor_id`` and return the resulting status.

        Raises:
            InvalidTransitionError: If the action is unknown, the request has
                left ``pending``, or the actor is the wrong party
        """
        if action not in RequestStateMachine.ACTIONS:
            raise InvalidTransitionError(f"Unknown request action: {action}")

        rule = _TRANSITIONS.get((request.status, action))
        if rule is None:
            raise InvalidTransitionError(
                f"Cannot {action} request {request.id} in status {request.status.value}"
            )

        next_status, party = rule
        expected_actor = request.target_id if party == "target" else request.requester_id
        if actor_id != expected_actor:
            raise InvalidTransitionError(
                f"Only the {party} may {action} request {request.id}"
            )
        return next_status

    @staticmethod
    def apply(
        request: DirectRequest,
        action: str,
        actor_id: str,
        at: datetime | None = None,
    ) -> DirectRequest:
        """Return a copy of ``request`` after ``action``, stamping ``responded_at``."""
        next_status = RequestStateMachine.check(request, action, actor_id)
        return request.model_copy(
            update={
                "status": next_status,
                "responded_at": at or datetime.now(timezone.utc),
            }
        )


def direction_for(request: DirectRequest, viewer_id: str) -> Direction:
    """Direction of ``request`` relative to ``viewer_id``."""
    if request.requester_id == viewer_id:
        return Direction.SENT
    if request.target_id == viewer_id:
        return Direction.RECEIVED
    return Direction.NONE


def channel_result_for(
    requests: list[DirectRequest],
    viewer_id: str,
    counterpart_id: str,
    kind: RequestKind,
) -> ChannelResult:
    """Build the channel probe answer for one kind from a list of requests.

    This mirrors what the remote probe reports and is used by offline tooling
    and tests to derive probes from raw request records.
    """
    pair = {viewer_id, counterpart_id}
    matching = [
        request
        for request in requests
        if request.kind is kind and {request.requester_id, request.target_id} == pair
    ]
    latest_record = max(matching, key=lambda request: _utc(request.created_at), default=None)

    latest = None
    if latest_record is not None:
        latest = LatestRequest(
            id=latest_record.id,
            kind=latest_record.kind,
            status=latest_record.status,
            created_at=latest_record.created_at,
            direction=direction_for(latest_record, viewer_id),
        )

    return ChannelResult(
        has_sent_request=any(request.requester_id == viewer_id for request in matching),
        has_received_request=any(request.target_id == viewer_id for request in matching),
        has_pending_request=any(request.status is RequestStatus.PENDING for request in matching),
        has_active_request=any(request.status is RequestStatus.ACCEPTED for request in matching),
        latest_status=latest_record.status if latest_record is not None else None,
        latest_request=latest,
    )


def _utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so mixed inputs compare."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
