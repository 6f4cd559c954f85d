"""Relationship checks and gated request sending for a single counterpart."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from mentorlink.core.errors import ConnectionBlockedError, MutationError
from mentorlink.schemas.requests import (
    ChannelResult,
    Direction,
    DirectRequest,
    RequestKind,
    RequestStatus,
)
from mentorlink.services.api_client import ApiError
from mentorlink.services.relationship import (
    ConnectionGate,
    RelationshipNotice,
    RelationshipResolver,
    RelationshipStatus,
    relationship_notice,
)

# Configure logger for this module
logger = logging.getLogger(__name__)


class ConnectionApi(Protocol):
    """Subset of the API client the connection service relies on."""

    async def check_request_exists(self, counterpart_id: str, kind: RequestKind) -> ChannelResult: ...

    async def send_request(
        self, target_id: str, kind: RequestKind, message: str
    ) -> DirectRequest | None: ...


@dataclass(frozen=True)
class RelationshipCheck:
    """Outcome of probing both request channels for one counterpart.

    ``probe_failed`` distinguishes "confirmed none" from "unknown": the status
    is neutral in both cases.
    """

    counterpart_id: str
    status: RelationshipStatus
    probe_failed: bool = False

    @property
    def can_send(self) -> bool:
        return ConnectionGate.can_send(self.status)

    def notice(self, counterpart_name: str) -> RelationshipNotice | None:
        return relationship_notice(self.status, counterpart_name)


@dataclass(frozen=True)
class SendResult:
    """A sent request and the relationship status that follows from it."""

    request: DirectRequest | None
    status: RelationshipStatus


def default_message(kind: RequestKind, counterpart_name: str, expertise: list[str] | None = None) -> str:
    """Suggested opening message for a new request of ``kind``."""
    topics = ", ".join((expertise or [])[:2])
    if RequestKind(kind) is RequestKind.MENTOR_REQUEST:
        return (
            f"Hello {counterpart_name},\n\n"
            "I would like to request you as my mentor. I'm impressed by your experience in "
            f"{topics or 'your field'} and believe I could greatly benefit from your guidance.\n\n"
            "Looking forward to your response!"
        )
    return (
        f"Hello {counterpart_name},\n\n"
        "I would like to offer mentorship to you. Based on your profile, I believe I can help "
        f"you with {topics or 'your career development'}.\n\n"
        "Let me know if you're interested!"
    )


class ConnectionService:
    """Probe, resolve and gate the relationship with one counterpart at a time."""

    def __init__(self, client: ConnectionApi) -> None:
        self._client = client

    async def check(self, counterpart_id: str) -> RelationshipCheck:
        """Probe both channels concurrently and resolve the relationship.

        Never raises for probe failures; the returned check is neutral and
        flagged with ``probe_failed``.
        """
        mentor, mentee = await asyncio.gather(
            self._client.check_request_exists(counterpart_id, RequestKind.MENTOR_REQUEST),
            self._client.check_request_exists(counterpart_id, RequestKind.MENTEE_REQUEST),
            return_exceptions=True,
        )

        probe_failed = False
        for kind, outcome in ((RequestKind.MENTOR_REQUEST, mentor), (RequestKind.MENTEE_REQUEST, mentee)):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                probe_failed = True
                logger.warning(
                    "Request channel probe %s for %s failed: %s",
                    kind.value,
                    counterpart_id,
                    outcome,
                )

        status = RelationshipResolver.resolve(mentor, mentee)
        return RelationshipCheck(counterpart_id=counterpart_id, status=status, probe_failed=probe_failed)

    async def send_request(self, counterpart_id: str, kind: RequestKind, message: str) -> SendResult:
        """Send a new request when no request exists between the pair.

        Raises:
            ValueError: If the message is blank
            ConnectionBlockedError: If any request already exists in either direction
            MutationError: If the API rejected the request
        """
        text = message.strip()
        if not text:
            raise ValueError("A request message is required")

        check = await self.check(counterpart_id)
        if not check.can_send:
            raise ConnectionBlockedError(
                f"A request already exists between you and {counterpart_id}"
            )

        try:
            request = await self._client.send_request(counterpart_id, RequestKind(kind), text)
        except (ApiError, OSError) as exc:
            logger.warning("Failed to send %s to %s: %s", RequestKind(kind).value, counterpart_id, exc)
            raise MutationError("send", None, f"Failed to send request: {exc}") from exc

        status = RelationshipStatus(
            has_sent=True,
            has_received=check.status.has_received,
            has_pending=True,
            has_active=check.status.has_active,
            direction=Direction.SENT,
            latest=check.status.latest,
            latest_status=RequestStatus.PENDING,
        )
        return SendResult(request=request, status=status)
