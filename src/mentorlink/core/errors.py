"""Exception types raised by the MentorLink engines."""

from __future__ import annotations


class MentorLinkError(RuntimeError):
    """Base exception for engine-level failures."""


class InvalidTransitionError(MentorLinkError):
    """Raised when a request state change is not allowed.

    Requests only leave ``pending``; ``accepted``, ``declined`` and
    ``cancelled`` are terminal.
    """


class MutationError(MentorLinkError):
    """Raised when an accept/decline/cancel/mark-as-read call was rejected remotely.

    No local state has been changed when this is raised.
    """

    def __init__(self, action: str, request_id: str | None, message: str) -> None:
        super().__init__(message)
        self.action = action
        self.request_id = request_id


class MutationInFlightError(MentorLinkError):
    """Raised when a mutation is issued while another one on the same request is pending."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"A mutation for request {request_id} is already in flight")
        self.request_id = request_id


class ConnectionBlockedError(MentorLinkError):
    """Raised when a new request is sent to a counterpart that already has one."""
