"""Received / sent / all request inbox with read tracking and optimistic mutations.

The aggregator keeps one in-memory list per view. Lists are loaded
independently; mutations confirmed by the API remove the affected request from
every list at once so the views stay consistent without a shared re-fetch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from mentorlink.core.errors import MutationError, MutationInFlightError
from mentorlink.schemas.requests import (
    Direction,
    DirectRequest,
    MarkReadResult,
    RawProfile,
    RequestKind,
    RequestStatus,
)
from mentorlink.services.api_client import ApiError
from mentorlink.services.counterparts import CounterpartProfile, CounterpartResolver
from mentorlink.services.relationship import RequestStateMachine, direction_for

# Configure logger for this module
logger = logging.getLogger(__name__)

_READ_ALL_KEY = "__read_all__"


class InboxView(str, Enum):
    """The three independently loadable inbox tabs."""

    RECEIVED = "received"
    SENT = "sent"
    ALL = "all"


# Received and sent only list requests still awaiting an answer
_STATUS_FILTER: dict[InboxView, RequestStatus | None] = {
    InboxView.RECEIVED: RequestStatus.PENDING,
    InboxView.SENT: RequestStatus.PENDING,
    InboxView.ALL: None,
}


class InboxApi(Protocol):
    """Subset of the API client the aggregator relies on."""

    async def list_requests(
        self, direction: str, status: RequestStatus | None = None
    ) -> list[DirectRequest]: ...

    async def respond(self, request_id: str, action: str) -> None: ...

    async def cancel(self, request_id: str) -> None: ...

    async def mark_received_as_read(self) -> MarkReadResult: ...


@dataclass
class InboxItem:
    """A request enriched with its decoded counterpart and a local read flag."""

    request: DirectRequest
    profile: CounterpartProfile | None = None
    read_by_viewer: bool = True

    @property
    def id(self) -> str:
        return self.request.id


class RequestInboxAggregator:
    """Drive the three inbox views for one viewer."""

    def __init__(
        self,
        client: InboxApi,
        counterparts: CounterpartResolver,
        viewer_id: str | None = None,
    ) -> None:
        self._client = client
        self._counterparts = counterparts
        self.viewer_id = viewer_id
        self._lists: dict[InboxView, list[InboxItem]] = {view: [] for view in InboxView}
        self._loaded: set[InboxView] = set()
        self._loading: set[InboxView] = set()
        self._inflight: set[str] = set()
        self._profiles: dict[str, CounterpartProfile] = {}
        self._received_marked = False
        self.load_errors: dict[InboxView, Exception | None] = {view: None for view in InboxView}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def items(self, view: InboxView | str) -> list[InboxItem]:
        return list(self._lists[InboxView(view)])

    def is_loading(self, view: InboxView | str) -> bool:
        return InboxView(view) in self._loading

    def is_loaded(self, view: InboxView | str) -> bool:
        return InboxView(view) in self._loaded

    def profile_for(self, request_id: str) -> CounterpartProfile | None:
        return self._profiles.get(request_id)

    def is_mutating(self, request_id: str) -> bool:
        return request_id in self._inflight

    def unread_count(self) -> int:
        return sum(1 for item in self._lists[InboxView.RECEIVED] if not item.read_by_viewer)

    @property
    def has_unread(self) -> bool:
        return self.unread_count() > 0

    async def load(self, view: InboxView | str) -> list[InboxItem]:
        """Fetch one view and decrypt each counterpart profile.

        A failed fetch empties the view and is recorded in ``load_errors``
        instead of being raised. The first successful received load with unread
        items triggers a single batch mark-as-read.
        """
        view = InboxView(view)
        self._loading.add(view)
        try:
            try:
                requests = await self._client.list_requests(view.value, _STATUS_FILTER[view])
            except (ApiError, OSError) as exc:
                logger.warning("Failed to load %s requests: %s", view.value, exc)
                self.load_errors[view] = exc
                self._lists[view] = []
                return []

            items = await self._build_items(view, requests)
            self._lists[view] = items
            self._loaded.add(view)
            self.load_errors[view] = None
        finally:
            self._loading.discard(view)

        if view is InboxView.RECEIVED and not self._received_marked and self.has_unread:
            try:
                await self.mark_received_as_read()
            except (MutationError, MutationInFlightError) as exc:
                logger.warning("Automatic mark-as-read failed: %s", exc)

        return self.items(view)

    async def refresh_all(self) -> dict[InboxView, list[InboxItem]]:
        """Load every view concurrently."""
        results = await asyncio.gather(*(self.load(view) for view in InboxView))
        return dict(zip(InboxView, results))

    async def _build_items(self, view: InboxView, requests: list[DirectRequest]) -> list[InboxItem]:
        counterparts = [self._counterpart_of(view, request) for request in requests]
        profiles = await asyncio.gather(
            *(self._resolve_profile(raw) for raw in counterparts),
        )

        items: list[InboxItem] = []
        for request, profile in zip(requests, profiles):
            if profile is not None:
                self._profiles[request.id] = profile
            items.append(
                InboxItem(
                    request=request,
                    profile=profile,
                    read_by_viewer=self._initial_read_flag(view, request),
                )
            )
        return items

    async def _resolve_profile(self, raw: RawProfile | None) -> CounterpartProfile | None:
        if raw is None:
            return None
        return await self._counterparts.resolve(raw)

    def _counterpart_of(self, view: InboxView, request: DirectRequest) -> RawProfile | None:
        if view is InboxView.RECEIVED:
            return request.requester
        if view is InboxView.SENT:
            return request.target_user

        context = request.request_context
        if context is not None and context.other_user is not None:
            return context.other_user
        if self.viewer_id is not None:
            if request.requester_id == self.viewer_id:
                return request.target_user
            if request.target_id == self.viewer_id:
                return request.requester
        return request.requester or request.target_user

    def _initial_read_flag(self, view: InboxView, request: DirectRequest) -> bool:
        if view is InboxView.RECEIVED:
            return request.is_read_by_target
        if view is InboxView.ALL and self._is_received(request):
            context = request.request_context
            return request.is_read_by_target or bool(context and context.is_read)
        return True

    def _is_received(self, request: DirectRequest) -> bool:
        context = request.request_context
        if context is not None and (context.is_received or context.is_sent):
            return context.is_received
        if self.viewer_id is not None:
            return direction_for(request, self.viewer_id) is Direction.RECEIVED
        return False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def mark_received_as_read(self) -> int:
        """Mark all received requests read remotely, then flip local flags.

        Returns:
            Number of requests the API reports as newly read

        Raises:
            MutationError: If the API rejected the call; flags are unchanged
        """
        if _READ_ALL_KEY in self._inflight:
            raise MutationInFlightError(_READ_ALL_KEY)

        self._inflight.add(_READ_ALL_KEY)
        try:
            result = await self._client.mark_received_as_read()
        except (ApiError, OSError) as exc:
            raise MutationError("mark_read", None, f"Failed to mark requests as read: {exc}") from exc
        finally:
            self._inflight.discard(_READ_ALL_KEY)

        self._received_marked = True
        received_ids = set()
        for item in self._lists[InboxView.RECEIVED]:
            item.read_by_viewer = True
            item.request = _marked_read(item.request)
            received_ids.add(item.id)
        for item in self._lists[InboxView.ALL]:
            if item.id in received_ids or self._is_received(item.request):
                item.read_by_viewer = True
                item.request = _marked_read(item.request)

        logger.info("Marked %d received requests as read", result.count)
        return result.count

    async def accept(self, request_id: str) -> None:
        await self._mutate("accept", request_id)

    async def decline(self, request_id: str) -> None:
        await self._mutate("decline", request_id)

    async def cancel(self, request_id: str) -> None:
        await self._mutate("cancel", request_id)

    async def _mutate(self, action: str, request_id: str) -> None:
        if request_id in self._inflight:
            raise MutationInFlightError(request_id)

        item = self._find(request_id)
        if item is not None and self.viewer_id is not None:
            RequestStateMachine.check(item.request, action, self.viewer_id)

        self._inflight.add(request_id)
        try:
            if action == "cancel":
                await self._client.cancel(request_id)
            else:
                await self._client.respond(request_id, action)
        except (ApiError, OSError) as exc:
            logger.warning("Failed to %s request %s: %s", action, request_id, exc)
            raise MutationError(action, request_id, f"Failed to {action} request: {exc}") from exc
        finally:
            self._inflight.discard(request_id)

        self._remove(request_id)

    def _find(self, request_id: str) -> InboxItem | None:
        for items in self._lists.values():
            for item in items:
                if item.id == request_id:
                    return item
        return None

    def _remove(self, request_id: str) -> None:
        for view, items in self._lists.items():
            self._lists[view] = [item for item in items if item.id != request_id]
        self._profiles.pop(request_id, None)


def _marked_read(request: DirectRequest) -> DirectRequest:
    update: dict[str, object] = {"is_read_by_target": True}
    if request.request_context is not None:
        update["request_context"] = request.request_context.model_copy(update={"is_read": True})
    return request.model_copy(update=update)


_RECEIVED_TEXT = {
    RequestKind.MENTOR_REQUEST: "Wants you as their mentor",
    RequestKind.MENTEE_REQUEST: "Offering to mentor you",
}
_SENT_TEXT = {
    RequestKind.MENTOR_REQUEST: "You requested them as your mentor",
    RequestKind.MENTEE_REQUEST: "You offered to mentor them",
}
_NEUTRAL_TEXT = {
    RequestKind.MENTOR_REQUEST: "Mentor Request",
    RequestKind.MENTEE_REQUEST: "Mentee Request",
}


def describe_request(request: DirectRequest, view: InboxView | str, viewer_id: str | None = None) -> str:
    """Direction-aware one-line description of a request for a view."""
    view = InboxView(view)
    if view is InboxView.RECEIVED:
        return _RECEIVED_TEXT[request.kind]
    if view is InboxView.SENT:
        return _SENT_TEXT[request.kind]

    context = request.request_context
    if context is not None and context.is_sent:
        return _SENT_TEXT[request.kind]
    if context is not None and context.is_received:
        return _RECEIVED_TEXT[request.kind]
    if viewer_id is not None:
        direction = direction_for(request, viewer_id)
        if direction is Direction.SENT:
            return _SENT_TEXT[request.kind]
        if direction is Direction.RECEIVED:
            return _RECEIVED_TEXT[request.kind]
    return _NEUTRAL_TEXT[request.kind]
