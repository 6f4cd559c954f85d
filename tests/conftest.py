# tests/conftest.py
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any

import pytest

os.environ.setdefault("PYTEST_RUNNING", "true")

from mentorlink.schemas.requests import (
    ChannelResult,
    DirectRequest,
    MarkReadResult,
    RawProfile,
    RequestKind,
    RequestStatus,
)
from mentorlink.services.api_client import ApiConfig, ApiError
from mentorlink.services.counterparts import CounterpartResolver
from mentorlink.services.inbox import RequestInboxAggregator
from mentorlink.services.profile_decryptor import DecryptionCache, ProfileDecryptor
from mentorlink.services.relationship import RequestStateMachine, channel_result_for

VIEWER_ID = "u-viewer"
BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

_REQUEST_COUNTER = count(1)


def make_profile(user_id: str, **fields: Any) -> RawProfile:
    data: dict[str, Any] = {"id": user_id, "username": f"user_{user_id}"}
    data.update(fields)
    return RawProfile.model_validate(data)


def make_request(
    requester_id: str,
    target_id: str,
    kind: RequestKind = RequestKind.MENTOR_REQUEST,
    status: RequestStatus = RequestStatus.PENDING,
    minutes: int = 0,
    **fields: Any,
) -> DirectRequest:
    data: dict[str, Any] = {
        "id": f"r-{next(_REQUEST_COUNTER)}",
        "requester_id": requester_id,
        "target_user_id": target_id,
        "request_type": kind.value,
        "status": status.value,
        "message": "Hello",
        "created_at": BASE_TIME + timedelta(minutes=minutes),
        "requester": make_profile(requester_id),
        "target_user": make_profile(target_id),
    }
    data.update(fields)
    return DirectRequest.model_validate(data)


class FakeMentorshipBackend:
    """In-memory stand-in for the remote mentorship API, seen from one viewer."""

    def __init__(self, viewer_id: str = VIEWER_ID) -> None:
        self.viewer_id = viewer_id
        self.requests: list[DirectRequest] = []
        self.plaintexts: dict[str, str] = {}
        self.failing: set[str] = set()
        self.decrypt_calls: list[str] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.gate: asyncio.Event | None = None

    def add(self, request: DirectRequest) -> DirectRequest:
        self.requests.append(request)
        return request

    async def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.gate is not None:
            await self.gate.wait()
        if name in self.failing:
            raise ApiError(f"{name} failed")

    async def decrypt(self, ciphertext: str) -> str:
        self.decrypt_calls.append(ciphertext)
        await asyncio.sleep(0)
        if ciphertext.startswith("broken:") or "decrypt" in self.failing:
            raise ApiError(f"cannot decrypt {ciphertext}")
        return self.plaintexts.get(ciphertext, ciphertext.removeprefix("enc:"))

    async def list_requests(self, direction: str, status: RequestStatus | None = None) -> list[DirectRequest]:
        await self._enter("list_requests", direction, status)
        if direction == "received":
            found = [r for r in self.requests if r.target_id == self.viewer_id]
        elif direction == "sent":
            found = [r for r in self.requests if r.requester_id == self.viewer_id]
        else:
            found = [r for r in self.requests if self.viewer_id in (r.requester_id, r.target_id)]
        if status is not None:
            found = [r for r in found if r.status is status]
        return list(found)

    async def respond(self, request_id: str, action: str) -> None:
        await self._enter("respond", request_id, action)
        self._apply(request_id, action)

    async def cancel(self, request_id: str) -> None:
        await self._enter("cancel", request_id)
        self._apply(request_id, "cancel")

    async def mark_received_as_read(self) -> MarkReadResult:
        await self._enter("mark_received_as_read")
        changed = 0
        for index, request in enumerate(self.requests):
            if request.target_id == self.viewer_id and not request.is_read_by_target:
                self.requests[index] = request.model_copy(update={"is_read_by_target": True})
                changed += 1
        return MarkReadResult(count=changed)

    async def check_request_exists(self, counterpart_id: str, kind: RequestKind) -> ChannelResult:
        await self._enter(f"check_{RequestKind(kind).value}", counterpart_id)
        return channel_result_for(self.requests, self.viewer_id, counterpart_id, RequestKind(kind))

    async def send_request(self, target_id: str, kind: RequestKind, message: str) -> DirectRequest:
        await self._enter("send_request", target_id, kind, message)
        return self.add(
            make_request(self.viewer_id, target_id, RequestKind(kind), minutes=len(self.requests), message=message)
        )

    def _apply(self, request_id: str, action: str) -> None:
        for index, request in enumerate(self.requests):
            if request.id == request_id:
                self.requests[index] = RequestStateMachine.apply(request, action, self.viewer_id)
                return
        raise ApiError(f"Request {request_id} not found")


@pytest.fixture
def backend() -> FakeMentorshipBackend:
    return FakeMentorshipBackend()


@pytest.fixture
def decryptor(backend: FakeMentorshipBackend) -> ProfileDecryptor:
    return ProfileDecryptor(backend, DecryptionCache())


@pytest.fixture
def aggregator_factory(
    backend: FakeMentorshipBackend, decryptor: ProfileDecryptor
) -> Callable[..., RequestInboxAggregator]:
    def factory(viewer_id: str | None = VIEWER_ID) -> RequestInboxAggregator:
        return RequestInboxAggregator(backend, CounterpartResolver(decryptor), viewer_id=viewer_id)

    return factory


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(
        enabled=True,
        base_url="http://mentorship.test/api",
        token=None,
        shared_secret=None,
        client_id="mentorlink-tests",
        audience="mentorship-api",
        token_ttl_seconds=60,
        timeout_seconds=5.0,
        failure_threshold=2,
        recovery_timeout_seconds=60.0,
        success_threshold=1,
    )
