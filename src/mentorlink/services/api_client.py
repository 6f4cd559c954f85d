"""HTTP client for the remote mentorship API.

This module provides the MentorshipApiClient class that handles all
communication between the engines and the mentorship backend. It includes:

- HTTP client with bearer or service-token authentication
- Circuit breaker pattern for fault tolerance
- Metrics collection for monitoring
- Envelope unwrapping so callers only see canonical payload shapes
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

import httpx
from jose import jwt

from mentorlink.core.settings import settings
from mentorlink.schemas.requests import (
    ChannelResult,
    DirectRequest,
    DirectRequestCreate,
    MarkReadResult,
    RequestKind,
    RequestMetrics,
    RequestStatus,
)
from mentorlink.services import payloads

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_NO_CONTENT = 204
HTTP_MULTIPLE_CHOICES = 300
HTTP_INTERNAL_SERVER_ERROR = 500

ListDirection = Literal["received", "sent", "all"]
RespondAction = Literal["accept", "decline"]


class ApiError(RuntimeError):
    """Base exception raised for mentorship API failures."""


class ApiDisabledError(ApiError):
    """Raised when API calls are attempted while the client is disabled or unconfigured."""


class ApiUnavailableError(ApiError):
    """Raised when the circuit breaker is open and calls fail fast."""


class ApiResponseError(ApiError):
    """Raised when the API answers with an unexpected status code."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class CircuitState(Enum):
    """Circuit breaker states for fault tolerance."""

    CLOSED = "closed"      # Normal operation - requests allowed
    OPEN = "open"          # Circuit is open - requests blocked
    HALF_OPEN = "half_open"  # Testing if service is back - limited requests allowed


@dataclass
class OperationStats:
    """Call counters for one logical API operation (decrypt, respond, ...)."""

    calls: int = 0
    failures: int = 0
    total_response_time: float = 0.0

    def as_dict(self) -> dict[str, float | int]:
        return {
            "calls": self.calls,
            "failures": self.failures,
            "average_response_time": self.total_response_time / self.calls if self.calls else 0.0,
        }


# Operations that change request state on the server
MUTATING_OPERATIONS = frozenset({"respond", "cancel", "mark_read", "send"})


@dataclass
class ApiMetrics:
    """Per-operation call metrics for the mentorship API.

    Paths embed request and user ids, so counters are keyed by operation name
    rather than by URL.
    """

    request_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_response_time: float = 0.0
    min_response_time: float = float("inf")
    max_response_time: float = 0.0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    operations: dict[str, OperationStats] = field(default_factory=lambda: defaultdict(OperationStats))

    def record_request(
        self, operation: str, response_time: float, success: bool, error_type: str | None = None
    ) -> None:
        self.request_count += 1
        self.total_response_time += response_time
        self.min_response_time = min(self.min_response_time, response_time)
        self.max_response_time = max(self.max_response_time, response_time)

        stats = self.operations[operation]
        stats.calls += 1
        stats.total_response_time += response_time

        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            stats.failures += 1
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def get_average_response_time(self) -> float:
        return self.total_response_time / self.request_count if self.request_count > 0 else 0.0

    def get_success_rate(self) -> float:
        """Success rate as a percentage."""
        return (self.success_count / self.request_count * 100) if self.request_count > 0 else 0.0

    def decrypt_calls(self) -> int:
        return self.operations["decrypt"].calls if "decrypt" in self.operations else 0

    def mutation_failures(self) -> int:
        return sum(
            stats.failures for name, stats in self.operations.items() if name in MUTATING_OPERATIONS
        )


@dataclass
class CircuitBreaker:
    """Circuit breaker for API operations."""

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 3

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0

    def is_open(self) -> bool:
        """Check if circuit is open."""
        if self._state == CircuitState.OPEN:
            if time.time() - self._last_failure_time > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
            return self._state == CircuitState.OPEN
        return False

    def record_success(self) -> None:
        """Record a successful operation."""
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed operation."""
        self._failure_count += 1
        self._last_failure_time = time.time()

        # A failed probe while half-open reopens immediately
        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN

    def get_state(self) -> CircuitState:
        return self._state

    def get_failure_count(self) -> int:
        return self._failure_count

    def get_success_count(self) -> int:
        return self._success_count

    def get_last_failure_time(self) -> float:
        return self._last_failure_time


@dataclass(frozen=True)
class ApiConfig:
    """Immutable configuration for API operations."""

    enabled: bool
    base_url: str | None
    token: str | None
    shared_secret: str | None
    client_id: str
    audience: str
    token_ttl_seconds: int
    timeout_seconds: float
    failure_threshold: int = 5
    recovery_timeout_seconds: float = 60.0
    success_threshold: int = 3


def load_api_config() -> ApiConfig:
    """Build configuration object from global settings."""

    return ApiConfig(
        enabled=bool(settings.api_enabled and settings.api_base_url),
        base_url=settings.api_root or None,
        token=settings.api_token,
        shared_secret=settings.api_shared_secret,
        client_id=settings.api_client_id,
        audience=settings.api_audience,
        token_ttl_seconds=settings.api_token_ttl_seconds,
        timeout_seconds=float(settings.api_http_timeout_seconds),
        failure_threshold=settings.circuit_failure_threshold,
        recovery_timeout_seconds=settings.circuit_recovery_timeout_seconds,
        success_threshold=settings.circuit_success_threshold,
    )


class MentorshipApiClient:
    """HTTP client wrapper for the mentorship and encryption endpoints."""

    def __init__(
        self,
        config: ApiConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_api_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._circuit_breaker = CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_timeout_seconds,
            success_threshold=self.config.success_threshold,
        )
        self._metrics = ApiMetrics()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self.config.base_url)

    async def _ensure_client(self) -> httpx.AsyncClient:
        if not self.enabled:
            raise ApiDisabledError("Mentorship API is not configured")

        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url or "",
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                )

        return self._client

    def _build_auth_headers(self) -> dict[str, str]:
        headers = {
            "X-Client-Id": self.config.client_id,
        }

        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        elif self.config.shared_secret:
            now = int(time.time())
            claims = {
                "iss": self.config.client_id,
                "aud": self.config.audience,
                "iat": now,
                "exp": now + max(1, self.config.token_ttl_seconds),
                "jti": secrets.token_hex(8),
            }
            token = jwt.encode(claims, self.config.shared_secret, algorithm="HS256")
            headers["Authorization"] = f"Bearer {token}"

        return headers

    @dataclass
    class RequestParams:
        """Parameters for HTTP requests."""
        method: str
        path: str
        json_data: Any | None = None
        params: Mapping[str, Any] | None = None
        operation: str = "other"

    async def _request(self, params: RequestParams) -> httpx.Response:
        if self._circuit_breaker.is_open():
            raise ApiUnavailableError("Mentorship API circuit breaker is open - service unavailable")

        client = await self._ensure_client()
        headers = self._build_auth_headers()

        start_time = time.time()
        success = False
        error_type = None
        response_time = 0.0

        try:
            response = await client.request(
                params.method,
                params.path,
                json=params.json_data,
                params=params.params,
                headers=headers,
            )
            response_time = time.time() - start_time

            if response.status_code < HTTP_INTERNAL_SERVER_ERROR:
                self._circuit_breaker.record_success()
                success = response.status_code < HTTP_MULTIPLE_CHOICES
                if not success:
                    error_type = f"http_{response.status_code}"
            else:
                self._circuit_breaker.record_failure()
                error_type = f"http_{response.status_code}"
                raise ApiResponseError(
                    f"Mentorship API responded with {response.status_code}",
                    response.status_code,
                )
        except httpx.HTTPError as exc:
            response_time = time.time() - start_time
            self._circuit_breaker.record_failure()
            error_type = "network_error"
            raise ApiError(f"Mentorship API request failed: {exc}") from exc
        finally:
            self._metrics.record_request(params.operation, response_time, success, error_type)

        return response

    @staticmethod
    def _expect_success(response: httpx.Response, operation: str) -> Any:
        """Raise for non-2xx responses and return the decoded JSON body, if any."""
        if response.status_code >= HTTP_MULTIPLE_CHOICES:
            raise ApiResponseError(
                f"Unexpected API response ({response.status_code}) when {operation}",
                response.status_code,
            )
        if response.status_code == HTTP_NO_CONTENT or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"Malformed JSON body when {operation}") from exc

    async def decrypt(self, ciphertext: str) -> str:
        """Decrypt a single ciphertext with the remote encryption service."""

        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/encryption/decrypt/master",
                operation="decrypt",
                json_data={"encryptedData": ciphertext},
            )
        )
        body = self._expect_success(response, "decrypting a field")
        try:
            return payloads.unwrap_decrypted(body)
        except ValueError as exc:
            raise ApiError(str(exc)) from exc

    async def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext value with the remote encryption service."""

        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/encryption/encrypt/master",
                operation="encrypt",
                json_data={"data": plaintext},
            )
        )
        body = self._expect_success(response, "encrypting a field")
        try:
            return payloads.unwrap_encrypted(body)
        except ValueError as exc:
            raise ApiError(str(exc)) from exc

    async def check_request_exists(self, counterpart_id: str, kind: RequestKind) -> ChannelResult:
        """Probe one request channel between the viewer and ``counterpart_id``."""

        response = await self._request(
            self.RequestParams(
                method="GET",
                path=f"/mentorship/requests/direct/check/{counterpart_id}",
                operation="check",
                params={"requestType": RequestKind(kind).value},
            )
        )
        body = self._expect_success(response, "checking request channel")
        try:
            return payloads.parse_channel_result(body)
        except ValueError as exc:
            raise ApiError(f"Malformed channel probe response: {exc}") from exc

    async def list_requests(
        self,
        direction: ListDirection,
        status: RequestStatus | None = None,
    ) -> list[DirectRequest]:
        """Fetch the viewer's received, sent or all direct requests."""

        if direction not in ("received", "sent", "all"):
            raise ValueError(f"Unknown request list direction: {direction}")

        query: dict[str, Any] = {}
        if status is not None:
            query["status"] = RequestStatus(status).value

        response = await self._request(
            self.RequestParams(
                method="GET",
                path=f"/mentorship/requests/direct/{direction}",
                operation="list",
                params=query or None,
            )
        )
        body = self._expect_success(response, f"listing {direction} requests")
        return payloads.parse_requests(body)

    async def respond(self, request_id: str, action: RespondAction) -> None:
        """Accept or decline a received request."""

        if action not in ("accept", "decline"):
            raise ValueError(f"Unknown respond action: {action}")

        response = await self._request(
            self.RequestParams(
                method="POST",
                path=f"/mentorship/requests/direct/{request_id}/respond",
                operation="respond",
                json_data={"action": action},
            )
        )
        self._expect_success(response, f"responding '{action}' to request {request_id}")

    async def cancel(self, request_id: str) -> None:
        """Cancel a pending request the viewer sent."""

        response = await self._request(
            self.RequestParams(
                method="DELETE",
                path=f"/mentorship/requests/direct/{request_id}",
                operation="cancel",
            )
        )
        self._expect_success(response, f"cancelling request {request_id}")

    async def mark_received_as_read(self) -> MarkReadResult:
        """Mark every received request as read by the viewer."""

        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/mentorship/requests/direct/read-all",
                operation="mark_read",
                params={"type": "received"},
            )
        )
        body = self._expect_success(response, "marking received requests as read")
        return payloads.parse_mark_read(body)

    async def send_request(self, target_id: str, kind: RequestKind, message: str) -> DirectRequest | None:
        """Create a new direct request.

        Returns:
            The created request when the API echoes it back, otherwise None
        """

        payload = DirectRequestCreate(target_user_id=target_id, request_type=kind, message=message)
        response = await self._request(
            self.RequestParams(
                method="POST",
                path="/mentorship/requests/direct",
                operation="send",
                json_data=payload.model_dump(mode="json", by_alias=True),
            )
        )
        body = self._expect_success(response, f"sending a request to {target_id}")
        if body is None:
            return None
        try:
            return payloads.parse_request(body)
        except ValueError:
            logger.warning("Request to %s was created but the response could not be parsed", target_id)
            return None

    async def fetch_request_metrics(self) -> RequestMetrics:
        """Fetch aggregate request counters for the viewer."""

        response = await self._request(
            self.RequestParams(method="GET", path="/mentorship/requests/direct/metrics", operation="metrics")
        )
        body = self._expect_success(response, "fetching request metrics")
        return payloads.parse_metrics(body)

    async def health_check(self) -> dict[str, Any]:
        """Perform a health check on the API connection.

        Returns:
            Dictionary containing health status and circuit breaker state
        """
        if not self.enabled:
            return {
                "status": "disabled",
                "enabled": False,
                "error": "Mentorship API is not configured",
            }

        try:
            response = await self._request(self.RequestParams(method="GET", path="/health", operation="health"))
        except ApiError as e:
            return {
                "status": "error",
                "enabled": True,
                "error": str(e),
                "response_time_ms": None,
                "circuit_breaker": self.get_circuit_breaker_status(),
            }

        if response.status_code == HTTP_OK:
            return {
                "status": "healthy",
                "enabled": True,
                "response_time_ms": response.elapsed.total_seconds() * 1000,
                "circuit_breaker": self.get_circuit_breaker_status(),
            }
        return {
            "status": "unhealthy",
            "enabled": True,
            "error": f"API returned status {response.status_code}",
            "response_time_ms": response.elapsed.total_seconds() * 1000,
            "circuit_breaker": self.get_circuit_breaker_status(),
        }

    def get_circuit_breaker_status(self) -> dict[str, Any]:
        """Get the current circuit breaker status."""
        return {
            "state": self._circuit_breaker.get_state().value,
            "failure_count": self._circuit_breaker.get_failure_count(),
            "success_count": self._circuit_breaker.get_success_count(),
            "last_failure_time": self._circuit_breaker.get_last_failure_time(),
            "is_open": self._circuit_breaker.is_open(),
        }

    def get_metrics(self) -> dict[str, Any]:
        """Get API operation metrics."""
        return {
            "request_count": self._metrics.request_count,
            "success_count": self._metrics.success_count,
            "error_count": self._metrics.error_count,
            "success_rate": self._metrics.get_success_rate(),
            "average_response_time": self._metrics.get_average_response_time(),
            "min_response_time": (
                self._metrics.min_response_time
                if self._metrics.min_response_time != float('inf')
                else 0.0
            ),
            "max_response_time": self._metrics.max_response_time,
            "error_counts_by_type": dict(self._metrics.error_counts_by_type),
            "operations": {
                name: stats.as_dict() for name, stats in self._metrics.operations.items()
            },
            "decrypt_calls": self._metrics.decrypt_calls(),
            "mutation_failures": self._metrics.mutation_failures(),
        }

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


class _ApiClientSingleton:
    """Singleton wrapper for MentorshipApiClient."""

    _instance: MentorshipApiClient | None = None

    @classmethod
    def get_instance(cls) -> MentorshipApiClient:
        if cls._instance is None:
            cls._instance = MentorshipApiClient()
        return cls._instance


def get_api_client() -> MentorshipApiClient:
    """Return a singleton API client instance."""
    return _ApiClientSingleton.get_instance()
