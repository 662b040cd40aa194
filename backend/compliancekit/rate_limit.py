"""In-memory fixed-window rate limiting for API endpoints.

State is process-local: every worker process keeps its own counters, so the
effective limit scales with the number of workers.
"""
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from fastapi import Request

from compliancekit.exceptions import RateLimitError
from compliancekit.security_log import log_rate_limit_event

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitPreset:
    window_seconds: int
    max_requests: int


class RateLimitPresets:
    # Sensitive operations (login, registration)
    STRICT = RateLimitPreset(window_seconds=15 * 60, max_requests=5)
    # Regular API endpoints
    STANDARD = RateLimitPreset(window_seconds=60, max_requests=30)
    # Public read endpoints
    LENIENT = RateLimitPreset(window_seconds=60, max_requests=100)
    # Public forms: DSAR and consent submissions
    PUBLIC_FORM = RateLimitPreset(window_seconds=5 * 60, max_requests=10)


@dataclass
class ThrottleRecord:
    count: int
    reset_at: float


@dataclass(frozen=True)
class ThrottleResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat(),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


def client_identifier(headers: Mapping[str, str]) -> str:
    """Client IP as reported by the proxy chain.

    Clients without either header share the "unknown" bucket.
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return UNKNOWN_CLIENT


class RequestThrottle:
    """Fixed-window request counter keyed by client and resource path."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._records: dict[str, ThrottleRecord] = {}

    @staticmethod
    def _key(identifier: str, resource_path: str) -> str:
        return f"{identifier}:{resource_path}"

    def check(self, identifier: str, resource_path: str, window_seconds: float, max_requests: int) -> ThrottleResult:
        key = self._key(identifier, resource_path)
        now = self._clock()
        record = self._records.get(key)

        # A record whose window has elapsed is replaced, never incremented
        if record is None or now >= record.reset_at:
            record = ThrottleRecord(count=1, reset_at=now + window_seconds)
            self._records[key] = record
            return ThrottleResult(
                allowed=True,
                limit=max_requests,
                remaining=max(0, max_requests - 1),
                reset_at=record.reset_at,
            )

        record.count += 1
        if record.count > max_requests:
            retry_after = max(1, math.ceil(record.reset_at - now))
            return ThrottleResult(
                allowed=False,
                limit=max_requests,
                remaining=0,
                reset_at=record.reset_at,
                retry_after=retry_after,
            )
        return ThrottleResult(
            allowed=True,
            limit=max_requests,
            remaining=max_requests - record.count,
            reset_at=record.reset_at,
        )

    def check_preset(self, identifier: str, resource_path: str, preset: RateLimitPreset) -> ThrottleResult:
        return self.check(identifier, resource_path, preset.window_seconds, preset.max_requests)

    def sweep(self) -> int:
        """Drop expired windows. Returns the number of records removed."""
        now = self._clock()
        expired = [key for key, record in self._records.items() if now >= record.reset_at]
        for key in expired:
            del self._records[key]
        return len(expired)

    def reset(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


def get_throttle(request: Request) -> RequestThrottle:
    return request.app.state.throttle


def rate_limited(preset: RateLimitPreset = RateLimitPresets.STANDARD):
    """Dependency factory: reject the request with 429 once the preset is exhausted."""

    async def dependency(request: Request) -> ThrottleResult:
        identifier = client_identifier(request.headers)
        path = request.url.path
        result = get_throttle(request).check_preset(identifier, path, preset)
        if not result.allowed:
            log_rate_limit_event(identifier, path, request.headers.get("user-agent"))
            raise RateLimitError(
                f"Rate limit exceeded. Please try again in {result.retry_after} seconds.",
                headers=result.headers(),
                retry_after=result.retry_after,
            )
        return result

    return dependency
