"""Failed-login tracking per (email, IP). Locks the pair after N failures."""
import math
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

MAX_ATTEMPTS = 5
LOCKOUT_SECONDS = 15 * 60
ATTEMPT_WINDOW_SECONDS = 15 * 60


@dataclass
class LoginAttempt:
    count: int
    first_attempt_at: float
    last_attempt_at: float
    locked_until: float | None = None


@dataclass(frozen=True)
class LockStatus:
    locked: bool
    remaining_seconds: int | None = None
    attempts_remaining: int | None = None


class LoginGuard:
    def __init__(
        self,
        max_attempts: int = MAX_ATTEMPTS,
        lockout_seconds: float = LOCKOUT_SECONDS,
        attempt_window_seconds: float = ATTEMPT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.attempt_window = attempt_window_seconds
        self._clock = clock
        self._attempts: dict[str, LoginAttempt] = {}

    @staticmethod
    def _key(email: str, ip: str) -> str:
        return f"{email.lower()}:{ip}"

    def is_locked(self, email: str, ip: str) -> LockStatus:
        key = self._key(email, ip)
        attempt = self._attempts.get(key)
        if attempt is None:
            return LockStatus(locked=False, attempts_remaining=self.max_attempts)

        now = self._clock()
        if attempt.locked_until is not None and now < attempt.locked_until:
            return LockStatus(locked=True, remaining_seconds=math.ceil(attempt.locked_until - now))

        if now - attempt.first_attempt_at > self.attempt_window:
            del self._attempts[key]
            return LockStatus(locked=False, attempts_remaining=self.max_attempts)

        return LockStatus(locked=False, attempts_remaining=max(0, self.max_attempts - attempt.count))

    def record_failure(self, email: str, ip: str) -> LockStatus:
        key = self._key(email, ip)
        now = self._clock()
        attempt = self._attempts.get(key)

        # A stale window restarts the budget, the old record is not reused
        if attempt is None or now - attempt.first_attempt_at > self.attempt_window:
            self._attempts[key] = LoginAttempt(count=1, first_attempt_at=now, last_attempt_at=now)
            return LockStatus(locked=False, attempts_remaining=self.max_attempts - 1)

        attempt.count += 1
        attempt.last_attempt_at = now

        if attempt.count >= self.max_attempts:
            attempt.locked_until = now + self.lockout_seconds
            return LockStatus(
                locked=True,
                remaining_seconds=math.ceil(self.lockout_seconds),
                attempts_remaining=0,
            )
        return LockStatus(locked=False, attempts_remaining=self.max_attempts - attempt.count)

    def record_success(self, email: str, ip: str) -> None:
        self._attempts.pop(self._key(email, ip), None)

    def unlock(self, email: str, ip: str) -> None:
        """Administrative override."""
        self._attempts.pop(self._key(email, ip), None)

    def attempt_info(self, email: str, ip: str) -> LoginAttempt | None:
        return self._attempts.get(self._key(email, ip))

    def active_lockouts(self) -> list[dict]:
        now = self._clock()
        return [
            {"identifier": key, "count": attempt.count, "locked_until": attempt.locked_until}
            for key, attempt in self._attempts.items()
            if attempt.locked_until is not None and now < attempt.locked_until
        ]

    def sweep(self) -> int:
        """Forget records with no active lockout and no recent activity."""
        now = self._clock()
        stale = []
        for key, attempt in self._attempts.items():
            idle = now - attempt.last_attempt_at > self.attempt_window
            if attempt.locked_until is not None:
                if now > attempt.locked_until and idle:
                    stale.append(key)
            elif idle:
                stale.append(key)
        for key in stale:
            del self._attempts[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._attempts)


def get_login_guard(request: Request) -> LoginGuard:
    return request.app.state.login_guard
