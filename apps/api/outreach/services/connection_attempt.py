"""Guard against concurrent Gmail connection attempts from one client session.

The marker is two keys (in-progress flag and attempt timestamp) in whatever
client-local storage the caller provides. It is last-write-wins, not atomic:
two tabs racing can both acquire, costing at most one extra OAuth round trip.
"""

import time
from typing import Callable, Protocol

from fastapi import Request, Response

from outreach.core.config import settings

IN_PROGRESS_KEY = "gmail_connection_in_progress"
ATTEMPT_TIME_KEY = "gmail_connection_attempt_time"


class AttemptStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryAttemptStore:
    """Dict-backed store (one per client session)."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class CookieAttemptStore:
    """
    Store backed by the browser's cookies.

    Reads come from the incoming request, writes go to the outgoing response.
    Cookies expire on their own after the attempt TTL.
    """

    def __init__(
        self,
        request: Request,
        response: Response,
        *,
        path: str = "/integrations/gmail",
        max_age: int | None = None,
    ) -> None:
        self._values: dict[str, str | None] = dict(request.cookies)
        self._response = response
        self._path = path
        self._max_age = max_age or settings.GMAIL_CONNECT_ATTEMPT_TTL_SECONDS

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._response.set_cookie(
            key=key,
            value=value,
            max_age=self._max_age,
            httponly=True,
            samesite="lax",
            secure=settings.cookie_secure,
            path=self._path,
        )

    def delete(self, key: str) -> None:
        self._values[key] = None
        self._response.delete_cookie(key, path=self._path)


class ConnectionAttemptGuard:
    """Timestamped in-progress marker with staleness expiry."""

    def __init__(
        self,
        store: AttemptStore,
        *,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.GMAIL_CONNECT_ATTEMPT_TTL_SECONDS
        self._clock = clock

    def _attempt_time(self) -> float | None:
        if self.store.get(IN_PROGRESS_KEY) != "true":
            return None
        raw = self.store.get(ATTEMPT_TIME_KEY)
        try:
            return float(raw) if raw is not None else None
        except ValueError:
            return None

    def is_stale(self, ttl_seconds: int | None = None) -> bool:
        """True when there is no live marker (absent, unreadable, or older than the TTL)."""
        started = self._attempt_time()
        if started is None:
            return True
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return self._clock() - started >= ttl

    def is_in_progress(self) -> bool:
        return not self.is_stale()

    def try_acquire(self) -> bool:
        """Set a fresh marker unless a live one exists."""
        if self.is_in_progress():
            return False
        self.store.set(IN_PROGRESS_KEY, "true")
        self.store.set(ATTEMPT_TIME_KEY, str(self._clock()))
        return True

    def release(self) -> None:
        self.store.delete(IN_PROGRESS_KEY)
        self.store.delete(ATTEMPT_TIME_KEY)
