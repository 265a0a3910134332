"""Single-use challenge storage for WebAuthn ceremonies."""
from __future__ import annotations

import abc
import enum
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

__all__ = [
    "Challenge",
    "ChallengeKind",
    "ChallengeStore",
    "InMemoryChallengeStore",
]


class ChallengeKind(str, enum.Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"
    SIGNING = "signing"


@dataclass(frozen=True)
class Challenge:
    """An outstanding challenge.

    For signing ceremonies ``data`` holds the caller's original payload.
    """

    owner_user_id: str
    value: bytes
    kind: ChallengeKind
    data: Optional[bytes] = None
    issued_at: float = field(default_factory=time.monotonic)

    def is_expired(self, lifetime: Optional[float], now: Optional[float] = None) -> bool:
        if lifetime is None:
            return False
        current = time.monotonic() if now is None else now
        return current - self.issued_at > lifetime


class ChallengeStore(abc.ABC):
    """At most one outstanding challenge per user."""

    @abc.abstractmethod
    def put(
        self,
        user_id: str,
        value: bytes,
        kind: ChallengeKind,
        data: Optional[bytes] = None,
    ) -> Challenge:
        """Replace any challenge held for ``user_id``."""

    @abc.abstractmethod
    def take(self, user_id: str) -> Optional[Challenge]:
        """Atomically remove and return the user's challenge."""

    @abc.abstractmethod
    def peek(self, user_id: str) -> Optional[Challenge]:
        """Return the user's challenge without consuming it."""


class InMemoryChallengeStore(ChallengeStore):
    def __init__(self) -> None:
        self._challenges: Dict[str, Challenge] = {}
        self._lock = threading.Lock()

    def put(
        self,
        user_id: str,
        value: bytes,
        kind: ChallengeKind,
        data: Optional[bytes] = None,
    ) -> Challenge:
        challenge = Challenge(
            owner_user_id=user_id,
            value=bytes(value),
            kind=ChallengeKind(kind),
            data=None if data is None else bytes(data),
        )
        with self._lock:
            self._challenges[user_id] = challenge
        return challenge

    def take(self, user_id: str) -> Optional[Challenge]:
        with self._lock:
            return self._challenges.pop(user_id, None)

    def peek(self, user_id: str) -> Optional[Challenge]:
        with self._lock:
            return self._challenges.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)
