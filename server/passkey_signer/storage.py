"""User and credential storage for the relying party.

Both stores are keyed by the opaque user identifier. The in-memory
implementations are sufficient for a single process; a durable backend only
has to honour the same contract, in particular the compare-and-set semantics
of :meth:`CredentialStore.update_counter`.
"""
from __future__ import annotations

import abc
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

__all__ = [
    "Credential",
    "CredentialStore",
    "IdentityStore",
    "InMemoryCredentialStore",
    "InMemoryIdentityStore",
    "User",
    "default_user_name",
    "generate_user_id",
]

MAX_SIGN_COUNT = 2**64 - 1


def generate_user_id() -> str:
    """Return a fresh collision-resistant user identifier (32 hex chars)."""

    return secrets.token_bytes(16).hex()


def default_user_name(user_id: str) -> str:
    return f"user_{user_id[:6]}"


@dataclass(frozen=True)
class User:
    id: str
    name: str
    display_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "displayName": self.display_name}


@dataclass(frozen=True)
class Credential:
    """A registered authenticator.

    ``public_key`` holds the CBOR encoded COSE key exactly as the
    authenticator reported it.
    """

    credential_id: bytes
    public_key: bytes
    sign_count: int
    owner_user_id: str
    aaguid: bytes = bytes(16)
    registered_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not 0 <= self.sign_count <= MAX_SIGN_COUNT:
            raise ValueError(f"sign_count out of range: {self.sign_count}")


class IdentityStore(abc.ABC):
    @abc.abstractmethod
    def create_user(
        self,
        name: Optional[str] = None,
        display_name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        """Create a user, generating the identifier unless ``user_id`` is given.

        Without a name the user is called ``user_<first six id characters>``.
        Raises :class:`ValueError` if ``user_id`` is already taken.
        """

    @abc.abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        """Return the user or ``None``."""


class CredentialStore(abc.ABC):
    @abc.abstractmethod
    def add_credential(self, user_id: str, credential: Credential) -> bool:
        """Append ``credential`` to the user's set; ``False`` if the user is unknown."""

    @abc.abstractmethod
    def list_credentials(self, user_id: str) -> List[Credential]:
        """Return the user's credentials, possibly empty."""

    @abc.abstractmethod
    def find_credential(self, user_id: str, credential_id: bytes) -> Optional[Credential]:
        """Return the matching credential or ``None``."""

    @abc.abstractmethod
    def update_counter(self, user_id: str, credential_id: bytes, new_counter: int) -> bool:
        """Store ``new_counter`` only if it is strictly greater than the current one."""


class InMemoryIdentityStore(IdentityStore):
    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def create_user(
        self,
        name: Optional[str] = None,
        display_name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> User:
        with self._lock:
            if user_id is None:
                user_id = generate_user_id()
                while user_id in self._users:
                    user_id = generate_user_id()
            elif user_id in self._users:
                raise ValueError(f"user {user_id} already exists")
            name = name or default_user_name(user_id)
            user = User(id=user_id, name=name, display_name=display_name or name)
            self._users[user_id] = user
            return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


class InMemoryCredentialStore(CredentialStore):
    """Credential sets keyed by user id.

    The identity store is consulted so that a credential can never be owned by
    a user that does not exist.
    """

    def __init__(self, identities: IdentityStore) -> None:
        self._identities = identities
        self._credentials: Dict[str, List[Credential]] = {}
        self._lock = threading.Lock()

    def add_credential(self, user_id: str, credential: Credential) -> bool:
        if self._identities.get_user(user_id) is None:
            return False
        if credential.owner_user_id != user_id:
            credential = replace(credential, owner_user_id=user_id)

        with self._lock:
            entries = self._credentials.setdefault(user_id, [])
            for index, existing in enumerate(entries):
                if existing.credential_id == credential.credential_id:
                    # Re-registration never rewinds the counter.
                    entries[index] = replace(
                        credential,
                        sign_count=max(existing.sign_count, credential.sign_count),
                    )
                    break
            else:
                entries.append(credential)
        return True

    def list_credentials(self, user_id: str) -> List[Credential]:
        with self._lock:
            return list(self._credentials.get(user_id, ()))

    def find_credential(self, user_id: str, credential_id: bytes) -> Optional[Credential]:
        with self._lock:
            for credential in self._credentials.get(user_id, ()):
                if credential.credential_id == credential_id:
                    return credential
        return None

    def update_counter(self, user_id: str, credential_id: bytes, new_counter: int) -> bool:
        if not 0 <= new_counter <= MAX_SIGN_COUNT:
            return False

        with self._lock:
            entries = self._credentials.get(user_id)
            if not entries:
                return False
            for index, existing in enumerate(entries):
                if existing.credential_id != credential_id:
                    continue
                if new_counter <= existing.sign_count:
                    return False
                entries[index] = replace(existing, sign_count=new_counter)
                return True
        return False
