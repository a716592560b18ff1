"""Token pool shared by every worker of a crawl."""

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import NoValidCredentialsError


@dataclass(eq=False)
class Credential:
    """A GitHub token and what we last learned about its quota."""

    value: str = field(repr=False)
    valid: bool = True
    remaining: int | None = None
    reset_at: float | None = None  # unix timestamp
    tried: bool = False  # selected during the current sweep

    @property
    def label(self) -> str:
        """Masked form safe for logs."""
        return f"...{self.value[-4:]}" if len(self.value) > 4 else "****"

    def __repr__(self) -> str:
        return (
            f"Credential({self.label}, valid={self.valid}, "
            f"remaining={self.remaining}, reset_at={self.reset_at})"
        )


class Rotation(Enum):
    ADVANCED = "advanced"
    STALE = "stale"  # another worker already moved past the expected credential
    WRAPPED = "wrapped"  # every valid credential was tried, back to the first


class CredentialPool:
    """Ordered tokens with a cursor to the one in use.

    Every read of the cursor and every mutation happens under one lock, so
    concurrent workers always agree on which credential is current.
    """

    def __init__(self, tokens: Iterable[str]):
        self._credentials = [Credential(t) for t in dict.fromkeys(tokens) if t]
        if not self._credentials:
            raise ValueError("At least one GitHub token is required")
        self._lock = threading.Lock()
        self._index = 0
        self._credentials[0].tried = True

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def credentials(self) -> list[Credential]:
        with self._lock:
            return list(self._credentials)

    @property
    def valid_count(self) -> int:
        with self._lock:
            return sum(1 for c in self._credentials if c.valid)

    def current(self) -> Credential:
        """Return the credential in use.

        Raises NoValidCredentialsError once every token has been invalidated.
        """
        with self._lock:
            credential = self._credentials[self._index]
            if not credential.valid:
                raise NoValidCredentialsError("No valid GitHub token left in the pool")
            return credential

    def rotate(self, expected: Credential | None = None) -> Rotation:
        """Move to the next valid credential not yet tried in this sweep.

        When ``expected`` is given and is no longer current, another worker
        already rotated past it and nothing happens (``Rotation.STALE``).
        ``Rotation.WRAPPED`` means every valid credential had been tried and
        the pool started a new sweep from the first one, so all of them are
        out of quota.
        """
        with self._lock:
            if expected is not None and self._credentials[self._index] is not expected:
                return Rotation.STALE
            return Rotation.WRAPPED if self._advance() else Rotation.ADVANCED

    def invalidate(self, credential: Credential) -> None:
        """Permanently retire a credential the API rejected."""
        with self._lock:
            credential.valid = False
            credential.remaining = 0
            if self._credentials[self._index] is credential and any(
                c.valid for c in self._credentials
            ):
                self._advance()

    def observe(self, credential: Credential, remaining: int | None, reset_at: float | None) -> None:
        """Record the quota headers of a response sent with ``credential``."""
        with self._lock:
            if remaining is not None:
                credential.remaining = remaining
            if reset_at is not None:
                credential.reset_at = reset_at

    def earliest_reset(self) -> float | None:
        """Soonest known quota reset among valid credentials."""
        with self._lock:
            resets = [c.reset_at for c in self._credentials if c.valid and c.reset_at is not None]
        return min(resets) if resets else None

    def _advance(self) -> bool:
        # Caller holds the lock
        size = len(self._credentials)
        for step in range(1, size + 1):
            index = (self._index + step) % size
            candidate = self._credentials[index]
            if candidate.valid and not candidate.tried:
                candidate.tried = True
                self._index = index
                return False

        valid = [i for i, c in enumerate(self._credentials) if c.valid]
        if not valid:
            raise NoValidCredentialsError("No valid GitHub token left in the pool")
        for i in valid:
            self._credentials[i].tried = False
        self._index = valid[0]
        self._credentials[self._index].tried = True
        return True
