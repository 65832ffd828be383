"""
Session token storage for the tracking client.

Tokens expire after the same inactivity window the server applies, every
write slides the expiry forward.
"""

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

import orjson

DEFAULT_TTL_SECONDS = 30 * 60


class TokenStore(ABC):
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @abstractmethod
    def _load(self) -> Optional[dict]: ...

    @abstractmethod
    def _save(self, record: Optional[dict]) -> None: ...

    def get(self) -> Optional[str]:
        """The stored token, or None once it has expired."""
        record = self._load()
        if not record:
            return None
        if record.get('expires_at', 0) <= self._clock():
            self._save(None)
            return None
        return record.get('session_id')

    def set(self, session_id: str) -> None:
        self._save({'session_id': session_id, 'expires_at': self._clock() + self.ttl_seconds})

    def clear(self) -> None:
        self._save(None)


class MemoryTokenStore(TokenStore):
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        super().__init__(ttl_seconds, clock)
        self._record: Optional[dict] = None

    def _load(self) -> Optional[dict]:
        return self._record

    def _save(self, record: Optional[dict]) -> None:
        self._record = record


class FileTokenStore(TokenStore):
    """Keeps the token in a small JSON file so it survives restarts."""

    def __init__(
        self,
        path: str | Path,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(ttl_seconds, clock)
        self.path = Path(path)

    def _load(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        content = self.path.read_bytes()
        if not content:
            return None
        return orjson.loads(content)

    def _save(self, record: Optional[dict]) -> None:
        if record is None:
            self.path.unlink(missing_ok=True)
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(orjson.dumps(record))
