"""Shared key/value state with TTL expiry and atomic counters."""

from __future__ import annotations

import fcntl
import json
import logging
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore:
    """Interface for the store backing circuit breaker state.

    Every mutation must be atomic for callers sharing a key, including callers
    in other processes when the implementation is shared.
    """

    def get(self, key: str) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def increment(self, key: str, amount: int = 1, ttl: Optional[float] = None) -> int:  # pragma: no cover - interface
        raise NotImplementedError

    def compare_and_set(
        self, key: str, expected: Any, value: Any, ttl: Optional[float] = None
    ) -> bool:  # pragma: no cover - interface
        """Store ``value`` only when the current value equals ``expected``.

        ``expected=None`` matches a missing (or expired) key.
        """

        raise NotImplementedError


Entry = Tuple[Any, Optional[float]]


def _live(entry: Optional[Entry], now: float) -> bool:
    return entry is not None and (entry[1] is None or entry[1] > now)


def _expiry(ttl: Optional[float], now: float) -> Optional[float]:
    return None if ttl is None else now + ttl


def _increment_entry(entry: Optional[Entry], amount: int, ttl: Optional[float], now: float) -> Entry:
    """Return the incremented entry.

    A fresh counter takes ``ttl``; an existing counter keeps its expiry so the
    window is bounded by the first failure, not the latest one.
    """

    if _live(entry, now):
        value, expires_at = entry  # type: ignore[misc]
        return int(value) + amount, expires_at
    return amount, _expiry(ttl, now)


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store used by tests and single-process deployments."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if not _live(entry, self._clock()):
                self._entries.pop(key, None)
                return None
            return entry[0]  # type: ignore[index]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = (value, _expiry(ttl, self._clock()))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def increment(self, key: str, amount: int = 1, ttl: Optional[float] = None) -> int:
        with self._lock:
            entry = _increment_entry(self._entries.get(key), amount, ttl, self._clock())
            self._entries[key] = entry
            return int(entry[0])

    def compare_and_set(self, key: str, expected: Any, value: Any, ttl: Optional[float] = None) -> bool:
        with self._lock:
            now = self._clock()
            entry = self._entries.get(key)
            current = entry[0] if _live(entry, now) else None  # type: ignore[index]
            if current != expected:
                return False
            self._entries[key] = (value, _expiry(ttl, now))
            return True


class FileKeyValueStore(KeyValueStore):
    """JSON-backed store shared by processes on one host.

    Writes go through an exclusive ``fcntl`` lock on a sibling lock file and an
    atomic replace of the data file.
    """

    def __init__(self, path: Path, *, clock: Clock = time.time) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _locked(self) -> Iterator[Dict[str, Entry]]:
        with open(self._lock_path, "a+", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                entries = self._read()
                yield entries
                now = self._clock()
                live = {key: entry for key, entry in entries.items() if _live(entry, now)}
                _atomic_write(self._path, json.dumps({key: list(entry) for key, entry in live.items()}))
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _read(self) -> Dict[str, Entry]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable state file %s: %s", self._path, exc)
            return {}
        return {key: (value[0], value[1]) for key, value in payload.items()}

    def get(self, key: str) -> Any:
        entry = self._read().get(key)
        if not _live(entry, self._clock()):
            return None
        return entry[0]  # type: ignore[index]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._locked() as entries:
            entries[key] = (value, _expiry(ttl, self._clock()))

    def delete(self, key: str) -> None:
        with self._locked() as entries:
            entries.pop(key, None)

    def increment(self, key: str, amount: int = 1, ttl: Optional[float] = None) -> int:
        with self._locked() as entries:
            entry = _increment_entry(entries.get(key), amount, ttl, self._clock())
            entries[key] = entry
            return int(entry[0])

    def compare_and_set(self, key: str, expected: Any, value: Any, ttl: Optional[float] = None) -> bool:
        with self._locked() as entries:
            now = self._clock()
            entry = entries.get(key)
            current = entry[0] if _live(entry, now) else None  # type: ignore[index]
            if current != expected:
                return False
            entries[key] = (value, _expiry(ttl, now))
            return True


def _atomic_write(path: Path, content: str) -> None:
    tmp = tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding="utf-8")
    try:
        with tmp as f:
            f.write(content)
            f.flush()
        Path(tmp.name).replace(path)
    except Exception:
        Path(tmp.name).unlink(missing_ok=True)
        raise


__all__ = ["FileKeyValueStore", "KeyValueStore", "MemoryKeyValueStore"]
