"""Pluggable memoization of the JWKS document.

The verifier only needs a backend with ``get(key)`` and ``set(key, value)``. Expiry and
eviction are the backend's business: a present value means "skip the fetch", ``None`` means
"fetch, then store".
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from .errors import OAuthProviderError

logger = logging.getLogger(__name__)

DEFAULT_CACHE_KEY = "oidc_jwks"


class CacheBackend(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


def remember(backend: CacheBackend, key: str, supplier: Callable[[], Any]) -> Any:
    """Return the cached value for ``key`` or fill it from ``supplier``.

    Falsy supplier results are returned but never stored. Two callers missing at the same
    time may both call ``supplier``; use :class:`KeyCache` for coalescing.
    """
    cached = backend.get(key)
    if cached is not None:
        logger.debug("cache hit for %s", key)
        return cached
    logger.debug("cache miss for %s", key)
    value = supplier()
    if value:
        backend.set(key, value)
    return value


class MemoryCache:
    """In-process backend with an optional time-to-live."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        now: Callable[[], float] | None = None,
    ) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl_seconds = ttl_seconds
        self._now = now or time.monotonic
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._now() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        expires_at = None if self._ttl_seconds is None else self._now() + self._ttl_seconds
        with self._lock:
            self._entries[key] = (value, expires_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class FileCache:
    """Stores one JSON object per key in a single file on disk."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("ignoring unreadable cache file %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        _write_json_atomic(self.path, data)


class CallableCache:
    """Adapts a pair of ``get``/``set`` callables, e.g. a framework cache's methods."""

    def __init__(
        self,
        get: Callable[[str], Any | None],
        set: Callable[[str, Any], None],  # noqa: A002 - mirrors the backend protocol
    ) -> None:
        self._get = get
        self._set = set

    def get(self, key: str) -> Any | None:
        return self._get(key)

    def set(self, key: str, value: Any) -> None:
        self._set(key, value)


class _Call:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.value: Any = None
        self.error: BaseException | None = None


class SingleFlight:
    """Lets concurrent callers for the same key share one in-flight call."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: dict[str, _Call] = {}

    def do(self, key: str, fn: Callable[[], Any]) -> Any:
        with self._lock:
            call = self._calls.get(key)
            leader = call is None
            if call is None:
                call = _Call()
                self._calls[key] = call

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value

        try:
            call.value = fn()
        except BaseException as exc:
            call.error = exc
            raise
        finally:
            with self._lock:
                del self._calls[key]
            call.done.set()
        return call.value


class _GuardedBackend:
    """Translates backend failures so they surface as provider errors."""

    def __init__(self, backend: CacheBackend) -> None:
        self._backend = backend

    def get(self, key: str) -> Any | None:
        try:
            return self._backend.get(key)
        except Exception as exc:  # noqa: BLE001 - backend is caller-supplied
            logger.warning("JWKS cache read failed: %s", exc)
            raise OAuthProviderError(f"JWKS cache read failed: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        try:
            self._backend.set(key, value)
        except Exception as exc:  # noqa: BLE001 - backend is caller-supplied
            logger.warning("JWKS cache write failed: %s", exc)
            raise OAuthProviderError(f"JWKS cache write failed: {exc}") from exc


class KeyCache:
    """The JWKS document memoized under one logical key.

    With ``single_flight`` (the default) concurrent misses in this process share one
    ``supplier`` call instead of each fetching and writing the cache.
    """

    def __init__(
        self,
        backend: CacheBackend,
        key: str = DEFAULT_CACHE_KEY,
        *,
        single_flight: bool = True,
    ) -> None:
        if not key:
            raise ValueError("cache key must be non-empty")
        self.backend = backend
        self.key = key
        self._guarded = _GuardedBackend(backend)
        self._flight = SingleFlight() if single_flight else None

    def remember(self, supplier: Callable[[], Any]) -> Any:
        if self._flight is None:
            return remember(self._guarded, self.key, supplier)
        cached = self._guarded.get(self.key)
        if cached is not None:
            logger.debug("cache hit for %s", self.key)
            return cached
        # The leader re-reads the backend, so a flight that just finished is not repeated.
        return self._flight.do(self.key, lambda: remember(self._guarded, self.key, supplier))

    def refresh(self, supplier: Callable[[], Any]) -> Any:
        """Fetch unconditionally and overwrite the cached document."""
        logger.info("refreshing cached JWKS under %s", self.key)
        if self._flight is None:
            return self._store(supplier())
        return self._flight.do(self.key, lambda: self._store(supplier()))

    def _store(self, value: Any) -> Any:
        if value:
            self._guarded.set(self.key, value)
        return value


def _write_json_atomic(path: Path, obj: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(obj, indent=2, sort_keys=True).encode("utf-8")
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            tmp_path = tmp.name
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path is not None and os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
    try:
        os.chmod(path, 0o600)
    except OSError:
        # Not all platforms/filesystems support chmod semantics; ignore.
        pass
