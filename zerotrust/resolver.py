"""
Public-Key Resolver.

Maps a username to the public key currently registered in the ledger,
behind a TTL cache. The cache is the only state shared across requests:
a dict behind a lock, entries replaced whole, never mutated in place.

Cache misses call the ledger with a bounded timeout. Timeouts and
LedgerUnavailable are retried with exponential backoff; once attempts are
exhausted the caller gets ResolverUnavailable (503, retryable). A missing
identity is not retried and surfaces as IdentityNotFound.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import IdentityNotFound, ResolverUnavailable
from .ledger import Identity, Ledger, LedgerUnavailable
from .logging_config import audit_log
from .retry import call_with_retry

DEFAULT_CACHE_TTL = 300


class LookupTimeout(Exception):
    """A single ledger lookup exceeded the resolver timeout."""


@dataclass(frozen=True)
class PublicKeyCacheEntry:
    """Cached key for one username. Replaced, never mutated."""
    public_key: str
    key_type: str
    cached_at: float
    user_id: Any = None

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return (now - self.cached_at) < ttl_seconds


class PublicKeyResolver:
    """
    TTL-cached username -> current public key lookup.

    Usage:
        resolver = PublicKeyResolver(ledger, max_credential_ttl=3600)
        resolver.attach(ledger)      # invalidate on key rotation
        key = resolver.resolve("alice")
    """

    def __init__(
        self,
        ledger: Ledger,
        ttl_seconds: float = DEFAULT_CACHE_TTL,
        lookup_timeout: float = 2.0,
        retries: int = 2,
        backoff_base: float = 0.05,
        max_credential_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_credential_ttl is not None and ttl_seconds > max_credential_ttl:
            raise ValueError(
                f"cache TTL {ttl_seconds}s exceeds maximum credential lifetime {max_credential_ttl}s"
            )
        if lookup_timeout <= 0:
            raise ValueError("lookup_timeout must be positive")
        if retries < 0:
            raise ValueError("retries must be >= 0")

        self.ledger = ledger
        self.ttl_seconds = ttl_seconds
        self.lookup_timeout = lookup_timeout
        self.retries = retries
        self.backoff_base = backoff_base
        self._clock = clock
        self._sleep = sleep
        self._cache: Dict[str, PublicKeyCacheEntry] = {}
        # Bumped on invalidate/clear so a load that raced one is not stored.
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="key-resolver")
        self._hits = 0
        self._misses = 0

    def attach(self, ledger: Any) -> None:
        """Subscribe to a ledger's key-rotation events."""
        ledger.add_rotation_listener(self.invalidate)

    def resolve(self, username: str) -> str:
        """Return the current public key hex for a username."""
        return self.resolve_entry(username).public_key

    def resolve_entry(self, username: str) -> PublicKeyCacheEntry:
        """
        Return the cache entry for a username, loading it on a miss.

        Raises:
            IdentityNotFound: The ledger has no such identity
            ResolverUnavailable: The ledger did not answer in time
        """
        now = self._clock()
        with self._lock:
            entry = self._cache.get(username)
            if entry is not None and entry.is_fresh(now, self.ttl_seconds):
                self._hits += 1
                return entry
            self._misses += 1
            generation = (self._epoch, self._generations.get(username, 0))

        identity = self._load(username)
        if identity is None:
            raise IdentityNotFound(f"no identity registered for {username}")

        entry = PublicKeyCacheEntry(
            public_key=identity.public_key,
            key_type=identity.key_type,
            cached_at=self._clock(),
            user_id=identity.id,
        )
        with self._lock:
            stored = generation == (self._epoch, self._generations.get(username, 0))
            if stored:
                self._cache[username] = entry
        audit_log.cache_event("store" if stored else "store_skipped", username)
        return entry

    def invalidate(self, username: str) -> bool:
        """Drop a username's entry. Returns True if one was cached."""
        with self._lock:
            removed = self._cache.pop(username, None) is not None
            self._generations[username] = self._generations.get(username, 0) + 1
        audit_log.cache_event("invalidate", username, removed=removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._generations.clear()
            self._epoch += 1
        audit_log.cache_event("clear")

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
                "ttl_seconds": self.ttl_seconds,
            }

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _lookup_once(self, username: str) -> Optional[Identity]:
        future = self._executor.submit(self.ledger.lookup_identity, username)
        try:
            return future.result(timeout=self.lookup_timeout)
        except FutureTimeout as e:
            future.cancel()
            raise LookupTimeout(f"lookup for {username} exceeded {self.lookup_timeout}s") from e

    def _load(self, username: str) -> Optional[Identity]:
        try:
            return call_with_retry(
                lambda: self._lookup_once(username),
                exceptions=(LookupTimeout, LedgerUnavailable),
                tries=self.retries + 1,
                base_delay=self.backoff_base,
                max_delay=max(self.backoff_base * 8, self.backoff_base),
                sleep=self._sleep,
                description=f"lookup_identity({username})",
            )
        except (LookupTimeout, LedgerUnavailable) as e:
            audit_log.cache_event("lookup_failed", username, error=repr(e))
            raise ResolverUnavailable(str(e)) from e
