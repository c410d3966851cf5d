"""Short-lived response cache.

Entries are keyed by a ``Fingerprint``, a cheap structural proxy for
"nothing relevant changed": file path, cursor position, selected text and
content length. It does not hash the content by default, so an edit that
keeps the length unchanged can produce a stale hit within the TTL. That is
the accepted price for not hashing the buffer on every keystroke;
``CacheConfig.strict_fingerprint`` adds a content digest when precision
matters more.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from contextpilot.engine.schemas import CacheEntry
from contextpilot.engine.schemas import CacheStats
from contextpilot.observability import record_cache_lookup

logger = logging.getLogger(__name__)

Fingerprint = tuple[Any, ...]


def _digest(text: str) -> str:
    return hashlib.blake2b(text.encode("utf-8"), digest_size=16).hexdigest()


def completion_fingerprint(
    file_path: str | None,
    line: int,
    column: int,
    selected_text: str,
    content_length: int,
    content: str | None = None,
) -> Fingerprint:
    """Cache key of a completion request.

    Passing *content* appends a BLAKE2b digest of it (strict mode).
    """
    key: Fingerprint = (
        "completion",
        file_path or "",
        line,
        column,
        selected_text,
        content_length,
    )
    if content is not None:
        key += (_digest(content),)
    return key


def action_fingerprint(action: str, *parts: str) -> Fingerprint:
    """Cache key of a refactor/diagnosis/generation/review request."""
    return (action, *(_digest(part) for part in parts))


class CompletionCache:
    """TTL-bounded, size-bounded memo of dispatch results.

    Insertion order is kept in an ``OrderedDict``; once ``max_entries`` is
    exceeded the oldest entries are evicted first. Expiry is checked on
    every ``get`` so an entry older than ``ttl_seconds`` is never returned.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 30.0,
        max_entries: int = 256,
        name: str = "completion",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.name = name
        self._clock = clock
        self._entries: OrderedDict[Fingerprint, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, fingerprint: Fingerprint) -> CacheEntry | None:
        entry = self._entries.get(fingerprint)
        if entry is not None and self._expired(entry):
            del self._entries[fingerprint]
            entry = None
        hit = entry is not None
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        record_cache_lookup(cache=self.name, hit=hit)
        logger.debug("cache %s %s", self.name, "hit" if hit else "miss")
        return entry

    def put(self, fingerprint: Fingerprint, value: Any) -> CacheEntry:
        entry = CacheEntry(fingerprint=fingerprint, value=value, inserted_at=self._clock())
        self._entries[fingerprint] = entry
        self._entries.move_to_end(fingerprint)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return entry

    def evict_expired(self) -> int:
        """Drop every expired entry; return how many were removed."""
        expired = [key for key, entry in self._entries.items() if self._expired(entry)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(
            name=self.name,
            entries=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            ttl_seconds=self.ttl_seconds,
            max_entries=self.max_entries,
        )

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_seconds
