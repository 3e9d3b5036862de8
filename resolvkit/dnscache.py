"""A small cache of DNS responses keyed by question and upstream."""

from __future__ import annotations

import datetime
import threading
from dataclasses import dataclass
from typing import Optional

import cachetools
import dns.message

_ASCII_LOWER = str.maketrans("ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz")


@dataclass(frozen=True)
class CacheKey:
    """Identifies a cached response."""

    qtype: int
    qclass: int
    name: str
    upstream: str


@dataclass
class CacheValue:
    """A cached response and the time it stops being valid."""

    expire: datetime.datetime
    msg: dns.message.Message


class LRUCache:
    """A thread-safe, size-bounded cache of DNS responses."""

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError("must provide a positive size")
        self._cache: cachetools.LRUCache = cachetools.LRUCache(maxsize=size)
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[CacheValue]:
        """Return the cached value for key, or None."""
        with self._lock:
            return self._cache.get(key)

    def add(self, key: CacheKey, value: CacheValue) -> None:
        """Store value under key, evicting the least recently used entry if full."""
        with self._lock:
            self._cache[key] = value

    def purge(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._cache.clear()


def normalize_qname(name: str) -> str:
    """Lower-case the ASCII letters of a query name, leaving other characters alone."""
    return name.translate(_ASCII_LOWER)


def new_key(msg: dns.message.Message, upstream: str) -> CacheKey:
    """Build the cache key for the first question of msg."""
    if not msg.question:
        raise ValueError("message has no question")
    q = msg.question[0]
    return CacheKey(
        qtype=int(q.rdtype),
        qclass=int(q.rdclass),
        name=normalize_qname(q.name.to_text()),
        upstream=upstream,
    )


def new_value(msg: dns.message.Message, expire: datetime.datetime) -> CacheValue:
    """Build a cache value for msg expiring at expire."""
    return CacheValue(expire=expire, msg=msg)