from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

import redis

logger = logging.getLogger(__name__)

T = TypeVar("T")

Batch = List[Tuple[str, Any]]


def encode_value(value: Any) -> str:
    """Strings are stored as-is, everything else as JSON."""
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def decode_value(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class StorageBase(ABC, Generic[T]):
    """Abstract interface of a named persistent hash table."""

    @abstractmethod
    def get(self, key: str) -> Optional[T]:
        """Return the value stored under key, or None."""

    @abstractmethod
    def get_many(self, keys: Sequence[str]) -> List[Optional[T]]:
        """Return values for keys, in order, None for absent keys."""

    @abstractmethod
    def set(self, key: str, value: T) -> None:
        """Store value under key."""

    @abstractmethod
    def set_many(self, values: Dict[str, T]) -> None:
        """Store every key/value pair of values."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return every key of the table."""

    @abstractmethod
    def len(self) -> int:
        """Return the number of keys in the table."""

    @abstractmethod
    def flush(self) -> None:
        """Delete the whole table."""


class RedisKvs(StorageBase[T]):
    """A Redis hash used as a resumable per-item state table.

    iterate_items() walks the hash with HSCAN from several worker threads.
    All workers share one cursor and scan calls never overlap; batches are
    processed concurrently. The pass ends as soon as a scan returns cursor 0.
    """

    def __init__(self, client: redis.Redis, table: str, scan_count: Optional[int] = None) -> None:
        self._client = client
        self._table = table
        self._scan_count = scan_count
        self._scan_lock = threading.Lock()
        self._scan_cursor = 0
        self._pass_complete = False

    @classmethod
    def from_url(cls, url: str, table: str, **kwargs) -> "RedisKvs":
        return cls(redis.Redis.from_url(url, decode_responses=True), table, **kwargs)

    @property
    def table(self) -> str:
        return self._table

    def get(self, key: str) -> Optional[T]:
        return decode_value(self._client.hget(self._table, key))

    def get_many(self, keys: Sequence[str]) -> List[Optional[T]]:
        if not keys:
            return []
        return [decode_value(v) for v in self._client.hmget(self._table, list(keys))]

    def set(self, key: str, value: T) -> None:
        self._client.hset(self._table, key, encode_value(value))

    def set_many(self, values: Dict[str, T]) -> None:
        if not values:
            return
        self._client.hset(self._table, mapping={k: encode_value(v) for k, v in values.items()})

    def delete(self, key: str) -> None:
        self._client.hdel(self._table, key)

    def keys(self) -> List[str]:
        return list(self._client.hkeys(self._table))

    def len(self) -> int:
        return int(self._client.hlen(self._table))

    def flush(self) -> None:
        self._client.delete(self._table)

    def scan(self) -> Tuple[int, List[Tuple[str, str]]]:
        """Fetch the next raw batch at the shared cursor and advance it."""
        with self._scan_lock:
            return self._scan_locked()

    def _scan_locked(self) -> Tuple[int, List[Tuple[str, str]]]:
        cursor, items = self._client.hscan(self._table, cursor=self._scan_cursor, count=self._scan_count)
        self._scan_cursor = int(cursor)
        return self._scan_cursor, list(items.items())

    def _next_batch(self) -> Optional[Batch]:
        """Next decoded batch for a worker, or None once the pass is complete."""
        with self._scan_lock:
            if self._pass_complete:
                return None
            cursor, items = self._scan_locked()
            if cursor == 0:
                self._pass_complete = True
        return [(key, decode_value(raw)) for key, raw in items]

    def iterate_items(self, num_workers: int, fn: Callable[[Batch, int], None]) -> None:
        """Visit every key at least once, feeding batches to num_workers workers."""
        num_workers = max(1, int(num_workers))
        with self._scan_lock:
            self._scan_cursor = 0
            self._pass_complete = False

        def worker(worker_id: int) -> None:
            while True:
                batch = self._next_batch()
                if batch is None:
                    return
                try:
                    fn(batch, worker_id)
                except Exception:
                    with self._scan_lock:
                        self._pass_complete = True
                    raise

        with ThreadPoolExecutor(max_workers=num_workers, thread_name_prefix=f"kvs-{self._table}") as pool:
            futures = [pool.submit(worker, i) for i in range(num_workers)]
        errors = [f.exception() for f in futures if f.exception() is not None]
        if errors:
            logger.error("iterate_items over [%s] failed in %d worker(s)", self._table, len(errors))
            raise errors[0]
