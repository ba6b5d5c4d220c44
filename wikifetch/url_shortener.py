from __future__ import annotations

import threading
from typing import Dict
from urllib.parse import urlsplit


class UrlShortener:
    """Replaces a URL's scheme+host prefix with a short numeric id.

    serialize("https://upload.example.org/a/b.png") -> "_1_/a/b.png". The
    mapping lives for one process only and is never persisted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: Dict[str, str] = {}
        self._by_prefix: Dict[str, str] = {}

    @staticmethod
    def _split(url: str) -> tuple[str, str]:
        parts = urlsplit(url)
        size = len(parts.scheme) + 1 if parts.scheme else 0
        if url[size:].startswith("//"):
            size += 2 + len(parts.netloc)
        return url[:size], url[size:]

    def serialize(self, url: str) -> str:
        prefix, path = self._split(url)
        with self._lock:
            cache_id = self._by_prefix.get(prefix)
            if cache_id is None:
                cache_id = str(len(self._by_id) + 1)
                self._by_id[cache_id] = prefix
                self._by_prefix[prefix] = cache_id
        return f"_{cache_id}_{path}"

    def deserialize(self, value: str) -> str:
        if not value.startswith("_"):
            return value
        cache_id, sep, path = value[1:].partition("_")
        if not sep:
            return value
        with self._lock:
            prefix = self._by_id.get(cache_id)
        if prefix is None:
            return value
        return f"{prefix}{path}"

    def __len__(self) -> int:
        return len(self._by_id)
