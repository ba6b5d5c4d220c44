from __future__ import annotations

import hashlib
import json
import logging
import os
from typing import Optional

from .errors import CacheWriteError
from .models import FetchedContent

logger = logging.getLogger(__name__)


class DiskCache:
    """One file per downloaded resource, named by the md5 of its URL.

    Response headers are kept beside the content in `<name>.headers` as JSON.
    """

    def __init__(self, directory: str) -> None:
        self._dir = directory

    @property
    def directory(self) -> str:
        return self._dir

    def path_for(self, url: str) -> str:
        return os.path.join(self._dir, hashlib.md5(url.encode("utf-8")).hexdigest())

    def read(self, url: str) -> Optional[FetchedContent]:
        """Return the cached response for url, or None on a miss."""
        path = self.path_for(url)
        logger.debug("Finding cached download for [%s] ([%s])", url, path)
        try:
            with open(path, "rb") as f:
                content = f.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Unreadable cached download for [%s], treating as a miss: %s", url, exc)
            return None

        headers = None
        try:
            with open(f"{path}.headers", "r", encoding="utf-8") as f:
                headers = json.load(f)
        except (OSError, ValueError):
            headers = None
        return FetchedContent(content=content, headers=headers)

    def write(self, url: str, value: FetchedContent) -> None:
        path = self.path_for(url)
        logger.info("Caching response for [%s] to [%s]", url, path)
        try:
            os.makedirs(self._dir, exist_ok=True)
            with open(path, "wb") as f:
                f.write(value.content)
            with open(f"{path}.headers", "w", encoding="utf-8") as f:
                json.dump(value.headers or {}, f, ensure_ascii=False)
        except (OSError, TypeError, ValueError) as exc:
            raise CacheWriteError(f"Failed to cache download for [{url}]: {exc}") from exc
