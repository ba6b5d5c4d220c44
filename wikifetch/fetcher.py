from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Dict, Optional, Tuple

from .backoff import BackoffPolicy, BackoffStrategy
from .cache import DiskCache
from .config import FetcherConfig
from .errors import CacheWriteError, RateLimitedError, TransportError
from .http import HTML_ACCEPT, HttpResponse, HttpTransport, RequestOptions, raise_for_status, request_method_for
from .images import ImageCompressor, is_image_mime, is_image_url
from .metrics import FetchMetrics
from .models import FetchedContent, FetchEvent
from .object_store import S3Cache
from .throttle import RequestThrottle
from .url_shortener import UrlShortener

logger = logging.getLogger(__name__)

FIND_HTTP_REGEX = re.compile(r"^https?://", re.IGNORECASE)

_ContentResult = Tuple[FetchedContent, Optional[str], int]


def strip_http(url: str) -> str:
    return FIND_HTTP_REGEX.sub("", url)


class ContentFetcher:
    """The only path from the pipeline to the network.

    Every request takes a throttle slot and runs under the backoff policy.
    fetch_content additionally consults the local download cache and, for
    image URLs, the object-store cache of optimized images.
    """

    def __init__(
        self,
        config: FetcherConfig,
        transport: Optional[HttpTransport] = None,
        throttle: Optional[RequestThrottle] = None,
        backoff: Optional[BackoffPolicy] = None,
        shortener: Optional[UrlShortener] = None,
        disk_cache: Optional[DiskCache] = None,
        object_store: Optional[S3Cache] = None,
        compressor: Optional[ImageCompressor] = None,
        metrics: Optional[FetchMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.login_cookie = ""
        self._transport = transport or HttpTransport(impersonate=config.impersonate)
        self._throttle = throttle or RequestThrottle(config.initial_ceiling, poll_seconds=config.throttle_poll_seconds)
        self._backoff = backoff or BackoffPolicy(
            BackoffStrategy(config.backoff_base_seconds, config.backoff_max_seconds),
            max_retries=config.max_retries,
            sleep=sleep,
        )
        self._shortener = shortener or UrlShortener()
        if disk_cache is None and config.use_download_cache and config.download_cache_dir:
            disk_cache = DiskCache(config.download_cache_dir)
        self._disk_cache = disk_cache
        if object_store is None and config.optimisation_cache_url:
            object_store = S3Cache.from_url(config.optimisation_cache_url)
        self._object_store = object_store
        self._compressor = compressor or ImageCompressor()
        self.metrics = metrics or FetchMetrics()
        self._sleep = sleep

    @property
    def throttle(self) -> RequestThrottle:
        return self._throttle

    @property
    def shortener(self) -> UrlShortener:
        return self._shortener

    def serialize_url(self, url: str) -> str:
        return self._shortener.serialize(url)

    def deserialize_url(self, url: str) -> str:
        return self._shortener.deserialize(url)

    # JSON

    def fetch_json(self, url: str) -> Any:
        url = self._shortener.deserialize(url)
        start = time.time()
        retries = [0]

        def count_retry(attempt: int, delay: float, exc: BaseException) -> None:
            retries[0] = attempt

        self._throttle.claim()
        try:
            data = self._backoff.call(lambda: self._get_json_once(url), on_retry=count_retry)
        except Exception as exc:
            status = getattr(exc, "status", None)
            logger.warning("Failed to get [%s] [status=%s]", url, status)
            self._record(url, "json", start, False, status, retries=retries[0], error_type=type(exc).__name__)
            raise
        finally:
            self._throttle.release()
        self._record(url, "json", start, True, 200, retries=retries[0])
        return data

    def _get_json_once(self, url: str) -> Any:
        reissues = 0
        while True:
            resp = self._transport.request(self._json_options(url))
            if resp.status_code != 429:
                break
            self._on_rate_limited(url)
            reissues += 1
            self._sleep(self._backoff.strategy.get_sleep(reissues))
        raise_for_status(resp, url)
        try:
            return json.loads(resp.content)
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from [{url}]", status=resp.status_code, url=url) from exc

    def _json_options(self, url: str) -> RequestOptions:
        headers = {"accept": "application/json", "user-agent": self.config.user_agent}
        if self.login_cookie:
            headers["cookie"] = self.login_cookie
        return RequestOptions(url=url, method="GET", headers=headers, timeout=self.config.request_timeout)

    # Binary content

    def fetch_content(self, url: str) -> FetchedContent:
        if not url:
            raise ValueError(f"Parameter [{url}] is not a valid url")
        url = self._shortener.deserialize(url)
        start = time.time()

        if self._disk_cache is not None:
            cached = self._disk_cache.read(url)
            if cached is not None:
                logger.info("Download cache hit for [%s]", url)
                self._record(url, "content", start, True, None, cache_hit="disk")
                return cached

        options = self.request_options(url)
        retries = [0]

        def count_retry(attempt: int, delay: float, exc: BaseException) -> None:
            retries[0] = attempt

        self._throttle.claim()
        try:
            value, cache_hit, saved = self._backoff.call(lambda: self._get_content_once(options), on_retry=count_retry)
        except Exception as exc:
            status = getattr(exc, "status", None)
            logger.warning("Failed to get [%s] [status=%s]", url, status)
            self._record(url, "content", start, False, status, retries=retries[0], error_type=type(exc).__name__)
            raise
        finally:
            self._throttle.release()

        if self._disk_cache is not None:
            try:
                self._disk_cache.write(url, value)
            except CacheWriteError as exc:
                logger.warning("%s", exc)
        self._record(url, "content", start, True, 200, cache_hit=cache_hit, retries=retries[0], bytes_saved=saved)
        return value

    def request_options(self, url: str) -> RequestOptions:
        headers = {
            "accept": HTML_ACCEPT,
            "cache-control": "public, max-stale=86400",
            "accept-encoding": "gzip, deflate",
            "user-agent": self.config.user_agent,
        }
        if self.login_cookie:
            headers["cookie"] = self.login_cookie
        return RequestOptions(
            url=url,
            method=request_method_for(url),
            headers=headers,
            timeout=self.config.request_timeout,
        )

    def _get_content_once(self, options: RequestOptions) -> _ContentResult:
        logger.info("Downloading [%s]", options.url)
        try:
            if self._object_store is not None and is_image_url(options.url):
                stored = self._object_store.download_if_possible(strip_http(options.url))
                if stored is not None:
                    return stored, "object_store", 0
                return self._download_compress_and_upload(options)

            resp = self._download(options)
            content = self._compress(resp)
            return FetchedContent(content, self._headers_for(resp, content)), None, len(resp.content) - len(content)
        except RateLimitedError:
            self._on_rate_limited(options.url)
            raise

    def _download_compress_and_upload(self, options: RequestOptions) -> _ContentResult:
        resp = self._download(options)
        etag = resp.headers.get("etag")
        content = self._compress(resp)
        if etag:
            self._object_store.upload_blob(
                strip_http(options.url),
                content,
                etag,
                content_type=resp.headers.get("content-type"),
            )
        return FetchedContent(content, self._headers_for(resp, content)), None, len(resp.content) - len(content)

    def _download(self, options: RequestOptions) -> HttpResponse:
        resp = self._transport.request(options)
        raise_for_status(resp, options.url)
        return resp

    def _compress(self, resp: HttpResponse) -> bytes:
        """Return recompressed image bytes when smaller, else the original body."""
        mime = resp.headers.get("content-type")
        if not is_image_mime(mime):
            return resp.content
        compressed = self._compressor.compress(resp.content, mime)
        return compressed if len(compressed) < len(resp.content) else resp.content

    @staticmethod
    def _headers_for(resp: HttpResponse, content: bytes) -> Dict[str, str]:
        headers = dict(resp.headers)
        if len(content) != len(resp.content) and "content-length" in headers:
            headers["content-length"] = str(len(content))
        return headers

    def _on_rate_limited(self, url: str) -> None:
        logger.info("Received a [status=429] for [%s], slowing down", url)
        self._throttle.shrink(0.9)

    def can_get_url(self, url: str) -> bool:
        try:
            return self._transport.get(url, timeout=self.config.request_timeout).ok
        except TransportError:
            return False

    def _record(
        self,
        url: str,
        kind: str,
        start: float,
        success: bool,
        status: Optional[int],
        cache_hit: Optional[str] = None,
        retries: int = 0,
        bytes_saved: int = 0,
        error_type: Optional[str] = None,
    ) -> None:
        self.metrics.record(
            FetchEvent(
                url=url,
                kind=kind,
                success=success,
                status_code=status,
                latency_ms=int((time.time() - start) * 1000),
                cache_hit=cache_hit,
                retries=retries,
                bytes_saved=max(0, bytes_saved),
                error_type=error_type,
            )
        )
