from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests
from curl_cffi import requests as curl_requests
from curl_cffi.requests.exceptions import RequestException as CurlRequestException
from curl_cffi.requests.exceptions import Timeout as CurlTimeout

from .errors import NotFoundError, RateLimitedError, TransportError

logger = logging.getLogger(__name__)

HTML_ACCEPT = 'text/html; charset=utf-8; profile="https://www.mediawiki.org/wiki/Specs/HTML/1.8.0"'


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    headers: Dict[str, str]
    content: bytes
    latency_ms: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class RequestOptions:
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 60.0


def request_method_for(url: str) -> str:
    """Login requests go through the API as a POST; everything else is a GET."""
    return "POST" if "action=login" in url else "GET"


def raise_for_status(response: HttpResponse, url: str) -> None:
    """Map a non-2xx response onto the fetch error taxonomy."""
    if response.ok:
        return
    status = response.status_code
    if status == 404:
        raise NotFoundError(f"Not found [{url}]", url=url, body=response.content)
    if status == 429:
        raise RateLimitedError(f"Rate limited [{url}]", url=url, body=response.content)
    raise TransportError(f"HTTP {status} for [{url}]", status=status, url=url, body=response.content)


class HttpTransport:
    """Performs single HTTP requests and normalizes responses and failures.

    Uses `requests` by default. When `impersonate` names a browser profile the
    request goes through curl_cffi instead, for wikis that sit behind
    browser-fingerprinting front ends. Transport exceptions from either
    library are raised as TransportError (timeout=True for timeouts); HTTP
    statuses are returned untouched for the caller to classify.
    """

    def __init__(self, impersonate: Optional[str] = None, session: Optional[requests.Session] = None) -> None:
        self._impersonate = impersonate
        self._session = session or requests.Session()

    @property
    def impersonate(self) -> Optional[str]:
        return self._impersonate

    def request(self, options: RequestOptions) -> HttpResponse:
        start = time.time()
        try:
            if self._impersonate:
                resp: Any = curl_requests.request(
                    options.method,
                    options.url,
                    headers=options.headers or None,
                    timeout=options.timeout,
                    impersonate=self._impersonate,
                )
            else:
                resp = self._session.request(
                    options.method,
                    options.url,
                    headers=options.headers or None,
                    timeout=options.timeout,
                )
        except (requests.Timeout, CurlTimeout) as exc:
            raise TransportError(f"Timed out requesting [{options.url}]", url=options.url, timeout=True) from exc
        except (requests.RequestException, CurlRequestException) as exc:
            raise TransportError(f"Failed to request [{options.url}]: {exc}", url=options.url) from exc

        return HttpResponse(
            status_code=int(resp.status_code),
            headers=_lower_headers(resp.headers),
            content=resp.content,
            latency_ms=int((time.time() - start) * 1000),
        )

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None, timeout: float = 60.0) -> HttpResponse:
        return self.request(RequestOptions(url=url, headers=dict(headers or {}), timeout=timeout))


def _lower_headers(headers: Any) -> Dict[str, str]:
    return {str(k).lower(): str(v) for k, v in dict(headers or {}).items()}
