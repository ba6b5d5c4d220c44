"""Tests for the HTTP transport and status mapping."""

import unittest
from unittest import mock

import requests

from wikifetch.errors import NotFoundError, RateLimitedError, TransportError
from wikifetch.http import HttpResponse, HttpTransport, RequestOptions, raise_for_status, request_method_for


class TestStatusMapping(unittest.TestCase):
    def test_success_passes(self):
        raise_for_status(HttpResponse(200, {}, b""), "u")
        raise_for_status(HttpResponse(204, {}, b""), "u")

    def test_error_statuses(self):
        with self.assertRaises(NotFoundError):
            raise_for_status(HttpResponse(404, {}, b""), "u")
        with self.assertRaises(RateLimitedError):
            raise_for_status(HttpResponse(429, {}, b""), "u")
        with self.assertRaises(TransportError) as ctx:
            raise_for_status(HttpResponse(503, {}, b"busy"), "u")
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.body, b"busy")

    def test_login_is_post(self):
        self.assertEqual(request_method_for("https://wiki.test/w/api.php?action=login"), "POST")
        self.assertEqual(request_method_for("https://wiki.test/w/api.php?action=query"), "GET")


class TestHttpTransport(unittest.TestCase):
    """Verify the requests-backed transport."""

    def test_response_headers_lowercased(self):
        session = mock.Mock(spec=requests.Session)
        session.request.return_value = mock.Mock(status_code=200, headers={"Content-Type": "text/html", "ETag": "x"}, content=b"hi")
        resp = HttpTransport(session=session).request(RequestOptions(url="https://wiki.test/", headers={"accept": "*/*"}))
        self.assertEqual(resp.headers, {"content-type": "text/html", "etag": "x"})
        self.assertEqual(resp.content, b"hi")
        session.request.assert_called_once_with("GET", "https://wiki.test/", headers={"accept": "*/*"}, timeout=60.0)

    def test_timeout_flagged(self):
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = requests.Timeout("slow")
        with self.assertRaises(TransportError) as ctx:
            HttpTransport(session=session).get("https://wiki.test/", timeout=1.0)
        self.assertTrue(ctx.exception.timeout)

    def test_connection_error_wrapped(self):
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransportError) as ctx:
            HttpTransport(session=session).get("https://wiki.test/")
        self.assertFalse(ctx.exception.timeout)
        self.assertIsNone(ctx.exception.status)

    def test_http_errors_returned_not_raised(self):
        session = mock.Mock(spec=requests.Session)
        session.request.return_value = mock.Mock(status_code=500, headers={}, content=b"")
        self.assertFalse(HttpTransport(session=session).get("https://wiki.test/").ok)


if __name__ == "__main__":
    unittest.main()
