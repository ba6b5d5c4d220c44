"""Tests for the namespace walk in main.py."""

import unittest
from unittest import mock

from _fakes import FakeRedis
import main
from wikifetch.models import ArticleDetail, NamespacePage
from wikifetch.store import RedisKvs


class FakeEngine:
    """Serves queued namespace pages and records the gapcontinue of each call."""

    def __init__(self, *pages):
        self._pages = list(pages)
        self.calls = []

    def get_article_details_ns(self, ns, gap_continue=""):
        self.calls.append((ns, gap_continue))
        return self._pages.pop(0)


def _page(title, gap_continue):
    return NamespacePage(article_details={title: ArticleDetail(title=title)}, gap_continue=gap_continue)


class TestWalkNamespace(unittest.TestCase):
    """Verify progress is saved and resumed across walks."""

    def setUp(self):
        self.client = FakeRedis(scan_delay=0)
        patcher = mock.patch.object(
            RedisKvs, "from_url", side_effect=lambda url, table: RedisKvs(self.client, table)
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_resumes_from_title_that_looks_like_json(self):
        """Titles such as "null" or "1e5" come back as the same string."""
        for title in ("null", "1e5", "true", "42"):
            with self.subTest(title=title):
                self.client.hashes.clear()
                first = FakeEngine(_page("Alpha", title))
                main.walk_namespace(first, 0, "redis://test", limit=1)

                second = FakeEngine(_page(title, None))
                stored = main.walk_namespace(second, 0, "redis://test", limit=None)

                self.assertEqual(second.calls, [(0, title)])
                self.assertEqual(stored, 1)

    def test_finished_walk_clears_progress(self):
        engine = FakeEngine(_page("Alpha", "Beta"), _page("Beta", None))
        self.assertEqual(main.walk_namespace(engine, 4, "redis://test", limit=None), 2)
        self.assertEqual(engine.calls, [(4, ""), (4, "Beta")])
        progress = RedisKvs(self.client, main.PROGRESS_TABLE)
        self.assertIsNone(progress.get("gapcontinue:4"))
        details = RedisKvs(self.client, main.ARTICLE_DETAIL_TABLE)
        self.assertEqual(details.get("Beta"), {"title": "Beta"})


if __name__ == "__main__":
    unittest.main()
