"""Tests for partial-page normalization and merging."""

import unittest

from wikifetch.merge import (
    merge_details,
    normalize_query_pages,
    strip_non_continued_props,
    to_article_details,
)


def _page(title, **fields):
    page = {"pageid": abs(hash(title)) % 1000, "ns": 0, "title": title}
    page.update(fields)
    return page


class TestNormalizeQueryPages(unittest.TestCase):
    """Verify the by-title reshaping of query.pages."""

    def test_keys_use_requested_title_with_underscores(self):
        query = {
            "normalized": [{"from": "foo bar", "to": "Foo bar"}],
            "pages": {"1": _page("Foo bar"), "2": _page("Other page")},
        }
        pages = normalize_query_pages(query)
        self.assertEqual(sorted(pages), ["Other_page", "foo_bar"])

    def test_list_shaped_pages(self):
        pages = normalize_query_pages({"pages": [_page("A"), {"ns": 0}]})
        self.assertEqual(list(pages), ["A"])

    def test_empty_query(self):
        self.assertEqual(normalize_query_pages(None), {})
        self.assertEqual(normalize_query_pages({}), {})


class TestStripNonContinuedProps(unittest.TestCase):
    """Verify only fields named by the continuation survive."""

    def setUp(self):
        self.details = {
            "A": _page("A", categories=[{"ns": 14, "title": "Category:X"}], coordinates=[{"lat": 1, "lon": 2}]),
        }

    def test_parameter_style_markers(self):
        stripped = strip_non_continued_props(self.details, {"continue": "||", "cocontinue": "1|2"})
        self.assertEqual(stripped, {"A": {"coordinates": [{"lat": 1, "lon": 2}]}})

    def test_module_style_markers(self):
        stripped = strip_non_continued_props(self.details, ["categories"])
        self.assertEqual(stripped, {"A": {"categories": [{"ns": 14, "title": "Category:X"}]}})

    def test_sub_categories_always_kept(self):
        details = {"C": _page("C", ns=14, subCategories=[{"title": "Category:Y"}])}
        stripped = strip_non_continued_props(details, ["continue"])
        self.assertEqual(stripped, {"C": {"subCategories": [{"title": "Category:Y"}]}})

    def test_unknown_marker_keeps_everything(self):
        stripped = strip_non_continued_props(self.details, ["continue", "tlcontinue"])
        self.assertEqual(stripped, self.details)
        self.assertIsNot(stripped["A"], self.details["A"])


class TestMergeDetails(unittest.TestCase):
    """Verify accumulation, idempotence and the whitelist interplay."""

    def test_lists_accumulate(self):
        first = {"B": {"categories": [{"title": "Category:1"}]}}
        second = {"B": {"categories": [{"title": "Category:2"}]}}
        merged = merge_details(merge_details(None, first), second)
        self.assertEqual(merged["B"]["categories"], [{"title": "Category:1"}, {"title": "Category:2"}])

    def test_merge_is_idempotent(self):
        """Merging the same page twice equals merging it once."""
        acc = {"A": _page("A", categories=[{"title": "Category:1"}], revisions=[{"revid": 5}])}
        page = {"A": _page("A", categories=[{"title": "Category:2"}], revisions=[{"revid": 5}])}
        once = merge_details(acc, page)
        twice = merge_details(once, page)
        self.assertEqual(once, twice)
        self.assertEqual(len(twice["A"]["categories"]), 2)

    def test_empty_scalar_does_not_overwrite(self):
        acc = {"A": {"title": "A", "pageimage": "A.png"}}
        merged = merge_details(acc, {"A": {"title": "", "pageimage": None}})
        self.assertEqual(merged["A"], {"title": "A", "pageimage": "A.png"})

    def test_accumulator_not_mutated(self):
        acc = {"A": {"categories": [{"title": "Category:1"}]}}
        merge_details(acc, {"A": {"categories": [{"title": "Category:2"}]}})
        self.assertEqual(acc, {"A": {"categories": [{"title": "Category:1"}]}})

    def test_cocontinue_page_leaves_finalized_categories_alone(self):
        """A page continued only for coordinates must not touch categories."""
        acc = {"A": _page("A", categories=[{"title": "Category:1"}, {"title": "Category:2"}])}
        later = {"A": _page("A", categories=[{"title": "Category:1"}], coordinates=[{"lat": 3, "lon": 4}])}
        stripped = strip_non_continued_props(later, {"cocontinue": "7|8", "continue": "||"})
        merged = merge_details(acc, stripped)
        self.assertEqual(merged["A"]["categories"], [{"title": "Category:1"}, {"title": "Category:2"}])
        self.assertEqual(merged["A"]["coordinates"], [{"lat": 3, "lon": 4}])


class TestToArticleDetails(unittest.TestCase):
    """Verify conversion of merged pages into ArticleDetail records."""

    def test_full_record(self):
        pages = {
            "Paris": _page(
                "Paris",
                revisions=[{"revid": 42, "timestamp": "2020-01-01T00:00:00Z"}],
                coordinates=[{"lat": 48.85, "lon": 2.35}],
                thumbnail={"source": "https://x/p.jpg", "width": 50, "height": 40},
                categories=[{"ns": 14, "title": "Category:Cities"}],
                redirects=[{"pageid": 9, "ns": 0, "title": "Paname"}],
            )
        }
        detail = to_article_details(pages)["Paris"]
        self.assertEqual(detail.revision_id, 42)
        self.assertEqual(detail.timestamp, "2020-01-01T00:00:00Z")
        self.assertEqual(detail.coordinates, "48.85;2.35")
        self.assertEqual(detail.thumbnail["width"], 50)
        self.assertEqual(detail.redirects[0]["title"], "Paname")
        self.assertFalse(detail.missing)

    def test_missing_and_absent_modules(self):
        detail = to_article_details({"Nope": {"ns": 0, "title": "Nope", "missing": ""}})["Nope"]
        self.assertTrue(detail.missing)
        self.assertIsNone(detail.revision_id)
        self.assertIsNone(detail.coordinates)
        self.assertIsNone(detail.categories)
        self.assertEqual(detail.to_dict(), {"title": "Nope", "missing": True})


if __name__ == "__main__":
    unittest.main()
