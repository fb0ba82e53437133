"""
Tests for keyword and date filters.
"""

from datetime import date

from harvester.filters import KeywordFilter, after_date, apply_filters
from harvester.models import FeedEntry


def entry(title, day=date(2024, 2, 1), summary="", url=None):
    return FeedEntry(
        title=title,
        post_url=url or f"https://blog.naver.com/shop/{title.replace(' ', '-')}",
        published_at=day,
        summary=summary,
    )


class TestKeywordFilter:
    """Tests for KeywordFilter."""

    def test_keywords_are_or_not_and(self):
        """Entries matching any keyword survive; the rest are dropped."""
        entries = [entry("Big Sale Today"), entry("Launch Event"), entry("Random Post")]
        survivors = apply_filters(entries, KeywordFilter(["sale", "launch"]))
        assert [e.title for e in survivors] == ["Big Sale Today", "Launch Event"]

    def test_case_insensitive(self):
        """Matching should ignore case on both sides."""
        assert KeywordFilter(["SALE"]).matches(entry("big sale today"))

    def test_blank_terms_ignored(self):
        """Blank terms should not match everything."""
        keywords = KeywordFilter(["", "  ", "launch"])
        assert keywords.terms == ["launch"]
        assert not keywords.matches(entry("Random Post"))

    def test_empty_filter_passes_everything(self):
        """No terms means no keyword filtering."""
        assert KeywordFilter([]).matches(entry("Anything"))
        assert KeywordFilter(["", " "]).matches(entry("Anything"))

    def test_terms_deduplicated(self):
        """Repeated terms should collapse, keeping first-seen order."""
        assert KeywordFilter(["Sale", "launch", "sale"]).terms == ["sale", "launch"]

    def test_summary_matching_is_opt_in(self):
        """Summaries are searched only when requested."""
        post = entry("Weekly notes", summary="Our spring sale starts Monday")
        assert not KeywordFilter(["sale"]).matches(post)
        assert KeywordFilter(["sale"], match_summary=True).matches(post)


class TestDateFilter:
    """Tests for the inclusive date lower bound."""

    def test_since_is_inclusive(self):
        """An entry dated exactly on the bound survives; one day earlier does not."""
        since = date(2024, 2, 1)
        assert after_date(entry("On the day", day=date(2024, 2, 1)), since)
        assert not after_date(entry("Day before", day=date(2024, 1, 31)), since)

    def test_undated_entries_pass(self):
        """Entries without a date are kept."""
        assert after_date(entry("Undated", day=None), date(2024, 2, 1))

    def test_no_bound_passes(self):
        """No bound means no date filtering."""
        assert after_date(entry("Old", day=date(2001, 1, 1)), None)

    def test_scenario_three_dates(self):
        """Of three monthly entries, the two on or after the bound survive."""
        entries = [
            entry("January", day=date(2024, 1, 1)),
            entry("February", day=date(2024, 2, 1)),
            entry("March", day=date(2024, 3, 1)),
        ]
        survivors = apply_filters(entries, KeywordFilter([]), since=date(2024, 2, 1))
        assert [e.title for e in survivors] == ["February", "March"]


class TestApplyFilters:
    """Tests for the combined filter pass."""

    def test_duplicate_urls_dropped(self):
        """Only the first entry per post URL should survive."""
        url = "https://blog.naver.com/shop/1"
        entries = [entry("First", url=url), entry("Second", url=url)]
        survivors = apply_filters(entries, KeywordFilter([]))
        assert [e.title for e in survivors] == ["First"]

    def test_preserves_feed_order(self):
        """Survivors should keep their feed order."""
        entries = [entry(f"Sale {n}") for n in range(5)]
        survivors = apply_filters(entries, KeywordFilter(["sale"]))
        assert [e.title for e in survivors] == [f"Sale {n}" for n in range(5)]

    def test_same_post_under_different_url_shapes(self):
        """Desktop, mobile and query links to one post should count once."""
        entries = [
            entry("Desktop", url="https://blog.naver.com/shop/223000000001?fromRss=true&trackingCode=rss"),
            entry("Mobile", url="https://m.blog.naver.com/shop/223000000001"),
            entry("Query", url="https://blog.naver.com/PostView.naver?blogId=shop&logNo=223000000001"),
            entry("Other", url="https://blog.naver.com/shop/223000000002"),
        ]
        survivors = apply_filters(entries, KeywordFilter([]))
        assert [e.title for e in survivors] == ["Desktop", "Other"]

    def test_urls_without_post_number_keyed_by_url(self):
        """Placeholder links are distinct even though they name no post."""
        entries = [
            entry("One", url="https://blog.naver.com/shop#placeholder-1"),
            entry("Two", url="https://blog.naver.com/shop#placeholder-2"),
            entry("One again", url="https://blog.naver.com/shop#placeholder-1"),
        ]
        survivors = apply_filters(entries, KeywordFilter([]))
        assert [e.title for e in survivors] == ["One", "Two"]
