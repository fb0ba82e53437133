"""
Tests for blog and post URL recognition.
"""

import pytest
from fastapi import HTTPException

from harvester.exceptions import ValidationError
from harvester.models import BlogSource
from harvester.url_validator import (
    parse_post_url,
    parse_post_url_or_raise_http,
    parse_source_url,
)


class TestSourceURLs:
    """Tests for parse_source_url()."""

    def test_accepts_blog_home(self):
        """Should read the blog id from a home URL."""
        assert parse_source_url("https://blog.naver.com/bakery_diary") == "bakery_diary"

    def test_accepts_post_url(self):
        """Should read the blog id from a post URL."""
        assert parse_source_url("https://blog.naver.com/bakery_diary/223456789012") == "bakery_diary"

    def test_prefers_query_parameter(self):
        """blogId should win over the path."""
        url = "https://blog.naver.com/PostList.naver?blogId=bakery_diary&categoryNo=0"
        assert parse_source_url(url) == "bakery_diary"

    def test_accepts_mobile_host(self):
        """Mobile URLs should be accepted."""
        assert parse_source_url("https://m.blog.naver.com/bakery_diary") == "bakery_diary"

    def test_rejects_other_hosts(self):
        """Non-blog hosts should be rejected before any request."""
        with pytest.raises(ValidationError, match="Not a Naver blog URL"):
            parse_source_url("https://example.com/bakery_diary")

    def test_rejects_internal_addresses(self):
        """Internal addresses should be rejected."""
        with pytest.raises(ValidationError):
            parse_source_url("http://127.0.0.1/bakery_diary")

    def test_rejects_bad_scheme(self):
        """Only http and https should be allowed."""
        with pytest.raises(ValidationError, match="scheme"):
            parse_source_url("ftp://blog.naver.com/bakery_diary")

    def test_rejects_endpoint_without_id(self):
        """Endpoint paths without a blogId are not blogs."""
        with pytest.raises(ValidationError):
            parse_source_url("https://blog.naver.com/PostView.naver")

    def test_rejects_empty(self):
        """Empty input should be rejected."""
        with pytest.raises(ValidationError):
            parse_source_url("")

    def test_builds_source(self):
        """BlogSource.from_url should derive canonical and feed URLs."""
        source = BlogSource.from_url("https://m.blog.naver.com/bakery_diary/223456789012")
        assert source.id == "bakery_diary"
        assert source.canonical_url == "https://blog.naver.com/bakery_diary"
        assert source.feed_url == "https://rss.blog.naver.com/bakery_diary"


class TestPostURLs:
    """Tests for parse_post_url()."""

    @pytest.mark.parametrize("url", [
        "https://blog.naver.com/bakery_diary/223456789012",
        "https://blog.naver.com/bakery_diary/223456789012?fromRss=true&trackingCode=rss",
        "https://blog.naver.com/PostView.naver?blogId=bakery_diary&logNo=223456789012",
        "https://m.blog.naver.com/bakery_diary/223456789012",
        "https://m.blog.naver.com/PostView.naver?blogId=bakery_diary&logNo=223456789012&navType=tl",
    ])
    def test_shapes_map_to_same_pair(self, url):
        """Desktop, mobile and parametrized shapes should give the same pair."""
        assert parse_post_url(url) == ("bakery_diary", "223456789012")

    def test_rejects_blog_home(self):
        """A home URL has no post number."""
        with pytest.raises(ValidationError, match="post number"):
            parse_post_url("https://blog.naver.com/bakery_diary")

    def test_rejects_non_numeric_post(self):
        """Post numbers are numeric."""
        with pytest.raises(ValidationError):
            parse_post_url("https://blog.naver.com/bakery_diary/about")

    def test_http_wrapper_raises_400(self):
        """The route helper should map failures to HTTP 400."""
        with pytest.raises(HTTPException) as exc_info:
            parse_post_url_or_raise_http("https://example.com/a/1")
        assert exc_info.value.status_code == 400
