"""
Entry filters applied between feed parsing and retrieval.
"""

from dataclasses import dataclass, field
from datetime import date

from .exceptions import ValidationError
from .models import FeedEntry
from .url_validator import parse_post_url


@dataclass
class KeywordFilter:
    """
    Case-insensitive OR match over entry titles.

    Blank terms are ignored and repeated terms collapse to one. With no
    terms every entry passes. When `match_summary` is set, the summary is
    searched as well.
    """
    terms: list[str] = field(default_factory=list)
    match_summary: bool = False

    def __post_init__(self):
        seen = []
        for term in self.terms:
            term = (term or "").strip().lower()
            if term and term not in seen:
                seen.append(term)
        self.terms = seen

    def __bool__(self) -> bool:
        return bool(self.terms)

    def matches(self, entry: FeedEntry) -> bool:
        if not self.terms:
            return True
        haystack = entry.title.lower()
        if self.match_summary and entry.summary:
            haystack = f"{haystack}\n{entry.summary.lower()}"
        return any(term in haystack for term in self.terms)


def after_date(entry: FeedEntry, since: date | None) -> bool:
    """Inclusive lower bound on the publish date. Undated entries pass."""
    if since is None or entry.published_at is None:
        return True
    return entry.published_at >= since


def post_key(post_url: str) -> tuple[str, str] | str:
    """
    Identity of a post across its URL shapes.

    Desktop, mobile and query-string links to one post share a key. URLs
    that name no post (placeholders included) are their own key.
    """
    try:
        return parse_post_url(post_url)
    except ValidationError:
        return post_url


def apply_filters(
    entries: list[FeedEntry],
    keywords: KeywordFilter,
    since: date | None = None,
) -> list[FeedEntry]:
    """
    Filter entries by keyword and date, then drop repeated posts.

    Feed order is preserved; the first listing of a post wins.
    """
    survivors = []
    seen = set()
    for entry in entries:
        if not keywords.matches(entry) or not after_date(entry, since):
            continue
        key = post_key(entry.post_url)
        if key in seen:
            continue
        seen.add(key)
        survivors.append(entry)
    return survivors
