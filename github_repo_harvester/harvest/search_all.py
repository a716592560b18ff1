"""Collect every repository for a language, working around the 1000-result cap."""

import sys
from collections.abc import Iterator

from ..connector import GitHubConnector
from ..models import GITHUB_SEARCH_RESULT_LIMIT, SEARCH_MAX_PAGES, SEARCH_PAGE_SIZE
from ..search import Range, UnsplittableRangeError, date_midpoint, format_date, format_range, split_range


def _log(msg: str):
    sys.stderr.write(f"\033[2K\r[search] {msg}\n")
    sys.stderr.flush()


def search_all(connector: GitHubConnector, language: str, pushed: Range) -> Iterator[dict]:
    """Yield each repository once, bisecting the date range while it is too dense."""
    seen: set[str] = set()
    pending = [pushed]
    while pending:
        interval = pending.pop(0)
        label = format_range(interval, format_date) or "(any)"
        first = connector.search_repositories(language, interval, page=1)
        total = first.get("total_count", 0)

        if total > GITHUB_SEARCH_RESULT_LIMIT:
            try:
                halves = split_range(interval, date_midpoint)
            except UnsplittableRangeError:
                _log(f"pushed:{label} = {total:,}, cannot narrow further, keeping first {GITHUB_SEARCH_RESULT_LIMIT}")
            else:
                _log(f"pushed:{label} = {total:,} (narrowing)")
                pending[:0] = halves
                continue

        _log(f"pushed:{label} = {total:,} (collecting)")
        for item in _walk_pages(connector, language, interval, first, total):
            name = item.get("full_name")
            if name and name not in seen:
                seen.add(name)
                yield item


def _walk_pages(connector, language, interval, first, total):
    items = first.get("items", [])
    yield from items
    page = 1
    fetched = len(items)
    # page cannot be greater than 10 (10 pages * 100 = 1000 results)
    while page < SEARCH_MAX_PAGES and fetched < min(total, GITHUB_SEARCH_RESULT_LIMIT):
        page += 1
        items = connector.search_repositories(language, interval, page=page).get("items", [])
        if not items:
            break
        fetched += len(items)
        yield from items
        if len(items) < SEARCH_PAGE_SIZE:
            break
