"""Derive collection sizes from pagination headers."""

import re
from urllib.parse import parse_qs, urlsplit

from .models import ApiResponse

# <url>; rel="name", tolerant of spacing and of unquoted relation names
_LINK_PATTERN = re.compile(r'<\s*([^>]*?)\s*>\s*;\s*rel\s*=\s*"?([^",;]+?)"?\s*(?=,|;|$)')


def parse_link_header(value: str | None) -> dict[str, str]:
    """Parse a ``Link`` header into a relation -> URL mapping."""
    if not value:
        return {}
    return {rel.strip(): url for url, rel in _LINK_PATTERN.findall(value)}


def last_page(value: str | None) -> int | None:
    """Page number of the ``last`` relation, if any."""
    url = parse_link_header(value).get("last")
    if url is None:
        return None
    pages = parse_qs(urlsplit(url).query).get("page")
    if not pages:
        return None
    return int(pages[0])


def count_items(response: ApiResponse) -> int | None:
    """Number of items in a collection requested with ``per_page=1``.

    Returns None when GitHub refused to compute the collection.
    """
    if response.expensive:
        return None
    page = last_page(response.link)
    if page is not None:
        return page
    # Everything fits on one page
    body = response.body
    if isinstance(body, (list, dict)):
        return len(body)
    return 1
