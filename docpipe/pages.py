"""Page range parsing: "1-3,5" -> [1, 2, 3, 5]."""

import logging
import re

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"[+-]?\d+")


class NoPagesSelected(ValueError):
    """Raised when a page range selects nothing from the document."""


def _to_int(text: str) -> int | None:
    """Leading integer of `text` ("3abc" -> 3, "1.5" -> 1), or None."""
    match = _LEADING_INT.match(text.strip())
    return int(match.group()) if match else None


def parse_page_range(spec: str, max_page: int) -> list[int]:
    """Parse a comma-separated page spec into sorted, unique 1-based pages.

    Terms are single pages ("5") or inclusive ranges ("2-4"). Each number is
    read up to its first non-digit and a range uses only its first two
    dash-separated parts, so "1-2-3" is 1-2. Unparseable terms are skipped
    and out-of-bounds pages are dropped individually, so "2-4" on a 3-page
    document yields [2, 3]. Never raises.
    """
    pages: set[int] = set()
    for term in spec.split(","):
        if "-" in term:
            start_text, end_text = term.split("-")[:2]
            start, end = _to_int(start_text), _to_int(end_text)
            if start is None or end is None:
                logger.debug("Skipping unparseable range term %r", term)
                continue
            pages.update(p for p in range(start, end + 1) if 1 <= p <= max_page)
        else:
            page = _to_int(term)
            if page is None:
                if term.strip():
                    logger.debug("Skipping unparseable page term %r", term)
                continue
            if 1 <= page <= max_page:
                pages.add(page)
    return sorted(pages)


def select_pages(spec: str, max_page: int) -> list[int]:
    """parse_page_range, but an empty selection is an error for the caller."""
    pages = parse_page_range(spec, max_page)
    if not pages:
        raise NoPagesSelected(f"Invalid page range selected: {spec!r} (document has {max_page} pages)")
    return pages


def default_page_range(page_count: int, window: int = 5) -> str:
    """Initial selection offered after loading: the first `window` pages."""
    if page_count <= 1:
        return "1"
    return f"1-{min(window, page_count)}"
