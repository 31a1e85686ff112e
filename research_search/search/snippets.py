"""Highlighted snippet extraction from fuzzy match spans."""

from collections.abc import Sequence

from research_search.search.fuzzy import FieldMatch

HIGHLIGHT_OPEN = "<mark>"
HIGHLIGHT_CLOSE = "</mark>"
ELLIPSIS = "..."


def highlight_span(text: str, start: int, end: int, context: int = 100) -> str:
    """Cut a snippet around text[start:end + 1] and mark the match.

    Args:
        text: Full field value
        start: First matched character
        end: Last matched character (inclusive)
        context: Characters of context kept on either side

    Returns:
        Snippet with the match wrapped in <mark> tags, ellipsised
        where it was truncated

    Examples:
        >>> highlight_span("Energy storage advances", 7, 13, context=3)
        '...gy <mark>storage</mark> ad...'
        >>> highlight_span("Short", 0, 4)
        '<mark>Short</mark>'
    """
    snippet_start = max(0, start - context)
    snippet_end = min(len(text), end + 1 + context)

    snippet = (
        text[snippet_start:start]
        + HIGHLIGHT_OPEN
        + text[start : end + 1]
        + HIGHLIGHT_CLOSE
        + text[end + 1 : snippet_end]
    )
    prefix = ELLIPSIS if snippet_start > 0 else ""
    suffix = ELLIPSIS if snippet_end < len(text) else ""
    return f"{prefix}{snippet}{suffix}"


def extract_highlighted_snippets(
    matches: Sequence[FieldMatch],
    context: int = 100,
    max_snippets: int = 3,
) -> list[str]:
    """Build highlighted snippets for a hit's field matches, in order."""
    snippets: list[str] = []
    for match in matches:
        for start, end in match.indices:
            if len(snippets) >= max_snippets:
                return snippets
            snippets.append(highlight_span(match.value, start, end, context))
    return snippets
