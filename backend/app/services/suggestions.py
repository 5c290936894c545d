"""Search suggestions, search history and keyboard navigation.

The candidate pool is the "Use Current Location" sentinel, then the user's
history (most recent first), then a fixed list of popular cities. Matching
is case-insensitive: prefix matches rank ahead of substring matches, and a
query that matches nothing is offered back verbatim so free text can
always be submitted.
"""

from typing import Iterable, Optional, Sequence

CURRENT_LOCATION = "Use Current Location"

MAX_SUGGESTIONS = 8
MAX_HISTORY = 10

# Stable order: the browse list must not change between renders.
POPULAR_CITIES: tuple[str, ...] = (
    "London",
    "New York",
    "Tokyo",
    "Paris",
    "Sydney",
    "Dubai",
    "Singapore",
    "Mumbai",
    "Chennai",
    "Delhi",
    "Berlin",
    "Toronto",
    "Los Angeles",
    "Hong Kong",
    "Cairo",
    "Istanbul",
    "Bangkok",
    "Rome",
    "Madrid",
    "Moscow",
)


def _dedupe(items: Iterable[str]) -> list[str]:
    """Drop blanks and case-insensitive repeats, keeping first occurrence."""
    seen: set[str] = set()
    result = []
    for item in items:
        key = item.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(item.strip())
    return result


def candidate_pool(
    history: Sequence[str],
    popular: Sequence[str] = POPULAR_CITIES,
) -> list[str]:
    """Sentinel + history + popular cities, de-duplicated in that order."""
    return _dedupe([CURRENT_LOCATION, *history, *popular])


def build_suggestions(
    query: str,
    history: Sequence[str] = (),
    popular: Sequence[str] = POPULAR_CITIES,
    limit: int = MAX_SUGGESTIONS,
) -> list[str]:
    """Rank suggestions for the text typed so far.

    Args:
        query: Current search box contents.
        history: Stored search history, most recent first.
        popular: Reference list of well-known places.
        limit: Maximum number of suggestions returned.

    Returns:
        Suggestions starting with the current-location sentinel.
    """
    pool = candidate_pool(history, popular)
    if not query:
        return pool[:limit]

    # Blank text matches nothing and is not offered back
    needle = query.strip().lower()
    prefix: list[str] = []
    substring: list[str] = []
    for candidate in pool[1:] if needle else ():
        lowered = candidate.lower()
        if lowered.startswith(needle):
            prefix.append(candidate)
        elif needle in lowered:
            substring.append(candidate)

    result = [CURRENT_LOCATION, *prefix, *substring]
    if needle and not prefix and not substring:
        result.append(query.strip())
    return result[:limit]


def record_search(
    history: Sequence[str],
    entry: str,
    limit: int = MAX_HISTORY,
) -> list[str]:
    """Move entry to the front of history, replacing any case-insensitive match."""
    entry = entry.strip()
    if not entry:
        return list(history)
    key = entry.lower()
    rest = [h for h in history if h.strip().lower() != key]
    return [entry, *rest][:limit]


def is_current_location(suggestion: str) -> bool:
    return suggestion == CURRENT_LOCATION


class SuggestionNavigator:
    """Keyboard cursor over the visible suggestion list.

    The cursor starts unset. Down/up wrap around the ends. Enter commits the
    highlighted entry, or the raw query when nothing is highlighted.
    """

    def __init__(self, suggestions: Sequence[str]) -> None:
        self.suggestions = list(suggestions)
        self.index: Optional[int] = None
        self.open = bool(self.suggestions)

    @property
    def current(self) -> Optional[str]:
        if self.index is None or not self.open:
            return None
        return self.suggestions[self.index]

    def down(self) -> Optional[str]:
        if not self.suggestions:
            return None
        self.open = True
        if self.index is None:
            self.index = 0
        else:
            self.index = (self.index + 1) % len(self.suggestions)
        return self.current

    def up(self) -> Optional[str]:
        if not self.suggestions:
            return None
        self.open = True
        if self.index is None:
            self.index = len(self.suggestions) - 1
        else:
            self.index = (self.index - 1) % len(self.suggestions)
        return self.current

    def escape(self) -> None:
        """Close the list. The query text is untouched."""
        self.open = False
        self.index = None

    def enter(self, query: str) -> str:
        """Return the text to commit and close the list."""
        chosen = self.current
        self.escape()
        return chosen if chosen is not None else query
