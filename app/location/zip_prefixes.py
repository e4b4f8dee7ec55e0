"""US state abbreviations and the approximate ZIP-prefix to state table.

The prefix table is a postal-range heuristic: several ranges overlap or are
coarse (Massachusetts covers prefixes belonging to neighbouring states,
Puerto Rico covers the Virgin Islands). Results derived from it are only ever
reported as ``zip_lookup`` evidence with medium confidence at best.
"""

from __future__ import annotations

# 50 states plus DC
US_STATE_ABBRS: tuple[str, ...] = (
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY", "DC",
)

US_STATE_SET = frozenset(US_STATE_ABBRS)


def _span(first: int, last: int, state: str) -> tuple[int, int, str]:
    # Ranges are listed by leading two ZIP digits; each covers ten 3-digit prefixes
    return (first * 10, last * 10 + 9, state)


# Ordered; the first matching range wins.
PREFIX_RANGES: tuple[tuple[int, int, str], ...] = (
    _span(0, 4, "PR"),
    _span(5, 5, "NY"),
    _span(6, 9, "PR"),
    _span(10, 14, "MA"),
    _span(15, 19, "MA"),
    _span(20, 20, "DC"),
    _span(21, 21, "MD"),
    _span(22, 24, "VA"),
    _span(25, 26, "WV"),
    _span(27, 28, "NC"),
    _span(29, 29, "SC"),
    _span(30, 31, "GA"),
    _span(32, 34, "FL"),
    _span(35, 36, "AL"),
    _span(37, 38, "TN"),
    _span(39, 39, "MS"),
    _span(40, 42, "KY"),
    _span(43, 45, "OH"),
    _span(46, 47, "IN"),
    _span(48, 49, "MI"),
    _span(50, 52, "IA"),
    _span(53, 54, "WI"),
    _span(55, 56, "MN"),
    _span(57, 57, "SD"),
    _span(58, 58, "ND"),
    _span(59, 59, "MT"),
    _span(60, 62, "IL"),
    _span(63, 65, "MO"),
    _span(66, 67, "KS"),
    _span(68, 69, "NE"),
    _span(70, 71, "LA"),
    _span(72, 72, "AR"),
    _span(73, 74, "OK"),
    _span(75, 79, "TX"),
    _span(80, 81, "CO"),
    _span(82, 83, "WY"),
    _span(84, 84, "UT"),
    _span(85, 86, "AZ"),
    _span(87, 88, "NM"),
    _span(89, 89, "NV"),
    _span(90, 96, "CA"),
    _span(97, 97, "OR"),
    _span(98, 99, "WA"),
)


def derive_state_from_zip_prefix(zip5: str) -> str | None:
    """Approximate state for a ZIP from its 3-digit prefix, or None."""
    prefix_text = (zip5 or "")[:3]
    if len(prefix_text) != 3 or not prefix_text.isdigit():
        return None

    prefix = int(prefix_text)
    for low, high, state in PREFIX_RANGES:
        if low <= prefix <= high:
            return state
    return None
