"""Canonical formatting for HCPCS/CPT code strings.

Codes are handled as text end to end. A value such as ``00100`` or ``E0114``
is stringified first and never passed through ``int()``/``float()``, which
would drop leading zeros or reject alphanumeric codes outright.

Valid shapes after normalization are exactly five characters:
- 5 digits (CPT): 99284, 80053, 00100
- letter + 4 digits (HCPCS Level II): E0114, J1885, A0428
- 4 digits + letter (Category III / PLA): 0075T, 0001U
"""

from __future__ import annotations

import math
import re

from billing_schemas.codes import CodeWithModifier

_PREFIX_PATTERNS = (
    re.compile(r"^CPT[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^HCPCS[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^CODE[\s:.\-]*", re.IGNORECASE),
    re.compile(r"^PROCEDURE[\s:.\-]*", re.IGNORECASE),
)
_HASH_PREFIX = re.compile(r"^#")
_NON_WORD = re.compile(r"[^\w]", re.ASCII)

_VALID_CODE = re.compile(r"[A-Z0-9]{5}", re.ASCII)
_MODIFIER = re.compile(r"[A-Z0-9]{2}")
_CPT_INLINE_MODIFIER = re.compile(r"[0-9]{5}[A-Z0-9]{2}")
_HCPCS_INLINE_MODIFIER = re.compile(r"[A-Z][0-9]{4}[A-Z0-9]{2}")


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    # Empty spreadsheet cells arrive as NaN from pandas
    return isinstance(value, float) and math.isnan(value)


def _strip_once(text: str) -> str:
    for pattern in _PREFIX_PATTERNS:
        text = pattern.sub("", text)
    text = _HASH_PREFIX.sub("", text)
    return _NON_WORD.sub("", text).strip()


def normalize_code(value: object) -> str:
    """Normalize any raw value to its canonical uppercase code string.

    Stripping repeats until the text stops changing so the result is a fixed
    point (``normalize_code(normalize_code(v)) == normalize_code(v)``). Text
    that is already a well-formed five-character code is returned untouched,
    so e.g. ``CODE1`` is not mistaken for a ``CODE`` prefix.
    """
    if _is_missing(value):
        return ""

    text = str(value).strip().upper()
    previous = None
    while text != previous:
        previous = text
        if _VALID_CODE.fullmatch(text):
            break
        text = _strip_once(text)
    return text


def is_valid_code_format(code: object) -> bool:
    """Return True when ``code`` normalizes to exactly five alphanumerics."""
    if not code or not isinstance(code, str):
        return False
    return _VALID_CODE.fullmatch(normalize_code(code)) is not None


def parse_code_from_cell(value: object) -> str | None:
    """Parse a code out of a spreadsheet cell, or None if it is not one.

    Cells longer than 10 characters, or with spaces and longer than 7, are
    treated as descriptions rather than codes.
    """
    if _is_missing(value):
        return None

    text = str(value).strip()
    if text == "" or len(text) > 10:
        return None
    if " " in text and len(text) > 7:
        return None

    normalized = normalize_code(text)
    if 4 <= len(normalized) <= 5 and is_valid_code_format(normalized):
        return normalized
    return None


def extract_code_and_modifier(value: object) -> CodeWithModifier:
    """Split a combined code/modifier string.

    Handles ``99284-25`` (hyphen), ``9997626`` (5 digits + 2 inline) and
    ``A4570TC`` (HCPCS + 2 inline). A hyphenated modifier is kept only when it
    is exactly two alphanumerics.
    """
    if _is_missing(value):
        return CodeWithModifier(code=None, modifier=None)

    text = str(value).strip().upper()

    if "-" in text:
        parts = [part.strip() for part in text.split("-") if part.strip()]
        if len(parts) >= 2:
            code = normalize_code(parts[0])
            modifier = parts[1] if _MODIFIER.fullmatch(parts[1]) else None
            return CodeWithModifier(
                code=code if is_valid_code_format(code) else None,
                modifier=modifier,
            )

    if _CPT_INLINE_MODIFIER.fullmatch(text) or _HCPCS_INLINE_MODIFIER.fullmatch(text):
        return CodeWithModifier(code=text[:5], modifier=text[5:7])

    code = normalize_code(text)
    return CodeWithModifier(code=code if is_valid_code_format(code) else None, modifier=None)


# Short aliases matching the public contract
normalize = normalize_code
is_valid_format = is_valid_code_format

__all__ = [
    "normalize_code",
    "normalize",
    "is_valid_code_format",
    "is_valid_format",
    "parse_code_from_cell",
    "extract_code_and_modifier",
]
