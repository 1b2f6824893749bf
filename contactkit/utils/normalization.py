"""
String normalization utilities for query matching.

Provides the case- and diacritic-insensitive folding used by the
substring clauses of the query matcher.
"""

from __future__ import annotations

import re
import unicodedata


def normalize_string(
    value: str,
    remove_spaces: bool = True,
    strip_punctuation: bool = True,
) -> str:
    """
    Normalize a string for comparison.

    Args:
        value: String to normalize
        remove_spaces: If True, remove all spaces from the result.
                      If False, multiple spaces are collapsed to single space.
        strip_punctuation: If True, remove non-alphanumeric characters.
                          If False, only normalize unicode and whitespace.

    Returns:
        Normalized lowercase string with accents removed
    """
    if not value:
        return ""

    # Normalize unicode (decompose accents, etc.)
    normalized = unicodedata.normalize("NFKD", value)

    # Remove combining characters (accents)
    normalized = "".join(c for c in normalized if not unicodedata.combining(c))

    normalized = normalized.casefold()

    if strip_punctuation:
        normalized = re.sub(r"[^\w\s]", "", normalized)

    # Normalize whitespace
    normalized = re.sub(r"\s+", " ", normalized).strip()

    if remove_spaces:
        normalized = normalized.replace(" ", "")

    return normalized


def fold_text(value: str) -> str:
    """
    Fold text for substring matching.

    Case and diacritics are removed, whitespace runs collapse to a single
    space, punctuation is kept. "José-María  O'Neil" -> "jose-maria o'neil".
    """
    return normalize_string(value, remove_spaces=False, strip_punctuation=False)
