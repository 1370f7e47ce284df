"""
Text normalization utilities for consistent plant name matching.

Two canonical forms are produced here:

- normalize_plant_name: the cleaned, title-cased display form of a free-text
  name, with cultivar epithets kept in single quotes
- catalog_key: the case- and accent-insensitive key every exact lookup
  compares on (both the input and the catalog side go through it)

Everything in this module is pure and deterministic.
"""

import os
import re
import unicodedata
from difflib import SequenceMatcher

from unidecode import unidecode

_SINGLE_QUOTES = "‘’‚‛´`′"
_DOUBLE_QUOTES = "“”„‟«»″"
_DASHES = "‐‑‒–—−"

_QUOTE_TRANSLATION = str.maketrans(
    {
        **{char: "'" for char in _SINGLE_QUOTES},
        **{char: '"' for char in _DOUBLE_QUOTES},
        **{char: "-" for char in _DASHES},
    }
)

_WHITESPACE = re.compile(r"\s+")

# Letters, digits, space, apostrophe, hyphen, parentheses, multiplication sign, period
_DISALLOWED = re.compile(r"[^\w\s'\-().×]|_")

_QUOTED_SPAN = re.compile(r"('[^']*')")

_ALWAYS_STRIP = "[]{}<>"

_PUNCTUATION = re.compile(r"[^\w\s×]|_")

# Standalone taxonomic qualifiers: cv., var., subsp., ssp., f., forma
_QUALIFIERS = re.compile(
    r"(?<!\S)(?:(?:cv|var|subsp|ssp)\.?|f\.|forma)(?!\S)", re.IGNORECASE
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_TRIGRAM_WORDS = re.compile(r"[^\W_]+")


def _is_latin_letter(char: str) -> bool:
    return unicodedata.name(char, "").startswith("LATIN")


def _fold_letter(char: str) -> str:
    folded = unidecode(char)
    if len(folded) > 1 and char.isupper():
        return folded.capitalize()
    return folded


def _fold_accents(text: str) -> str:
    """
    Drop combining marks (ä -> a, ï -> i), then transliterate the Latin
    letters that do not decompose (ø -> o, æ -> ae, ß -> ss, þ -> th).

    Same result as unaccent() in catalog_key() on the database side. Other
    scripts and the hybrid sign are left alone.
    """
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(
        _fold_letter(char) if not char.isascii() and _is_latin_letter(char) else char
        for char in decomposed
        if not unicodedata.combining(char)
    )


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _strip_wrapping(text: str) -> str:
    """
    Remove quote and bracket characters wrapping the whole name.

    Brackets are always stripped from the ends. A double-quote pair is
    stripped only when it wraps the entire name. Apostrophes and parentheses
    are stripped only when unbalanced, since a trailing apostrophe usually
    closes a cultivar epithet.
    """
    while text:
        before = text
        text = text.strip().strip(_ALWAYS_STRIP).strip()

        if text.count('"') % 2 == 1:
            if text.startswith('"'):
                text = text[1:]
            elif text.endswith('"'):
                text = text[:-1]
        elif len(text) >= 2 and text.count('"') == 2 and text[0] == text[-1] == '"':
            text = text[1:-1]

        if text.count("'") % 2 == 1:
            if text.startswith("'"):
                text = text[1:]
            elif text.endswith("'"):
                text = text[:-1]

        if text.startswith("(") and text.count("(") > text.count(")"):
            text = text[1:]
        if text.endswith(")") and text.count(")") > text.count("("):
            text = text[:-1]

        text = text.strip()
        if text == before:
            break
    return text


def _lower(text: str) -> str:
    # Skip characters whose case mapping changes length (keeps the form stable)
    return "".join(
        char.lower() if len(char.lower()) == 1 else char for char in text
    )


def _title_word(word: str) -> str:
    for index, char in enumerate(word):
        if char.isalpha():
            head = char.upper() if len(char.upper()) == 1 else char
            return word[:index] + head + _lower(word[index + 1:])
    return word


def _title_case(text: str) -> str:
    parts = _QUOTED_SPAN.split(text)
    cased = []
    for part in parts:
        if _QUOTED_SPAN.fullmatch(part):
            cased.append(part)
        else:
            cased.append(" ".join(_title_word(word) for word in part.split(" ")))
    return "".join(cased)


def normalize_plant_name(raw: str | None) -> str:
    """
    Canonicalize a free-text plant name.

    Args:
        raw: Name as typed by a user or found in an import file

    Returns:
        str: Normalized name, or "" when nothing usable is left

    Examples:
        >>> normalize_plant_name("  acer   palmatum  ‘Osakazuki’ ")
        "Acer Palmatum 'Osakazuki'"
        >>> normalize_plant_name('"Acer platanoïdes"')
        'Acer Platanoides'
        >>> normalize_plant_name("   ")
        ''
    """
    if not raw:
        return ""

    text = _fold_accents(raw.translate(_QUOTE_TRANSLATION))
    text = _collapse(text)
    text = _strip_wrapping(text)

    # Cultivars written in double quotes follow the single-quote convention
    text = text.replace('"', "'")

    text = _collapse(_DISALLOWED.sub("", text))
    text = _strip_wrapping(text)
    if not text:
        return ""

    return _title_case(text)


def catalog_key(name: str | None) -> str:
    """
    Case- and accent-insensitive comparison key.

    Quote characters are dropped so "Pinus cembra 'Stricta'" and
    "pinus cembra stricta" share a key. Mirrors catalog_key() in the
    database migrations.

    Args:
        name: Any plant name (normalized or raw)

    Returns:
        str: Lowercase key with collapsed whitespace
    """
    if not name:
        return ""
    text = _fold_accents(name.translate(_QUOTE_TRANSLATION)).lower()
    text = text.replace("'", "").replace('"', "")
    return _collapse(text)


def strip_punctuation(name: str) -> str:
    """Keep letters, digits, spaces and the hybrid sign only"""
    return _collapse(_PUNCTUATION.sub("", name))


def strip_qualifiers(name: str) -> str:
    """Remove standalone cv./var./subsp./ssp./f./forma tokens"""
    return _collapse(_QUALIFIERS.sub(" ", name))


def sanitize_display_text(value: object, max_length: int = 500) -> str:
    """
    Make a nursery-supplied value safe to display.

    Control characters are removed and the length capped; nothing is ever
    interpreted.
    """
    if value is None:
        return ""
    text = _CONTROL_CHARS.sub("", str(value)).strip()
    return text[:max_length]


# =============================================================================
# Similarity measures
# =============================================================================


def calculate_similarity(str1: str, str2: str) -> float:
    """
    Calculate string similarity score

    Args:
        str1: First string
        str2: Second string

    Returns:
        float: Similarity score (0.0-1.0)
    """
    return SequenceMatcher(None, str1.lower(), str2.lower()).ratio()


def _trigrams(text: str) -> set[str]:
    grams: set[str] = set()
    for word in _TRIGRAM_WORDS.findall(catalog_key(text)):
        padded = f"  {word} "
        grams.update(padded[i:i + 3] for i in range(len(padded) - 2))
    return grams


def trigram_similarity(left: str, right: str) -> float:
    """
    Trigram similarity with pg_trgm semantics.

    Each word is padded with two leading spaces and one trailing space; the
    score is shared trigrams over the union of both trigram sets.
    """
    left_grams = _trigrams(left)
    right_grams = _trigrams(right)
    if not left_grams or not right_grams:
        return 0.0
    return len(left_grams & right_grams) / len(left_grams | right_grams)


def _tokens_overlap(token: str, others: list[str]) -> bool:
    return any(
        token == other or calculate_similarity(token, other) >= 0.8
        for other in others
    )


def local_similarity(query: str, candidate: str) -> float:
    """
    Score a substring-search hit without database support.

    Combines:
    - SequenceMatcher ratio of the two keys (0.60)
    - token overlap, near-identical tokens counting as shared (0.25)
    - shared prefix length relative to the longer key (0.15)
    - +0.10 when one key contains the other

    Args:
        query: Normalized search name
        candidate: Catalog name

    Returns:
        float: Score in [0, 1]
    """
    q = catalog_key(query)
    c = catalog_key(candidate)
    if not q or not c:
        return 0.0
    if q == c:
        return 1.0

    ratio = SequenceMatcher(None, q, c).ratio()

    q_tokens = q.split()
    c_tokens = c.split()
    matched = sum(1 for token in q_tokens if _tokens_overlap(token, c_tokens))
    overlap = matched / max(len(q_tokens), len(c_tokens))

    prefix = len(os.path.commonprefix([q, c])) / max(len(q), len(c))

    score = 0.60 * ratio + 0.25 * overlap + 0.15 * prefix
    if q in c or c in q:
        score += 0.10

    return round(min(score, 1.0), 4)
