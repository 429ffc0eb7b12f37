"""
Field extractor for slab label and listing text.

Turns raw HTML (certificate pages) or plain text (vision label reads,
listing titles) into structured fields: grade, card number, card name
and set name.

Examples of text this handles:
    "CHARIZARD HOLO Base Set #4/102 GEM MT 10"
    "Cert Verification ... Grade: 9.5 ... Card Number 4 / 102"

Name and set extraction match against fixed vocabularies. Cards or sets
outside the vocabulary come back as None, which callers treat as
"unknown" rather than an error.
"""

import html
import re

from slabscan.models.card import CardIdentity, LabelFields

UNKNOWN_SET = "Unknown Set"

# Half-point grades 1 through 10 ("9", "9.5", "10", "10.0")
_GRADE_VALUE = r"(10(?:\.0)?|[1-9](?:\.[05])?)"

# Pattern: "Grade: 9.5", "Final Grade - 10", "Assessment #8"
EXPLICIT_GRADE_PATTERN = re.compile(
    r"(?:final\s*grade|grade|assessment)\s*[:#-]?\s*" + _GRADE_VALUE + r"\b",
    re.IGNORECASE,
)

# Pattern: bare "10" or "9 MINT" / "10 GEM MT"
# Numbers that are part of a collector number ("4/102") are not grades.
BARE_GRADE_PATTERN = re.compile(
    r"(?<![/\d.])\b" + _GRADE_VALUE + r"(?![/\d]|\.\d)"
    r"\s*(?:gem\s*mint|near\s*mint|mint|nm|mt)?\b",
    re.IGNORECASE,
)

# Pattern: "4/102", "4 / 102"
NUMBERED_CARD_PATTERN = re.compile(r"\b\d{1,3}\s*/\s*\d{1,3}\b")

# Pattern: "#SWSH050", "Card # 25"
HASH_CARD_PATTERN = re.compile(r"(?:card\s*#|#)\s*([A-Z0-9-]{1,12})", re.IGNORECASE)

_SCRIPT_PATTERN = re.compile(r"<(script|style)[^>]*>[\s\S]*?</\1>", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")

KNOWN_CARD_NAMES: tuple[str, ...] = (
    "Charizard",
    "Blastoise",
    "Venusaur",
    "Pikachu",
    "Mewtwo",
    "Mew",
    "Lugia",
    "Gengar",
    "Umbreon",
    "Rayquaza",
)

KNOWN_SET_NAMES: tuple[str, ...] = (
    "Base Set",
    "Jungle",
    "Fossil",
    "Team Rocket",
    "Neo Genesis",
    "Skyridge",
    "Evolving Skies",
)


def normalize_label_text(raw: str) -> str:
    """
    Strip markup and collapse whitespace.

    Script and style blocks are removed with their contents, other tags are
    replaced by a space, entities are unescaped and whitespace runs become
    one space.
    """
    text = _SCRIPT_PATTERN.sub(" ", raw)
    text = _TAG_PATTERN.sub(" ", text)
    text = html.unescape(text)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def parse_grade(text: str) -> float | None:
    """
    Extract a numeric grade.

    Tries an explicit "grade:" label first, then a bare half-point number.
    The first pattern that matches wins.
    """
    for pattern in (EXPLICIT_GRADE_PATTERN, BARE_GRADE_PATTERN):
        match = pattern.search(text)
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                return None
    return None


def parse_card_number(text: str) -> str | None:
    """Extract a collector number, preferring "N/total" over "#TOKEN"."""
    numbered = NUMBERED_CARD_PATTERN.search(text)
    if numbered:
        return _WHITESPACE_PATTERN.sub("", numbered.group(0))

    hashed = HASH_CARD_PATTERN.search(text)
    if hashed:
        return hashed.group(1).upper()

    return None


def _find_known(text: str, vocabulary: tuple[str, ...]) -> str | None:
    lower = text.lower()
    return next((term for term in vocabulary if term.lower() in lower), None)


def parse_card_name(text: str) -> str | None:
    return _find_known(text, KNOWN_CARD_NAMES)


def parse_set_name(text: str) -> str | None:
    return _find_known(text, KNOWN_SET_NAMES)


def extract_label_fields(raw: str) -> LabelFields:
    """
    Extract all label fields from HTML or plain text.

    Args:
        raw: Page HTML or label text

    Returns:
        LabelFields with the normalized text and whichever fields resolved
    """
    text = normalize_label_text(raw)
    return LabelFields(
        raw_label_text=text,
        grade_numeric=parse_grade(text),
        card_number=parse_card_number(text),
        card_name=parse_card_name(text),
        set_name=parse_set_name(text),
    )


def build_card_identity(fields: LabelFields) -> CardIdentity | None:
    """
    Build a card identity from extracted fields.

    Requires both a name and a number. A missing set falls back to
    UNKNOWN_SET.
    """
    if not fields.card_name or not fields.card_number:
        return None

    return CardIdentity(
        name=fields.card_name,
        set_name=fields.set_name or UNKNOWN_SET,
        card_number=fields.card_number,
    )
