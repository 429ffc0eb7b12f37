from slabscan.parsers.label_text import (
    UNKNOWN_SET,
    build_card_identity,
    extract_label_fields,
    normalize_label_text,
    parse_card_name,
    parse_card_number,
    parse_grade,
    parse_set_name,
)

__all__ = [
    "UNKNOWN_SET",
    "build_card_identity",
    "extract_label_fields",
    "normalize_label_text",
    "parse_card_name",
    "parse_card_number",
    "parse_grade",
    "parse_set_name",
]
