"""
Card identity models.

Value types describing what a slab is: the card inside it, who graded it,
and how sure we are about both.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class GradingCompany(str, Enum):
    """Grading authorities whose slabs we recognize."""

    PSA = "PSA"
    BGS = "BGS"
    CGC = "CGC"


@dataclass(frozen=True, slots=True)
class CardIdentity:
    """
    A best-effort card label.

    Attributes:
        name: Card name (e.g., "Charizard")
        set_name: Set the card was printed in (e.g., "Base Set")
        card_number: Collector number, preferably "N/total" (e.g., "4/102")
    """

    name: str
    set_name: str
    card_number: str

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "set_name": self.set_name,
            "card_number": self.card_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CardIdentity":
        return cls(
            name=data["name"],
            set_name=data["set_name"],
            card_number=data["card_number"],
        )


@dataclass(frozen=True, slots=True)
class ResolvedIdentity:
    """
    Identity of a scanned slab.

    Produced once per scan by an identity resolver, then refined by
    certificate corroboration through dataclasses.replace().

    Attributes:
        card: Best-guess card identity
        grading_company: Company that graded the slab
        grade_numeric: Grade in [1, 10], half-point steps
        cert_number: Certificate number printed on the label, if read
        confidence: Identification confidence in [0, 1]
        alternatives: Up to two runner-up identities
        raw_label_text: Label text as read from the slab
    """

    card: CardIdentity
    grading_company: GradingCompany
    grade_numeric: float
    cert_number: str | None = None
    confidence: float = 0.0
    alternatives: tuple[CardIdentity, ...] = ()
    raw_label_text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "card": self.card.to_dict(),
            "grading_company": self.grading_company.value,
            "grade_numeric": self.grade_numeric,
            "cert_number": self.cert_number,
            "confidence": self.confidence,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
            "raw_label_text": self.raw_label_text,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResolvedIdentity":
        return cls(
            card=CardIdentity.from_dict(data["card"]),
            grading_company=GradingCompany(data["grading_company"]),
            grade_numeric=float(data["grade_numeric"]),
            cert_number=data.get("cert_number"),
            confidence=float(data.get("confidence", 0.0)),
            alternatives=tuple(CardIdentity.from_dict(a) for a in data.get("alternatives", [])),
            raw_label_text=data.get("raw_label_text", ""),
        )


@dataclass(frozen=True, slots=True)
class CertLookupResult:
    """
    Outcome of a certificate lookup against a grading authority.

    Card, company and grade are only populated when the authority's
    page matched. The source URL is kept even on failure.
    """

    matched: bool
    card: CardIdentity | None = None
    grading_company: GradingCompany | None = None
    grade_numeric: float | None = None
    raw_label_text: str | None = None
    source_url: str | None = None


@dataclass(frozen=True, slots=True)
class LabelFields:
    """Structured fields pulled out of slab label or listing text."""

    raw_label_text: str
    grade_numeric: float | None = None
    card_number: str | None = None
    card_name: str | None = None
    set_name: str | None = None
