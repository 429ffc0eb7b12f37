"""
Valuation and scan lifecycle models.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from slabscan.models.card import ResolvedIdentity


@dataclass(frozen=True, slots=True)
class SoldComp:
    """One completed marketplace sale used as a pricing data point."""

    title: str
    price: float
    sold_at: datetime


@dataclass(frozen=True, slots=True)
class Valuation:
    """
    Fair market value band for a graded card.

    Attributes:
        fair_market_value: Midpoint estimate (weighted median of comps)
        range_low: Lower band edge (weighted p25)
        range_high: Upper band edge (weighted p75)
        sample_size: Comps that survived filtering; 0 for heuristic pricing
        window_days: Reporting window in days
        currency: Always "USD"
    """

    fair_market_value: int
    range_low: int
    range_high: int
    sample_size: int
    window_days: int
    currency: Literal["USD"] = "USD"

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "fair_market_value": self.fair_market_value,
            "range_low": self.range_low,
            "range_high": self.range_high,
            "sample_size": self.sample_size,
            "window_days": self.window_days,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Valuation":
        return cls(
            fair_market_value=int(data["fair_market_value"]),
            range_low=int(data["range_low"]),
            range_high=int(data["range_high"]),
            sample_size=int(data["sample_size"]),
            window_days=int(data["window_days"]),
        )


@dataclass(frozen=True, slots=True)
class ScanAnalysis:
    """Result of analyzing one slab photo, before it is persisted."""

    identity: ResolvedIdentity
    valuation: Valuation
    needs_user_confirmation: bool


class ScanStatus(str, Enum):
    """Lifecycle status of a stored scan."""

    ANALYZED = "analyzed"
    CONFIRMED = "confirmed"


@dataclass(frozen=True, slots=True)
class ScanRecord:
    """
    A persisted scan.

    Created from a ScanAnalysis at analyze time. The only mutation is
    confirmation, which flips status to CONFIRMED and bumps updated_at.
    """

    scan_id: str
    identity: ResolvedIdentity
    valuation: Valuation
    needs_user_confirmation: bool
    status: ScanStatus
    created_at: datetime
    updated_at: datetime
