"""
Market comp aggregation.

Turns sold listings for a card into a fair-market-value band:

1. Search sold listings for the card, company and grade
2. Drop listings whose titles carry authenticity or condition red flags
3. Keep only listings whose titles name this card at this grade
4. Remove price outliers (IQR fence)
5. Weight the rest by recency and read the 25th/50th/75th percentiles

When no listing survives, or the marketplace cannot be reached, a fixed
heuristic price is reported instead with sample_size 0.
"""

import logging
import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx

from slabscan.config import VALUATION_WINDOW_DAYS, Settings
from slabscan.market.ebay import EbayCompsClient, EbayTokenCache
from slabscan.models.card import CardIdentity, GradingCompany
from slabscan.models.failure import MalformedUpstreamResponseError, UpstreamUnavailableError
from slabscan.models.scan import SoldComp, Valuation

logger = logging.getLogger(__name__)

# =============================================================================
# FILTERING
# =============================================================================

BLOCKLIST_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\breprint\b",
        r"\bprox(?:y|ies)\b",
        r"\bcustom\b",
        r"\bfan\s*art\b",
        r"\borica\b",
        r"\bworld\s*championship\b",
        r"\bcelebration\s*proxy\b",
        r"\blot\s*of\b",
        r"\blot\b",
        r"\bset\s*of\b",
        r"\bpack\s*fresh\b",
        r"\bdamaged\b",
        r"\bcreased\b",
        r"\bpoor\b",
        r"\bplayed\b",
        r"\bproxy\s*card\b",
        r"\bnot\s*graded\b",
        r"\braw\b",
    )
)

_NON_TOKEN_PATTERN = re.compile(r"[^a-z0-9/]+")
# "psa10" -> "psa 10", "mt10" -> "mt 10"
_LETTER_DIGIT_PATTERN = re.compile(r"(?<=[a-z])(?=[0-9])")
# "004/102" -> "4/102"
_PADDED_NUMBER_PATTERN = re.compile(r"(?<![0-9])0+(?=[0-9]+/)")


def is_blocklisted(title: str) -> bool:
    return any(pattern.search(title) for pattern in BLOCKLIST_PATTERNS)


def normalize_title(text: str) -> str:
    """Lowercase and collapse everything except letters, digits and "/" to single spaces."""
    return _NON_TOKEN_PATTERN.sub(" ", text.lower()).strip()


def _format_grade(grade: float) -> str:
    return str(int(grade)) if float(grade).is_integer() else str(grade)


def grade_tokens(grade: float) -> list[str]:
    """
    Title tokens that state a grade.

    A half grade written "9.5" normalizes to "9 5", which is also how
    sellers who type "9 5" write it, so one token covers both.
    """
    compact = _format_grade(grade)
    tokens = [normalize_title(compact), normalize_title(f"grade {compact}")]
    return list(dict.fromkeys(tokens))


def _match_form(text: str) -> str:
    """Normalized text with glued company/grade split and card numbers unpadded."""
    text = _PADDED_NUMBER_PATTERN.sub("", normalize_title(text))
    return _LETTER_DIGIT_PATTERN.sub(" ", text)


def _has_token(padded_title: str, token: str) -> bool:
    return bool(token) and f" {token} " in padded_title


def listing_matches_identity(
    title: str,
    card: CardIdentity,
    grade_numeric: float,
    grading_company: GradingCompany,
) -> bool:
    """
    Check that a listing title names this card in this slab.

    Requires a card-name token, the card number and the company, plus
    either the grade or a set-name token. Tokens match whole words only,
    so grade "10" does not match inside "4/102". A company glued to its
    grade ("PSA10") and a zero-padded card number ("004/102") still match.
    """
    padded = f" {_match_form(title)} "

    name_tokens = _match_form(card.name).split()
    set_tokens = _match_form(card.set_name).split()
    number_token = _match_form(card.card_number)
    company_token = grading_company.value.lower()

    has_name = any(_has_token(padded, token) for token in name_tokens)
    has_number = _has_token(padded, number_token)
    has_company = _has_token(padded, company_token)
    has_grade = any(_has_token(padded, token) for token in grade_tokens(grade_numeric))
    has_set = any(_has_token(padded, token) for token in set_tokens)

    return has_name and has_number and has_company and (has_grade or has_set)


def build_search_query(
    card: CardIdentity,
    grade_numeric: float,
    grading_company: GradingCompany,
) -> str:
    return (
        f"{card.name} {card.card_number} {card.set_name} "
        f"{grading_company.value} {_format_grade(grade_numeric)} -reprint -proxy -lot"
    )


# =============================================================================
# STATISTICS
# =============================================================================

MIN_OUTLIER_SAMPLE = 6
IQR_FENCE = 1.5
RECENCY_DECAY_DAYS = 45


@dataclass(frozen=True, slots=True)
class WeightedPrice:
    price: float
    weight: float


@dataclass(frozen=True, slots=True)
class PriceBand:
    low: int
    mid: int
    high: int


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def outlier_bounds(prices: Sequence[float]) -> tuple[float, float] | None:
    """
    IQR fence for a price sample.

    Returns None when the sample is too small for quartiles.
    """
    if len(prices) < MIN_OUTLIER_SAMPLE:
        return None

    ordered = sorted(prices)
    n = len(ordered)
    q1 = ordered[math.floor(n * 0.25)]
    q3 = ordered[math.floor(n * 0.75)]
    iqr = q3 - q1
    return q1 - IQR_FENCE * iqr, q3 + IQR_FENCE * iqr


def remove_outliers(prices: Sequence[float]) -> list[float]:
    """Drop prices outside the IQR fence; samples under six pass through unchanged."""
    bounds = outlier_bounds(prices)
    if bounds is None:
        return list(prices)

    low, high = bounds
    return [price for price in prices if low <= price <= high]


def recency_weight(sold_at: datetime, now: datetime) -> float:
    age_days = (now - sold_at).total_seconds() / 86400
    return math.exp(-max(1.0, age_days) / RECENCY_DECAY_DAYS)


def weighted_percentile(points: Sequence[WeightedPrice], percentile: float) -> float:
    """
    Price at which cumulative weight first reaches the percentile.

    Args:
        points: Prices with weights, in any order
        percentile: Fraction in [0, 1]

    Returns:
        The price, or 0 for an empty input
    """
    if not points:
        return 0.0

    ordered = sorted(points, key=lambda p: p.price)
    total = sum(p.weight for p in ordered)
    target = percentile * total

    cumulative = 0.0
    for point in ordered:
        cumulative += point.weight
        if cumulative >= target:
            return point.price

    return ordered[-1].price


def compute_weighted_band(comps: Sequence[SoldComp], now: datetime) -> PriceBand:
    """Recency-weighted p25/p50/p75 over comps, after outlier removal."""
    bounds = outlier_bounds([comp.price for comp in comps])
    if bounds is not None:
        low, high = bounds
        comps = [comp for comp in comps if low <= comp.price <= high]

    points = [WeightedPrice(comp.price, recency_weight(comp.sold_at, now)) for comp in comps]
    return PriceBand(
        low=round_half_up(weighted_percentile(points, 0.25)),
        mid=round_half_up(weighted_percentile(points, 0.5)),
        high=round_half_up(weighted_percentile(points, 0.75)),
    )


# =============================================================================
# HEURISTIC FALLBACK
# =============================================================================

FALLBACK_BASE_PRICES: dict[str, int] = {
    "4/102": 900,
    "2/102": 450,
}
DEFAULT_BASE_PRICE = 380

GRADE_MULTIPLIERS: dict[float, float] = {
    10.0: 2.25,
    9.0: 1.12,
}
DEFAULT_GRADE_MULTIPLIER = 0.87

COMPANY_MULTIPLIERS: dict[GradingCompany, float] = {
    GradingCompany.PSA: 1.0,
    GradingCompany.BGS: 0.97,
    GradingCompany.CGC: 0.95,
}

FALLBACK_RANGE_LOW = 0.93
FALLBACK_RANGE_HIGH = 1.08


def fallback_valuation(
    card_number: str,
    grade_numeric: float,
    grading_company: GradingCompany,
) -> Valuation:
    """
    Deterministic heuristic valuation for when no comps are available.

    Same inputs always give the same numbers, and
    range_low <= fair_market_value <= range_high always holds.
    """
    base = FALLBACK_BASE_PRICES.get(card_number, DEFAULT_BASE_PRICE)
    grade_multiplier = GRADE_MULTIPLIERS.get(float(grade_numeric), DEFAULT_GRADE_MULTIPLIER)
    company_multiplier = COMPANY_MULTIPLIERS[grading_company]

    mid = round_half_up(base * grade_multiplier * company_multiplier)
    return Valuation(
        fair_market_value=mid,
        range_low=round_half_up(mid * FALLBACK_RANGE_LOW),
        range_high=round_half_up(mid * FALLBACK_RANGE_HIGH),
        sample_size=0,
        window_days=VALUATION_WINDOW_DAYS,
    )


# =============================================================================
# AGGREGATOR
# =============================================================================


class MarketCompAggregator:
    """
    Values a graded card from marketplace sold comps.

    Never raises on marketplace trouble: fetch failures and empty samples
    both produce the heuristic fallback.
    """

    def __init__(self, comps_client: EbayCompsClient | None = None) -> None:
        self.comps_client = comps_client

    async def compute_valuation(
        self,
        card: CardIdentity,
        grade_numeric: float,
        grading_company: GradingCompany,
        now: datetime | None = None,
    ) -> Valuation:
        """
        Compute a Valuation for a card in a given slab.

        Args:
            card: Card to value
            grade_numeric: Numeric grade
            grading_company: Company that graded the slab
            now: Reference time for recency weighting. Defaults to the current time.

        Returns:
            Valuation from comps, or the heuristic fallback with sample_size 0
        """
        now = now or datetime.now(UTC)

        if self.comps_client is None:
            return fallback_valuation(card.card_number, grade_numeric, grading_company)

        query = build_search_query(card, grade_numeric, grading_company)
        try:
            comps = await self.comps_client.fetch_sold_comps(query)
        except (UpstreamUnavailableError, MalformedUpstreamResponseError, httpx.HTTPError) as e:
            logger.warning(
                "MARKET_COMPS_FALLBACK",
                extra={"reason": "fetch_failed", "query": query, "error": str(e)},
            )
            return fallback_valuation(card.card_number, grade_numeric, grading_company)

        relevant = [
            comp
            for comp in comps
            if math.isfinite(comp.price)
            and not is_blocklisted(comp.title)
            and listing_matches_identity(comp.title, card, grade_numeric, grading_company)
        ]

        if not relevant:
            logger.info(
                "MARKET_COMPS_FALLBACK",
                extra={"reason": "no_relevant_comps", "query": query, "fetched": len(comps)},
            )
            return fallback_valuation(card.card_number, grade_numeric, grading_company)

        band = compute_weighted_band(relevant, now)
        logger.info(
            "MARKET_VALUATION_COMPUTED",
            extra={
                "query": query,
                "fetched": len(comps),
                "sample_size": len(relevant),
                "fair_market_value": band.mid,
            },
        )
        return Valuation(
            fair_market_value=band.mid,
            range_low=band.low,
            range_high=band.high,
            sample_size=len(relevant),
            window_days=VALUATION_WINDOW_DAYS,
        )


def build_market_aggregator(
    settings: Settings,
    token_cache: EbayTokenCache | None = None,
) -> MarketCompAggregator:
    """
    Build the aggregator for the configured environment.

    Without eBay credentials every valuation is the heuristic fallback.
    """
    if not (settings.ebay_client_id and settings.ebay_client_secret):
        logger.info("MARKET_COMPS_DISABLED", extra={"reason": "ebay credentials not configured"})
        return MarketCompAggregator()

    cache = token_cache or EbayTokenCache(settings.ebay_client_id, settings.ebay_client_secret)
    client = EbayCompsClient(
        cache,
        marketplace_id=settings.ebay_marketplace_id,
        timeout=settings.http_timeout_seconds,
    )
    return MarketCompAggregator(client)
