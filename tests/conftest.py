from datetime import UTC, datetime

import pytest

from slabscan.models.card import CardIdentity, GradingCompany, ResolvedIdentity
from slabscan.models.failure import UpstreamUnavailableError


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 1, 31, 12, 0, tzinfo=UTC)


@pytest.fixture
def charizard() -> CardIdentity:
    return CardIdentity(name="Charizard", set_name="Base Set", card_number="4/102")


@pytest.fixture
def blastoise() -> CardIdentity:
    return CardIdentity(name="Blastoise", set_name="Base Set", card_number="2/102")


@pytest.fixture
def charizard_identity(charizard: CardIdentity) -> ResolvedIdentity:
    """Charizard PSA 9 read with middling confidence and no cert number."""
    return ResolvedIdentity(
        card=charizard,
        grading_company=GradingCompany.PSA,
        grade_numeric=9.0,
        cert_number=None,
        confidence=0.75,
    )


@pytest.fixture
def unavailable_error() -> UpstreamUnavailableError:
    return UpstreamUnavailableError("ebay_finding", detail="connection refused")
