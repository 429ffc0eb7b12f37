from slabscan.models.card import (
    CardIdentity,
    CertLookupResult,
    GradingCompany,
    LabelFields,
    ResolvedIdentity,
)
from slabscan.models.failure import (
    FailureKind,
    KnownError,
    MalformedUpstreamResponseError,
    ScanNotFoundError,
    UpstreamUnavailableError,
)
from slabscan.models.scan import (
    ScanAnalysis,
    ScanRecord,
    ScanStatus,
    SoldComp,
    Valuation,
)

__all__ = [
    "CardIdentity",
    "CertLookupResult",
    "FailureKind",
    "GradingCompany",
    "KnownError",
    "LabelFields",
    "MalformedUpstreamResponseError",
    "ResolvedIdentity",
    "ScanAnalysis",
    "ScanNotFoundError",
    "ScanRecord",
    "ScanStatus",
    "SoldComp",
    "UpstreamUnavailableError",
    "Valuation",
]
