"""
SlabScan services.

Business logic that ties identity, corroboration and valuation together.
"""

from slabscan.services.valuation import (
    ValuationOrchestrator,
    apply_cert_corroboration,
    build_orchestrator,
    needs_confirmation,
)

__all__ = [
    "ValuationOrchestrator",
    "apply_cert_corroboration",
    "build_orchestrator",
    "needs_confirmation",
]
