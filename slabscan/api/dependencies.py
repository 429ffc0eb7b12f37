"""
Request dependencies.

The orchestrator and scan store are built once in the application
lifespan and kept on app.state. Tests override these dependencies to
inject fresh instances.
"""

from fastapi import Request

from slabscan.db.store import ScanStore
from slabscan.services.valuation import ValuationOrchestrator


def get_orchestrator(request: Request) -> ValuationOrchestrator:
    orchestrator: ValuationOrchestrator = request.app.state.orchestrator
    return orchestrator


def get_scan_store(request: Request) -> ScanStore:
    store: ScanStore = request.app.state.scan_store
    return store
