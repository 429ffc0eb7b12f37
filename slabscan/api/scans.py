"""
Scan API endpoints.

Analyze a slab photo, fetch a stored scan, and confirm its identity.
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from slabscan.api.dependencies import get_orchestrator, get_scan_store
from slabscan.db.store import ScanStore
from slabscan.models.card import GradingCompany, ResolvedIdentity
from slabscan.models.failure import ScanNotFoundError
from slabscan.models.scan import ScanStatus, Valuation
from slabscan.services.valuation import ValuationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/scans", tags=["scans"])


class CardResponse(BaseModel):
    name: str
    set_name: str
    card_number: str


class IdentityResponse(BaseModel):
    """Resolved identity of a scanned slab."""

    card: CardResponse
    grading_company: GradingCompany
    grade_numeric: float
    cert_number: str | None = None
    confidence: float
    alternatives: list[CardResponse] = Field(default_factory=list)
    raw_label_text: str = ""

    @classmethod
    def from_identity(cls, identity: ResolvedIdentity) -> "IdentityResponse":
        return cls.model_validate(identity.to_dict())


class ValuationResponse(BaseModel):
    """Fair market value band in USD."""

    currency: str = "USD"
    fair_market_value: int
    range_low: int
    range_high: int
    sample_size: int
    window_days: int

    @classmethod
    def from_valuation(cls, valuation: Valuation) -> "ValuationResponse":
        return cls.model_validate(valuation.to_dict())


class UserHints(BaseModel):
    grading_company: GradingCompany | None = None


class AnalyzeRequest(BaseModel):
    """Request model for analyzing a slab photo."""

    image_base64: str = Field(
        ...,
        min_length=1,
        description="Base64-encoded photo of the slab, optionally as a data URL",
    )
    user_hints: UserHints | None = None


class AnalyzeResponse(BaseModel):
    scan_id: str
    identity: IdentityResponse
    valuation: ValuationResponse
    needs_user_confirmation: bool


class ConfirmRequest(BaseModel):
    """Request model for confirming a scan's identity."""

    card_catalog_id: str = Field(..., min_length=1)
    grading_company: GradingCompany
    grade_numeric: float = Field(..., ge=1, le=10)


class ConfirmResponse(BaseModel):
    scan_id: str
    status: ScanStatus
    valuation: ValuationResponse


class ScanResponse(BaseModel):
    """A stored scan."""

    scan_id: str
    identity: IdentityResponse
    valuation: ValuationResponse
    needs_user_confirmation: bool
    status: ScanStatus
    created_at: datetime
    updated_at: datetime


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={500: {"description": "Analysis failed"}},
)
async def analyze_scan(
    request: AnalyzeRequest,
    orchestrator: Annotated[ValuationOrchestrator, Depends(get_orchestrator)],
    store: Annotated[ScanStore, Depends(get_scan_store)],
) -> AnalyzeResponse | JSONResponse:
    """
    Identify and value a slab photo, then store the result.

    Vision, certificate and marketplace failures fall back to offline
    answers, so a 500 here means something unexpected broke.
    """
    hint = request.user_hints.grading_company if request.user_hints else None

    try:
        analysis = await orchestrator.analyze_scan(request.image_base64, hint)
        record = await store.create_scan(analysis)
    except Exception as e:
        logger.exception("SCAN_ANALYZE_FAILED", extra={"error_type": type(e).__name__})
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to analyze scan", "message": str(e) or "Unknown error"},
        )

    logger.info(
        "SCAN_ANALYZED",
        extra={
            "scan_id": record.scan_id,
            "needs_user_confirmation": record.needs_user_confirmation,
        },
    )
    return AnalyzeResponse(
        scan_id=record.scan_id,
        identity=IdentityResponse.from_identity(record.identity),
        valuation=ValuationResponse.from_valuation(record.valuation),
        needs_user_confirmation=record.needs_user_confirmation,
    )


@router.post(
    "/{scan_id}/confirm",
    response_model=ConfirmResponse,
    responses={404: {"description": "Scan not found"}},
)
async def confirm_scan(
    scan_id: str,
    request: ConfirmRequest,
    store: Annotated[ScanStore, Depends(get_scan_store)],
) -> ConfirmResponse:
    """
    Confirm a scan.

    Confirming twice is not an error; the scan stays confirmed.
    """
    record = await store.confirm_scan(scan_id)
    if record is None:
        raise ScanNotFoundError(scan_id)

    logger.info(
        "SCAN_CONFIRMED",
        extra={
            "scan_id": scan_id,
            "card_catalog_id": request.card_catalog_id,
            "grading_company": request.grading_company.value,
            "grade_numeric": request.grade_numeric,
        },
    )
    return ConfirmResponse(
        scan_id=record.scan_id,
        status=record.status,
        valuation=ValuationResponse.from_valuation(record.valuation),
    )


@router.get(
    "/{scan_id}",
    response_model=ScanResponse,
    responses={404: {"description": "Scan not found"}},
)
async def get_scan(
    scan_id: str,
    store: Annotated[ScanStore, Depends(get_scan_store)],
) -> ScanResponse:
    record = await store.get_scan(scan_id)
    if record is None:
        raise ScanNotFoundError(scan_id)

    return ScanResponse(
        scan_id=record.scan_id,
        identity=IdentityResponse.from_identity(record.identity),
        valuation=ValuationResponse.from_valuation(record.valuation),
        needs_user_confirmation=record.needs_user_confirmation,
        status=record.status,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
