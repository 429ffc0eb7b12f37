"""
Valuation orchestrator.

Runs the scan pipeline for one photo:

    received -> identity_resolved -> cert_checked -> valued

Each step logs its progress. Provider failures are absorbed inside the
resolvers and the aggregator, so the only errors that escape here are
programmer errors.
"""

import logging
from dataclasses import replace

from slabscan.config import (
    CERT_CONFIDENCE_BOOST,
    CONFIRMATION_THRESHOLD,
    MAX_CONFIDENCE,
    Settings,
)
from slabscan.market.comps import MarketCompAggregator, build_market_aggregator
from slabscan.market.ebay import EbayTokenCache
from slabscan.models.card import CertLookupResult, GradingCompany, ResolvedIdentity
from slabscan.models.scan import ScanAnalysis
from slabscan.scrapers.cert_lookup import CertificateResolver
from slabscan.vision.resolver import IdentityResolver, build_identity_resolver

logger = logging.getLogger(__name__)


def apply_cert_corroboration(
    identity: ResolvedIdentity,
    cert: CertLookupResult,
) -> ResolvedIdentity:
    """
    Fold a certificate lookup into a resolved identity.

    An unmatched lookup changes nothing. A matched one overwrites card,
    company and grade with whichever of them the record supplied, and
    raises confidence by CERT_CONFIDENCE_BOOST up to MAX_CONFIDENCE.
    Confidence is never lowered.
    """
    if not cert.matched:
        return identity

    boosted = min(MAX_CONFIDENCE, identity.confidence + CERT_CONFIDENCE_BOOST)
    return replace(
        identity,
        card=cert.card or identity.card,
        grading_company=cert.grading_company or identity.grading_company,
        grade_numeric=(
            cert.grade_numeric if cert.grade_numeric is not None else identity.grade_numeric
        ),
        confidence=max(identity.confidence, boosted),
    )


def needs_confirmation(confidence: float) -> bool:
    return confidence < CONFIRMATION_THRESHOLD


class ValuationOrchestrator:
    """
    Identity, corroboration and valuation for a slab photo.

    Collaborators are injected so tests can swap any of them.
    """

    def __init__(
        self,
        identity_resolver: IdentityResolver,
        cert_resolver: CertificateResolver,
        aggregator: MarketCompAggregator,
    ) -> None:
        self.identity_resolver = identity_resolver
        self.cert_resolver = cert_resolver
        self.aggregator = aggregator

    async def analyze_scan(
        self,
        image_base64: str,
        grading_company_hint: GradingCompany | None = None,
    ) -> ScanAnalysis:
        """
        Analyze one slab photo.

        Args:
            image_base64: Base64 image payload, optionally a data URL
            grading_company_hint: Company the user says graded the slab

        Returns:
            ScanAnalysis with the final identity, its valuation and whether
            the user should confirm the identity
        """
        logger.info(
            "SCAN_STEP",
            extra={
                "step": "received",
                "grading_company_hint": grading_company_hint.value if grading_company_hint else None,
            },
        )

        identity = await self.identity_resolver.resolve(image_base64, grading_company_hint)
        logger.info(
            "SCAN_STEP",
            extra={
                "step": "identity_resolved",
                "card_name": identity.card.name,
                "confidence": identity.confidence,
            },
        )

        if identity.cert_number:
            cert = await self.cert_resolver.lookup(identity.cert_number, identity.grading_company)
            identity = apply_cert_corroboration(identity, cert)
            logger.info(
                "SCAN_STEP",
                extra={
                    "step": "cert_checked",
                    "matched": cert.matched,
                    "confidence": identity.confidence,
                },
            )
        else:
            logger.info("SCAN_STEP", extra={"step": "cert_checked", "skipped": True})

        valuation = await self.aggregator.compute_valuation(
            identity.card,
            identity.grade_numeric,
            identity.grading_company,
        )
        logger.info(
            "SCAN_STEP",
            extra={
                "step": "valued",
                "fair_market_value": valuation.fair_market_value,
                "sample_size": valuation.sample_size,
            },
        )

        return ScanAnalysis(
            identity=identity,
            valuation=valuation,
            needs_user_confirmation=needs_confirmation(identity.confidence),
        )


def build_orchestrator(
    settings: Settings,
    token_cache: EbayTokenCache | None = None,
) -> ValuationOrchestrator:
    """Wire the production resolvers and aggregator from settings."""
    return ValuationOrchestrator(
        identity_resolver=build_identity_resolver(settings),
        cert_resolver=CertificateResolver(timeout=settings.http_timeout_seconds),
        aggregator=build_market_aggregator(settings, token_cache=token_cache),
    )
