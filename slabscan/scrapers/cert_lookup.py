"""
Certificate lookup against grading authority public records.

Each grading company publishes a cert verification page. Fetching it for
the cert number on a slab gives an independent read of the card and
grade, which corroborates (or corrects) the vision guess.

Note: Web scraping is inherently fragile. Page structure may change.
Lookups never raise on fetch failures; they come back unmatched.
"""

import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from slabscan.config import settings
from slabscan.models.card import CertLookupResult, GradingCompany
from slabscan.parsers.label_text import build_card_identity, extract_label_fields

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


@dataclass(frozen=True, slots=True)
class CertProvider:
    """
    How to look up a cert for one grading company.

    Attributes:
        company: Grading company this provider answers for
        url_template: Public record URL with a {cert} placeholder
        match_pattern: Keywords that confirm the page is a real cert record
    """

    company: GradingCompany
    url_template: str
    match_pattern: re.Pattern[str]

    def url_for(self, cert_number: str) -> str:
        return self.url_template.format(cert=quote(cert_number, safe=""))


CERT_PROVIDERS: dict[GradingCompany, CertProvider] = {
    GradingCompany.PSA: CertProvider(
        company=GradingCompany.PSA,
        url_template="https://www.psacard.com/cert/{cert}",
        match_pattern=re.compile(r"psa|cert\s*verification", re.IGNORECASE),
    ),
    GradingCompany.BGS: CertProvider(
        company=GradingCompany.BGS,
        url_template="https://www.beckett.com/grading/card-lookup?item_type=BGS&item_id={cert}",
        match_pattern=re.compile(r"beckett|bgs|grading", re.IGNORECASE),
    ),
    GradingCompany.CGC: CertProvider(
        company=GradingCompany.CGC,
        url_template="https://www.cgccards.com/certlookup/{cert}/",
        match_pattern=re.compile(r"cgc|cert\s*lookup|grading", re.IGNORECASE),
    ),
}


def parse_cert_page(html: str, provider: CertProvider, source_url: str) -> CertLookupResult:
    """
    Parse a cert verification page into a lookup result.

    Card, company and grade are only filled in when the page text
    carries the provider's match keywords.
    """
    fields = extract_label_fields(html)
    matched = bool(provider.match_pattern.search(fields.raw_label_text))

    if not matched:
        return CertLookupResult(
            matched=False,
            raw_label_text=fields.raw_label_text,
            source_url=source_url,
        )

    return CertLookupResult(
        matched=True,
        card=build_card_identity(fields),
        grading_company=provider.company,
        grade_numeric=fields.grade_numeric,
        raw_label_text=fields.raw_label_text,
        source_url=source_url,
    )


async def lookup_cert_number(
    cert_number: str | None,
    grading_company: GradingCompany,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> CertLookupResult:
    """
    Look up a cert number with the grading company that issued it.

    Args:
        cert_number: Cert number from the slab label; None or blank skips the lookup
        grading_company: Company whose public record to query
        client: Optional httpx client for connection reuse
        timeout: Request timeout in seconds. Defaults to settings.http_timeout_seconds.

    Returns:
        CertLookupResult. Unmatched on blank input, non-2xx status or
        transport failure; source_url is kept whenever a request was built.
    """
    if not cert_number or not cert_number.strip():
        return CertLookupResult(matched=False)

    provider = CERT_PROVIDERS[grading_company]
    source_url = provider.url_for(cert_number.strip())
    request_timeout = timeout if timeout is not None else settings.http_timeout_seconds

    try:
        if client:
            response = await client.get(source_url, timeout=request_timeout)
        else:
            async with httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
                timeout=request_timeout,
            ) as owned_client:
                response = await owned_client.get(source_url)
    except httpx.HTTPError as e:
        logger.warning(
            "CERT_LOOKUP_FAILED",
            extra={
                "kind": "upstream_unavailable",
                "grading_company": grading_company.value,
                "source_url": source_url,
                "error": str(e),
            },
        )
        return CertLookupResult(matched=False, source_url=source_url)

    if not response.is_success:
        logger.info(
            "CERT_LOOKUP_HTTP_STATUS",
            extra={
                "grading_company": grading_company.value,
                "source_url": source_url,
                "status_code": response.status_code,
            },
        )
        return CertLookupResult(matched=False, source_url=source_url)

    result = parse_cert_page(response.text, provider, source_url)
    logger.info(
        "CERT_LOOKUP_COMPLETED",
        extra={
            "grading_company": grading_company.value,
            "matched": result.matched,
            "source_url": source_url,
        },
    )
    return result


class CertificateResolver:
    """
    Cert lookups with a fixed timeout and an optional shared client.

    Built once at startup and shared by every scan.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.client = client
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds

    async def lookup(
        self, cert_number: str | None, grading_company: GradingCompany
    ) -> CertLookupResult:
        return await lookup_cert_number(
            cert_number,
            grading_company,
            client=self.client,
            timeout=self.timeout,
        )
