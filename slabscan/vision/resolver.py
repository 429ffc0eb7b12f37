"""
Visual identity resolution for slab photos.

Resolvers turn an image into a ResolvedIdentity. Two implementations
share the IdentityResolver interface:

- ModelBackedResolver asks a vision model to read the slab label.
- DeterministicFallbackResolver derives a demo identity from a hash of
  the image, so the same photo always yields the same answer offline.

FallbackIdentityResolver composes them: any error from the model path
is logged and answered by the offline path instead. Callers never see
a vision failure.
"""

import base64
import binascii
import hashlib
import json
import logging
import re
from typing import Any, Protocol

import anthropic
from anthropic.types import TextBlock

from slabscan.config import MAX_CONFIDENCE, Settings
from slabscan.models.card import CardIdentity, GradingCompany, ResolvedIdentity
from slabscan.models.failure import MalformedUpstreamResponseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

# =============================================================================
# OFFLINE DEMO CATALOG
# =============================================================================

DEMO_CATALOG: tuple[CardIdentity, ...] = (
    CardIdentity(name="Charizard", set_name="Base Set", card_number="4/102"),
    CardIdentity(name="Blastoise", set_name="Base Set", card_number="2/102"),
    CardIdentity(name="Venusaur", set_name="Base Set", card_number="15/102"),
)

DEMO_GRADES: tuple[float, ...] = (8.0, 9.0, 10.0)

# Characters of the base64 payload that feed the seed
SEED_PREFIX_LENGTH = 120

FALLBACK_MIN_CONFIDENCE = 0.72
FALLBACK_MAX_CONFIDENCE = 0.92

MIN_MODEL_CONFIDENCE = 0.01
DEFAULT_MODEL_CONFIDENCE = 0.7
DEFAULT_MODEL_GRADE = 9.0
MAX_ALTERNATIVES = 2

VISION_PROMPT = (
    "You are identifying a graded Pokemon card slab from a single image. "
    "Return strict JSON with keys: cardName, setName, cardNumber, gradingCompany, "
    "gradeNumeric, certNumber, confidence, alternatives, rawLabelText. "
    "alternatives should be up to 2 objects with cardName, setName, cardNumber. "
    "confidence is 0.0-1.0. Return only the JSON object."
)

_CODE_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class IdentityResolver(Protocol):
    """Anything that can turn a slab photo into an identity."""

    async def resolve(
        self,
        image_base64: str,
        grading_company_hint: GradingCompany | None = None,
    ) -> ResolvedIdentity: ...


# =============================================================================
# NORMALIZATION HELPERS
# =============================================================================


def normalize_company(value: str | None) -> GradingCompany:
    """
    Map free-text grading company names onto the closed enumeration.

    Anything that is not recognizably Beckett or CGC is treated as PSA.
    """
    upper = (value or "").upper()
    if "BGS" in upper or "BECKETT" in upper:
        return GradingCompany.BGS
    if "CGC" in upper:
        return GradingCompany.CGC
    return GradingCompany.PSA


def clamp_grade(value: float) -> float:
    """Clamp to [1, 10] and snap to the nearest half point."""
    clamped = max(1.0, min(10.0, value))
    return round(clamped * 2) / 2


def clamp_confidence(value: float) -> float:
    return max(MIN_MODEL_CONFIDENCE, min(MAX_CONFIDENCE, value))


def _as_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _card_from_payload(data: dict[str, Any]) -> CardIdentity:
    return CardIdentity(
        name=str(data.get("cardName") or "").strip(),
        set_name=str(data.get("setName") or "").strip(),
        card_number=str(data.get("cardNumber") or "").strip(),
    )


def parse_model_identity(
    payload: dict[str, Any],
    grading_company_hint: GradingCompany | None = None,
) -> ResolvedIdentity:
    """
    Validate and normalize a vision model's JSON answer.

    Args:
        payload: Decoded JSON object from the model
        grading_company_hint: Caller-supplied company; always wins when set

    Returns:
        ResolvedIdentity with grade and confidence clamped

    Raises:
        MalformedUpstreamResponseError: If the card name is missing or
            alternatives are not a list of objects
    """
    card = _card_from_payload(payload)
    if not card.name:
        raise MalformedUpstreamResponseError("vision", detail="cardName missing")

    raw_alternatives = payload.get("alternatives") or []
    if not isinstance(raw_alternatives, list) or not all(
        isinstance(alt, dict) for alt in raw_alternatives
    ):
        raise MalformedUpstreamResponseError("vision", detail="alternatives malformed")

    cert_number = payload.get("certNumber")
    cert_number = str(cert_number).strip() if cert_number not in (None, "") else None

    return ResolvedIdentity(
        card=card,
        grading_company=grading_company_hint or normalize_company(payload.get("gradingCompany")),
        grade_numeric=clamp_grade(_as_float(payload.get("gradeNumeric"), DEFAULT_MODEL_GRADE)),
        cert_number=cert_number or None,
        confidence=clamp_confidence(
            _as_float(payload.get("confidence"), DEFAULT_MODEL_CONFIDENCE)
        ),
        alternatives=tuple(_card_from_payload(alt) for alt in raw_alternatives[:MAX_ALTERNATIVES]),
        raw_label_text=str(payload.get("rawLabelText") or ""),
    )


# =============================================================================
# OFFLINE RESOLVER
# =============================================================================


def image_seed(image_base64: str) -> int:
    """
    Stable seed for an image payload.

    Hashes the first SEED_PREFIX_LENGTH characters with SHA-256 and keeps
    32 bits. Identical payload prefixes always give identical seeds.
    """
    prefix = image_base64[:SEED_PREFIX_LENGTH].encode("utf-8")
    return int(hashlib.sha256(prefix).hexdigest()[:8], 16)


def identity_from_seed(
    seed: int,
    grading_company_hint: GradingCompany | None = None,
) -> ResolvedIdentity:
    """
    Build the offline identity for a seed.

    The card and the grade read different parts of the seed so that every
    card can appear with every grade.
    """
    catalog_size = len(DEMO_CATALOG)
    card = DEMO_CATALOG[seed % catalog_size]
    grade = DEMO_GRADES[(seed // catalog_size) % len(DEMO_GRADES)]

    steps = round((FALLBACK_MAX_CONFIDENCE - FALLBACK_MIN_CONFIDENCE) * 100) + 1
    confidence = round(FALLBACK_MIN_CONFIDENCE + (seed % steps) / 100, 2)

    return ResolvedIdentity(
        card=card,
        grading_company=grading_company_hint or GradingCompany.PSA,
        grade_numeric=grade,
        cert_number=None,
        confidence=confidence,
        alternatives=tuple(c for c in DEMO_CATALOG if c.card_number != card.card_number)[
            :MAX_ALTERNATIVES
        ],
        raw_label_text="",
    )


class DeterministicFallbackResolver:
    """Offline resolver: same bytes in, same identity out. Never raises."""

    async def resolve(
        self,
        image_base64: str,
        grading_company_hint: GradingCompany | None = None,
    ) -> ResolvedIdentity:
        return identity_from_seed(image_seed(image_base64), grading_company_hint)


# =============================================================================
# MODEL-BACKED RESOLVER
# =============================================================================


def _strip_data_url(image_base64: str) -> str:
    if image_base64.startswith("data:") and "," in image_base64:
        return image_base64.split(",", 1)[1]
    return image_base64


def guess_media_type(image_base64: str) -> str:
    """Sniff the image format from the first decoded bytes; JPEG by default."""
    try:
        head = base64.b64decode(image_base64[:24], validate=False)
    except (binascii.Error, ValueError):
        return "image/jpeg"

    if head.startswith(b"\x89PNG"):
        return "image/png"
    if head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return "image/webp"
    if head.startswith(b"GIF8"):
        return "image/gif"
    return "image/jpeg"


def decode_model_text(text: str) -> dict[str, Any]:
    """
    Decode the model's text answer into a JSON object.

    Tolerates a surrounding markdown code fence.

    Raises:
        MalformedUpstreamResponseError: If the text is not a JSON object
    """
    cleaned = _CODE_FENCE_PATTERN.sub("", text.strip())
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedUpstreamResponseError("vision", detail=str(e)) from e

    if not isinstance(payload, dict):
        raise MalformedUpstreamResponseError("vision", detail="expected a JSON object")
    return payload


class ModelBackedResolver:
    """
    Resolver backed by an Anthropic vision model.

    Sends the photo and a fixed instruction prompt in a single request and
    validates the structured answer.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 12.0,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.model = model
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def resolve(
        self,
        image_base64: str,
        grading_company_hint: GradingCompany | None = None,
    ) -> ResolvedIdentity:
        """
        Ask the model to read the slab.

        Raises:
            UpstreamUnavailableError: If the API call fails
            MalformedUpstreamResponseError: If the answer is not valid JSON
                of the expected shape
        """
        data = _strip_data_url(image_base64)

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=1024,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": guess_media_type(data),
                                    "data": data,
                                },
                            },
                            {"type": "text", "text": VISION_PROMPT},
                        ],
                    }
                ],
            )
        except anthropic.APIError as e:
            raise UpstreamUnavailableError("vision", detail=str(e)) from e

        text = "".join(block.text for block in response.content if isinstance(block, TextBlock))
        identity = parse_model_identity(decode_model_text(text), grading_company_hint)

        logger.info(
            "VISION_IDENTITY_RESOLVED",
            extra={
                "card_name": identity.card.name,
                "grading_company": identity.grading_company.value,
                "grade_numeric": identity.grade_numeric,
                "confidence": identity.confidence,
            },
        )
        return identity


# =============================================================================
# COMPOSITION
# =============================================================================


class FallbackIdentityResolver:
    """
    Try the primary resolver; on any error, answer with the fallback.

    The fallback must not raise.
    """

    def __init__(self, primary: IdentityResolver, fallback: IdentityResolver) -> None:
        self.primary = primary
        self.fallback = fallback

    async def resolve(
        self,
        image_base64: str,
        grading_company_hint: GradingCompany | None = None,
    ) -> ResolvedIdentity:
        try:
            return await self.primary.resolve(image_base64, grading_company_hint)
        except Exception as e:
            logger.warning(
                "VISION_FALLBACK",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return await self.fallback.resolve(image_base64, grading_company_hint)


def build_identity_resolver(settings: Settings) -> IdentityResolver:
    """
    Build the resolver for the configured environment.

    Without a vision API key the offline resolver is used on its own.
    """
    fallback = DeterministicFallbackResolver()
    if not settings.anthropic_api_key:
        logger.info("VISION_DISABLED", extra={"reason": "anthropic_api_key not configured"})
        return fallback

    primary = ModelBackedResolver(
        api_key=settings.anthropic_api_key,
        model=settings.vision_model,
        timeout=settings.http_timeout_seconds,
    )
    return FallbackIdentityResolver(primary, fallback)
