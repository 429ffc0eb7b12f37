from slabscan.vision.resolver import (
    DeterministicFallbackResolver,
    FallbackIdentityResolver,
    IdentityResolver,
    ModelBackedResolver,
    build_identity_resolver,
)

__all__ = [
    "DeterministicFallbackResolver",
    "FallbackIdentityResolver",
    "IdentityResolver",
    "ModelBackedResolver",
    "build_identity_resolver",
]
