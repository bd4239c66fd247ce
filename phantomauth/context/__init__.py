"""
Request context fingerprinting.

Provides:
- PhantomContext derivation from raw request signals
- Tolerant context matching (exact hashes, 50 km geo radius)
"""

from .engine import (
    GeoLocation,
    PhantomContext,
    RequestSignals,
    derive_context,
    match_context,
    haversine_km,
    hash_signal,
)

__all__ = [
    "GeoLocation",
    "PhantomContext",
    "RequestSignals",
    "derive_context",
    "match_context",
    "haversine_km",
    "hash_signal",
]
