"""
Context fingerprint engine.

A PhantomContext summarizes where a request came from: hashed IP and
user-agent, an optional client-supplied device fingerprint and optional
geolocation hints. Credentials are bound to the context they were issued
in and only redeemable from a matching one.

Matching is tolerant: only fields present on the *expected* side are
enforced, and coordinates match within a great-circle radius.
"""

import hashlib
import math
from dataclasses import dataclass
from typing import Mapping, Optional

EARTH_RADIUS_KM = 6371.0
DEFAULT_GEO_RADIUS_KM = 50.0
HASH_LENGTH = 16

# Header names, compared case-insensitively
HEADER_FORWARDED_FOR = "x-forwarded-for"
HEADER_USER_AGENT = "user-agent"
HEADER_FINGERPRINT = "x-device-fingerprint"
HEADER_COUNTRY = "cf-ipcountry"
HEADER_CITY = "cf-ipcity"
HEADER_LATITUDE = "cf-latitude"
HEADER_LONGITUDE = "cf-longitude"


@dataclass(frozen=True)
class GeoLocation:
    """Geolocation hints. Every field is optional."""
    country: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    long: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.long is not None

    def to_dict(self) -> dict:
        """Only the fields that are set."""
        data = {}
        if self.country is not None:
            data["country"] = self.country
        if self.city is not None:
            data["city"] = self.city
        if self.lat is not None:
            data["lat"] = self.lat
        if self.long is not None:
            data["long"] = self.long
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GeoLocation":
        return cls(
            country=data.get("country"),
            city=data.get("city"),
            lat=_to_float(data.get("lat")),
            long=_to_float(data.get("long")),
        )


@dataclass(frozen=True)
class PhantomContext:
    """
    Derived summary of request-origin signals.

    Produced once per request by ``derive_context`` and never mutated.
    """
    ip_hash: str
    user_agent_hash: str
    fingerprint: Optional[str] = None
    geo_location: Optional[GeoLocation] = None
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "ip_hash": self.ip_hash,
            "user_agent_hash": self.user_agent_hash,
            "fingerprint": self.fingerprint,
            "geo_location": self.geo_location.to_dict() if self.geo_location else None,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PhantomContext":
        geo = data.get("geo_location")
        return cls(
            ip_hash=data["ip_hash"],
            user_agent_hash=data["user_agent_hash"],
            fingerprint=data.get("fingerprint"),
            geo_location=GeoLocation.from_dict(geo) if geo else None,
            timestamp=data.get("timestamp", 0.0),
        )


@dataclass(frozen=True)
class RequestSignals:
    """Raw, unhashed signals taken from an incoming request."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    fingerprint: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        client_ip: Optional[str] = None,
    ) -> "RequestSignals":
        """
        Extract signals from request headers.

        The first X-Forwarded-For hop wins over the socket address.
        Geolocation comes from Cloudflare-style CF-* headers.
        """
        lowered = {k.lower(): v for k, v in headers.items()}

        ip = client_ip
        forwarded = lowered.get(HEADER_FORWARDED_FOR)
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                ip = first_hop

        return cls(
            ip=ip,
            user_agent=lowered.get(HEADER_USER_AGENT),
            fingerprint=lowered.get(HEADER_FINGERPRINT) or None,
            country=lowered.get(HEADER_COUNTRY) or None,
            city=lowered.get(HEADER_CITY) or None,
            latitude=_to_float(lowered.get(HEADER_LATITUDE)),
            longitude=_to_float(lowered.get(HEADER_LONGITUDE)),
        )


def _to_float(value) -> Optional[float]:
    """Parse a coordinate, dropping anything unparseable or NaN."""
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def hash_signal(value: str) -> str:
    """One-way hash of a signal, truncated to 16 hex chars."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def derive_context(signals: RequestSignals, now: float) -> PhantomContext:
    """Derive a PhantomContext from raw request signals."""
    geo = None
    if (
        signals.country
        or signals.city
        or signals.latitude is not None
        or signals.longitude is not None
    ):
        geo = GeoLocation(
            country=signals.country,
            city=signals.city,
            lat=signals.latitude,
            long=signals.longitude,
        )

    return PhantomContext(
        ip_hash=hash_signal(signals.ip or "unknown"),
        user_agent_hash=hash_signal(signals.user_agent or ""),
        fingerprint=signals.fingerprint,
        geo_location=geo,
        timestamp=now,
    )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) * math.sin(d_lon / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def match_context(
    expected: PhantomContext,
    actual: PhantomContext,
    radius_km: float = DEFAULT_GEO_RADIUS_KM,
) -> bool:
    """
    Check whether ``actual`` satisfies ``expected``.

    Each predicate applies only when the expected side carries the field.
    """
    if expected.fingerprint and expected.fingerprint != actual.fingerprint:
        return False

    if expected.ip_hash and expected.ip_hash != actual.ip_hash:
        return False

    if expected.user_agent_hash and expected.user_agent_hash != actual.user_agent_hash:
        return False

    expected_geo = expected.geo_location
    if expected_geo is None:
        return True

    actual_geo = actual.geo_location
    if actual_geo is None:
        return False

    if expected_geo.country and expected_geo.country != actual_geo.country:
        return False

    if expected_geo.city and expected_geo.city != actual_geo.city:
        return False

    if expected_geo.has_coordinates:
        if not actual_geo.has_coordinates:
            return False
        distance = haversine_km(
            expected_geo.lat, expected_geo.long,
            actual_geo.lat, actual_geo.long,
        )
        if distance > radius_km:
            return False

    return True
