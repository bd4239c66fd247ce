"""
Phantom Links: single-use, context-bound magic-link tokens.

A link is ``<signed token>.<context hmac>``. The signed token carries the
email, the issuing context and a random token id (jti). The context HMAC
ties the link to a server-side record keyed by (email, hmac) that tracks
redemption attempts.

Lifecycle:
    Issued -> Redeemable -> Redeemed | Expired | Exhausted | Invalid

Only a context mismatch is retryable; it bumps the attempt counter until
``max_attempts`` is reached, after which the link is exhausted.
"""

import json
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import hashes, hmac

from ..clock import Clock, SystemClock
from ..context import PhantomContext, match_context
from ..errors import (
    AttemptsExhaustedError,
    ContextMismatchError,
    CredentialNotFoundError,
    InvalidTokenError,
    ValidationError,
)
from ..store import KeyValueStore
from .signing import Signer

logger = logging.getLogger(__name__)

KEY_PREFIX = "phantom"
LINK_SEPARATOR = "."
HMAC_LENGTH = 16

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
HMAC_PATTERN = re.compile(r"^[0-9a-f]{16}$")


@dataclass
class PhantomLinkRecord:
    """Server-side state for one outstanding link."""
    token: str
    context: PhantomContext
    attempts: int
    jti: str

    def to_bytes(self) -> bytes:
        data = {
            "token": self.token,
            "context": self.context.to_dict(),
            "attempts": self.attempts,
            "jti": self.jti,
        }
        return json.dumps(data, separators=(',', ':')).encode()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PhantomLinkRecord":
        data = json.loads(raw)
        return cls(
            token=data["token"],
            context=PhantomContext.from_dict(data["context"]),
            attempts=int(data["attempts"]),
            jti=data["jti"],
        )


@dataclass(frozen=True)
class PhantomLinkRedemption:
    """Result of a successful redemption."""
    email: str
    context: PhantomContext


def record_key(email: str, context_hmac: str) -> str:
    return f"{KEY_PREFIX}:{email}:{context_hmac}"


def canonical_context_bytes(context: PhantomContext) -> bytes:
    """Deterministic serialization of the fields a link is bound to."""
    geo = context.geo_location.to_dict() if context.geo_location else None
    data = {
        "ip": context.ip_hash,
        "ua": context.user_agent_hash,
        "fp": context.fingerprint,
        "geo": geo,
    }
    return json.dumps(data, sort_keys=True, separators=(',', ':')).encode()


class PhantomLinkProtocol:
    """Issues and redeems Phantom Links."""

    def __init__(
        self,
        store: KeyValueStore,
        signer: Signer,
        secret: bytes,
        clock: Optional[Clock] = None,
        expiry_seconds: int = 300,
        max_attempts: int = 3,
        geo_radius_km: float = 50.0,
    ):
        self.store = store
        self.signer = signer
        self._secret = secret
        self.clock = clock or SystemClock()
        self.expiry_seconds = expiry_seconds
        self.max_attempts = max_attempts
        self.geo_radius_km = geo_radius_km

    def context_hmac(self, context: PhantomContext) -> str:
        """HMAC-SHA256 of the canonical context, truncated to 16 hex chars."""
        mac = hmac.HMAC(self._secret, hashes.SHA256())
        mac.update(canonical_context_bytes(context))
        return mac.finalize().hex()[:HMAC_LENGTH]

    async def issue(self, email: str, context: PhantomContext) -> str:
        """
        Issue a new link for ``email`` bound to ``context``.

        Returns:
            The link string to deliver to the user
        """
        if not email or not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")

        now = int(self.clock.now())
        jti = secrets.token_hex(16)

        token = self.signer.sign(
            {
                "email": email,
                "context": context.to_dict(),
                "jti": jti,
            },
            exp=now + self.expiry_seconds,
        )
        context_hmac = self.context_hmac(context)

        record = PhantomLinkRecord(token=token, context=context, attempts=0, jti=jti)
        await self.store.set(
            record_key(email, context_hmac),
            record.to_bytes(),
            self.expiry_seconds,
        )

        logger.info(f"Issued phantom link for {email} (expires in {self.expiry_seconds}s)")
        return f"{token}{LINK_SEPARATOR}{context_hmac}"

    @staticmethod
    def split_link(link: str) -> tuple[str, str]:
        """Split a link into (token, hmac) or raise InvalidTokenError."""
        if not isinstance(link, str):
            logger.warning("Malformed phantom link")
            raise InvalidTokenError()

        token, separator, context_hmac = link.rpartition(LINK_SEPARATOR)
        if (
            not separator
            or token.count(".") != 2
            or not HMAC_PATTERN.match(context_hmac)
        ):
            logger.warning("Malformed phantom link")
            raise InvalidTokenError()
        return token, context_hmac

    async def redeem(self, link: str, request_context: PhantomContext) -> PhantomLinkRedemption:
        """
        Redeem a link from ``request_context``.

        Raises:
            InvalidTokenError: Malformed, bad signature, HMAC or jti mismatch
            TokenExpiredError: Past the link lifetime
            CredentialNotFoundError: Already used or expired from the store
            AttemptsExhaustedError: Too many mismatched attempts
            ContextMismatchError: Wrong context; retryable
        """
        token, supplied_hmac = self.split_link(link)

        payload = self.signer.verify(token)

        email = payload.get("email")
        jti = payload.get("jti")
        try:
            signed_context = PhantomContext.from_dict(payload["context"])
        except (KeyError, TypeError, ValueError, AttributeError):
            logger.warning("Phantom link payload has no usable context")
            raise InvalidTokenError()
        if not isinstance(email, str) or not isinstance(jti, str):
            logger.warning("Phantom link payload is missing email or jti")
            raise InvalidTokenError()

        expected_hmac = self.context_hmac(signed_context)
        if not secrets.compare_digest(expected_hmac, supplied_hmac):
            logger.warning(f"Phantom link HMAC mismatch for {email}")
            raise InvalidTokenError()

        key = record_key(email, supplied_hmac)
        raw = await self.store.get(key)
        if raw is None:
            logger.info(f"Phantom link for {email} already used or expired")
            raise CredentialNotFoundError()

        record = PhantomLinkRecord.from_bytes(raw)

        if record.attempts >= self.max_attempts:
            await self.store.delete(key)
            logger.warning(f"Phantom link for {email} exhausted after {record.attempts} attempts")
            raise AttemptsExhaustedError("Maximum attempts exceeded")

        if record.jti != jti:
            logger.warning(f"Phantom link jti mismatch for {email}")
            raise InvalidTokenError()

        if not match_context(record.context, request_context, self.geo_radius_km):
            await self._record_failed_attempt(key, record)
            raise ContextMismatchError(
                retryable=True,
                details={"attempts_remaining": max(0, self.max_attempts - record.attempts)},
            )

        await self.store.delete(key)
        logger.info(f"Redeemed phantom link for {email}")
        return PhantomLinkRedemption(email=email, context=record.context)

    async def _record_failed_attempt(self, key: str, record: PhantomLinkRecord) -> None:
        """Bump the attempt counter, keeping the remaining TTL."""
        remaining = await self.store.ttl(key)
        record.attempts += 1
        if remaining is None or remaining <= 0:
            # Expired between the read and now; nothing left to update
            return
        await self.store.set(key, record.to_bytes(), remaining)
        logger.info(
            f"Phantom link context mismatch ({record.attempts}/{self.max_attempts} attempts)"
        )
