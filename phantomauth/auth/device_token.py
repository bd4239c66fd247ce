"""
Device Memory Tokens: long-lived encrypted credentials for silent re-login.

The token handed to the client is a signed JWT sealed with AES-256-GCM
(sign-then-encrypt), so neither key alone can forge one. A server-side
record keyed by (user_id, device_id) backs every token; deleting it is
how tokens are revoked.

Lifecycle:
    Issued -> Stored -> Validated | NotFound | ContextMismatch | Tampered

Unlike Phantom Links there is no attempt counter: a context mismatch is
a terminal failure for that call, and validation never consumes the token.
"""

import base64
import binascii
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from ..clock import Clock, SystemClock
from ..context import PhantomContext, match_context
from ..errors import (
    ContextMismatchError,
    CredentialNotFoundError,
    InvalidTokenError,
    TamperedTokenError,
    ValidationError,
)
from ..store import KeyValueStore
from .cipher import AEADCipher
from .signing import Signer

logger = logging.getLogger(__name__)

KEY_PREFIX = "device"
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class DeviceIdentity:
    """Who a validated device token belongs to."""
    user_id: str
    device_id: str

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "device_id": self.device_id}


def record_key(user_id: str, device_id: str) -> str:
    return f"{KEY_PREFIX}:{user_id}:{device_id}"


def user_prefix(user_id: str) -> str:
    return f"{KEY_PREFIX}:{user_id}:"


def encode_sealed(sealed: bytes) -> str:
    """Encode to a compact URL-safe string."""
    return base64.urlsafe_b64encode(sealed).decode().rstrip('=')


def decode_sealed(encoded: str) -> bytes:
    # Add padding if needed
    padding = 4 - (len(encoded) % 4)
    if padding != 4:
        encoded += '=' * padding
    return base64.urlsafe_b64decode(encoded)


def _check_user_id(user_id: str) -> None:
    # ':' would let one user's prefix scan reach another's records
    if not isinstance(user_id, str) or not user_id or ":" in user_id:
        raise ValidationError("user_id must be a non-empty string without ':'")


class DeviceTokenProtocol:
    """Issues, validates and revokes device tokens."""

    def __init__(
        self,
        store: KeyValueStore,
        signer: Signer,
        cipher: AEADCipher,
        clock: Optional[Clock] = None,
        expiry_days: int = 30,
        geo_radius_km: float = 50.0,
    ):
        self.store = store
        self.signer = signer
        self.cipher = cipher
        self.clock = clock or SystemClock()
        self.expiry_days = expiry_days
        self.geo_radius_km = geo_radius_km

    @property
    def expiry_seconds(self) -> int:
        return self.expiry_days * SECONDS_PER_DAY

    async def issue(self, user_id: str, context: PhantomContext) -> str:
        """
        Issue a token for ``user_id`` on the device described by ``context``.

        Returns:
            The encrypted token to hand to the client
        """
        _check_user_id(user_id)

        now = int(self.clock.now())
        device_id = secrets.token_hex(16)

        signed = self.signer.sign(
            {
                "user_id": user_id,
                "device_id": device_id,
                "context": context.to_dict(),
            },
            exp=now + self.expiry_seconds,
        )
        encrypted = encode_sealed(self.cipher.seal(signed.encode()))

        record = {"token": signed, "context": context.to_dict()}
        await self.store.set(
            record_key(user_id, device_id),
            json.dumps(record, separators=(',', ':')).encode(),
            self.expiry_seconds,
        )

        logger.info(f"Issued device token for user {user_id} (device {device_id[:8]})")
        return encrypted

    def _open(self, encrypted_token: str) -> str:
        """Decode and decrypt, treating any decoding failure as tampering."""
        if not isinstance(encrypted_token, str) or not encrypted_token:
            raise TamperedTokenError()
        try:
            sealed = decode_sealed(encrypted_token)
        except (binascii.Error, ValueError):
            raise TamperedTokenError()

        try:
            plaintext = self.cipher.open(sealed)
        except TamperedTokenError:
            logger.warning("Device token failed authentication")
            raise

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise TamperedTokenError()

    async def validate(self, encrypted_token: str, request_context: PhantomContext) -> DeviceIdentity:
        """
        Validate a device token presented from ``request_context``.

        Raises:
            TamperedTokenError: Decryption/authentication failed
            InvalidTokenError: Bad signature or payload
            TokenExpiredError: Past the token lifetime
            CredentialNotFoundError: Revoked or expired from the store
            ContextMismatchError: Presented from a different context
        """
        token = self._open(encrypted_token)
        payload = self.signer.verify(token)

        user_id = payload.get("user_id")
        device_id = payload.get("device_id")
        if not isinstance(user_id, str) or not isinstance(device_id, str):
            logger.warning("Device token payload is missing user_id or device_id")
            raise InvalidTokenError()

        raw = await self.store.get(record_key(user_id, device_id))
        if raw is None:
            logger.info(f"Device token for user {user_id} not found (revoked or expired)")
            raise CredentialNotFoundError()

        stored = json.loads(raw)
        stored_context = PhantomContext.from_dict(stored["context"])

        if not match_context(stored_context, request_context, self.geo_radius_km):
            logger.info(f"Device token context mismatch for user {user_id}")
            raise ContextMismatchError(retryable=False)

        return DeviceIdentity(user_id=user_id, device_id=device_id)

    async def revoke(self, user_id: str, device_id: str) -> bool:
        """Revoke one device. Returns True if a record was deleted."""
        _check_user_id(user_id)
        deleted = await self.store.delete(record_key(user_id, device_id))
        if deleted:
            logger.info(f"Revoked device {device_id[:8]} for user {user_id}")
        return deleted

    async def revoke_all(self, user_id: str) -> int:
        """Revoke every device for ``user_id``. Returns how many were deleted."""
        _check_user_id(user_id)
        revoked = 0
        for key in await self.store.keys(user_prefix(user_id)):
            if await self.store.delete(key):
                revoked += 1
        logger.info(f"Revoked {revoked} device token(s) for user {user_id}")
        return revoked
