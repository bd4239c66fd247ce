"""
Session tokens handed out after a successful login.

A redeemed Phantom Link or a validated device token is exchanged for a
stateless signed session. Sessions carry a ``type`` claim so that other
tokens signed with the same secret never pass as one.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..clock import Clock, SystemClock
from ..errors import InvalidTokenError, ValidationError
from .signing import Signer

logger = logging.getLogger(__name__)

SESSION_TYPE = "session"
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class Session:
    """Who a session token was issued to."""
    user_id: str
    email: Optional[str] = None
    device_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "device_id": self.device_id,
        }


class SessionTokens:
    """Issues and validates signed session tokens."""

    def __init__(
        self,
        signer: Signer,
        clock: Optional[Clock] = None,
        expiry_days: int = 7,
    ):
        self.signer = signer
        self.clock = clock or SystemClock()
        self.expiry_days = expiry_days

    @property
    def expiry_seconds(self) -> int:
        return self.expiry_days * SECONDS_PER_DAY

    def issue(
        self,
        user_id: str,
        email: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> str:
        """
        Sign a session for ``user_id``.

        Args:
            user_id: Account the session belongs to
            email: Address the user logged in with, if known
            device_id: Remembered device the session came from, if any
        """
        if not isinstance(user_id, str) or not user_id:
            raise ValidationError("user_id is required")

        claims = {"type": SESSION_TYPE, "user_id": user_id, "email": email or ""}
        if device_id:
            claims["device_id"] = device_id

        token = self.signer.sign(claims, exp=int(self.clock.now()) + self.expiry_seconds)
        logger.info(f"Issued session for user {user_id} (expires in {self.expiry_days} days)")
        return token

    def validate(self, token: str) -> Session:
        """
        Verify a session token.

        Raises:
            TokenExpiredError: Past the session lifetime
            InvalidTokenError: Bad signature, or not a session token
        """
        if not isinstance(token, str) or not token:
            raise InvalidTokenError()

        payload = self.signer.verify(token)

        user_id = payload.get("user_id")
        if payload.get("type") != SESSION_TYPE or not isinstance(user_id, str):
            logger.warning("Rejected token presented as a session")
            raise InvalidTokenError()

        device_id = payload.get("device_id")
        return Session(
            user_id=user_id,
            email=payload.get("email") or None,
            device_id=device_id if isinstance(device_id, str) else None,
        )
