"""
Signed, time-limited tokens.

Tokens are HS256 JWTs. Expiry is checked against the injected clock
rather than PyJWT's own wall clock so that lifetimes are testable.
"""

import logging
from typing import Any, Dict, Optional

import jwt

from ..clock import Clock, SystemClock
from ..errors import InvalidTokenError, TokenExpiredError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class Signer:
    """Signs and verifies claims with a shared secret."""

    def __init__(self, secret: bytes, clock: Optional[Clock] = None):
        if not secret:
            raise ValueError("Signer requires a non-empty secret")
        self._secret = secret
        self.clock = clock or SystemClock()

    def sign(self, claims: Dict[str, Any], exp: int) -> str:
        """
        Sign claims with an ``iat`` of now and the given ``exp``.

        Args:
            claims: JSON-serializable payload
            exp: Absolute expiry (unix seconds)
        """
        payload = dict(claims)
        payload["iat"] = int(self.clock.now())
        payload["exp"] = int(exp)
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry.

        Returns:
            The decoded payload

        Raises:
            TokenExpiredError: Signature valid but ``exp`` has passed
            InvalidTokenError: Anything else
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={
                    "require": ["exp", "iat"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected token: {e}")
            raise InvalidTokenError()

        exp = payload.get("exp")
        if not isinstance(exp, int):
            logger.warning("Rejected token: non-integer exp")
            raise InvalidTokenError()
        if self.clock.now() >= exp:
            raise TokenExpiredError("Token has expired")

        return payload
