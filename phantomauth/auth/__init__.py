"""
Credential protocols for PhantomAuth.

Provides:
- Signer (HS256 JWT) and AEADCipher (AES-256-GCM)
- Phantom Links (single-use magic links)
- Device Memory Tokens (encrypted silent re-login)
- Session tokens issued after either login
"""

from .signing import Signer
from .cipher import AEADCipher
from .phantom_link import (
    PhantomLinkProtocol,
    PhantomLinkRecord,
    PhantomLinkRedemption,
)
from .device_token import (
    DeviceIdentity,
    DeviceTokenProtocol,
)
from .session import Session, SessionTokens

__all__ = [
    # Primitives
    "Signer",
    "AEADCipher",
    # Phantom Links
    "PhantomLinkProtocol",
    "PhantomLinkRecord",
    "PhantomLinkRedemption",
    # Device tokens
    "DeviceIdentity",
    "DeviceTokenProtocol",
    # Sessions
    "Session",
    "SessionTokens",
]
