"""
Authenticated encryption for device tokens.

AES-256-GCM with a fresh random 96-bit nonce per call. Sealed output is
``nonce || ciphertext || tag``; any modification fails authentication.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import TamperedTokenError

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32


class AEADCipher:
    """AES-256-GCM sealing with an embedded nonce."""

    def __init__(self, key: bytes):
        if len(key) != KEY_SIZE:
            raise ValueError(f"AES-256-GCM key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    def seal(self, plaintext: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        # AESGCM appends the tag to the ciphertext
        return nonce + self._aead.encrypt(nonce, plaintext, None)

    def open(self, sealed: bytes) -> bytes:
        """
        Authenticate and decrypt.

        Raises:
            TamperedTokenError: Input too short or authentication failed
        """
        if len(sealed) < NONCE_SIZE + TAG_SIZE:
            raise TamperedTokenError()

        nonce, ciphertext = sealed[:NONCE_SIZE], sealed[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise TamperedTokenError()
