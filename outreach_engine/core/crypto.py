"""Symmetric encryption of provider credentials.

Secrets are sealed with AES-256-GCM. The 32-byte key is the SHA-256 digest of
operator-supplied key material, so any string can serve as the key. Tokens
look like ``b64(nonce).b64(tag).b64(ciphertext)``.
"""

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import (
    AuthenticationFailedError,
    ConfigurationError,
    EmptySecretError,
    InvalidCiphertextFormatError,
)

NONCE_SIZE = 12
TAG_SIZE = 16


class SecretCipher:
    """Encrypts and decrypts credential strings with a server-held key."""

    def __init__(self, key_material: str):
        if key_material is None:
            raise ConfigurationError("Encryption key material is required", config_key="encryption_key")
        self._aead = AESGCM(hashlib.sha256(key_material.encode("utf-8")).digest())

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a UTF-8 string into an ``iv.tag.ciphertext`` token.

        Empty plaintext is rejected: it would produce an empty ciphertext
        segment, which :meth:`decrypt` treats as malformed.
        """
        if not plaintext:
            raise EmptySecretError()
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return ".".join(
            base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
        )

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            InvalidCiphertextFormatError: token is not three non-empty base64 segments
            AuthenticationFailedError: the tag does not verify
        """
        segments = str(token or "").split(".")
        if len(segments) != 3 or not all(segments):
            raise InvalidCiphertextFormatError()

        try:
            nonce, tag, ciphertext = (base64.b64decode(s, validate=True) for s in segments)
        except (binascii.Error, ValueError):
            raise InvalidCiphertextFormatError("segments must be base64")

        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise InvalidCiphertextFormatError("unexpected nonce or tag length")

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise AuthenticationFailedError()

        return plaintext.decode("utf-8")
