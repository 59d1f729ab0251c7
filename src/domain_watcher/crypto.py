"""
Credential Cipher for registrar secrets at rest.

AES-256-GCM with a key derived from the master secret through scrypt and a
fixed application salt, so the same secret always yields the same key.
Tokens have the form ``base64(nonce):base64(tag):base64(ciphertext)``.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from dotenv import load_dotenv

from .exceptions import ConfigurationError, CredentialError

SECRET_ENV_VAR = "AUTH_SECRET"
PLACEHOLDER_SECRET = "changeme"

KDF_SALT = b"namedrop-registrar-keys"
KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16


def derive_key(secret: str) -> bytes:
    """Derive the 256-bit cipher key from the master secret."""
    kdf = Scrypt(salt=KDF_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class CredentialCipher:
    """Encrypts and decrypts registrar credentials."""

    def __init__(self, secret: str) -> None:
        """
        Args:
            secret: Master secret; must be set and not the placeholder value

        Raises:
            ConfigurationError: If the secret is missing or the placeholder
        """
        if not secret or secret == PLACEHOLDER_SECRET:
            raise ConfigurationError(
                code="insecure_secret",
                message=f"{SECRET_ENV_VAR} must be set to a secure value",
                details={"env_var": SECRET_ENV_VAR},
            )
        self._aesgcm = AESGCM(derive_key(secret))

    @classmethod
    def from_env(cls, env_var: str = SECRET_ENV_VAR) -> "CredentialCipher":
        """Build a cipher from the environment, loading ``.env`` first."""
        load_dotenv()
        return cls(os.environ.get(env_var, ""))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt with a fresh random nonce."""
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
        )

    def decrypt(self, token: str) -> str:
        """
        Decrypt a token produced by ``encrypt``.

        Raises:
            CredentialError: If the token is malformed or fails authentication
        """
        parts = token.split(":")
        if len(parts) != 3:
            raise CredentialError(
                code="malformed_token",
                message="Invalid encrypted token format",
                details={"fields": len(parts)},
            )

        try:
            nonce, tag, ciphertext = (base64.b64decode(p, validate=True) for p in parts)
        except (binascii.Error, ValueError):
            raise CredentialError(
                code="malformed_token",
                message="Encrypted token is not valid base64",
            )

        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise CredentialError(
                code="malformed_token",
                message="Encrypted token has invalid nonce or tag length",
                details={"nonce_length": len(nonce), "tag_length": len(tag)},
            )

        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise CredentialError(
                code="auth_failed",
                message="Encrypted token failed authentication (tampered or wrong key)",
            )
        return plaintext.decode("utf-8")


def decrypt_optional(cipher: CredentialCipher, token: Optional[str]) -> Optional[str]:
    """Decrypt an optional token; ``None`` passes through."""
    return cipher.decrypt(token) if token else None
