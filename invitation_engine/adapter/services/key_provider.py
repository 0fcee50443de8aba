"""
Key Providers

PemKeyProvider serves externally provisioned RSA keys. DevelopmentKeyProvider
generates a throwaway key pair and must be enabled explicitly.
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from invitation_engine.app.services.key_provider import (
    KeyProvider,
    KeyProviderError,
    SigningKey,
    UnknownKeyError,
)

logger = logging.getLogger(__name__)

DEVELOPMENT_KEY_ID = "supplier-onboarding-dev-key"


def generate_rsa_key_pair(key_size: int = 2048) -> Tuple[str, str]:
    """Returns (private PKCS8 PEM, public SPKI PEM)"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )
    return private_pem, public_pem


def _read_pem(value: Optional[str]) -> Optional[str]:
    """Accept inline PEM text or a path to a PEM file"""
    if not value:
        return None
    if value.lstrip().startswith("-----BEGIN"):
        return value
    path = Path(value)
    if not path.is_file():
        raise KeyProviderError(f"Key file not found: {value}")
    return path.read_text()


class PemKeyProvider(KeyProvider):
    """Keys loaded once at construction; read-only afterwards"""

    def __init__(
        self,
        signing_key_id: str,
        private_key_pem: str,
        public_keys: Dict[str, str],
        algorithm: str = "RS256",
    ):
        if not private_key_pem:
            raise KeyProviderError("No signing key configured")
        if signing_key_id not in public_keys:
            raise KeyProviderError(
                f"No verification key configured for signing key id {signing_key_id}"
            )
        self._signing_key = SigningKey(
            key_id=signing_key_id, algorithm=algorithm, private_key=private_key_pem
        )
        self._public_keys = dict(public_keys)

    @classmethod
    def from_config(cls, config) -> "PemKeyProvider":
        private_pem = _read_pem(
            config.SIGNING_PRIVATE_KEY or config.SIGNING_PRIVATE_KEY_PATH
        )
        public_keys = {
            key_id: _read_pem(value)
            for key_id, value in (config.VERIFICATION_PUBLIC_KEYS or {}).items()
        }
        return cls(
            signing_key_id=config.TOKEN_KEY_ID,
            private_key_pem=private_pem,
            public_keys=public_keys,
            algorithm=config.TOKEN_ALGORITHM,
        )

    def get_signing_key(self) -> SigningKey:
        return self._signing_key

    def get_verification_key(self, key_id: str) -> str:
        try:
            return self._public_keys[key_id]
        except KeyError:
            raise UnknownKeyError(key_id) from None


class DevelopmentKeyProvider(PemKeyProvider):
    """
    Ephemeral RSA key pair for local development and tests.

    Tokens signed by this provider stop verifying when the process restarts.
    Never used unless DEV_EPHEMERAL_KEYS is enabled.
    """

    def __init__(self, key_id: str = DEVELOPMENT_KEY_ID, algorithm: str = "RS256"):
        private_pem, public_pem = generate_rsa_key_pair()
        super().__init__(
            signing_key_id=key_id,
            private_key_pem=private_pem,
            public_keys={key_id: public_pem},
            algorithm=algorithm,
        )
        logger.warning(
            "Using an ephemeral development signing key. "
            "Do not enable DEV_EPHEMERAL_KEYS in production."
        )


def build_key_provider(config) -> KeyProvider:
    """Configured keys win; the development provider requires explicit opt-in"""
    if config.SIGNING_PRIVATE_KEY or config.SIGNING_PRIVATE_KEY_PATH:
        return PemKeyProvider.from_config(config)
    if config.DEV_EPHEMERAL_KEYS:
        return DevelopmentKeyProvider(algorithm=config.TOKEN_ALGORITHM)
    raise KeyProviderError(
        "No signing key configured. Set SIGNING_PRIVATE_KEY(_PATH) and "
        "VERIFICATION_PUBLIC_KEYS, or enable DEV_EPHEMERAL_KEYS for local development."
    )
