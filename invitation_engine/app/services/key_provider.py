from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict


class KeyProviderError(Exception):
    """No usable key material is configured"""


class UnknownKeyError(KeyProviderError):
    def __init__(self, key_id: str):
        self.key_id = key_id
        super().__init__(f"Unknown verification key: {key_id}")


class SigningKey(BaseModel):
    """Private key material plus the identifier published in the token header"""

    model_config = ConfigDict(frozen=True)

    key_id: str
    algorithm: str = "RS256"
    private_key: str  # PEM


class KeyProvider(ABC):
    """Supplies the signing key to the issuer and public keys to the validator"""

    @abstractmethod
    def get_signing_key(self) -> SigningKey:
        pass

    @abstractmethod
    def get_verification_key(self, key_id: str) -> str:
        """Public key PEM for key_id; raises UnknownKeyError"""
        pass
