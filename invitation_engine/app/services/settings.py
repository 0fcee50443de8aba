"""
Engine settings

Explicit configuration objects handed to the issuer, validator and
lifecycle use cases. Built from ApplicationConfig in depends.py.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class IssuerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    issuer: str = "supplier-onboarding-service"
    subject: str = "invitation-service"
    audience: str = "supplier-portal"
    scope: List[str] = Field(default_factory=lambda: ["supplier.onboard"])
    default_expiry_days: int = 7
    min_expiry_days: int = 1
    max_expiry_days: int = 30

    @model_validator(mode="after")
    def _check_bounds(self):
        if not (1 <= self.min_expiry_days <= self.max_expiry_days):
            raise ValueError("expiry bounds must satisfy 1 <= min <= max")
        if not (self.min_expiry_days <= self.default_expiry_days <= self.max_expiry_days):
            raise ValueError("default expiry must lie within the configured bounds")
        return self

    @classmethod
    def from_config(cls, config) -> "IssuerSettings":
        return cls(
            issuer=config.TOKEN_ISSUER,
            subject=config.TOKEN_SUBJECT,
            audience=config.TOKEN_AUDIENCE,
            scope=list(config.TOKEN_SCOPE),
            default_expiry_days=config.DEFAULT_EXPIRY_DAYS,
            min_expiry_days=config.MIN_EXPIRY_DAYS,
            max_expiry_days=config.MAX_EXPIRY_DAYS,
        )


class ValidatorSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    issuer: str = "supplier-onboarding-service"
    audience: str = "supplier-portal"
    algorithms: List[str] = Field(default_factory=lambda: ["RS256"])
    max_validation_attempts: int = Field(default=5, ge=1)
    clock_tolerance_seconds: int = Field(default=0, ge=0)
    operation_timeout_seconds: Optional[float] = 10.0

    @classmethod
    def from_config(cls, config) -> "ValidatorSettings":
        return cls(
            issuer=config.TOKEN_ISSUER,
            audience=config.TOKEN_AUDIENCE,
            algorithms=[config.TOKEN_ALGORITHM],
            max_validation_attempts=config.MAX_VALIDATION_ATTEMPTS,
            clock_tolerance_seconds=config.CLOCK_TOLERANCE_SECONDS,
            operation_timeout_seconds=config.OPERATION_TIMEOUT_SECONDS,
        )


class LifecycleSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    invitation_base_url: str = "http://localhost:5000/"
    creation_rate_limit: int = Field(default=20, ge=1)
    creation_rate_window_seconds: int = Field(default=3600, ge=1)
    operation_timeout_seconds: Optional[float] = 10.0

    @classmethod
    def from_config(cls, config) -> "LifecycleSettings":
        return cls(
            invitation_base_url=config.INVITATION_BASE_URL,
            creation_rate_limit=config.CREATION_RATE_LIMIT,
            creation_rate_window_seconds=config.CREATION_RATE_WINDOW_SECONDS,
            operation_timeout_seconds=config.OPERATION_TIMEOUT_SECONDS,
        )
