"""
OAuth 2.0 provider token settings.

Settings are read from OAUTH2_* environment variables:

    OAUTH2_ACCESS_TOKEN_EXPIRATION_TIME   access token lifetime in seconds (3600)
    OAUTH2_REFRESH_TOKEN_EXPIRATION_TIME  refresh token lifetime in hours (730)
    OAUTH2_JWT_SIGNING_ALGORITHM          JWS algorithm (RS256)
    OAUTH2_JWT_SECRET                     base64url HMAC secret for HS* algorithms
    OAUTH2_LEEWAY                         clock skew tolerance in seconds (0)
"""

import base64
import logging
import os
from datetime import timedelta
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = (
    "HS256", "HS384", "HS512",
    "RS256", "RS384", "RS512",
    "PS256", "PS384", "PS512",
    "ES256", "ES384", "ES512",
    "EdDSA",
)


class OAuth2Settings(BaseModel):
    """Token lifetimes and signing configuration."""

    access_token_expiration_time: int = Field(default=3600, description="Access token lifetime in seconds")
    refresh_token_expiration_time: int = Field(default=730, description="Refresh token lifetime in hours")
    jwt_signing_algorithm: str = Field(default="RS256", description="JWS signing algorithm")
    jwt_secret: Optional[str] = Field(None, description="Base64url encoded secret for HS* algorithms")
    leeway: int = Field(default=0, description="Clock skew tolerance in seconds")

    @field_validator('access_token_expiration_time', 'refresh_token_expiration_time')
    @classmethod
    def validate_lifetime(cls, v):
        if v <= 0:
            raise ValueError("Token lifetimes must be positive")
        return v

    @field_validator('leeway')
    @classmethod
    def validate_leeway(cls, v):
        if v < 0:
            raise ValueError("Leeway must not be negative")
        return v

    @field_validator('jwt_signing_algorithm')
    @classmethod
    def validate_algorithm(cls, v):
        if v not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {v}")
        return v

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(seconds=self.access_token_expiration_time)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(hours=self.refresh_token_expiration_time)

    def jwt_secret_bytes(self) -> Optional[bytes]:
        """Decode the configured HMAC secret, if any."""
        if not self.jwt_secret:
            return None
        padded = self.jwt_secret + "=" * (-len(self.jwt_secret) % 4)
        return base64.urlsafe_b64decode(padded)

    @classmethod
    def from_env(cls) -> "OAuth2Settings":
        """Build settings from OAUTH2_* environment variables."""
        return cls(
            access_token_expiration_time=int(os.getenv('OAUTH2_ACCESS_TOKEN_EXPIRATION_TIME', '3600')),
            refresh_token_expiration_time=int(os.getenv('OAUTH2_REFRESH_TOKEN_EXPIRATION_TIME', '730')),
            jwt_signing_algorithm=os.getenv('OAUTH2_JWT_SIGNING_ALGORITHM', 'RS256'),
            jwt_secret=os.getenv('OAUTH2_JWT_SECRET'),
            leeway=int(os.getenv('OAUTH2_LEEWAY', '0')),
        )


_settings: Optional[OAuth2Settings] = None


def get_settings() -> OAuth2Settings:
    """Return the process settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = OAuth2Settings.from_env()
        logger.info(f"Loaded OAuth2 settings with {_settings.jwt_signing_algorithm} algorithm")
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
