"""
OAuth 2.0 and OpenID Connect token claims and the JWT sign/parse protocol.

Two claim shapes are issued:

- Token: access and refresh tokens, bound to an OAuth2 grant (gnt), tagged
  with their kind (tt) and, for rotating refresh tokens, a counter (cnt).
- OIDCToken: OpenID Connect id_token carrying profile, email and group
  claims gated by the granted scopes.

Both compose a RegisteredClaims value (iss, sub, aud, exp, nbf, iat, jti)
and are flattened into a single JSON object on the wire.

Parsing is a fixed sequence of checks, each terminal on failure:

    structural decode   -> MalformedTokenError
    algorithm pinning   -> AlgorithmMismatchError
    signature           -> InvalidSignatureError
    exp / nbf           -> TokenExpiredError / TokenNotYetValidError
    shape binding       -> InvalidClaimsError

The header algorithm must equal the one the verifier's signing key declares,
which is checked before any signature work.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Optional, Protocol, TypeVar, Union
from uuid import uuid4

import jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .config import OAuth2Settings, get_settings
from .errors import (
    AlgorithmMismatchError,
    InvalidClaimsError,
    InvalidSignatureError,
    MalformedTokenError,
    SigningError,
    TokenExpiredError,
    TokenNotYetValidError,
)
from .signing_keys import JWTSigningKey

logger = logging.getLogger(__name__)

REGISTERED_CLAIM_NAMES = ("iss", "sub", "aud", "exp", "nbf", "iat", "jti")
GRANT_CLAIM_NAMES = ("gnt", "tt", "cnt")


def _now() -> datetime:
    # NumericDate has second precision
    return datetime.now(timezone.utc).replace(microsecond=0)


def _numeric_date(value: datetime) -> int:
    return int(value.timestamp())


def _from_numeric_date(value: Any) -> Any:
    """Read JSON numbers as seconds since the epoch, whatever their size."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    try:
        return datetime.fromtimestamp(value, timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"NumericDate out of range: {value}") from e


def _normalize_numeric_date(value: Optional[datetime]) -> Optional[datetime]:
    """UTC with whole-second precision; naive values are taken as UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def _omit_empty(claims: dict[str, Any]) -> dict[str, Any]:
    return {name: value for name, value in claims.items() if value not in (None, "", False, [])}


class TokenKind(IntEnum):
    """Kind of an OAuth2 token, encoded as an integer in the tt claim."""
    ACCESS_TOKEN = 0  # short lifetime, used to access the API
    REFRESH_TOKEN = 1  # long lifetime, exchanged for new access tokens

    def lifetime(self, settings: Optional[OAuth2Settings] = None) -> timedelta:
        """Configured lifetime for tokens of this kind."""
        settings = settings or get_settings()
        if self is TokenKind.ACCESS_TOKEN:
            return settings.access_token_lifetime
        if self is TokenKind.REFRESH_TOKEN:
            return settings.refresh_token_lifetime
        raise ValueError(f"Unknown token kind: {self!r}")


class RegisteredClaims(BaseModel):
    """Registered JWT claims (RFC 7519 section 4.1)."""

    iss: Optional[str] = Field(None, description="Issuer")
    sub: Optional[str] = Field(None, description="Subject")
    aud: list[str] = Field(default_factory=list, description="Audience")
    exp: Optional[datetime] = Field(None, description="Expiration time")
    nbf: Optional[datetime] = Field(None, description="Not before")
    iat: Optional[datetime] = Field(None, description="Issued at")
    jti: Optional[str] = Field(None, description="JWT ID")

    @field_validator('aud', mode='before')
    @classmethod
    def validate_audience(cls, v):
        """Accept a single audience string as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('exp', 'nbf', 'iat', mode='before')
    @classmethod
    def parse_numeric_date(cls, v):
        return _from_numeric_date(v)

    @field_validator('exp', 'nbf', 'iat')
    @classmethod
    def validate_numeric_date(cls, v):
        return _normalize_numeric_date(v)

    def to_claims(self) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "iss": self.iss,
            "sub": self.sub,
            "aud": list(self.aud),
            "exp": _numeric_date(self.exp) if self.exp else None,
            "nbf": _numeric_date(self.nbf) if self.nbf else None,
            "iat": _numeric_date(self.iat) if self.iat else None,
            "jti": self.jti,
        }
        return {name: value for name, value in claims.items() if value not in (None, "", [])}


class SignableClaims(Protocol):
    """Anything exposing registered claims and a flat wire representation."""

    registered: RegisteredClaims

    def to_claims(self) -> dict[str, Any]:
        ...


def _split_claims(claims: dict[str, Any]) -> dict[str, Any]:
    """Nest registered claims so a flat payload validates against a model."""
    custom = {name: value for name, value in claims.items() if name not in REGISTERED_CLAIM_NAMES}
    custom["registered"] = {name: claims[name] for name in REGISTERED_CLAIM_NAMES if name in claims}
    return custom


class Token(BaseModel):
    """Claims of an OAuth2 access or refresh token."""

    model_config = ConfigDict(populate_by_name=True)

    grant_id: int = Field(..., alias="gnt", gt=0, strict=True, description="OAuth2 grant ID")
    kind: TokenKind = Field(..., alias="tt", description="Token kind")
    counter: int = Field(0, alias="cnt", ge=0, strict=True, description="Refresh token rotation counter")
    registered: RegisteredClaims = Field(default_factory=RegisteredClaims)

    @classmethod
    def new(
        cls,
        kind: TokenKind,
        grant_id: int,
        counter: int = 0,
        issuer: Optional[str] = None,
        subject: Optional[str] = None,
        audience: Optional[Union[str, list[str]]] = None,
        settings: Optional[OAuth2Settings] = None,
    ) -> "Token":
        """
        Build a token whose expiry follows the configured lifetime of its kind.

        Args:
            kind: access or refresh token
            grant_id: grant the token is issued under
            counter: current rotation counter of the grant (refresh tokens)
            issuer: iss claim
            subject: sub claim
            audience: aud claim
            settings: lifetimes to apply (default: process settings)
        """
        now = _now()
        return cls(
            grant_id=grant_id,
            kind=kind,
            counter=counter,
            registered=RegisteredClaims(
                iss=issuer,
                sub=subject,
                aud=audience,
                exp=now + kind.lifetime(settings),
                nbf=now,
                jti=str(uuid4()),
            ),
        )

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "Token":
        return cls.model_validate(_split_claims(claims))

    def to_claims(self) -> dict[str, Any]:
        claims = self.registered.to_claims()
        claims["gnt"] = self.grant_id
        claims["tt"] = int(self.kind)
        if self.counter:
            claims["cnt"] = self.counter
        return claims

    def sign_token(self, signing_key: JWTSigningKey) -> str:
        """Stamp iat with the current time and sign the token."""
        self.registered.iat = _now()
        return sign_token(self, signing_key)


class OIDCToken(BaseModel):
    """Claims of an OpenID Connect id_token."""

    registered: RegisteredClaims = Field(default_factory=RegisteredClaims)
    nonce: str = ""

    # Scope profile
    name: str = ""
    preferred_username: str = ""
    profile: str = ""
    picture: str = ""
    website: str = ""
    locale: str = ""
    updated_at: Optional[datetime] = None

    # Scope email
    email: str = ""
    email_verified: bool = False

    # Generated from organization and team names
    groups: list[str] = Field(default_factory=list)

    @model_validator(mode='before')
    @classmethod
    def reject_grant_claims(cls, data):
        """Access and refresh tokens never bind as an id_token."""
        if isinstance(data, dict):
            present = [name for name in GRANT_CLAIM_NAMES if name in data]
            if present:
                raise ValueError(f"grant token claims in id_token: {', '.join(present)}")
        return data

    @field_validator('updated_at', mode='before')
    @classmethod
    def parse_updated_at(cls, v):
        return _from_numeric_date(v)

    @field_validator('updated_at')
    @classmethod
    def validate_updated_at(cls, v):
        return _normalize_numeric_date(v)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "OIDCToken":
        return cls.model_validate(_split_claims(claims))

    def to_claims(self) -> dict[str, Any]:
        claims = self.registered.to_claims()
        claims.update(_omit_empty({
            "nonce": self.nonce,
            "name": self.name,
            "preferred_username": self.preferred_username,
            "profile": self.profile,
            "picture": self.picture,
            "website": self.website,
            "locale": self.locale,
            "updated_at": _numeric_date(self.updated_at) if self.updated_at else None,
            "email": self.email,
            "email_verified": self.email_verified,
            "groups": list(self.groups),
        }))
        return claims

    def sign_token(self, signing_key: JWTSigningKey) -> str:
        """Stamp iat with the current time and sign the id_token."""
        self.registered.iat = _now()
        return sign_token(self, signing_key)


ClaimsT = TypeVar("ClaimsT", Token, OIDCToken)


def sign_token(claims: SignableClaims, signing_key: JWTSigningKey) -> str:
    """
    Serialize claims into a compact JWS signed with the given key.

    iat is taken as-is; use the sign_token method of the claim models to
    stamp it.

    Raises:
        SigningError: the key material is missing or unusable
    """
    algorithm = signing_key.signing_method()
    headers: dict[str, Any] = {"typ": "JWT"}
    signing_key.pre_process_token(headers)
    # the hook may add metadata but never choose the algorithm
    headers["alg"] = algorithm

    key = signing_key.sign_key()
    if key is None or key == b"":
        raise SigningError(f"no signing material for {algorithm}")

    try:
        return jwt.encode(claims.to_claims(), key, algorithm=algorithm, headers=headers)
    except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as e:
        logger.warning(f"Token signing with {algorithm} failed: {e}")
        raise SigningError(str(e)) from e


def _parse(
    jwt_token: str,
    signing_key: JWTSigningKey,
    claims_type: type[ClaimsT],
    leeway: Optional[int],
) -> ClaimsT:
    if leeway is None:
        leeway = get_settings().leeway

    try:
        header = jwt.get_unverified_header(jwt_token)
        jwt.decode(jwt_token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected malformed token: {e}")
        raise MalformedTokenError(str(e)) from e

    expected = signing_key.signing_method()
    if header.get("alg") != expected:
        logger.debug(f"Rejected token signed with {header.get('alg')!r}, expected {expected}")
        raise AlgorithmMismatchError(f"unexpected signing algorithm: {header.get('alg')!r}")

    try:
        payload = jwt.decode(
            jwt_token,
            signing_key.verify_key(),
            algorithms=[expected],
            options={"verify_aud": False, "verify_iss": False},
            leeway=leeway,
        )
    except jwt.InvalidSignatureError as e:
        logger.debug("Rejected token with invalid signature")
        raise InvalidSignatureError(str(e)) from e
    except (jwt.InvalidKeyError, TypeError) as e:
        logger.debug(f"Verification key unusable for {expected}: {e}")
        raise InvalidSignatureError(str(e)) from e
    except jwt.InvalidAlgorithmError as e:
        raise AlgorithmMismatchError(str(e)) from e
    except jwt.ExpiredSignatureError as e:
        logger.debug("Rejected expired token")
        raise TokenExpiredError(str(e)) from e
    except jwt.ImmatureSignatureError as e:
        logger.debug("Rejected token that is not yet valid")
        raise TokenNotYetValidError(str(e)) from e
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected token with invalid registered claims: {e}")
        raise InvalidClaimsError(str(e)) from e

    try:
        return claims_type.from_claims(payload)
    except ValidationError as e:
        logger.debug(f"Rejected token not matching {claims_type.__name__}: {e.error_count()} errors")
        raise InvalidClaimsError(f"claims do not match {claims_type.__name__}") from e


def parse_token(jwt_token: str, signing_key: JWTSigningKey, leeway: Optional[int] = None) -> Token:
    """
    Parse and validate a signed access or refresh token.

    Args:
        jwt_token: compact JWS string
        signing_key: key whose algorithm and verification material are expected
        leeway: clock skew tolerance in seconds (default: configured leeway)

    Returns:
        The validated Token

    Raises:
        TokenError: subclass naming the first check that failed
    """
    return _parse(jwt_token, signing_key, Token, leeway)


def parse_id_token(jwt_token: str, signing_key: JWTSigningKey, leeway: Optional[int] = None) -> OIDCToken:
    """Parse and validate a signed OpenID Connect id_token."""
    return _parse(jwt_token, signing_key, OIDCToken, leeway)
