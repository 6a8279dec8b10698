"""
OAuth 2.0 / OpenID Connect token issuance and verification

This package signs and validates self-contained JWTs for an OAuth 2.0
authorization server:
- Access and refresh tokens bound to a grant, with a rotation counter
- OpenID Connect id_tokens with profile, email and group claims
- Algorithm-pinned parsing that rejects tokens signed under any algorithm
  other than the verifier key's own

Components:
- token: claim models and the sign/parse protocol
- signing_keys: HMAC, RSA, ECDSA and EdDSA signing keys
- errors: typed rejection reasons
- config: token lifetimes and signing settings
"""

from .config import OAuth2Settings, get_settings, reset_settings
from .errors import (
    AlgorithmMismatchError,
    InvalidClaimsError,
    InvalidSignatureError,
    InvalidSigningKeyError,
    MalformedTokenError,
    SigningError,
    TokenError,
    TokenErrorReason,
    TokenExpiredError,
    TokenNotYetValidError,
)
from .signing_keys import (
    ECDSASigningKey,
    EdDSASigningKey,
    HMACSigningKey,
    JWTSigningKey,
    RSASigningKey,
    create_signing_key,
    generate_private_key,
    load_private_key,
    private_key_to_pem,
    signing_key_from_settings,
)
from .token import (
    OIDCToken,
    RegisteredClaims,
    Token,
    TokenKind,
    parse_id_token,
    parse_token,
    sign_token,
)

__all__ = [
    # Claims and protocol
    "Token",
    "OIDCToken",
    "RegisteredClaims",
    "TokenKind",
    "sign_token",
    "parse_token",
    "parse_id_token",

    # Signing keys
    "JWTSigningKey",
    "HMACSigningKey",
    "RSASigningKey",
    "ECDSASigningKey",
    "EdDSASigningKey",
    "create_signing_key",
    "generate_private_key",
    "load_private_key",
    "private_key_to_pem",
    "signing_key_from_settings",

    # Errors
    "TokenError",
    "TokenErrorReason",
    "MalformedTokenError",
    "AlgorithmMismatchError",
    "InvalidSignatureError",
    "TokenExpiredError",
    "TokenNotYetValidError",
    "InvalidClaimsError",
    "SigningError",
    "InvalidSigningKeyError",

    # Configuration
    "OAuth2Settings",
    "get_settings",
    "reset_settings",
]
