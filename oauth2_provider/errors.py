"""
Token error taxonomy.

Every failure of the sign/parse protocol surfaces as a subclass of
TokenError carrying a TokenErrorReason. PyJWT exceptions are translated at
the boundary and chained, so callers only ever catch these types.
"""

from enum import Enum


class TokenErrorReason(Enum):
    """Why a token was rejected or could not be produced."""
    MALFORMED_TOKEN = "malformed_token"
    ALGORITHM_MISMATCH = "algorithm_mismatch"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    INVALID_CLAIMS = "invalid_claims"
    SIGNING_FAILURE = "signing_failure"


class TokenError(Exception):
    """Base class for token failures."""

    reason = TokenErrorReason.INVALID_CLAIMS

    def __init__(self, description: str = ""):
        self.description = description
        super().__init__(f"{self.reason.value}: {description}" if description else self.reason.value)

    @property
    def oauth2_error(self) -> str:
        """OAuth 2.0 error code (RFC 6749) a token endpoint should answer with."""
        if self.reason == TokenErrorReason.SIGNING_FAILURE:
            return "server_error"
        return "invalid_grant"


class MalformedTokenError(TokenError):
    reason = TokenErrorReason.MALFORMED_TOKEN


class AlgorithmMismatchError(TokenError):
    reason = TokenErrorReason.ALGORITHM_MISMATCH


class InvalidSignatureError(TokenError):
    reason = TokenErrorReason.INVALID_SIGNATURE


class TokenExpiredError(TokenError):
    reason = TokenErrorReason.EXPIRED


class TokenNotYetValidError(TokenError):
    reason = TokenErrorReason.NOT_YET_VALID


class InvalidClaimsError(TokenError):
    reason = TokenErrorReason.INVALID_CLAIMS


class SigningError(TokenError):
    reason = TokenErrorReason.SIGNING_FAILURE


class InvalidSigningKeyError(SigningError):
    """Raised when key material does not fit the requested algorithm."""
