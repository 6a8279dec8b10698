"""
JWT signing keys for the OAuth 2.0 provider.

A signing key bundles the JWS algorithm with the material to sign and verify
under it. The token protocol consults the key on every call and never keeps
a process-wide algorithm registry, so the algorithm a verifier accepts is
always the one its key declares.

Supported algorithms:
- HS256, HS384, HS512 (shared secret)
- RS256, RS384, RS512, PS256, PS384, PS512 (RSA)
- ES256, ES384, ES512 (ECDSA on P-256, P-384, P-521)
- EdDSA (Ed25519)

Asymmetric keys publish a JWK and tag every token header with a key id
derived from the RFC 7638 thumbprint of that JWK.
"""

import base64
import hashlib
import json
import logging
import secrets
from typing import Any, Optional, Protocol, Union, runtime_checkable

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from jwt.algorithms import ECAlgorithm, OKPAlgorithm, RSAAlgorithm

from .config import OAuth2Settings, get_settings
from .errors import InvalidSigningKeyError

logger = logging.getLogger(__name__)

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
RSA_ALGORITHMS = ("RS256", "RS384", "RS512", "PS256", "PS384", "PS512")
ECDSA_ALGORITHMS = ("ES256", "ES384", "ES512")
EDDSA_ALGORITHMS = ("EdDSA",)

_ECDSA_CURVES = {
    "ES256": ec.SECP256R1,
    "ES384": ec.SECP384R1,
    "ES512": ec.SECP521R1,
}

_HMAC_KEY_LENGTHS = {
    "HS256": 32,
    "HS384": 48,
    "HS512": 64,
}

# RFC 7638 members per key type
_THUMBPRINT_MEMBERS = {
    "RSA": ("e", "kty", "n"),
    "EC": ("crv", "kty", "x", "y"),
    "OKP": ("crv", "kty", "x"),
}

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]


@runtime_checkable
class JWTSigningKey(Protocol):
    """Capability the token protocol signs and verifies with."""

    def signing_method(self) -> str:
        ...

    def sign_key(self) -> Any:
        ...

    def verify_key(self) -> Any:
        ...

    def pre_process_token(self, headers: dict[str, Any]) -> None:
        ...


def jwk_thumbprint(jwk: dict[str, Any]) -> str:
    """Compute the RFC 7638 SHA-256 thumbprint of a public JWK."""
    members = _THUMBPRINT_MEMBERS.get(jwk.get("kty", ""))
    if not members:
        raise InvalidSigningKeyError(f"cannot compute thumbprint for key type {jwk.get('kty')!r}")
    canonical = json.dumps({name: jwk[name] for name in members}, separators=(",", ":"), sort_keys=True)
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class HMACSigningKey:
    """Shared-secret key for HS256, HS384 and HS512."""

    def __init__(self, algorithm: str, secret: bytes):
        if algorithm not in HMAC_ALGORITHMS:
            raise InvalidSigningKeyError(f"{algorithm} is not an HMAC algorithm")
        if not isinstance(secret, bytes) or not secret:
            raise InvalidSigningKeyError("HMAC signing key must be non-empty bytes")
        self._algorithm = algorithm
        self._secret = secret

    def is_symmetric(self) -> bool:
        return True

    def signing_method(self) -> str:
        return self._algorithm

    def sign_key(self) -> bytes:
        return self._secret

    def verify_key(self) -> bytes:
        return self._secret

    def to_jwk(self) -> dict[str, Any]:
        # the secret is never published
        return {}

    def pre_process_token(self, headers: dict[str, Any]) -> None:
        pass


class _AsymmetricSigningKey:
    """Private key plus the public counterpart and its key id."""

    _jwk_algorithm: Any = None

    def __init__(self, algorithm: str, private_key: PrivateKey):
        self._algorithm = algorithm
        self._private_key = private_key
        self._public_key = private_key.public_key()
        self._kid = jwk_thumbprint(self._public_jwk())

    def _public_jwk(self) -> dict[str, Any]:
        return self._jwk_algorithm.to_jwk(self._public_key, as_dict=True)

    @property
    def kid(self) -> str:
        return self._kid

    def is_symmetric(self) -> bool:
        return False

    def signing_method(self) -> str:
        return self._algorithm

    def sign_key(self) -> PrivateKey:
        return self._private_key

    def verify_key(self) -> Any:
        return self._public_key

    def to_jwk(self) -> dict[str, Any]:
        jwk = self._public_jwk()
        jwk.update({"alg": self._algorithm, "use": "sig", "kid": self._kid})
        return jwk

    def pre_process_token(self, headers: dict[str, Any]) -> None:
        headers["kid"] = self._kid


class RSASigningKey(_AsymmetricSigningKey):
    """RSA key for the RS* (PKCS#1 v1.5) and PS* (PSS) algorithms."""

    _jwk_algorithm = RSAAlgorithm

    def __init__(self, algorithm: str, private_key: rsa.RSAPrivateKey):
        if algorithm not in RSA_ALGORITHMS:
            raise InvalidSigningKeyError(f"{algorithm} is not an RSA algorithm")
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise InvalidSigningKeyError(f"{algorithm} requires an RSA private key")
        super().__init__(algorithm, private_key)


class ECDSASigningKey(_AsymmetricSigningKey):
    """Elliptic curve key; the curve is fixed by the algorithm."""

    _jwk_algorithm = ECAlgorithm

    def __init__(self, algorithm: str, private_key: ec.EllipticCurvePrivateKey):
        if algorithm not in ECDSA_ALGORITHMS:
            raise InvalidSigningKeyError(f"{algorithm} is not an ECDSA algorithm")
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise InvalidSigningKeyError(f"{algorithm} requires an EC private key")
        expected = _ECDSA_CURVES[algorithm]
        if private_key.curve.name != expected.name:
            raise InvalidSigningKeyError(f"{algorithm} requires curve {expected.name}, got {private_key.curve.name}")
        super().__init__(algorithm, private_key)


class EdDSASigningKey(_AsymmetricSigningKey):
    """Ed25519 key for EdDSA."""

    _jwk_algorithm = OKPAlgorithm

    def __init__(self, algorithm: str, private_key: ed25519.Ed25519PrivateKey):
        if algorithm not in EDDSA_ALGORITHMS:
            raise InvalidSigningKeyError(f"{algorithm} is not an EdDSA algorithm")
        if not isinstance(private_key, ed25519.Ed25519PrivateKey):
            raise InvalidSigningKeyError("EdDSA requires an Ed25519 private key")
        super().__init__(algorithm, private_key)


def create_signing_key(algorithm: str, key: Union[bytes, PrivateKey]) -> JWTSigningKey:
    """
    Create a signing key for the given algorithm.

    Args:
        algorithm: JWS algorithm name
        key: secret bytes for HS* algorithms, a private key object otherwise

    Returns:
        Signing key implementing JWTSigningKey

    Raises:
        InvalidSigningKeyError: unknown algorithm or key of the wrong type
    """
    if algorithm in HMAC_ALGORITHMS:
        signing_key = HMACSigningKey(algorithm, key)
    elif algorithm in RSA_ALGORITHMS:
        signing_key = RSASigningKey(algorithm, key)
    elif algorithm in ECDSA_ALGORITHMS:
        signing_key = ECDSASigningKey(algorithm, key)
    elif algorithm in EDDSA_ALGORITHMS:
        signing_key = EdDSASigningKey(algorithm, key)
    else:
        raise InvalidSigningKeyError(f"unsupported signing algorithm: {algorithm}")

    logger.info(f"Created {algorithm} signing key")
    return signing_key


def generate_private_key(algorithm: str) -> Union[bytes, PrivateKey]:
    """Generate fresh key material suitable for the algorithm."""
    if algorithm in HMAC_ALGORITHMS:
        return secrets.token_bytes(_HMAC_KEY_LENGTHS[algorithm])
    if algorithm in RSA_ALGORITHMS:
        return rsa.generate_private_key(public_exponent=65537, key_size=4096)
    if algorithm in ECDSA_ALGORITHMS:
        return ec.generate_private_key(_ECDSA_CURVES[algorithm]())
    if algorithm in EDDSA_ALGORITHMS:
        return ed25519.Ed25519PrivateKey.generate()
    raise InvalidSigningKeyError(f"unsupported signing algorithm: {algorithm}")


def signing_key_from_settings(
    settings: Optional[OAuth2Settings] = None,
    private_key: Optional[PrivateKey] = None,
) -> JWTSigningKey:
    """
    Create the signing key described by the settings.

    HS* algorithms use the configured secret. Asymmetric algorithms use the
    given private key, or fresh key material when none is given.

    Raises:
        InvalidSigningKeyError: HS* algorithm without a configured secret, or
            a private key that does not fit the algorithm
    """
    settings = settings or get_settings()
    algorithm = settings.jwt_signing_algorithm

    if algorithm in HMAC_ALGORITHMS:
        try:
            secret = settings.jwt_secret_bytes()
        except ValueError as e:
            raise InvalidSigningKeyError(f"OAUTH2_JWT_SECRET is not valid base64url: {e}") from e
        if not secret:
            raise InvalidSigningKeyError(f"{algorithm} requires OAUTH2_JWT_SECRET")
        return create_signing_key(algorithm, secret)

    if private_key is None:
        logger.info(f"No private key supplied, generating one for {algorithm}")
        private_key = generate_private_key(algorithm)
    return create_signing_key(algorithm, private_key)


def private_key_to_pem(private_key: PrivateKey) -> bytes:
    """Serialize a private key as unencrypted PKCS8 PEM."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key(pem: bytes) -> PrivateKey:
    """Load an unencrypted PEM private key."""
    try:
        return serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise InvalidSigningKeyError(f"cannot load private key: {e}") from e
