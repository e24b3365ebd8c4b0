"""Bearer token verification for the skillswap API.

Access tokens are ES256 JWTs minted by the platform's auth service with
``aud`` set to this service.  The API only needs the subject (the user
id); everything else is checked and discarded.

The issuer's public key comes from JWT_PUBLIC_KEY or JWT_PUBLIC_KEY_FILE.
When neither is set (dev and test only; prod refuses to start) the
process generates an ephemeral key pair at import time, and
``create_access_token`` signs with it so local development and the test
suite can mint tokens the API will accept.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from skillswap.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "auth-service"
AUDIENCE = "skillswap"
ACCESS_TOKEN_TTL = timedelta(minutes=15)
REQUIRED_CLAIMS = ("sub", "exp", "iat", "jti")


def load_verifying_key(pem: str) -> ec.EllipticCurvePublicKey:
    """Parse the issuer's PEM public key; it must be a P-256 EC key."""
    key = serialization.load_pem_public_key(pem.encode())
    if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(
        key.curve, ec.SECP256R1
    ):
        raise ValueError("JWT public key must be an EC P-256 key for ES256")
    return key


_signing_key: ec.EllipticCurvePrivateKey | None
if SETTINGS.jwt_public_key:
    _signing_key = None
    _verifying_key = load_verifying_key(SETTINGS.jwt_public_key)
else:
    _signing_key = ec.generate_private_key(ec.SECP256R1())
    _verifying_key = _signing_key.public_key()


def create_access_token(*, sub: str, roles: list[str] | None = None) -> str:
    if _signing_key is None:
        raise RuntimeError("tokens are issued by the auth service when JWT_PUBLIC_KEY is set")
    issued = datetime.now(UTC)
    claims = {
        "iss": ISSUER,
        "aud": AUDIENCE,
        "sub": sub,
        "roles": roles or ["user"],
        "iat": issued,
        "exp": issued + ACCESS_TOKEN_TTL,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key, algorithm=ALGORITHM)


def decode_access_token(
    token: str, *, key: ec.EllipticCurvePublicKey | None = None
) -> dict:
    """Return the verified claims of ``token``.

    ``key`` defaults to the configured issuer key.  Only ES256 is
    accepted, so an HS256 token or ``alg: none`` fails verification.
    Raises ``jwt.InvalidTokenError`` (or its subclass
    ``jwt.ExpiredSignatureError``).
    """
    return jwt.decode(
        token,
        key or _verifying_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        options={"require": list(REQUIRED_CLAIMS)},
    )
