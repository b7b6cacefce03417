"""
OIDC ID token helpers for building proving requests.

Tokens are never verified here; the prover checks the RSA signature inside
the circuit. These helpers only split the token and look up the issuer key.
"""

import base64
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm
from cryptography.hazmat.primitives import serialization

from zkaccount.core.errors import NetworkUnavailable

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"


@dataclass(frozen=True)
class OIDCToken:
    issuer: str
    sub: str
    email: str
    kid: str
    header: str
    payload: str
    signature: str


def parse_oidc_token(token: str) -> OIDCToken:
    """
    Split an ID token and extract the claims needed for proving.

    Raises:
        ValueError: If the token is malformed or misses a required claim
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("ID token must have three segments")

    try:
        header = jwt.get_unverified_header(token)
        body = jwt.decode(token, options={"verify_signature": False, "verify_aud": False})
    except jwt.exceptions.DecodeError as e:
        raise ValueError(f"Malformed ID token: {e}") from e

    kid = header.get("kid")
    issuer = body.get("iss")
    sub = body.get("sub")
    email = body.get("email")
    if not issuer or not sub or not email or not kid:
        raise ValueError("Missing required fields in token")

    return OIDCToken(
        issuer=issuer,
        sub=sub,
        email=email,
        kid=kid,
        header=parts[0],
        payload=parts[1],
        signature=parts[2],
    )


def signature_to_base64(signature_segment: str) -> str:
    """Convert a base64url JWT signature segment to padded standard base64."""
    padded = signature_segment + "=" * (-len(signature_segment) % 4)
    return base64.b64encode(base64.urlsafe_b64decode(padded)).decode("ascii")


def jwk_to_der(jwk: Dict[str, Any]) -> bytes:
    public_key = RSAAlgorithm.from_jwk(json.dumps(jwk))
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


async def fetch_issuer_key_der(kid: str, jwks_url: str = GOOGLE_JWKS_URL, timeout: float = 10.0,
                               transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    """Fetch the issuer JWKS and return the DER public key for ``kid``."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(jwks_url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise NetworkUnavailable(f"JWKS endpoint unavailable: {e}") from e

    for key in response.json().get("keys", []):
        if key.get("kid") == kid:
            return jwk_to_der(key)

    raise ValueError(f"No issuer key with kid {kid}")
