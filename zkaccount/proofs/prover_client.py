"""
Client for the external proving server.

The server is untrusted: its response is only parsed into a ``Groth16Proof``
here, and nothing about it is believed until the public outputs decode to
verified claims.
"""

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from zkaccount.core.config import get_settings
from zkaccount.core.errors import NetworkUnavailable
from zkaccount.proofs.decoder import Groth16Proof
from zkaccount.proofs.oidc import OIDCToken, signature_to_base64


@dataclass(frozen=True)
class ProofResponse:
    proof: Groth16Proof
    verification_key: Optional[str]
    proof_size: int


class ProofServerClient:
    """HTTP client for the JWT proving server"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = get_settings()
        self.base_url = (base_url or settings.proof_server_url).rstrip("/")
        self.timeout = timeout or settings.proof_server_timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def health(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get("/health")
            return response.status_code == 200 and response.json().get("status") == "healthy"
        except httpx.HTTPError as e:
            logger.warning(f"Proof server health check failed: {e}")
            return False

    async def request_proof(self, token: OIDCToken, public_key_der: bytes) -> ProofResponse:
        """
        Request a proof for an ID token.

        Args:
            token: Parsed ID token
            public_key_der: Issuer RSA public key (SubjectPublicKeyInfo DER)

        Returns:
            ProofResponse with the proof bytes and public outputs

        Raises:
            NetworkUnavailable: If the server cannot be reached or fails to prove
        """
        body = {
            "header": token.header,
            "payload": token.payload,
            "signature": signature_to_base64(token.signature),
            "public_key": base64.b64encode(public_key_der).decode("ascii"),
        }

        logger.info(f"Requesting proof from {self.base_url}")
        try:
            async with self._client() as client:
                response = await client.post("/prove", json=body)
        except httpx.HTTPError as e:
            raise NetworkUnavailable(f"Proof server unavailable: {e}") from e

        if response.status_code != 200:
            raise NetworkUnavailable(
                f"Proof server returned {response.status_code}: {_error_text(response)}"
            )

        return parse_proof_response(response.json())


def parse_proof_response(data: Dict[str, Any]) -> ProofResponse:
    try:
        proof = Groth16Proof.from_hex(data["proof"], data["public_outputs_bytes"])
    except (KeyError, TypeError, ValueError) as e:
        raise NetworkUnavailable(f"Proof server returned an unusable response: {e}") from e

    return ProofResponse(
        proof=proof,
        verification_key=data.get("verification_key"),
        proof_size=int(data.get("proof_size", len(proof.proof))),
    )


def _error_text(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    return str(data.get("error", response.text)) if isinstance(data, dict) else response.text
