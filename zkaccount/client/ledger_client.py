"""
HTTP client for the account ledger API.

Local validation (salt length, destination address) happens before any
request is sent. Reads are retried with backoff when the ledger is
unreachable; mutations are sent exactly once.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from zkaccount.core.config import get_settings
from zkaccount.core.errors import InvalidDestination, NetworkUnavailable, error_from_code
from zkaccount.core.retry import retry_with_backoff
from zkaccount.client.signer import WalletSigner
from zkaccount.ledger import instructions
from zkaccount.ledger.derivation import derive_address, encode_salt, is_valid_address
from zkaccount.proofs.decoder import Groth16Proof

API_PREFIX = "/api/v1/accounts"


class LedgerClient:
    """
    Client for the account ledger API
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        signer: Optional[WalletSigner] = None,
        program_id: Optional[str] = None,
        timeout: Optional[float] = None,
        read_retries: Optional[int] = None,
        retry_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        :param base_url: Ledger API root, defaults to ``settings.ledger_api_url``
        :param signer: Fee payer key used to sign mutations
        :param program_id: Program id addresses are derived under
        :param timeout: Request timeout in seconds
        :param read_retries: Attempts for idempotent reads
        :param retry_delay: Base backoff delay for reads
        :param transport: Optional httpx transport (tests)
        """
        settings = get_settings()
        self.base_url = (base_url or settings.ledger_api_url).rstrip("/")
        self.signer = signer
        self.program_id = program_id or settings.program_id
        self.read_retries = read_retries or settings.read_retries
        self.retry_delay = retry_delay
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.request_timeout,
            transport=transport
        )

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None,
                       params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise NetworkUnavailable(f"Ledger unreachable: {e}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response.json()

    async def _read(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await retry_with_backoff(
            lambda: self._request("GET", path, params=params),
            max_retries=self.read_retries,
            base_delay=self.retry_delay,
            retry_on=(NetworkUnavailable,)
        )

    def address_for(self, email_hash: bytes, salt: str) -> str:
        """
        Derive the account address locally

        :param email_hash: 32-byte identity commitment
        :param salt: Account salt
        :return: Checksummed address
        """
        address, _ = derive_address(email_hash, salt, self.program_id)
        return address

    async def exists(self, email_hash: bytes, salt: str) -> bool:
        encode_salt(salt)
        data = await self._read(f"{_account_path(email_hash)}/exists", params={"salt": salt})
        return bool(data["exists"])

    async def get_balance_details(self, email_hash: bytes, salt: str) -> Dict[str, Any]:
        encode_salt(salt)
        return await self._read(f"{_account_path(email_hash)}/balance", params={"salt": salt})

    async def get_balance(self, email_hash: bytes, salt: str) -> Decimal:
        """
        Available balance in tokens (raw units / 10^9)

        :return: Decimal balance, zero for a missing account
        """
        data = await self.get_balance_details(email_hash, salt)
        return Decimal(str(data["balance"]))

    async def get_account(self, email_hash: bytes, salt: str) -> Dict[str, Any]:
        encode_salt(salt)
        return await self._read(_account_path(email_hash), params={"salt": salt})

    def _instruction_body(self, instruction: str, proof: Groth16Proof, email_hash: bytes, salt: str,
                          amount: Optional[int] = None, destination: Optional[str] = None) -> Dict[str, Any]:
        body = {
            "email_hash": email_hash.hex(),
            "salt": salt,
            "proof": proof.to_hex(),
        }
        if amount is not None:
            body["amount"] = amount
        if destination is not None:
            body["destination"] = destination

        if self.signer is not None:
            body["fee_payer"] = self.signer.address
            body["fee_payer_signature"] = self.signer.sign_instruction(
                instruction, email_hash, salt, proof.proof, amount=amount, destination=destination
            )
        return body

    async def create_account(self, proof: Groth16Proof, email_hash: bytes, salt: str) -> Dict[str, Any]:
        """
        Create the account for ``(email_hash, salt)``. Never retried.

        :return: ``{"signature", "address", "bump"}``
        """
        encode_salt(salt)
        body = self._instruction_body(instructions.CREATE_ACCOUNT, proof, email_hash, salt)

        logger.info(f"Creating account for salt {salt!r}")
        return await self._request("POST", API_PREFIX, json=body)

    async def transfer(self, proof: Groth16Proof, email_hash: bytes, salt: str,
                       amount: int, destination: str) -> str:
        """
        Transfer raw units out of the account. Never retried.

        :return: Transaction signature
        """
        encode_salt(salt)
        if not is_valid_address(destination):
            raise InvalidDestination(f"Invalid destination address: {destination}")

        body = self._instruction_body(
            instructions.TRANSFER, proof, email_hash, salt, amount=amount, destination=destination
        )

        logger.info(f"Transferring {amount} raw units from salt {salt!r} to {destination}")
        data = await self._request("POST", f"{API_PREFIX}/transfer", json=body)
        return data["signature"]

    async def fund(self, address: str, amount: int) -> str:
        """Request devnet funds for ``address``"""
        data = await self._request("POST", f"{API_PREFIX}/fund", json={"address": address, "amount": amount})
        return data["signature"]


def _error_from_response(response: httpx.Response) -> Exception:
    try:
        error = response.json().get("error", {})
    except (ValueError, AttributeError):
        error = {}

    message = error.get("message") or response.text or f"HTTP {response.status_code}"
    if response.status_code >= 500 and not error.get("error_code"):
        return NetworkUnavailable(message)
    return error_from_code(error.get("error_code"), message)


def _account_path(email_hash: bytes) -> str:
    return f"{API_PREFIX}/{email_hash.hex()}"
