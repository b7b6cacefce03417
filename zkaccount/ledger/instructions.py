"""
Canonical instruction messages signed by the fee payer.

The fee payer signs exactly what it submits so the ledger can attribute the
fee; the signature never stands in for the proof.
"""

from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from zkaccount.core.errors import FeePayerSignatureInvalid
from zkaccount.ledger.derivation import is_valid_address, normalize_address

CREATE_ACCOUNT = "create_account"
TRANSFER = "transfer"


def instruction_message(instruction: str, email_hash: bytes, salt: str, proof: bytes,
                        amount: Optional[int] = None, destination: Optional[str] = None) -> str:
    lines = [
        f"instruction:{instruction}",
        f"email_hash:{bytes(email_hash).hex()}",
        f"salt:{salt}",
        f"proof:{bytes(keccak(proof)).hex()}",
    ]
    if amount is not None:
        lines.append(f"amount:{amount}")
    if destination is not None:
        lines.append(f"destination:{destination.lower()}")
    return "\n".join(lines)


def verify_fee_payer(message: str, signature: str, fee_payer: str) -> str:
    """
    Check the fee payer signed ``message``.

    Returns:
        Checksummed fee payer address
    """
    if not is_valid_address(fee_payer):
        raise FeePayerSignatureInvalid(f"Invalid fee payer address: {fee_payer}")

    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        raise FeePayerSignatureInvalid(f"Unreadable fee payer signature: {e}") from e

    if normalize_address(recovered) != normalize_address(fee_payer):
        raise FeePayerSignatureInvalid("Fee payer signature does not match the fee payer address")
    return normalize_address(fee_payer)
