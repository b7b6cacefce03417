"""
Fee payer key used to sign instructions submitted to the ledger.

The key pays for and attributes instructions. It grants no spending authority
over proof-owned accounts.
"""

from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from zkaccount.ledger import instructions


class WalletSigner:
    """Signs canonical instruction messages with an eth-account key"""

    def __init__(self, account: LocalAccount):
        self._account = account

    @classmethod
    def from_key(cls, private_key: str) -> "WalletSigner":
        return cls(Account.from_key(private_key))

    @classmethod
    def create(cls) -> "WalletSigner":
        """Generate a throwaway fee payer key"""
        return cls(Account.create())

    @property
    def address(self) -> str:
        return self._account.address

    def sign_message(self, message: str) -> str:
        signed = self._account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()

    def sign_instruction(self, instruction: str, email_hash: bytes, salt: str, proof: bytes,
                         amount: Optional[int] = None, destination: Optional[str] = None) -> str:
        message = instructions.instruction_message(
            instruction, email_hash, salt, proof, amount=amount, destination=destination
        )
        return self.sign_message(message)
