"""
Ledger-side instruction handlers.

The program is what the HTTP API calls: it checks the fee payer's signature
for attribution, then runs a fresh ``TransferAuthorizer`` for the proof that
came with the instruction.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from zkaccount.core.config import get_settings
from zkaccount.core.errors import AirdropDisabled, InvalidAmount
from zkaccount.ledger import instructions
from zkaccount.ledger.derivation import derive_address
from zkaccount.ledger.rent import to_decimal
from zkaccount.models.account import UserAccount
from zkaccount.proofs.decoder import Groth16Proof
from zkaccount.proofs.verifier import ProofVerifier, get_default_verifier
from zkaccount.services.authorizer import CreateAccountResult, TransferAuthorizer, TransferResult
from zkaccount.services.registry import AccountRegistry


@dataclass(frozen=True)
class BalanceView:
    address: str
    raw_balance: int
    available_raw: int
    rent_exempt_reserve: int

    @property
    def balance(self) -> Decimal:
        return to_decimal(self.available_raw)


class AccountProgram:
    """
    Executes account instructions against the registry.
    """

    def __init__(self, db: Session, verifier: Optional[ProofVerifier] = None,
                 program_id: Optional[str] = None, require_fee_payer_signature: bool = True):
        self.registry = AccountRegistry(db)
        self.verifier = verifier or get_default_verifier()
        self.program_id = program_id or get_settings().program_id
        self.require_fee_payer_signature = require_fee_payer_signature

    def _authorizer(self) -> TransferAuthorizer:
        return TransferAuthorizer(self.registry, self.verifier, self.program_id)

    def _fee_payer(self, message: str, fee_payer: Optional[str], signature: Optional[str]) -> Optional[str]:
        if not self.require_fee_payer_signature:
            return fee_payer
        payer = instructions.verify_fee_payer(message, signature or "", fee_payer or "")
        logger.debug(f"Instruction attributed to fee payer {payer}")
        return payer

    def create_account(self, email_hash: bytes, salt: str, proof: Groth16Proof,
                       fee_payer: Optional[str] = None,
                       fee_payer_signature: Optional[str] = None) -> CreateAccountResult:
        message = instructions.instruction_message(
            instructions.CREATE_ACCOUNT, email_hash, salt, proof.proof
        )
        payer = self._fee_payer(message, fee_payer, fee_payer_signature)

        authorizer = self._authorizer()
        authorizer.authenticate(proof)
        authorizer.select_account(salt)
        return authorizer.create_account(email_hash, fee_payer=payer)

    def transfer(self, email_hash: bytes, salt: str, proof: Groth16Proof, amount: int,
                 destination: str, fee_payer: Optional[str] = None,
                 fee_payer_signature: Optional[str] = None) -> TransferResult:
        message = instructions.instruction_message(
            instructions.TRANSFER, email_hash, salt, proof.proof,
            amount=amount, destination=destination,
        )
        payer = self._fee_payer(message, fee_payer, fee_payer_signature)

        authorizer = self._authorizer()
        authorizer.authenticate(proof)
        authorizer.select_account(salt)
        return authorizer.transfer(email_hash, amount, destination, fee_payer=payer)

    def address_for(self, email_hash: bytes, salt: str) -> str:
        address, _ = derive_address(email_hash, salt, self.program_id)
        return address

    def exists(self, email_hash: bytes, salt: str) -> bool:
        return self.registry.exists(self.address_for(email_hash, salt))

    def get_balance(self, email_hash: bytes, salt: str) -> BalanceView:
        address = self.address_for(email_hash, salt)
        account = self.registry.get_account(address)
        if account is None:
            return BalanceView(
                address=address,
                raw_balance=self.registry.get_raw_balance(address),
                available_raw=0,
                rent_exempt_reserve=self.registry.reserve,
            )
        return BalanceView(
            address=address,
            raw_balance=account.raw_balance,
            available_raw=account.available_balance,
            rent_exempt_reserve=account.rent_exempt_reserve,
        )

    def get_account(self, email_hash: bytes, salt: str) -> Optional[UserAccount]:
        return self.registry.get_account(self.address_for(email_hash, salt))

    def fund(self, address: str, amount: int) -> str:
        settings = get_settings()
        if not settings.enable_airdrop:
            raise AirdropDisabled()
        if amount > settings.max_airdrop_amount:
            raise InvalidAmount(f"Airdrop is limited to {settings.max_airdrop_amount} raw units")
        return self.registry.fund(address, amount)
