"""
Authoritative account registry.

All balance mutations are conditional statements executed by the store, so
concurrent callers serialize at the database rather than in application code:
creation relies on the primary key and the (email hash, salt) unique
constraint, and a debit is a single ``UPDATE ... WHERE raw_balance - amount >=
rent_exempt_reserve``.
"""

import uuid
from datetime import datetime
from typing import Optional

from eth_utils import keccak
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import FlushError

from zkaccount.core.errors import (
    AccountAlreadyInitialized,
    AccountNotInitialized,
    InsufficientBalance,
    InvalidAmount,
    InvalidDestination,
)
from zkaccount.ledger.derivation import is_valid_address, normalize_address
from zkaccount.ledger.rent import LAYOUT_VERSION, rent_exempt_reserve
from zkaccount.models.account import ExternalBalance, LedgerTransaction, UserAccount


def make_signature(instruction: str, source: Optional[str], destination: str, amount: int) -> str:
    """Unique transaction signature for a ledger mutation"""
    payload = "|".join([
        instruction,
        source or "",
        destination,
        str(amount),
        datetime.utcnow().isoformat(),
        uuid.uuid4().hex,
    ])
    return "0x" + bytes(keccak(text=payload)).hex()


class AccountRegistry:
    """
    Ledger operations over user accounts.

    Every public mutating method commits on success and rolls back on failure;
    no partial mutation survives an exception.
    """

    def __init__(self, db: Session, reserve: Optional[int] = None):
        self.db = db
        self.reserve = rent_exempt_reserve() if reserve is None else reserve

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, address: str) -> Optional[UserAccount]:
        return self.db.get(UserAccount, normalize_address(address))

    def has_accounts_for(self, email_hash: bytes) -> bool:
        stmt = select(UserAccount.address).where(UserAccount.email_hash == email_hash).limit(1)
        return self.db.execute(stmt).first() is not None

    def exists(self, address: str) -> bool:
        return self.get_account(address) is not None

    def get_raw_balance(self, address: str) -> int:
        """Raw balance of any address; unknown addresses hold nothing"""
        address = normalize_address(address)
        account = self.db.get(UserAccount, address)
        if account is not None:
            return account.raw_balance
        external = self.db.get(ExternalBalance, address)
        return external.raw_balance if external is not None else 0

    def available_balance(self, address: str) -> int:
        account = self.get_account(address)
        if account is None:
            return 0
        return max(0, account.raw_balance - account.rent_exempt_reserve)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, address: str, email_hash: bytes, salt: str, bump: int,
               fee_payer: Optional[str] = None) -> str:
        """
        Create an account record seeded with its rent-exempt reserve.

        Returns:
            Transaction signature

        Raises:
            AccountAlreadyInitialized: If the address or identity already has a record
        """
        address = normalize_address(address)
        account = UserAccount(
            address=address,
            email_hash=bytes(email_hash),
            salt=salt,
            bump=bump,
            raw_balance=self.reserve,
            rent_exempt_reserve=self.reserve,
            layout_version=LAYOUT_VERSION,
        )
        signature = make_signature("create_account", fee_payer, address, self.reserve)

        def apply():
            prefunded = self.db.get(ExternalBalance, address)
            if prefunded is not None:
                account.raw_balance += prefunded.raw_balance
                self.db.delete(prefunded)
            self.db.add(account)
            self.db.flush()
            self._record(signature, "create_account", fee_payer, address, self.reserve, fee_payer)

        try:
            self._guarded(apply)
        except (IntegrityError, FlushError) as e:
            raise AccountAlreadyInitialized(
                f"Account {address} is already initialized",
                details={"address": address},
            ) from e

        logger.info(f"Created account {address} (salt={salt!r}, bump={bump})")
        return signature

    def debit(self, address: str, amount: int) -> None:
        self._guarded(self._debit, normalize_address(address), amount)

    def credit(self, destination: str, amount: int) -> None:
        if not is_valid_address(destination):
            raise InvalidDestination(f"Invalid destination address: {destination}")
        self._guarded(self._credit, normalize_address(destination), amount)

    def transfer(self, source: str, destination: str, amount: int,
                 fee_payer: Optional[str] = None) -> str:
        """
        Move ``amount`` raw units out of a user account in one store transaction.

        Returns:
            Transaction signature
        """
        if not is_valid_address(destination):
            raise InvalidDestination(f"Invalid destination address: {destination}")
        source = normalize_address(source)
        destination = normalize_address(destination)
        if source == destination:
            raise InvalidDestination("Destination must differ from the source account")

        signature = make_signature("transfer", source, destination, amount)

        def apply():
            self._debit(source, amount)
            self._credit(destination, amount)
            self._record(signature, "transfer", source, destination, amount, fee_payer)

        self._guarded(apply)
        logger.info(f"Transferred {amount} from {source} to {destination} ({signature})")
        return signature

    def fund(self, address: str, amount: int) -> str:
        """External deposit into any address"""
        if not is_valid_address(address):
            raise InvalidDestination(f"Invalid address: {address}")
        address = normalize_address(address)
        signature = make_signature("fund", None, address, amount)

        def apply():
            self._credit(address, amount)
            self._record(signature, "fund", None, address, amount, None)

        self._guarded(apply)
        logger.info(f"Funded {address} with {amount}")
        return signature

    # ------------------------------------------------------------------
    # Internals (no commit)
    # ------------------------------------------------------------------

    def _guarded(self, func, *args) -> None:
        try:
            func(*args)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _debit(self, address: str, amount: int) -> None:
        _check_amount(amount)
        stmt = (
            update(UserAccount)
            .where(
                UserAccount.address == address,
                UserAccount.raw_balance - amount >= UserAccount.rent_exempt_reserve,
            )
            .values(raw_balance=UserAccount.raw_balance - amount)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount == 1:
            return

        account = self.db.get(UserAccount, address)
        if account is None:
            raise AccountNotInitialized(f"Account {address} is not initialized",
                                        details={"address": address})
        self.db.refresh(account)
        raise InsufficientBalance(
            f"Available balance {account.available_balance} is lower than {amount}",
            details={"address": address, "available": account.available_balance, "amount": amount},
        )

    def _credit(self, destination: str, amount: int) -> None:
        _check_amount(amount)

        for model in (UserAccount, ExternalBalance):
            stmt = (
                update(model)
                .where(model.address == destination)
                .values(raw_balance=model.raw_balance + amount)
                .execution_options(synchronize_session=False)
            )
            if self.db.execute(stmt).rowcount == 1:
                return

        # a concurrent first credit to the same address fails the whole transaction
        self.db.add(ExternalBalance(address=destination, raw_balance=amount))
        self.db.flush()

    def _record(self, signature: str, instruction: str, source: Optional[str],
                destination: str, amount: int, fee_payer: Optional[str]) -> None:
        self.db.add(LedgerTransaction(
            signature=signature,
            instruction=instruction,
            source=source,
            destination=destination,
            amount=amount,
            fee_payer=fee_payer,
        ))


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")
