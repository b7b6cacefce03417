"""
Ledger models for email-owned accounts.

This module defines the SQLAlchemy models backing the authoritative ledger:
program-derived user accounts, balances held by plain addresses, and the
record of every mutation applied to either.
"""

from sqlalchemy import Column, Integer, String, DateTime, BigInteger, LargeBinary, Index, UniqueConstraint
from sqlalchemy.sql import func

from zkaccount.db.database import Base
from zkaccount.ledger.rent import LAYOUT_VERSION


class UserAccount(Base):
    """Account derived from an email hash and salt."""
    __tablename__ = 'user_accounts'

    address = Column(String(42), primary_key=True)
    email_hash = Column(LargeBinary(32), nullable=False, index=True)
    salt = Column(String(64), nullable=False)
    bump = Column(Integer, nullable=False)
    raw_balance = Column(BigInteger, nullable=False, default=0)
    rent_exempt_reserve = Column(BigInteger, nullable=False)
    layout_version = Column(Integer, nullable=False, default=LAYOUT_VERSION)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('email_hash', 'salt', name='uq_user_account_identity'),
    )

    @property
    def available_balance(self) -> int:
        return max(0, self.raw_balance - self.rent_exempt_reserve)

    def __repr__(self):
        return f"<UserAccount(address='{self.address}', salt='{self.salt}')>"


class ExternalBalance(Base):
    """Balance held by an address that is not a program account."""
    __tablename__ = 'external_balances'

    address = Column(String(42), primary_key=True)
    raw_balance = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ExternalBalance(address='{self.address}', raw_balance={self.raw_balance})>"


class LedgerTransaction(Base):
    """Mutation applied to the ledger."""
    __tablename__ = 'ledger_transactions'

    signature = Column(String(66), primary_key=True)
    instruction = Column(String(32), nullable=False)  # create_account, transfer, fund
    source = Column(String(42), index=True)
    destination = Column(String(42), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False, default=0)
    fee_payer = Column(String(42))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_ledger_tx_instruction_created', 'instruction', 'created_at'),
    )

    def __repr__(self):
        return f"<LedgerTransaction(signature='{self.signature[:10]}...', instruction='{self.instruction}')>"
