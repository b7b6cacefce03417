"""
Tests for the authoritative account registry.
"""

from unittest.mock import Mock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from zkaccount.core.errors import (
    AccountAlreadyInitialized,
    AccountNotInitialized,
    InsufficientBalance,
    InvalidAmount,
    InvalidDestination,
)
from zkaccount.db.database import build_engine, init_db, is_memory_database
from zkaccount.ledger.rent import LAYOUT_VERSION
from zkaccount.models.account import ExternalBalance, LedgerTransaction, UserAccount
from zkaccount.services.registry import AccountRegistry


def count(db, model, *where):
    return db.execute(select(func.count()).select_from(model).where(*where)).scalar_one()


@pytest.fixture
def account(registry, email_hash, address_for):
    """Account for salt "default" with 1 token available."""
    address = address_for("default")
    registry.create(address, email_hash, "default", 255)
    registry.fund(address, 1_000_000_000)
    return address


class TestCreate:

    def test_create_seeds_rent_exempt_reserve(self, registry, email_hash, address_for, reserve):
        address = address_for("default")

        signature = registry.create(address, email_hash, "default", 254)

        assert signature.startswith("0x") and len(signature) == 66
        assert registry.exists(address)
        assert registry.get_raw_balance(address) == reserve
        assert registry.available_balance(address) == 0

        record = registry.get_account(address)
        assert record.email_hash == email_hash
        assert record.salt == "default"
        assert record.bump == 254
        assert record.layout_version == LAYOUT_VERSION

    def test_unknown_address(self, registry, address_for):
        address = address_for("nothing-here")

        assert not registry.exists(address)
        assert registry.get_raw_balance(address) == 0
        assert registry.available_balance(address) == 0

    def test_second_create_fails(self, registry, db_session, email_hash, address_for):
        address = address_for("default")
        registry.create(address, email_hash, "default", 255)

        with pytest.raises(AccountAlreadyInitialized):
            registry.create(address, email_hash, "default", 255)

        assert count(db_session, UserAccount) == 1
        assert count(db_session, LedgerTransaction, LedgerTransaction.instruction == "create_account") == 1

    def test_identity_is_unique_even_under_another_address(self, registry, email_hash, address_for,
                                                           destination):
        registry.create(address_for("default"), email_hash, "default", 255)

        with pytest.raises(AccountAlreadyInitialized):
            registry.create(destination, email_hash, "default", 255)

    def test_concurrent_sessions_serialize_on_create(self, session_factory, email_hash, address_for):
        first = AccountRegistry(session_factory())
        second = AccountRegistry(session_factory())
        address = address_for("default")

        first.create(address, email_hash, "default", 255)
        with pytest.raises(AccountAlreadyInitialized):
            second.create(address, email_hash, "default", 255)

    def test_store_error_rolls_back_create(self, registry, db_session, email_hash, address_for, monkeypatch):
        address = address_for("default")
        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        monkeypatch.setattr(registry, "_record", Mock(side_effect=error))

        with pytest.raises(OperationalError):
            registry.create(address, email_hash, "default", 255)

        assert count(db_session, UserAccount) == 0

        monkeypatch.undo()
        registry.create(address, email_hash, "default", 255)
        assert registry.exists(address)

    def test_prefunded_address_is_folded_in(self, registry, db_session, email_hash, address_for, reserve):
        address = address_for("default")
        registry.fund(address, 42)

        registry.create(address, email_hash, "default", 255)

        assert registry.get_raw_balance(address) == reserve + 42
        assert registry.available_balance(address) == 42
        assert db_session.get(ExternalBalance, address) is None


class TestDebitCredit:

    def test_debit_down_to_reserve(self, registry, account, reserve):
        registry.debit(account, 1_000_000_000)

        assert registry.get_raw_balance(account) == reserve
        assert registry.available_balance(account) == 0

    def test_debit_past_reserve_fails(self, registry, account, reserve):
        with pytest.raises(InsufficientBalance) as exc_info:
            registry.debit(account, 1_000_000_001)

        assert exc_info.value.details["available"] == 1_000_000_000
        assert registry.get_raw_balance(account) == reserve + 1_000_000_000

    def test_debit_unknown_account(self, registry, address_for):
        with pytest.raises(AccountNotInitialized):
            registry.debit(address_for("missing"), 1)

    @pytest.mark.parametrize("amount", [0, -5, True, 1.5])
    def test_invalid_amounts(self, registry, account, destination, amount):
        with pytest.raises(InvalidAmount):
            registry.debit(account, amount)
        with pytest.raises(InvalidAmount):
            registry.credit(destination, amount)

    def test_credit_plain_address(self, registry, destination):
        registry.credit(destination, 10)
        registry.credit(destination.lower(), 5)

        assert registry.get_raw_balance(destination) == 15
        assert not registry.exists(destination)

    def test_credit_rejects_invalid_address(self, registry):
        with pytest.raises(InvalidDestination):
            registry.credit("0x1234", 10)


class TestTransfer:

    def test_balance_moves_and_reserve_stays(self, registry, db_session, account, destination, reserve):
        signature = registry.transfer(account, destination, 500_000_000)

        assert registry.get_raw_balance(destination) == 500_000_000
        assert registry.available_balance(account) == 500_000_000
        assert registry.get_raw_balance(account) - registry.available_balance(account) == reserve

        record = db_session.get(LedgerTransaction, signature)
        assert record.instruction == "transfer"
        assert record.source == account
        assert record.amount == 500_000_000

    def test_transfer_between_accounts(self, registry, email_hash, account, address_for, reserve):
        savings = address_for("savings")
        registry.create(savings, email_hash, "savings", 255)

        registry.transfer(account, savings, 250_000_000)

        assert registry.available_balance(savings) == 250_000_000
        assert registry.get_raw_balance(savings) == reserve + 250_000_000

    def test_failed_transfer_leaves_no_trace(self, registry, db_session, account, destination, reserve):
        with pytest.raises(InsufficientBalance):
            registry.transfer(account, destination, 2_000_000_000)

        assert registry.get_raw_balance(account) == reserve + 1_000_000_000
        assert registry.get_raw_balance(destination) == 0
        assert count(db_session, LedgerTransaction, LedgerTransaction.instruction == "transfer") == 0

    def test_self_transfer_rejected(self, registry, account):
        with pytest.raises(InvalidDestination):
            registry.transfer(account, account.lower(), 1)

    def test_balance_invariant_holds_throughout(self, registry, account, destination, reserve):
        for amount in (1, 999_999_998, 1):
            registry.transfer(account, destination, amount)
            available = registry.available_balance(account)
            assert available >= 0
            assert registry.get_raw_balance(account) - available == reserve

        assert registry.available_balance(account) == 0


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file-backed ledger, the way the service runs by default."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


class TestSessionIsolation:

    @pytest.mark.parametrize("url,memory", [
        ("sqlite://", True),
        ("sqlite:///:memory:", True),
        ("sqlite:///./zkaccount_ledger.db", False),
        ("postgresql://ledger@localhost/ledger", False),
    ])
    def test_memory_database_detection(self, url, memory):
        assert is_memory_database(url) is memory

    def test_file_database_gets_a_connection_per_session(self, tmp_path):
        assert isinstance(build_engine("sqlite://").pool, StaticPool)
        assert not isinstance(build_engine(f"sqlite:///{tmp_path / 'ledger.db'}").pool, StaticPool)

    def test_rollback_elsewhere_keeps_pending_transfer_whole(self, file_session_factory, email_hash,
                                                             address_for, destination, reserve):
        source = address_for("default")
        setup = file_session_factory()
        registry = AccountRegistry(setup)
        registry.create(source, email_hash, "default", 255)
        registry.fund(source, 1000)
        setup.close()

        first, second = file_session_factory(), file_session_factory()
        try:
            writer = AccountRegistry(first)
            writer._debit(source, 600)

            # the other session neither sees the pending debit nor undoes it
            reader = AccountRegistry(second)
            assert reader.get_raw_balance(source) == reserve + 1000
            second.rollback()

            writer._credit(destination, 600)
            first.commit()
        finally:
            first.close()
            second.close()

        check = file_session_factory()
        try:
            registry = AccountRegistry(check)
            assert registry.available_balance(source) == 400
            assert registry.get_raw_balance(destination) == 600
        finally:
            check.close()
