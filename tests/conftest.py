"""
Pytest configuration and shared fixtures for the zk-email account ledger tests.
"""

import os

# Keep the ledger in memory before any zkaccount module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import hashlib
from unittest.mock import AsyncMock, Mock

import pytest
from eth_account import Account
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from zkaccount.client.signer import WalletSigner
from zkaccount.core.config import get_settings
from zkaccount.db.database import build_engine, drop_tables, get_db, init_db
from zkaccount.ledger import instructions
from zkaccount.ledger.derivation import derive_address
from zkaccount.ledger.rent import rent_exempt_reserve
from zkaccount.proofs.decoder import Claims, Groth16Proof, encode_public_outputs
from zkaccount.proofs.verifier import get_default_verifier
from zkaccount.services.program import AccountProgram
from zkaccount.services.registry import AccountRegistry

GROTH16_SELECTOR = bytes.fromhex("a4594c59")
PROOF_BODY = bytes(range(256))


@pytest.fixture(scope="session")
def reserve():
    """Rent-exempt reserve of the canonical account layout."""
    return rent_exempt_reserve()


@pytest.fixture
def email_hash():
    """Identity commitment for user@example.com."""
    return hashlib.sha256(b"user@example.com").digest()


@pytest.fixture
def other_email_hash():
    return hashlib.sha256(b"someone.else@example.com").digest()


@pytest.fixture
def claims(email_hash):
    return Claims(
        email_hash=email_hash,
        subject="110248495921238986420",
        issuer="https://accounts.google.com",
        audience="client-id.apps.googleusercontent.com",
        verified=True,
    )


@pytest.fixture
def make_proof():
    """Factory building a well-formed proof around arbitrary claims."""
    def _make(claims, proof_bytes=None):
        return Groth16Proof(
            proof=proof_bytes if proof_bytes is not None else GROTH16_SELECTOR + PROOF_BODY,
            public_outputs=encode_public_outputs(claims),
        )
    return _make


@pytest.fixture
def proof(make_proof, claims):
    return make_proof(claims)


@pytest.fixture
def engine():
    """Fresh in-memory ledger per test."""
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    yield engine
    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def registry(db_session):
    return AccountRegistry(db_session)


@pytest.fixture
def verifier():
    return get_default_verifier()


@pytest.fixture
def program(db_session, verifier):
    return AccountProgram(db_session, verifier=verifier)


@pytest.fixture
def fee_payer():
    return WalletSigner.create()


@pytest.fixture
def destination():
    """Plain address with no account record."""
    return Account.create().address


@pytest.fixture
def address_for(email_hash):
    def _address(salt, hash_bytes=None):
        address, _ = derive_address(hash_bytes or email_hash, salt)
        return address
    return _address


@pytest.fixture
def signed_create(program, fee_payer):
    """Submit CreateAccount through the program with a valid fee payer signature."""
    def _create(email_hash, salt, proof):
        signature = fee_payer.sign_instruction(instructions.CREATE_ACCOUNT, email_hash, salt, proof.proof)
        return program.create_account(
            email_hash, salt, proof, fee_payer=fee_payer.address, fee_payer_signature=signature
        )
    return _create


@pytest.fixture
def signed_transfer(program, fee_payer):
    """Submit Transfer through the program with a valid fee payer signature."""
    def _transfer(email_hash, salt, proof, amount, destination):
        signature = fee_payer.sign_instruction(
            instructions.TRANSFER, email_hash, salt, proof.proof, amount=amount, destination=destination
        )
        return program.transfer(
            email_hash, salt, proof, amount, destination,
            fee_payer=fee_payer.address, fee_payer_signature=signature
        )
    return _transfer


@pytest.fixture
def airdrop_enabled(monkeypatch):
    monkeypatch.setattr(get_settings(), "enable_airdrop", True)


@pytest.fixture
def mock_proof_server():
    server = Mock()
    server.base_url = "http://prover.test"
    server.health = AsyncMock(return_value=True)
    return server


@pytest.fixture
def test_api_client(session_factory, mock_proof_server):
    """FastAPI test client bound to the in-memory ledger."""
    from zkaccount.api.health import get_proof_server
    from zkaccount.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_proof_server] = lambda: mock_proof_server
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
