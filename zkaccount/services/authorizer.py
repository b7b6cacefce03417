"""
Proof-gated authorization state machine.

    UNAUTHENTICATED -> AUTHENTICATED -> ACCOUNT_SELECTED -> AUTHORIZING -> COMPLETED | FAILED

Each mutating instruction runs on a fresh authorizer built from the proof it
carries. Nothing the fee payer supplies moves the machine forward.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from zkaccount.core.errors import (
    AccountAlreadyInitialized,
    AccountNotInitialized,
    EmailHashMismatch,
    InsufficientBalance,
    InvalidAmount,
    InvalidDestination,
    InvalidStateTransition,
    MalformedProofOutputs,
    ProofNotVerified,
    ProtocolError,
    SaltMismatch,
)
from zkaccount.ledger.derivation import derive_address, is_valid_address, normalize_address
from zkaccount.proofs.decoder import Claims, Groth16Proof, decode_public_outputs
from zkaccount.proofs.verifier import ProofVerifier
from zkaccount.services.registry import AccountRegistry


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    ACCOUNT_SELECTED = "account_selected"
    AUTHORIZING = "authorizing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CreateAccountResult:
    signature: str
    address: str
    bump: int


@dataclass(frozen=True)
class TransferResult:
    signature: str
    source: str
    destination: str
    amount: int


class TransferAuthorizer:
    """
    Enforces that ledger mutations only happen for verified claims that match
    the caller's assertions.
    """

    def __init__(self, registry: AccountRegistry, verifier: ProofVerifier,
                 program_id: Optional[str] = None):
        self.registry = registry
        self.verifier = verifier
        self.program_id = program_id

        self.state = AuthState.UNAUTHENTICATED
        self.claims: Optional[Claims] = None
        self.salt: Optional[str] = None
        self.address: Optional[str] = None
        self.bump: Optional[int] = None
        self.failure: Optional[str] = None

    def _require(self, *states: AuthState) -> None:
        if self.state not in states:
            raise InvalidStateTransition(
                f"Operation not allowed in state {self.state.value}",
                details={"state": self.state.value},
            )

    def authenticate(self, proof: Groth16Proof) -> Claims:
        self._require(AuthState.UNAUTHENTICATED)

        if not self.verifier.verify(proof):
            raise ProofNotVerified("Proof verification failed")

        result = decode_public_outputs(proof.public_outputs)
        if not result.ok:
            logger.warning(f"Public outputs could not be decoded: {result.error.describe()}")
        claims = result.claims_or_default()

        if not claims.verified:
            details = {}
            if result.error:
                details = {"reason": MalformedProofOutputs.__name__, "decode_error": result.error.describe()}
            raise ProofNotVerified("Proof claims are not verified", details=details)

        self.claims = claims
        self.state = AuthState.AUTHENTICATED
        return claims

    def select_account(self, salt: str) -> str:
        self._require(AuthState.AUTHENTICATED, AuthState.ACCOUNT_SELECTED)

        address, bump = derive_address(self.claims.email_hash, salt, self.program_id)
        self.salt = salt
        self.address = address
        self.bump = bump
        self.state = AuthState.ACCOUNT_SELECTED
        return address

    def create_account(self, email_hash: bytes, fee_payer: Optional[str] = None) -> CreateAccountResult:
        self._require(AuthState.ACCOUNT_SELECTED)
        self.state = AuthState.AUTHORIZING

        try:
            self._check_email_hash(email_hash)

            if self.registry.exists(self.address):
                raise AccountAlreadyInitialized(
                    f"Account {self.address} is already initialized",
                    details={"address": self.address},
                )

            signature = self.registry.create(
                self.address, self.claims.email_hash, self.salt, self.bump, fee_payer=fee_payer
            )
        except Exception as e:
            self._fail(e)
            raise

        self.state = AuthState.COMPLETED
        return CreateAccountResult(signature=signature, address=self.address, bump=self.bump)

    def transfer(self, email_hash: bytes, amount: int, destination: str,
                 fee_payer: Optional[str] = None) -> TransferResult:
        self._require(AuthState.ACCOUNT_SELECTED)
        self.state = AuthState.AUTHORIZING

        try:
            if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
                raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")

            if not is_valid_address(destination):
                raise InvalidDestination(f"Invalid destination address: {destination}")
            destination = normalize_address(destination)
            if destination == self.address:
                raise InvalidDestination("Destination must differ from the source account")

            if not self.claims.verified:
                raise ProofNotVerified("Proof claims are not verified")

            self._check_email_hash(email_hash)

            account = self.registry.get_account(self.address)
            if account is None:
                details = {"address": self.address, "salt": self.salt}
                if self.registry.has_accounts_for(self.claims.email_hash):
                    details["reason"] = SaltMismatch.__name__
                raise AccountNotInitialized(
                    f"No account for salt {self.salt!r}", details=details
                )

            if account.email_hash != self.claims.email_hash or account.salt != self.salt:
                raise SaltMismatch(f"Account {self.address} does not belong to salt {self.salt!r}")

            if account.available_balance < amount:
                raise InsufficientBalance(
                    f"Available balance {account.available_balance} is lower than {amount}",
                    details={"available": account.available_balance, "amount": amount},
                )

            signature = self.registry.transfer(self.address, destination, amount, fee_payer=fee_payer)
        except Exception as e:
            self._fail(e)
            raise

        self.state = AuthState.COMPLETED
        return TransferResult(signature=signature, source=self.address,
                              destination=destination, amount=amount)

    def _check_email_hash(self, email_hash: bytes) -> None:
        if bytes(email_hash) != self.claims.email_hash:
            raise EmailHashMismatch("Email hash does not match the proof claims")

    def _fail(self, error: Exception) -> None:
        self.state = AuthState.FAILED
        self.failure = getattr(error, "error_code", type(error).__name__)
        if isinstance(error, ProtocolError):
            logger.info(f"Authorization failed for {self.address}: {self.failure}")
        else:
            logger.error(f"Authorization failed for {self.address}: {error!r}")
