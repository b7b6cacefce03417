"""
Per-user client state.

A ``WalletSession`` exists only between a successful authentication and
sign-out. It holds the decoded claims, the proof that produced them and the
salts the user tracks, and is passed explicitly to whatever needs them.
"""

from typing import Dict, List, Optional

from loguru import logger

from zkaccount.core.config import get_settings
from zkaccount.core.errors import InvalidStateTransition, MalformedProofOutputs, ProofNotVerified
from zkaccount.ledger.derivation import derive_address
from zkaccount.proofs.decoder import Claims, Groth16Proof, decode_public_outputs


class WalletSession:
    """Authenticated client context for one email identity"""

    def __init__(self, proof: Groth16Proof, claims: Claims, program_id: Optional[str] = None):
        self.program_id = program_id or get_settings().program_id
        self._proof: Optional[Groth16Proof] = proof
        self._claims: Optional[Claims] = claims
        self._tracked: Dict[str, str] = {}

    @classmethod
    def authenticate(cls, proof: Groth16Proof, program_id: Optional[str] = None) -> "WalletSession":
        """
        Open a session from a proof.

        Only the public outputs are checked here; the ledger verifies the proof
        itself on every instruction.

        Raises:
            ProofNotVerified: If the outputs do not decode to verified claims
        """
        result = decode_public_outputs(proof.public_outputs)
        claims = result.claims_or_default()
        if not claims.verified:
            details = {}
            if result.error:
                details = {"reason": MalformedProofOutputs.__name__, "decode_error": result.error.describe()}
            raise ProofNotVerified("Proof claims are not verified", details=details)

        logger.info(f"Session opened for {claims.subject or 'unknown subject'}")
        return cls(proof, claims, program_id=program_id)

    @property
    def active(self) -> bool:
        return self._claims is not None

    def _require_active(self) -> None:
        if not self.active:
            raise InvalidStateTransition("Session has been signed out")

    @property
    def claims(self) -> Claims:
        self._require_active()
        return self._claims

    @property
    def proof(self) -> Groth16Proof:
        self._require_active()
        return self._proof

    @property
    def email_hash(self) -> bytes:
        return self.claims.email_hash

    def address_for(self, salt: str) -> str:
        address, _ = derive_address(self.email_hash, salt, self.program_id)
        return address

    def track(self, salt: str) -> str:
        """
        Start tracking the account for ``salt``. Salts over 32 bytes raise
        ``SaltTooLong`` without touching the ledger.
        """
        self._require_active()
        address = self.address_for(salt)
        self._tracked[salt] = address
        return address

    def untrack(self, salt: str) -> None:
        self._tracked.pop(salt, None)

    def tracked(self) -> Dict[str, str]:
        """Snapshot of tracked salts and their addresses"""
        return dict(self._tracked)

    @property
    def salts(self) -> List[str]:
        return list(self._tracked)

    def sign_out(self) -> None:
        """Discard the claims, the proof and every tracked account"""
        self._proof = None
        self._claims = None
        self._tracked.clear()
        logger.info("Session signed out")
