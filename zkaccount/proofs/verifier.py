"""
Proof validity primitive.

The pairing check itself belongs to the ledger runtime. Verifiers here decide
whether a proof is acceptable before its public outputs are trusted.
"""

from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger

from zkaccount.proofs.decoder import Groth16Proof

GROTH16_PROOF_SIZE = 256
SELECTOR_SIZE = 4


class ProofVerifier(ABC):
    """Abstract base class for proof verifiers"""

    @abstractmethod
    def verify(self, proof: Groth16Proof) -> bool:
        """Return True when the proof is valid for its public outputs"""
        pass


class EnvelopeProofVerifier(ProofVerifier):
    """
    Checks the Groth16 envelope: selector prefix followed by a 256-byte proof.

    Runtimes that perform the pairing check wrap this verifier and call it
    first; deployments without one rely on the envelope alone.
    """

    def __init__(self, selector: Optional[bytes] = None):
        if selector is not None and len(selector) != SELECTOR_SIZE:
            raise ValueError(f"selector must be {SELECTOR_SIZE} bytes")
        self.selector = selector

    def verify(self, proof: Groth16Proof) -> bool:
        if not proof.proof or not proof.public_outputs:
            logger.debug("Rejecting proof with empty proof or public outputs")
            return False

        if self.selector is None:
            return True

        if len(proof.proof) != SELECTOR_SIZE + GROTH16_PROOF_SIZE:
            logger.debug(f"Rejecting proof of unexpected size {len(proof.proof)}")
            return False

        if proof.proof[:SELECTOR_SIZE] != self.selector:
            logger.debug("Rejecting proof with unknown verifying key selector")
            return False

        return True


class StaticProofVerifier(ProofVerifier):
    """Accepts or rejects every proof; used by local test ledgers"""

    def __init__(self, accept: bool = True):
        self.accept = accept

    def verify(self, proof: Groth16Proof) -> bool:
        return self.accept


def get_default_verifier() -> ProofVerifier:
    from zkaccount.core.config import get_settings

    settings = get_settings()
    if settings.check_proof_selector:
        return EnvelopeProofVerifier(bytes.fromhex(settings.groth16_selector))
    return EnvelopeProofVerifier()
