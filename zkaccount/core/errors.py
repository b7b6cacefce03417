"""
Protocol error taxonomy.

Every error carries the HTTP status it maps to and an ``error_code`` equal to
the protocol name, so the ledger API and the client library can translate
between exceptions and error envelopes without a lookup table on each side.
"""
from typing import Any, Dict, Optional, Type


class APIError(Exception):
    """Custom API error class"""
    def __init__(self, message: str, status_code: int = 500, error_code: str = None):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class ProtocolError(APIError):
    """Base class for account protocol failures"""

    status_code = 400

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message or self.__doc__ or type(self).__name__,
            status_code=type(self).status_code,
            error_code=type(self).__name__,
        )
        self.details = details or {}


class SaltTooLong(ProtocolError):
    """Salt exceeds 32 bytes"""
    status_code = 422


class EmailHashMismatch(ProtocolError):
    """Email hash does not match the proof claims"""
    status_code = 403


class AccountAlreadyInitialized(ProtocolError):
    """Account already exists for this email hash and salt"""
    status_code = 409


class AccountNotInitialized(ProtocolError):
    """No account exists for this email hash and salt"""
    status_code = 404


class SaltMismatch(ProtocolError):
    """Salt does not match the stored account"""
    status_code = 404


class InsufficientBalance(ProtocolError):
    """Available balance is lower than the requested amount"""
    status_code = 409


class MalformedProofOutputs(ProtocolError):
    """Proof public outputs could not be decoded"""
    status_code = 400


class ProofNotVerified(ProtocolError):
    """Proof is invalid or its claims are not verified"""
    status_code = 401


class NetworkUnavailable(ProtocolError):
    """Remote service is unreachable"""
    status_code = 503


class InvalidAmount(ProtocolError):
    """Amount must be a positive integer of raw units"""
    status_code = 422


class InvalidDestination(ProtocolError):
    """Destination must be a valid address different from the source"""
    status_code = 422


class InvalidStateTransition(ProtocolError):
    """Operation is not allowed in the current authorization state"""
    status_code = 409


class FeePayerSignatureInvalid(ProtocolError):
    """Fee payer signature does not match the fee payer address"""
    status_code = 401


class AirdropDisabled(ProtocolError):
    """Funding endpoint is disabled on this deployment"""
    status_code = 403


PROTOCOL_ERRORS: Dict[str, Type[ProtocolError]] = {
    cls.__name__: cls
    for cls in (
        SaltTooLong,
        EmailHashMismatch,
        AccountAlreadyInitialized,
        AccountNotInitialized,
        SaltMismatch,
        InsufficientBalance,
        MalformedProofOutputs,
        ProofNotVerified,
        NetworkUnavailable,
        InvalidAmount,
        InvalidDestination,
        InvalidStateTransition,
        FeePayerSignatureInvalid,
        AirdropDisabled,
    )
}


def error_from_code(error_code: Optional[str], message: str) -> APIError:
    """Rebuild a protocol exception from an error envelope"""
    cls = PROTOCOL_ERRORS.get(error_code or "")
    if cls is None:
        return APIError(message, error_code=error_code)
    return cls(message)
