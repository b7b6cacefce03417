"""
Deterministic account addresses.

An account address is a pure function of the email hash, the salt and the
program identity: the last 20 bytes of a keccak digest over the seeds. The
bump is searched from 255 downwards until the address falls outside the
reserved range.
"""

from functools import lru_cache
from typing import Optional, Tuple

from eth_utils import is_address, keccak, to_bytes, to_checksum_address

from zkaccount.core.errors import SaltTooLong
from zkaccount.proofs.decoder import EMAIL_HASH_SIZE

SEED_PREFIX = b"user_account"
MAX_SALT_BYTES = 32
ADDRESS_SIZE = 20
# zero address and the precompile range 0x00..01 - 0x00..ff
RESERVED_PREFIX = bytes(ADDRESS_SIZE - 1)


class DerivationExhausted(Exception):
    """No bump produced a usable address"""
    pass


def encode_salt(salt: str) -> bytes:
    """Encode a salt, rejecting anything longer than 32 bytes"""
    encoded = salt.encode("utf-8")
    if len(encoded) > MAX_SALT_BYTES:
        raise SaltTooLong(
            f"Salt is {len(encoded)} bytes, maximum is {MAX_SALT_BYTES}",
            details={"salt_length": len(encoded)},
        )
    return encoded


def is_reserved_address(raw: bytes) -> bool:
    return raw[:ADDRESS_SIZE - 1] == RESERVED_PREFIX


def derive_address(email_hash: bytes, salt: str, program_id: Optional[str] = None) -> Tuple[str, int]:
    """
    Derive the account address for an (email hash, salt) pair.

    Args:
        email_hash: 32-byte identity commitment
        salt: Caller-chosen salt, at most 32 UTF-8 bytes
        program_id: Program identity; defaults to the configured program

    Returns:
        Tuple of (checksummed address, bump)
    """
    salt_bytes = encode_salt(salt)
    if len(email_hash) != EMAIL_HASH_SIZE:
        raise ValueError(f"email hash must be {EMAIL_HASH_SIZE} bytes, got {len(email_hash)}")

    if program_id is None:
        from zkaccount.core.config import get_settings
        program_id = get_settings().program_id

    return _derive(bytes(email_hash), salt_bytes, to_bytes(hexstr=program_id))


@lru_cache(maxsize=4096)
def _derive(email_hash: bytes, salt: bytes, program: bytes) -> Tuple[str, int]:
    for bump in range(255, -1, -1):
        digest = keccak(SEED_PREFIX + email_hash + salt + bytes([bump]) + program)
        raw = digest[-ADDRESS_SIZE:]
        if not is_reserved_address(raw):
            return to_checksum_address(raw), bump
    raise DerivationExhausted("Unable to find a valid bump for address derivation")


def is_valid_address(value: str) -> bool:
    return isinstance(value, str) and is_address(value)


def normalize_address(value: str) -> str:
    return to_checksum_address(value)
