"""
Decoding of proof public outputs into identity claims.

Layout of the public-output buffer::

    8 x u32 LE          email digest fragments
    u32 LE + UTF-8      subject
    u32 LE + UTF-8      issuer
    u32 LE + UTF-8      audience
    u8                  verified (nonzero = true)

Decoding never raises. A buffer that cannot be decoded yields a failed
``DecodeResult``; callers that only need claims use ``decode_claims`` which
degrades to unauthenticated default claims.
"""

import struct
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

EMAIL_HASH_FRAGMENTS = 8
EMAIL_HASH_SIZE = 32
ZERO_EMAIL_HASH = bytes(EMAIL_HASH_SIZE)

_U32 = struct.Struct("<I")


@dataclass(frozen=True)
class Groth16Proof:
    """Proof as returned by the proving server."""
    proof: bytes
    public_outputs: bytes

    @classmethod
    def from_hex(cls, proof_hex: str, public_outputs_hex: str) -> "Groth16Proof":
        return cls(
            proof=bytes.fromhex(_strip_0x(proof_hex)),
            public_outputs=bytes.fromhex(_strip_0x(public_outputs_hex)),
        )

    def to_hex(self) -> dict:
        return {"proof": self.proof.hex(), "public_outputs": self.public_outputs.hex()}


@dataclass(frozen=True)
class Claims:
    """Identity assertions committed by the prover."""
    email_hash: bytes = ZERO_EMAIL_HASH
    subject: str = ""
    issuer: str = ""
    audience: str = ""
    verified: bool = False

    @classmethod
    def unauthenticated(cls) -> "Claims":
        return cls()

    @property
    def email_hash_hex(self) -> str:
        return self.email_hash.hex()


class DecodeErrorKind(str, Enum):
    TRUNCATED = "truncated"
    LENGTH_OVERFLOW = "length_overflow"
    INVALID_UTF8 = "invalid_utf8"


@dataclass(frozen=True)
class DecodeError:
    kind: DecodeErrorKind
    offset: int
    field: str

    def describe(self) -> str:
        return f"{self.kind.value} while reading {self.field} at offset {self.offset}"


@dataclass(frozen=True)
class DecodeResult:
    """Either decoded claims or the reason decoding stopped."""
    claims: Optional[Claims] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.claims is not None

    def claims_or_default(self) -> Claims:
        return self.claims if self.ok else Claims.unauthenticated()


@dataclass
class _Reader:
    buffer: bytes
    offset: int = 0
    error: Optional[DecodeError] = field(default=None)

    def _fail(self, kind: DecodeErrorKind, name: str) -> None:
        if self.error is None:
            self.error = DecodeError(kind=kind, offset=self.offset, field=name)

    def u32(self, name: str) -> int:
        if self.error or self.offset + 4 > len(self.buffer):
            self._fail(DecodeErrorKind.TRUNCATED, name)
            return 0
        (value,) = _U32.unpack_from(self.buffer, self.offset)
        self.offset += 4
        return value

    def string(self, name: str) -> str:
        length = self.u32(name)
        if self.error:
            return ""
        if self.offset + length > len(self.buffer):
            self._fail(DecodeErrorKind.LENGTH_OVERFLOW, name)
            return ""
        raw = self.buffer[self.offset:self.offset + length]
        try:
            value = raw.decode("utf-8")
        except UnicodeDecodeError:
            self._fail(DecodeErrorKind.INVALID_UTF8, name)
            return ""
        self.offset += length
        return value

    def flag(self, name: str) -> bool:
        if self.error or self.offset >= len(self.buffer):
            self._fail(DecodeErrorKind.TRUNCATED, name)
            return False
        value = self.buffer[self.offset] != 0
        self.offset += 1
        return value


def fragments_to_email_hash(fragments: Sequence[int]) -> bytes:
    """Re-serialize digest fragments as 4 little-endian bytes each."""
    return b"".join(_U32.pack(fragment & 0xFFFFFFFF) for fragment in fragments[:EMAIL_HASH_FRAGMENTS])


def email_hash_to_fragments(email_hash: bytes) -> List[int]:
    if len(email_hash) != EMAIL_HASH_SIZE:
        raise ValueError(f"email hash must be {EMAIL_HASH_SIZE} bytes, got {len(email_hash)}")
    return [_U32.unpack_from(email_hash, i * 4)[0] for i in range(EMAIL_HASH_FRAGMENTS)]


def decode_public_outputs(buffer: bytes) -> DecodeResult:
    reader = _Reader(bytes(buffer))
    fragments = [reader.u32(f"email_hash[{i}]") for i in range(EMAIL_HASH_FRAGMENTS)]
    subject = reader.string("subject")
    issuer = reader.string("issuer")
    audience = reader.string("audience")
    verified = reader.flag("verified")

    if reader.error is not None:
        return DecodeResult(error=reader.error)

    return DecodeResult(claims=Claims(
        email_hash=fragments_to_email_hash(fragments),
        subject=subject,
        issuer=issuer,
        audience=audience,
        verified=verified,
    ))


def decode_claims(buffer: bytes) -> Claims:
    """Decode claims, falling back to unauthenticated defaults."""
    return decode_public_outputs(buffer).claims_or_default()


def encode_public_outputs(claims: Claims) -> bytes:
    parts = [_U32.pack(fragment) for fragment in email_hash_to_fragments(claims.email_hash)]
    for value in (claims.subject, claims.issuer, claims.audience):
        encoded = value.encode("utf-8")
        parts.append(_U32.pack(len(encoded)))
        parts.append(encoded)
    parts.append(b"\x01" if claims.verified else b"\x00")
    return b"".join(parts)


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value
