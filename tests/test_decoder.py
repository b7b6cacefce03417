"""
Tests for the public-output decoder and its fail-safe defaults.
"""

import struct

import pytest

from zkaccount.proofs.decoder import (
    ZERO_EMAIL_HASH,
    Claims,
    DecodeErrorKind,
    Groth16Proof,
    decode_claims,
    decode_public_outputs,
    email_hash_to_fragments,
    encode_public_outputs,
    fragments_to_email_hash,
)


def u32(value):
    return struct.pack("<I", value)


class TestDecodePublicOutputs:
    """Decoding well-formed buffers."""

    def test_round_trip_reproduces_claims(self, claims):
        result = decode_public_outputs(encode_public_outputs(claims))

        assert result.ok
        assert result.error is None
        assert result.claims == claims

    def test_unicode_strings_round_trip(self, email_hash):
        claims = Claims(email_hash=email_hash, subject="sübject", issuer="issuer ✓",
                        audience="", verified=False)

        decoded = decode_claims(encode_public_outputs(claims))

        assert decoded == claims

    def test_fragments_are_little_endian_words(self):
        email_hash = bytes(range(32))

        fragments = email_hash_to_fragments(email_hash)

        assert fragments[0] == 0x03020100
        assert fragments[7] == 0x1F1E1D1C
        assert fragments_to_email_hash(fragments) == email_hash

    def test_any_nonzero_verified_byte_is_true(self, claims):
        buffer = bytearray(encode_public_outputs(claims))
        buffer[-1] = 0x02

        assert decode_claims(bytes(buffer)).verified is True

    def test_trailing_bytes_are_ignored(self, claims):
        result = decode_public_outputs(encode_public_outputs(claims) + b"\x00\x00")

        assert result.ok
        assert result.claims == claims

    def test_fragments_to_email_hash_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            email_hash_to_fragments(b"\x00" * 31)


class TestMalformedOutputs:
    """Structural failures yield the unauthenticated default, never an exception."""

    def test_empty_buffer(self):
        result = decode_public_outputs(b"")

        assert not result.ok
        assert result.error.kind == DecodeErrorKind.TRUNCATED
        assert result.error.field == "email_hash[0]"
        assert result.claims_or_default() == Claims.unauthenticated()

    def test_truncated_inside_fragments(self):
        result = decode_public_outputs(b"\x01" * 10)

        assert result.error.kind == DecodeErrorKind.TRUNCATED
        assert result.error.field == "email_hash[2]"
        assert result.error.offset == 8

    def test_missing_verified_byte(self, claims):
        result = decode_public_outputs(encode_public_outputs(claims)[:-1])

        assert result.error.kind == DecodeErrorKind.TRUNCATED
        assert result.error.field == "verified"

    def test_length_prefix_exceeds_remaining_bytes(self):
        buffer = ZERO_EMAIL_HASH + u32(100) + b"abc"

        result = decode_public_outputs(buffer)

        assert result.error.kind == DecodeErrorKind.LENGTH_OVERFLOW
        assert result.error.field == "subject"
        assert result.error.offset == 36

    def test_invalid_utf8(self):
        buffer = ZERO_EMAIL_HASH + u32(2) + b"\xff\xfe" + u32(0) + u32(0) + b"\x01"

        result = decode_public_outputs(buffer)

        assert result.error.kind == DecodeErrorKind.INVALID_UTF8
        assert "subject" in result.error.describe()

    def test_decode_claims_defaults_on_garbage(self):
        claims = decode_claims(b"\xff" * 40)

        assert claims.email_hash == ZERO_EMAIL_HASH
        assert claims.subject == ""
        assert claims.issuer == ""
        assert claims.audience == ""
        assert claims.verified is False

    def test_verified_flag_never_leaks_from_partial_decode(self, claims):
        # a valid verified byte cannot be reached once an earlier field fails
        buffer = bytearray(encode_public_outputs(claims))
        buffer[32:36] = u32(len(buffer))

        assert decode_claims(bytes(buffer)).verified is False


class TestGroth16Proof:

    def test_from_hex_accepts_prefix(self):
        proof = Groth16Proof.from_hex("0xa4594c59", "0X0102")

        assert proof.proof == bytes.fromhex("a4594c59")
        assert proof.public_outputs == b"\x01\x02"

    def test_to_hex(self):
        proof = Groth16Proof(proof=b"\xab", public_outputs=b"\xcd")

        assert proof.to_hex() == {"proof": "ab", "public_outputs": "cd"}
