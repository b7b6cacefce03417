"""
Pydantic schemas for account protocol requests and responses
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from zkaccount.proofs.decoder import Groth16Proof

EMAIL_HASH_PATTERN = r"^(0x)?[0-9a-fA-F]{64}$"
HEX_PATTERN = r"^(0x)?([0-9a-fA-F]{2})*$"


def parse_email_hash(value: str) -> bytes:
    """Convert a validated hex email hash to bytes"""
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class ProofPayload(BaseModel):
    """Groth16 proof as two hex buffers"""
    proof: str = Field(..., pattern=HEX_PATTERN, description="Opaque verifier bytes")
    public_outputs: str = Field(..., pattern=HEX_PATTERN, description="Public output buffer")

    def to_proof(self) -> Groth16Proof:
        return Groth16Proof.from_hex(self.proof, self.public_outputs)


class InstructionBase(BaseModel):
    """Fields shared by every mutating instruction"""
    email_hash: str = Field(..., pattern=EMAIL_HASH_PATTERN)
    salt: str = Field(..., description="Caller-chosen salt, at most 32 bytes")
    proof: ProofPayload
    fee_payer: Optional[str] = Field(None, description="Fee payer address")
    fee_payer_signature: Optional[str] = Field(None, description="EIP-191 signature of the instruction")

    @property
    def email_hash_bytes(self) -> bytes:
        return parse_email_hash(self.email_hash)


class CreateAccountRequest(InstructionBase):
    """Schema for account creation"""
    pass


class TransferRequest(InstructionBase):
    """Schema for transfers out of an account"""
    amount: int = Field(..., description="Amount in raw units")
    destination: str


class CreateAccountResponse(BaseModel):
    signature: str
    address: str
    bump: int


class TransferResponse(BaseModel):
    signature: str


class BalanceResponse(BaseModel):
    address: str
    balance: Decimal
    raw_balance: int
    available_raw: int
    rent_exempt_reserve: int


class ExistsResponse(BaseModel):
    address: str
    exists: bool


class AccountResponse(BaseModel):
    """Stored account record"""
    model_config = ConfigDict(from_attributes=True)

    address: str
    email_hash: str
    salt: str
    bump: int
    raw_balance: int
    rent_exempt_reserve: int
    layout_version: int

    @field_validator("email_hash", mode="before")
    @classmethod
    def hex_email_hash(cls, value):
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).hex()
        return value


class FundRequest(BaseModel):
    address: str
    amount: int = Field(..., gt=0)


class FundResponse(BaseModel):
    signature: str
