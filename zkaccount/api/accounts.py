from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from zkaccount.db.database import get_db
from zkaccount.core.errors import AccountNotInitialized
from zkaccount.proofs.verifier import ProofVerifier, get_default_verifier
from zkaccount.schemas.account import (
    EMAIL_HASH_PATTERN,
    AccountResponse,
    BalanceResponse,
    CreateAccountRequest,
    CreateAccountResponse,
    ExistsResponse,
    FundRequest,
    FundResponse,
    TransferRequest,
    TransferResponse,
    parse_email_hash,
)
from zkaccount.services.program import AccountProgram

router = APIRouter(prefix="/accounts", tags=["accounts"])


def get_verifier() -> ProofVerifier:
    """
    Dependency providing the proof verifier
    """
    return get_default_verifier()


def get_program(
    db: Session = Depends(get_db),
    verifier: ProofVerifier = Depends(get_verifier)
) -> AccountProgram:
    return AccountProgram(db, verifier=verifier)


@router.post("", response_model=CreateAccountResponse, status_code=201)
def create_account(
    request: CreateAccountRequest,
    program: AccountProgram = Depends(get_program)
):
    """
    Create the account derived from the proof's email hash and the salt
    """
    result = program.create_account(
        request.email_hash_bytes,
        request.salt,
        request.proof.to_proof(),
        fee_payer=request.fee_payer,
        fee_payer_signature=request.fee_payer_signature,
    )
    return CreateAccountResponse(signature=result.signature, address=result.address, bump=result.bump)


@router.post("/transfer", response_model=TransferResponse)
def transfer(
    request: TransferRequest,
    program: AccountProgram = Depends(get_program)
):
    """
    Transfer raw units out of a proof-owned account
    """
    result = program.transfer(
        request.email_hash_bytes,
        request.salt,
        request.proof.to_proof(),
        request.amount,
        request.destination,
        fee_payer=request.fee_payer,
        fee_payer_signature=request.fee_payer_signature,
    )
    return TransferResponse(signature=result.signature)


@router.post("/fund", response_model=FundResponse)
def fund(
    request: FundRequest,
    program: AccountProgram = Depends(get_program)
):
    """
    Deposit raw units into an address (devnet only)
    """
    return FundResponse(signature=program.fund(request.address, request.amount))


@router.get("/{email_hash}/balance", response_model=BalanceResponse)
def get_balance(
    email_hash: str = Path(..., pattern=EMAIL_HASH_PATTERN),
    salt: str = Query(..., description="Account salt, may be empty"),
    program: AccountProgram = Depends(get_program)
):
    """
    Available balance of an account, in tokens and raw units
    """
    view = program.get_balance(parse_email_hash(email_hash), salt)
    return BalanceResponse(
        address=view.address,
        balance=view.balance,
        raw_balance=view.raw_balance,
        available_raw=view.available_raw,
        rent_exempt_reserve=view.rent_exempt_reserve,
    )


@router.get("/{email_hash}/exists", response_model=ExistsResponse)
def account_exists(
    email_hash: str = Path(..., pattern=EMAIL_HASH_PATTERN),
    salt: str = Query(..., description="Account salt, may be empty"),
    program: AccountProgram = Depends(get_program)
):
    """
    Whether the derived account has been created
    """
    hash_bytes = parse_email_hash(email_hash)
    return ExistsResponse(
        address=program.address_for(hash_bytes, salt),
        exists=program.exists(hash_bytes, salt),
    )


@router.get("/{email_hash}", response_model=AccountResponse)
def get_account(
    email_hash: str = Path(..., pattern=EMAIL_HASH_PATTERN),
    salt: str = Query(..., description="Account salt, may be empty"),
    program: AccountProgram = Depends(get_program)
):
    """
    Stored account record
    """
    account = program.get_account(parse_email_hash(email_hash), salt)
    if account is None:
        raise AccountNotInitialized(f"No account for salt {salt!r}")
    return AccountResponse.model_validate(account)
