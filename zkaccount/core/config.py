from pydantic_settings import BaseSettings
from typing import Optional, List
from functools import lru_cache
import os


class Settings(BaseSettings):
    """
    Application settings and configuration
    """

    # Application
    app_name: str = "ZK Email Accounts API"

    # Environment detection
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Ledger store
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./zkaccount_ledger.db")

    # Program identity - every derived address is bound to it
    program_id: str = os.getenv(
        "PROGRAM_ID",
        "0x7a3e1f0c9b2d4a6e8c1f3b5d7e9a0c2e4f6b8d1a",
    )

    # Proof verification
    # first four bytes of the Groth16 verifying key hash, prepended to every proof
    groth16_selector: str = "a4594c59"
    check_proof_selector: bool = True

    # Rent model (raw units)
    lamports_per_byte_year: int = 3480
    rent_exemption_threshold: int = 2
    account_storage_overhead: int = 128

    # Devnet funding endpoint
    enable_airdrop: bool = os.getenv("ENABLE_AIRDROP", "false").lower() == "true"
    max_airdrop_amount: int = 5_000_000_000

    # Client side
    ledger_api_url: str = os.getenv("LEDGER_API_URL", "http://localhost:8000")
    proof_server_url: str = os.getenv("JWT_ZK_PROOF_SERVER_URL", "http://127.0.0.1:8080")
    proof_server_timeout: float = 300.0
    request_timeout: float = 30.0
    read_retries: int = 3
    balance_poll_interval: float = 5.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_format: str = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
    )
    log_rotation: str = "10 MB"
    log_retention: str = "14 days"

    # CORS
    allowed_origins: List[str] = ["*"]
    allow_credentials: bool = True

    enable_docs: bool = os.getenv("ENABLE_DOCS", "true").lower() == "true"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Create settings instance with caching
@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings
    """
    return Settings()


settings = get_settings()


def get_database_url() -> str:
    """
    Get database URL with environment-specific handling
    """
    url = get_settings().database_url

    # Ensure directory exists for SQLite
    if url.startswith("sqlite") and ":memory:" not in url:
        db_path = url.replace("sqlite:///", "")
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

    return url
