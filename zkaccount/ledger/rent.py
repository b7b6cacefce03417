"""
Canonical account layout and rent-exempt reserve.

Layout version 2 is the salted record:

    discriminator (8) + email hash (32) + salt length prefix (4) + salt (32) + bump (1)

Space is always reserved for the maximum salt so every account has the same
reserve.
"""

from decimal import Decimal

LAYOUT_VERSION = 2

DISCRIMINATOR_SIZE = 8
EMAIL_HASH_SIZE = 32
SALT_PREFIX_SIZE = 4
MAX_SALT_SIZE = 32
BUMP_SIZE = 1

ACCOUNT_SPACE = DISCRIMINATOR_SIZE + EMAIL_HASH_SIZE + SALT_PREFIX_SIZE + MAX_SALT_SIZE + BUMP_SIZE

RAW_UNITS_PER_TOKEN = 10 ** 9


def minimum_balance_for_rent_exemption(
    data_len: int,
    lamports_per_byte_year: int = 3480,
    exemption_threshold: int = 2,
    storage_overhead: int = 128,
) -> int:
    return (storage_overhead + data_len) * lamports_per_byte_year * exemption_threshold


def rent_exempt_reserve(settings=None) -> int:
    """Reserve for the canonical account layout under the configured rent model"""
    if settings is None:
        from zkaccount.core.config import get_settings
        settings = get_settings()

    return minimum_balance_for_rent_exemption(
        ACCOUNT_SPACE,
        lamports_per_byte_year=settings.lamports_per_byte_year,
        exemption_threshold=settings.rent_exemption_threshold,
        storage_overhead=settings.account_storage_overhead,
    )


def to_decimal(raw_units: int) -> Decimal:
    return Decimal(raw_units) / Decimal(RAW_UNITS_PER_TOKEN)


def to_raw_units(amount: Decimal) -> int:
    raw = Decimal(amount) * RAW_UNITS_PER_TOKEN
    if raw != raw.to_integral_value():
        raise ValueError(f"{amount} has more precision than the smallest unit")
    return int(raw)
