"""
Tests for the error taxonomy and retry helper.
"""

from unittest.mock import AsyncMock

import pytest

from zkaccount.core.retry import retry_with_backoff
from zkaccount.core.errors import (
    PROTOCOL_ERRORS,
    APIError,
    InsufficientBalance,
    NetworkUnavailable,
    SaltTooLong,
    error_from_code,
)


class TestTaxonomy:

    def test_codes_are_class_names(self):
        for name, cls in PROTOCOL_ERRORS.items():
            error = cls()
            assert error.error_code == name
            assert error.status_code == cls.status_code
            assert error.message

    def test_round_trip_through_envelope(self):
        error = error_from_code("InsufficientBalance", "Available balance 0 is lower than 1")

        assert isinstance(error, InsufficientBalance)
        assert error.message == "Available balance 0 is lower than 1"
        assert error.status_code == 409

    def test_unknown_code(self):
        error = error_from_code("VALIDATION_ERROR", "Validation failed")

        assert type(error) is APIError
        assert error.error_code == "VALIDATION_ERROR"

    def test_details_default_to_empty(self):
        assert SaltTooLong("too long").details == {}


class TestRetryWithBackoff:

    @pytest.mark.asyncio
    async def test_retries_listed_errors(self):
        func = AsyncMock(side_effect=[NetworkUnavailable("down"), "ok"])

        assert await retry_with_backoff(func, max_retries=3, base_delay=0, retry_on=(NetworkUnavailable,)) == "ok"
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self):
        func = AsyncMock(side_effect=InsufficientBalance())

        with pytest.raises(InsufficientBalance):
            await retry_with_backoff(func, max_retries=3, base_delay=0, retry_on=(NetworkUnavailable,))
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_gives_up(self):
        func = AsyncMock(side_effect=NetworkUnavailable("down"))

        with pytest.raises(NetworkUnavailable):
            await retry_with_backoff(func, max_retries=2, base_delay=0, retry_on=(NetworkUnavailable,))
        assert func.await_count == 2
