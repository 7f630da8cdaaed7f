"""Unit tests for custom exceptions."""

import pytest

from basketfund.utils.exceptions import (
    ConfigurationError,
    ExchangeError,
    FundError,
    InsufficientBalanceError,
    InvalidParametersError,
    InvalidStateError,
    NothingToCollectError,
    StorageError,
    SwapFailedError,
    UnauthorizedError,
    ValuationUnavailableError,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    @pytest.mark.parametrize(
        "error_class",
        [
            ConfigurationError,
            InvalidParametersError,
            UnauthorizedError,
            InsufficientBalanceError,
            InvalidStateError,
            ExchangeError,
            StorageError,
        ],
    )
    def test_direct_subclasses_of_fund_error(self, error_class) -> None:
        """Test every category derives from FundError."""
        assert issubclass(error_class, FundError)

    def test_nothing_to_collect_is_invalid_state(self) -> None:
        """Test NothingToCollectError is a subclass of InvalidStateError."""
        assert issubclass(NothingToCollectError, InvalidStateError)
        assert issubclass(NothingToCollectError, FundError)

    def test_exchange_errors(self) -> None:
        """Test swap and valuation failures are exchange errors."""
        assert issubclass(SwapFailedError, ExchangeError)
        assert issubclass(ValuationUnavailableError, ExchangeError)
        assert not issubclass(SwapFailedError, ValuationUnavailableError)


class TestExceptionRaising:
    """Test raising and catching exceptions."""

    def test_catch_swap_failure_as_fund_error(self) -> None:
        """Test SwapFailedError can be caught as FundError."""
        with pytest.raises(FundError, match="min 95"):
            raise SwapFailedError("received 90, min 95")

    def test_catch_valuation_as_exchange_error(self) -> None:
        """Test ValuationUnavailableError can be caught as ExchangeError."""
        with pytest.raises(ExchangeError, match="no oracle price"):
            raise ValuationUnavailableError("no oracle price for LINK")

    def test_fund_error_is_exception(self) -> None:
        """Test FundError derives from Exception."""
        assert issubclass(FundError, Exception)
