"""Custom exceptions for the basket fund engine.

This module defines the exception hierarchy for the application. Every
public fund operation fails with one of these types, and none of them is
raised after a partial state change.
"""


class FundError(Exception):
    """Base exception for all basket fund errors.

    All custom exceptions in the application should inherit from this class.
    """

    pass


class ConfigurationError(FundError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing required configuration keys
        - Fee split that does not sum to 10000 bps
        - Agent fee above the protocol-wide cap
    """

    pass


class InvalidParametersError(FundError):
    """Raised when an operation receives malformed input.

    Always raised before any state change.

    Examples:
        - Target weights that do not sum to 10000 bps
        - A zero target weight
        - Zero address as receiver
        - Deposit below the minimum amount
    """

    pass


class UnauthorizedError(FundError):
    """Raised when the caller lacks the role required by an operation.

    Examples:
        - Non-agent calling set_target_weights
        - Non-owner calling set_agent
    """

    pass


class InsufficientBalanceError(FundError):
    """Raised when a holder's balance or allowance is too small.

    Examples:
        - Withdrawing more shares than held
        - transfer_from beyond the approved allowance
    """

    pass


class InvalidStateError(FundError):
    """Raised when fund state makes an operation undefined.

    Examples:
        - NAV is zero while shares are outstanding
        - A deposit that would mint zero shares
    """

    pass


class NothingToCollectError(InvalidStateError):
    """Raised when a management fee collection has nothing to accrue.

    Examples:
        - No time elapsed since the last collection
        - The fund charges a zero agent fee
    """

    pass


class ExchangeError(FundError):
    """Base exception for exchange adapter failures.

    Aborts the current operation only; the fund is safe to retry.
    """

    pass


class SwapFailedError(ExchangeError):
    """Raised when a swap cannot be executed as requested.

    Examples:
        - Realized output below min_amount_out
        - Deadline expired before execution
        - Illiquid trading pair
    """

    pass


class ValuationUnavailableError(ExchangeError):
    """Raised when an asset cannot be priced in the accounting asset.

    Examples:
        - Quote path illiquid or broken
        - Missing oracle price
    """

    pass


class StorageError(FundError):
    """Raised when fund persistence fails.

    Examples:
        - Database connection failed
        - Stored fund record not found
    """

    pass
