"""Structured event logging for fund operations.

Every state-changing fund operation emits a JSON event into a rotating log
file for its category. Rebalance events carry the NAV before and after the
cycle so that trading cost stays observable after the fact.
"""

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional


class FundEventType(Enum):
    """Types of fund events to log."""

    # Ledger events
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"

    # Portfolio events
    WEIGHTS_UPDATED = "weights_updated"
    REBALANCE_EXECUTED = "rebalance_executed"
    REBALANCE_SKIPPED = "rebalance_skipped"
    SWAP_EXECUTED = "swap_executed"

    # Fee events
    FEE_COLLECTED = "fee_collected"

    # Governance events
    FUND_CREATED = "fund_created"
    AGENT_CHANGED = "agent_changed"

    # Error events
    OPERATION_FAILED = "operation_failed"


class FundEventLogger:
    """Structured logger for fund events with file rotation.

    One rotating JSON log file is kept per event category:
    ``ledger.log``, ``rebalance.log``, ``fees.log``, ``governance.log`` and
    ``errors.log``.

    Example:
        >>> events = FundEventLogger(log_dir="logs")
        >>> events.log_rebalance_event(
        ...     FundEventType.REBALANCE_EXECUTED,
        ...     fund_id="a1b2",
        ...     nav_before=10**21,
        ...     nav_after=999 * 10**18,
        ... )
    """

    def __init__(
        self,
        log_dir: str | Path = "logs",
        max_bytes: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 30,
        enable_console: bool = False,
    ):
        """Initialize the event logger.

        Args:
            log_dir: Directory for log files
            max_bytes: Maximum size per log file (default 10 MB)
            backup_count: Number of rotated files to keep (default 30)
            enable_console: Also echo events to the console (default False)
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.enable_console = enable_console

        self.ledger_logger = self._create_rotating_logger("ledger")
        self.rebalance_logger = self._create_rotating_logger("rebalance")
        self.fee_logger = self._create_rotating_logger("fees")
        self.governance_logger = self._create_rotating_logger("governance")
        self.error_logger = self._create_rotating_logger("errors", level=logging.ERROR)

    def _create_rotating_logger(
        self,
        name: str,
        level: int = logging.INFO,
    ) -> logging.Logger:
        """Create a rotating file logger.

        Args:
            name: Logger name and file prefix
            level: Logging level

        Returns:
            Configured logger
        """
        logger = logging.getLogger(f"basketfund.events.{name}")
        logger.setLevel(level)
        logger.propagate = False

        for handler in list(logger.handlers):
            handler.close()
        logger.handlers = []

        file_handler = logging.handlers.RotatingFileHandler(
            filename=self.log_dir / f"{name}.log",
            maxBytes=self.max_bytes,
            backupCount=self.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(file_handler)

        if self.enable_console:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(level)
            console_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            logger.addHandler(console_handler)

        return logger

    def _log_structured_event(
        self,
        logger: logging.Logger,
        event_type: FundEventType,
        level: str = "info",
        **data: Any,
    ) -> None:
        """Log a structured event as one JSON line.

        Args:
            logger: Logger instance to use
            event_type: Type of fund event
            level: Log level (default: info)
            **data: Event data fields
        """
        event = {
            "event_type": event_type.value,
            "logged_at": datetime.now(timezone.utc).isoformat(),
            **data,
        }

        log_func = getattr(logger, level)
        log_func(json.dumps(event, default=str))

    def log_ledger_event(
        self,
        event_type: FundEventType,
        fund_id: str,
        account: str,
        shares: int,
        **extra: Any,
    ) -> None:
        """Log a deposit or withdrawal.

        Args:
            event_type: DEPOSIT or WITHDRAWAL
            fund_id: Fund identifier
            account: Receiver (deposit) or share owner (withdrawal)
            shares: Shares minted or burned
            **extra: Additional event data
        """
        data = {"fund_id": fund_id, "account": account, "shares": shares}
        data.update(extra)

        self._log_structured_event(self.ledger_logger, event_type, **data)

    def log_rebalance_event(
        self,
        event_type: FundEventType,
        fund_id: str,
        nav_before: Optional[int] = None,
        nav_after: Optional[int] = None,
        **extra: Any,
    ) -> None:
        """Log a portfolio event (weights, rebalance cycle, single swap).

        Args:
            event_type: Type of portfolio event
            fund_id: Fund identifier
            nav_before: NAV before the cycle (optional)
            nav_after: NAV after the cycle (optional)
            **extra: Additional event data
        """
        data: dict[str, Any] = {"fund_id": fund_id}

        if nav_before is not None:
            data["nav_before"] = nav_before
        if nav_after is not None:
            data["nav_after"] = nav_after
        if nav_before is not None and nav_after is not None:
            data["cost"] = nav_before - nav_after

        data.update(extra)

        self._log_structured_event(self.rebalance_logger, event_type, **data)

    def log_fee_event(
        self,
        fund_id: str,
        fee_value: int,
        agent_shares: int,
        protocol_shares: int,
        **extra: Any,
    ) -> None:
        """Log a management fee collection.

        Args:
            fund_id: Fund identifier
            fee_value: Fee value in accounting-asset units
            agent_shares: Shares minted to the agent fee wallet
            protocol_shares: Shares minted to the protocol recipient
            **extra: Additional event data
        """
        data = {
            "fund_id": fund_id,
            "fee_value": fee_value,
            "agent_shares": agent_shares,
            "protocol_shares": protocol_shares,
        }
        data.update(extra)

        self._log_structured_event(self.fee_logger, FundEventType.FEE_COLLECTED, **data)

    def log_governance_event(
        self,
        event_type: FundEventType,
        fund_id: str,
        message: str,
        **extra: Any,
    ) -> None:
        """Log a governance event such as fund creation or agent change.

        Args:
            event_type: Type of governance event
            fund_id: Fund identifier
            message: Event message
            **extra: Additional event data
        """
        data = {"fund_id": fund_id, "message": message}
        data.update(extra)

        self._log_structured_event(self.governance_logger, event_type, **data)

    def log_error(
        self,
        fund_id: str,
        operation: str,
        error: BaseException,
        **extra: Any,
    ) -> None:
        """Log a failed operation.

        Args:
            fund_id: Fund identifier
            operation: Name of the operation that failed
            error: The exception that aborted it
            **extra: Additional event data
        """
        data = {
            "fund_id": fund_id,
            "operation": operation,
            "error_type": type(error).__name__,
            "error": str(error),
        }
        data.update(extra)

        self._log_structured_event(
            self.error_logger, FundEventType.OPERATION_FAILED, level="error", **data
        )

    def close(self) -> None:
        """Close all file handlers."""
        for logger in (
            self.ledger_logger,
            self.rebalance_logger,
            self.fee_logger,
            self.governance_logger,
            self.error_logger,
        ):
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
