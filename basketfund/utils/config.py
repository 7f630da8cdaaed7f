"""Configuration management for the basket fund engine.

This module provides YAML configuration loading with dot-notation access and
the typed FundSettings consumed by the engines.
"""

import os
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from basketfund.utils.exceptions import ConfigurationError

BPS_DENOMINATOR = 10_000
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

ROOT_DIR = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = ROOT_DIR / "config" / "default.yaml"

ENV_PROTOCOL_FEE_RECIPIENT = "BASKETFUND_PROTOCOL_FEE_RECIPIENT"
ENV_LOG_LEVEL = "BASKETFUND_LOG_LEVEL"


class Config:
    """Simple configuration loader and accessor.

    Loads YAML configuration files and provides dict-like access to settings.

    Example:
        >>> config = Config.from_file("config/default.yaml")
        >>> threshold = config.get("fund.rebalance_deviation_threshold_bps", 100)
    """

    def __init__(self, config_dict: dict[str, Any]) -> None:
        """Initialize with configuration dictionary.

        Args:
            config_dict: Configuration data as nested dictionary
        """
        self._config = config_dict

    @classmethod
    def from_file(cls, filepath: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            filepath: Path to YAML configuration file

        Returns:
            Config instance with loaded configuration

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {filepath}")

        with open(path, "r", encoding="utf-8") as f:
            config_dict = yaml.safe_load(f)

        if config_dict is None:
            config_dict = {}

        return cls(config_dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key (supports dot notation for nested keys)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def __getitem__(self, key: str) -> Any:
        """Get configuration value using bracket notation.

        Raises:
            KeyError: If key not found
        """
        value = self.get(key)
        if value is None:
            raise KeyError(f"Configuration key not found: {key}")
        return value

    def to_dict(self) -> dict[str, Any]:
        """Get the full configuration as dictionary."""
        return self._config.copy()


@dataclass(frozen=True)
class FundSettings:
    """Protocol-wide constants shared by every fund.

    Amounts are raw integer units of the accounting asset (or of shares).

    Attributes:
        accounting_decimals: Decimals of the accounting asset
        minimum_deposit: Smallest accepted deposit, raw units
        minimum_shares_liquidity: Share floor for the first deposit
        rebalance_deviation_threshold_bps: Max tolerated weight deviation
        default_slippage_bps: Slippage tolerance applied to every swap
        swap_deadline_offset_seconds: Swap deadline relative to now
        max_agent_fee_bps: Cap on the annual agent fee
        agent_share_bps: Agent's part of every minted fee
        protocol_share_bps: Protocol's part of every minted fee
        seconds_per_year: Year length used for fee accrual
        protocol_fee_recipient: Default protocol fee recipient address
    """

    accounting_decimals: int = 18
    minimum_deposit: int = 10**16
    minimum_shares_liquidity: int = 1000
    rebalance_deviation_threshold_bps: int = 100
    default_slippage_bps: int = 50
    swap_deadline_offset_seconds: int = 15 * 60
    max_agent_fee_bps: int = 500
    agent_share_bps: int = 6000
    protocol_share_bps: int = 4000
    seconds_per_year: int = SECONDS_PER_YEAR
    protocol_fee_recipient: Optional[str] = None

    def __post_init__(self):
        """Validate settings."""
        if self.accounting_decimals < 0:
            raise ConfigurationError(
                f"accounting_decimals must be non-negative, got {self.accounting_decimals}"
            )
        if self.minimum_deposit <= 0:
            raise ConfigurationError(
                f"minimum_deposit must be positive, got {self.minimum_deposit}"
            )
        if self.minimum_shares_liquidity <= 0:
            raise ConfigurationError(
                f"minimum_shares_liquidity must be positive, got {self.minimum_shares_liquidity}"
            )
        for name in (
            "rebalance_deviation_threshold_bps",
            "default_slippage_bps",
            "max_agent_fee_bps",
            "agent_share_bps",
            "protocol_share_bps",
        ):
            value = getattr(self, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise ConfigurationError(
                    f"{name} must be within [0, {BPS_DENOMINATOR}], got {value}"
                )
        if self.agent_share_bps + self.protocol_share_bps != BPS_DENOMINATOR:
            raise ConfigurationError(
                "agent_share_bps + protocol_share_bps must equal "
                f"{BPS_DENOMINATOR}, got {self.agent_share_bps + self.protocol_share_bps}"
            )
        if self.swap_deadline_offset_seconds <= 0:
            raise ConfigurationError(
                "swap_deadline_offset_seconds must be positive, "
                f"got {self.swap_deadline_offset_seconds}"
            )
        if self.seconds_per_year <= 0:
            raise ConfigurationError(
                f"seconds_per_year must be positive, got {self.seconds_per_year}"
            )

    @property
    def unit(self) -> int:
        """One whole accounting-asset unit in raw units."""
        return 10**self.accounting_decimals

    @classmethod
    def from_config(cls, config: Config) -> "FundSettings":
        """Build settings from the ``fund`` section of a Config.

        ``minimum_deposit`` is given in whole accounting units (e.g. "0.01")
        and scaled by ``accounting_decimals``.

        Raises:
            ConfigurationError: If a value is malformed or out of bounds
        """
        defaults = cls()
        decimals = int(config.get("fund.accounting_decimals", defaults.accounting_decimals))

        raw_minimum = config.get("fund.minimum_deposit")
        if raw_minimum is None:
            minimum_deposit = max(1, 10**decimals // 100)
        else:
            minimum_deposit = to_raw_units(raw_minimum, decimals)

        try:
            return cls(
                accounting_decimals=decimals,
                minimum_deposit=minimum_deposit,
                minimum_shares_liquidity=int(
                    config.get("fund.minimum_shares_liquidity", defaults.minimum_shares_liquidity)
                ),
                rebalance_deviation_threshold_bps=int(
                    config.get(
                        "fund.rebalance_deviation_threshold_bps",
                        defaults.rebalance_deviation_threshold_bps,
                    )
                ),
                default_slippage_bps=int(
                    config.get("fund.default_slippage_bps", defaults.default_slippage_bps)
                ),
                swap_deadline_offset_seconds=int(
                    config.get(
                        "fund.swap_deadline_offset_seconds",
                        defaults.swap_deadline_offset_seconds,
                    )
                ),
                max_agent_fee_bps=int(
                    config.get("fund.max_agent_fee_bps", defaults.max_agent_fee_bps)
                ),
                agent_share_bps=int(config.get("fund.agent_share_bps", defaults.agent_share_bps)),
                protocol_share_bps=int(
                    config.get("fund.protocol_share_bps", defaults.protocol_share_bps)
                ),
                seconds_per_year=int(
                    config.get("fund.seconds_per_year", defaults.seconds_per_year)
                ),
                protocol_fee_recipient=config.get("fund.protocol_fee_recipient"),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid fund configuration: {e}") from e


def to_raw_units(amount: Any, decimals: int) -> int:
    """Convert a whole-unit amount ("0.01", 1.5, 3) to raw integer units.

    Raises:
        ConfigurationError: If the amount is not a number or has more
            fractional digits than ``decimals`` allows
    """
    try:
        value = Decimal(str(amount)) * (Decimal(10) ** decimals)
    except InvalidOperation as e:
        raise ConfigurationError(f"Not a numeric amount: {amount!r}") from e

    if value != value.to_integral_value():
        raise ConfigurationError(
            f"Amount {amount} has more precision than {decimals} decimals"
        )
    return int(value)


def load_config(filepath: str | Path = None) -> Config:
    """Helper function to load configuration.

    Args:
        filepath: Path to YAML configuration file. If None, uses default path.

    Returns:
        Config instance
    """
    if filepath is None:
        filepath = DEFAULT_CONFIG_PATH
    return Config.from_file(filepath)


def load_fund_settings(
    config_file: str | Path = None,
    env_file: str | Path = None,
) -> tuple[Config, FundSettings]:
    """Load fund settings from YAML with optional .env overrides.

    The .env file is optional. When present (or when the variables are set
    in the environment) it may override:
        - BASKETFUND_PROTOCOL_FEE_RECIPIENT: protocol fee recipient address
        - BASKETFUND_LOG_LEVEL: logging.level

    Args:
        config_file: Path to YAML config. If None, uses config/default.yaml.
        env_file: Path to .env file. If None, uses .env at the project root.

    Returns:
        Tuple of (Config object, FundSettings)

    Raises:
        FileNotFoundError: If the config file is missing
        ConfigurationError: If fund settings are invalid

    Example:
        >>> config, settings = load_fund_settings()
        >>> settings.rebalance_deviation_threshold_bps
        100
    """
    env_path = Path(env_file) if env_file is not None else ROOT_DIR / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config = load_config(config_file)
    settings = FundSettings.from_config(config)

    recipient = os.getenv(ENV_PROTOCOL_FEE_RECIPIENT)
    if recipient:
        settings = replace(settings, protocol_fee_recipient=recipient)

    log_level = os.getenv(ENV_LOG_LEVEL)
    if log_level:
        data = config.to_dict()
        data["logging"] = {**(data.get("logging") or {}), "level": log_level}
        config = Config(data)

    return config, settings
