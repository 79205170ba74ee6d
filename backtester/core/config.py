"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_BPS = Decimal(10000)


# ── Commission models ───────────────────────────────────────────


class PercentageCommission(BaseModel):
    """Commission as a fraction of traded notional.

    Negative rates model market-maker rebates.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["percentage"] = "percentage"
    rate: Decimal = Decimal(0)

    @field_validator("rate")
    @classmethod
    def _check_rate(cls, v: Decimal) -> Decimal:
        if not Decimal("-0.1") <= v <= Decimal("0.1"):
            raise ValueError(
                "commission rate must be between -10% (rebates) and 10% (fees)"
            )
        return v

    def compute(self, quantity: Decimal, price: Decimal) -> Decimal:
        return quantity * price * self.rate


class PerShareCommission(BaseModel):
    """Fixed amount per unit traded, with an optional per-order minimum."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["per_share"] = "per_share"
    amount: Decimal = Field(default=Decimal(0), ge=0)
    minimum: Decimal = Field(default=Decimal(0), ge=0)

    def compute(self, quantity: Decimal, price: Decimal) -> Decimal:
        return max(quantity * self.amount, self.minimum)


class FlatCommission(BaseModel):
    """Fixed amount per order."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["flat"] = "flat"
    amount: Decimal = Field(default=Decimal(0), ge=0)

    def compute(self, quantity: Decimal, price: Decimal) -> Decimal:
        return self.amount


CommissionModel = Annotated[
    PercentageCommission | PerShareCommission | FlatCommission,
    Field(discriminator="kind"),
]


# ── Slippage models ─────────────────────────────────────────────


class NoSlippage(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"

    def amount(self, price: Decimal) -> Decimal:
        return Decimal(0)


class BpsSlippage(BaseModel):
    """Slippage proportional to price, in basis points."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["bps"] = "bps"
    bps: Decimal = Field(default=Decimal(0), ge=0)

    def amount(self, price: Decimal) -> Decimal:
        return price * self.bps / _BPS


class FixedSlippage(BaseModel):
    """Constant price offset per fill."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed"] = "fixed"
    amount_per_unit: Decimal = Field(default=Decimal(0), ge=0)

    def amount(self, price: Decimal) -> Decimal:
        return self.amount_per_unit


SlippageModel = Annotated[
    NoSlippage | BpsSlippage | FixedSlippage,
    Field(discriminator="kind"),
]


class FillPolicy(StrEnum):
    """Which price of the bar after submission a market order fills at."""

    NEXT_OPEN = "NEXT_OPEN"
    NEXT_CLOSE = "NEXT_CLOSE"


class BrokerConfig(BaseModel):
    """Simulated exchange configuration. Immutable per run.

    Nothing here feeds into indicator computations, so sweeping these
    parameters always reuses cached indicator values.
    """

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    starting_cash: Decimal = Field(default=Decimal(100_000), ge=0)
    commission: CommissionModel = PercentageCommission()
    slippage: SlippageModel = NoSlippage()
    fill_policy: FillPolicy = FillPolicy.NEXT_OPEN
    margin: Decimal = Decimal(1)
    allow_short: bool = True
    exclusive_orders: bool = False
    liquidate_on_close: bool = False

    @field_validator("margin")
    @classmethod
    def _check_margin(cls, v: Decimal) -> Decimal:
        if not Decimal(0) < v <= Decimal(1):
            raise ValueError("margin must be in (0, 1]")
        return v

    @property
    def leverage(self) -> Decimal:
        return Decimal(1) / self.margin


# ── Application settings ────────────────────────────────────────


class EngineConfig(BaseModel):
    """Execution engine configuration."""

    workers: int | None = Field(default=None, ge=1)
    cache_capacity: int | None = Field(default=None, ge=1)
    periods_per_year: int = Field(default=252, ge=1)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"
    file: str | None = None


class Settings(BaseModel):
    """Root settings container."""

    engine: EngineConfig = EngineConfig()
    broker: BrokerConfig = BrokerConfig()
    logging: LoggingConfig = LoggingConfig()


def read_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping; a missing file or non-mapping document yields ``{}``."""
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        raw = yaml.safe_load(f)
    return raw if isinstance(raw, dict) else {}


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    _settings = Settings(**read_yaml(path or _DEFAULT_CONFIG_PATH))
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
