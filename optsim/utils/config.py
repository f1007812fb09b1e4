from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class SymbolConfig(BaseModel):
    lot_size: int = Field(gt=0, description="Shares per lot")
    tick_size: float = Field(default=0.05, gt=0, description="Minimum price increment")
    multiplier: int = Field(default=1, description="Contract multiplier")
    sector: str = Field(default="", description="Sector / index family")
    underlying_price: float = Field(gt=0, description="Starting underlying price")


def _default_symbols() -> dict[str, SymbolConfig]:
    return {
        "NIFTY": SymbolConfig(lot_size=50, sector="Index", underlying_price=21347.50),
        "BANKNIFTY": SymbolConfig(lot_size=15, sector="Banking Index", underlying_price=46284.70),
        "FINNIFTY": SymbolConfig(lot_size=40, sector="Financial Index", underlying_price=19867.25),
        "RELIANCE": SymbolConfig(lot_size=250, sector="Oil & Gas", underlying_price=2456.80),
        "TCS": SymbolConfig(lot_size=125, sector="IT Services", underlying_price=3789.45),
    }


class Settings(BaseSettings):
    risk_free_rate: float = Field(default=0.065, description="Annual risk-free rate (RBI repo)")
    dividend_yield: float = Field(default=0.012, description="Average dividend yield (informational)")
    pricing_volatility: float = Field(default=0.25, gt=0, description="Volatility used for theoretical prices")
    exact_cdf: bool = Field(default=False, description="Use scipy's normal CDF instead of the erf approximation")

    refresh_interval_ms: int = Field(default=5000, gt=0, description="Market data refresh interval")
    auto_refresh: bool = Field(default=True, description="Start with auto-refresh enabled")

    fill_probability: float = Field(default=0.95, ge=0.0, le=1.0, description="Probability a simulated order fills")
    order_latency_seconds: float = Field(default=1.5, ge=0.0, description="Simulated single-order latency")
    basket_latency_seconds: float = Field(default=2.0, ge=0.0, description="Simulated basket execution latency")

    default_symbol: str = Field(default="NIFTY", description="Symbol selected at startup")
    default_expiry: str = Field(default="", description="ISO expiry date; empty selects the nearest weekly")
    expiry_weekday: int = Field(default=3, ge=0, le=6, description="Weekly expiry weekday (0=Monday)")
    expiry_count: int = Field(default=4, gt=0, description="Number of weekly expiries offered")

    strict_validation: bool = Field(default=False, description="Raise on bad quantity/price instead of defaulting")
    notification_limit: int = Field(default=100, gt=0, description="Notifications kept in memory")
    random_seed: Optional[int] = Field(default=None, description="Seed for the simulation RNG")

    symbols: dict[str, SymbolConfig] = Field(default_factory=_default_symbols)

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/optsim.log", description="Log file path")

    host: str = Field(default="0.0.0.0", description="HTTP bind host")
    port: int = Field(default=5000, description="HTTP port")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def refresh_interval_seconds(self) -> float:
        return self.refresh_interval_ms / 1000.0


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
