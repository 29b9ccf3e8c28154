"""Shared configuration loader and Pydantic settings.

Supports:
  - YAML file loading, falling back to defaults
  - Classification thresholds for margin risk, worker efficiency
    and network health
  - Portfolio valuation and observability settings
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator


_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _require_ascending(*bounds: float) -> None:
    if any(lo >= hi for lo, hi in zip(bounds, bounds[1:])):
        raise ValueError(f"thresholds must be strictly increasing, got {bounds}")


class MarginRiskConfig(BaseModel):
    """Margin level (%) boundaries; below each bound the tier applies."""
    critical_below: float = 110.0
    high_below: float = 150.0
    medium_below: float = 200.0

    @model_validator(mode="after")
    def _check_order(self) -> "MarginRiskConfig":
        _require_ascending(self.critical_below, self.high_below, self.medium_below)
        return self


class EfficiencyConfig(BaseModel):
    """Active/total (%) boundaries for worker and node efficiency."""
    critical_below: float = 50.0
    warning_below: float = 70.0
    good_below: float = 90.0

    @model_validator(mode="after")
    def _check_order(self) -> "EfficiencyConfig":
        _require_ascending(self.critical_below, self.warning_below, self.good_below)
        return self


class NetworkConfig(BaseModel):
    """Node liveness window and active-ratio (%) health boundaries."""
    liveness_window_ms: int = 300_000
    critical_below: float = 10.0
    stable_below: float = 40.0
    good_below: float = 95.0
    top_regions: int = 8

    @model_validator(mode="after")
    def _check_order(self) -> "NetworkConfig":
        _require_ascending(self.critical_below, self.stable_below, self.good_below)
        if self.liveness_window_ms <= 0:
            raise ValueError("liveness_window_ms must be positive")
        return self


class PortfolioConfig(BaseModel):
    """Asset valuation settings."""
    min_asset_usd: float = 500.0
    quote_asset: str = "USDT"
    top_assets: int = 6


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""


class ScannerConfig(BaseModel):
    margin_risk: MarginRiskConfig = Field(default_factory=MarginRiskConfig)
    efficiency: EfficiencyConfig = Field(default_factory=EfficiencyConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    portfolio: PortfolioConfig = Field(default_factory=PortfolioConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def load_config(path: str | Path | None = None) -> ScannerConfig:
    """Load config from YAML file, falling back to defaults."""
    if path is None:
        path = _PROJECT_ROOT / "config.yaml"
    path = Path(path)
    if path.exists():
        with open(path) as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
        return ScannerConfig(**raw)
    return ScannerConfig()
