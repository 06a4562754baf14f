"""
scanner/config.py — Scanner configuration data structures and YAML I/O.

A ScannerConfig defines:
  - Which index universes are scanned and where their constituent lists live
  - Candidate filter thresholds (price floor, drawdown floors, history length)
  - Pipeline sizes (published count, fundamentals pools, fetch batch sizes)
  - Cache lifetimes and upstream timeouts

Scoring weights and reasoning thresholds are intentionally not here; they are
constants of scanner.scorer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

INDEX_CONSTITUENTS_BASE_URL = "https://yfiua.github.io/index-constituents"
RUSSELL_2000_CSV_URL = (
    "https://raw.githubusercontent.com/ikoniaris/Russell2000/master/russell_2000_components.csv"
)

FORMAT_JSON = "json"
FORMAT_CSV = "csv"


@dataclass(frozen=True)
class IndexConfig:
    """One index universe and the source of its constituent list."""
    key: str
    name: str
    file: str = ""
    format: str = FORMAT_JSON     # "json" | "csv"

    def __post_init__(self):
        if self.format not in (FORMAT_JSON, FORMAT_CSV):
            raise ValueError(f"{self.key}: unknown constituent format '{self.format}'")


def _default_indices() -> list[IndexConfig]:
    return [
        IndexConfig("sp500", "S&P 500", "constituents-sp500.json", FORMAT_JSON),
        IndexConfig("nasdaq100", "Nasdaq 100", "constituents-nasdaq100.json", FORMAT_JSON),
        IndexConfig("dowjones", "Dow Jones", "constituents-dowjones.json", FORMAT_JSON),
        IndexConfig("russell2000", "Russell 2000", "", FORMAT_CSV),
    ]


@dataclass
class ScannerConfig:
    """Complete scanner configuration."""
    indices: list[IndexConfig] = field(default_factory=_default_indices)
    constituents_base_url: str = INDEX_CONSTITUENTS_BASE_URL
    russell_2000_csv_url: str = RUSSELL_2000_CSV_URL

    # Candidate filter
    min_stock_price: float = 10.0
    recovery_min_drawdown_percent: float = 3.0    # top picks: any recovery candidate
    min_drawdown_percent: float = 20.0            # value picks: deep drawdown only
    min_history_bars: int = 20                    # enough for a 20-period SMA
    min_gain_percent: float = 3.0                 # index movers

    # Pipeline sizes
    top_picks_count: int = 10
    prelim_pool_size: int = 100
    value_fundamentals_count: int = 50
    quote_batch_size: int = 1600
    historical_batch_size: int = 50
    max_workers: int = 8

    # Upstream
    history_period: str = "1y"
    history_interval: str = "1d"
    request_timeout: float = 15.0

    # Caching
    constituents_ttl_hours: float = 24.0
    picks_ttl_minutes: float = 60.0
    serve_stale_on_error: bool = True

    # ── Derived properties ──────────────────────────────────────────────────

    @property
    def constituents_ttl_seconds(self) -> float:
        return self.constituents_ttl_hours * 3600

    @property
    def picks_ttl_seconds(self) -> float:
        return self.picks_ttl_minutes * 60

    def index(self, key: str) -> IndexConfig:
        for cfg in self.indices:
            if cfg.key == key:
                return cfg
        raise KeyError(f"Unknown index '{key}'")

    # ── Serialisation ───────────────────────────────────────────────────────

    @classmethod
    def from_yaml(cls, path: str | Path) -> ScannerConfig:
        with open(path) as f:
            d = yaml.safe_load(f) or {}
        return cls.from_dict(d)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ScannerConfig:
        defaults = cls()
        indices = defaults.indices
        if "indices" in d:
            indices = [
                IndexConfig(
                    key=key,
                    name=idx.get("name", key),
                    file=idx.get("file", ""),
                    format=idx.get("format", FORMAT_JSON),
                )
                for key, idx in d["indices"].items()
            ]

        scalars = {
            name: d[name] for name in defaults.to_dict()
            if name != "indices" and name in d
        }
        return cls(indices=indices, **scalars)

    def to_dict(self) -> dict:
        return {
            "indices": {
                cfg.key: {"name": cfg.name, "file": cfg.file, "format": cfg.format}
                for cfg in self.indices
            },
            "constituents_base_url": self.constituents_base_url,
            "russell_2000_csv_url": self.russell_2000_csv_url,
            "min_stock_price": self.min_stock_price,
            "recovery_min_drawdown_percent": self.recovery_min_drawdown_percent,
            "min_drawdown_percent": self.min_drawdown_percent,
            "min_history_bars": self.min_history_bars,
            "min_gain_percent": self.min_gain_percent,
            "top_picks_count": self.top_picks_count,
            "prelim_pool_size": self.prelim_pool_size,
            "value_fundamentals_count": self.value_fundamentals_count,
            "quote_batch_size": self.quote_batch_size,
            "historical_batch_size": self.historical_batch_size,
            "max_workers": self.max_workers,
            "history_period": self.history_period,
            "history_interval": self.history_interval,
            "request_timeout": self.request_timeout,
            "constituents_ttl_hours": self.constituents_ttl_hours,
            "picks_ttl_minutes": self.picks_ttl_minutes,
            "serve_stale_on_error": self.serve_stale_on_error,
        }

    def to_yaml(self, path: str | Path) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
