"""
scanner/models.py — Data model shared by the resolver, filter, scorer and pipeline.

Provider payloads enter through the from_* constructors, which coerce numbers,
map blanks/NaN to None and reject malformed records. Everything downstream can
rely on plain floats or an explicit None.

HistoricalSeries carries the one ordering invariant the engine depends on:
bars are strictly ascending by timestamp, so the last bar is the most recent.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import pandas as pd

from signals.series import Crossover
from .errors import DataValidationError

UNKNOWN = "Unknown"

BAR_COLUMNS = ["open", "high", "low", "close", "volume"]


def to_float(value: Any) -> float | None:
    """Coerce a provider value to float. Blank, non-numeric and NaN become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    return text or None


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


# ── Universe ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Constituent:
    """A ticker belonging to an index universe."""
    symbol: str
    name: str


# ── Quotes ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Quote:
    symbol: str
    last_price: float
    previous_close: float | None
    updated_at: datetime | None = None

    @classmethod
    def from_mapping(cls, d: Mapping[str, Any]) -> Quote:
        """
        Build a Quote from a loosely-typed mapping.

        Accepts snake_case or camelCase keys. A missing or non-numeric
        previous close becomes None.
        """
        symbol = _to_text(d.get("symbol"))
        if symbol is None:
            raise DataValidationError("quote record has no symbol")
        price = to_float(d.get("last_price", d.get("lastPrice")))
        if price is None:
            raise DataValidationError(f"{symbol}: quote has no last price")
        prev = to_float(d.get("previous_close", d.get("previousClose")))
        updated = d.get("updated_at", d.get("updatedAt"))
        if updated is not None:
            updated = pd.Timestamp(updated).to_pydatetime()
        return cls(symbol=symbol, last_price=price, previous_close=prev, updated_at=updated)

    @property
    def change_amount(self) -> float | None:
        if not self.previous_close:
            return None
        return self.last_price - self.previous_close

    @property
    def change_percent(self) -> float | None:
        if not self.previous_close:
            return None
        return (self.last_price - self.previous_close) / self.previous_close * 100


# ── Historical series ────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class HistoricalSeries:
    """
    Daily (or weekly) OHLCV bars for one symbol.

    `bars` is a DataFrame(open, high, low, close, volume) indexed by a
    strictly increasing DatetimeIndex. Construct through from_frame() or
    from_records() so the ordering is checked.
    """
    symbol: str
    bars: pd.DataFrame = field(repr=False)

    def __post_init__(self):
        idx = self.bars.index
        if not (idx.is_monotonic_increasing and idx.is_unique):
            raise DataValidationError(
                f"{self.symbol}: historical bars must be in strictly ascending time order"
            )

    @classmethod
    def from_frame(cls, symbol: str, df: pd.DataFrame) -> HistoricalSeries:
        """
        Validate a provider frame. Column names are matched case-insensitively;
        bars with a missing close/high are quarantined (dropped).
        """
        frame = df.copy()
        frame.columns = [str(c).lower() for c in frame.columns]
        missing = [c for c in BAR_COLUMNS if c not in frame.columns]
        if missing:
            raise DataValidationError(f"{symbol}: historical data missing columns {missing}")

        frame = frame[BAR_COLUMNS].apply(pd.to_numeric, errors="coerce")
        frame = frame.dropna(subset=["close", "high"])
        frame = frame.assign(volume=frame["volume"].fillna(0))
        # Numeric timestamps are epoch seconds
        unit = "s" if pd.api.types.is_numeric_dtype(frame.index) else None
        frame.index = pd.to_datetime(frame.index, unit=unit, utc=True)
        return cls(symbol=symbol, bars=frame)

    @classmethod
    def from_records(cls, symbol: str, records: Iterable[Mapping[str, Any]]) -> HistoricalSeries:
        """Build from dicts with a `timestamp` key plus the OHLCV fields."""
        rows = list(records)
        if not rows:
            return cls.from_frame(symbol, pd.DataFrame(columns=BAR_COLUMNS))
        df = pd.DataFrame(rows)
        if "timestamp" not in df.columns:
            raise DataValidationError(f"{symbol}: historical records need a timestamp")
        df = df.set_index("timestamp")
        return cls.from_frame(symbol, df)

    def __len__(self) -> int:
        return len(self.bars)

    @property
    def closes(self) -> list[float]:
        return self.bars["close"].astype(float).tolist()

    @property
    def highs(self) -> list[float]:
        return self.bars["high"].astype(float).tolist()

    @property
    def volumes(self) -> list[float]:
        return self.bars["volume"].astype(float).tolist()

    @property
    def high_52_week(self) -> float | None:
        if self.bars.empty:
            return None
        return float(self.bars["high"].max())

    @property
    def last_close(self) -> float | None:
        if self.bars.empty:
            return None
        return float(self.bars["close"].iloc[-1])

    def to_points(self) -> list[dict]:
        return [
            {
                "date": ts.isoformat(),
                "open": float(row.open),
                "high": float(row.high),
                "low": float(row.low),
                "close": float(row.close),
                "volume": float(row.volume),
            }
            for ts, row in self.bars.iterrows()
        ]


# ── Fundamentals ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Fundamentals:
    """Optional per-symbol fundamentals. None means "unknown", never zero."""
    market_cap: float | None = None
    pe_ratio: float | None = None
    dividend_yield: float | None = None
    sector: str | None = None
    industry: str | None = None
    description: str | None = None
    high_52_weeks: float | None = None
    low_52_weeks: float | None = None

    @classmethod
    def from_yahoo_info(cls, info: Mapping[str, Any]) -> Fundamentals:
        return cls(
            market_cap=to_float(info.get("marketCap")),
            pe_ratio=to_float(info.get("trailingPE")),
            dividend_yield=to_float(info.get("dividendYield")),
            sector=_to_text(info.get("sector")),
            industry=_to_text(info.get("industry")),
            description=_to_text(info.get("longBusinessSummary")),
            high_52_weeks=to_float(info.get("fiftyTwoWeekHigh")),
            low_52_weeks=to_float(info.get("fiftyTwoWeekLow")),
        )

    def to_dict(self) -> dict:
        return {
            "marketCap": self.market_cap,
            "peRatio": self.pe_ratio,
            "dividendYield": self.dividend_yield,
            "sector": self.sector,
            "industry": self.industry,
            "description": self.description,
            "high52Weeks": self.high_52_weeks,
            "low52Weeks": self.low_52_weeks,
        }


# ── Scoring output ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScoreBreakdown:
    """Six factor scores, each in [0, 1]."""
    recovery_potential: float
    momentum: float
    volume_confirmation: float
    valuation: float
    market_cap: float
    recent_momentum: float

    def to_dict(self) -> dict:
        return {
            "recoveryPotential": self.recovery_potential,
            "momentum": self.momentum,
            "volumeConfirmation": self.volume_confirmation,
            "valuation": self.valuation,
            "marketCap": self.market_cap,
            "recentMomentum": self.recent_momentum,
        }


@dataclass(frozen=True)
class RankedPick:
    rank: int
    symbol: str
    name: str
    price: float
    previous_close: float
    change_percent: float
    change_amount: float
    high_52_week: float
    drawdown_percent: float
    market_cap: float
    pe_ratio: float | None
    dividend_yield: float | None
    sector: str
    industry: str
    composite_score: float
    score_breakdown: ScoreBreakdown
    reasoning: str
    crossover: Crossover = field(default_factory=Crossover)

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "previousClose": self.previous_close,
            "changePercent": self.change_percent,
            "changeAmount": self.change_amount,
            "high52Week": self.high_52_week,
            "drawdownPercent": self.drawdown_percent,
            "marketCap": self.market_cap,
            "peRatio": self.pe_ratio,
            "dividendYield": self.dividend_yield,
            "sector": self.sector,
            "industry": self.industry,
            "compositeScore": self.composite_score,
            "scoreBreakdown": self.score_breakdown.to_dict(),
            "reasoning": self.reasoning,
            "crossover": self.crossover.to_dict(),
        }


@dataclass(frozen=True)
class ValuePick:
    symbol: str
    name: str
    price: float
    previous_close: float
    change_percent: float
    change_amount: float
    high_52_week: float
    drawdown_percent: float
    market_cap: float = 0.0
    pe_ratio: float | None = None
    dividend_yield: float | None = None
    sector: str = UNKNOWN
    industry: str = UNKNOWN
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "previousClose": self.previous_close,
            "changePercent": self.change_percent,
            "changeAmount": self.change_amount,
            "high52Week": self.high_52_week,
            "drawdownPercent": self.drawdown_percent,
            "marketCap": self.market_cap,
            "peRatio": self.pe_ratio,
            "dividendYield": self.dividend_yield,
            "sector": self.sector,
            "industry": self.industry,
            "description": self.description,
        }


# ── Pipeline results ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TopPicksResult:
    picks: list[RankedPick]
    total_scanned: int
    total_candidates: int
    fetched_at: datetime

    def to_dict(self) -> dict:
        return {
            "picks": [p.to_dict() for p in self.picks],
            "totalScanned": self.total_scanned,
            "totalCandidates": self.total_candidates,
            "fetchedAt": _iso(self.fetched_at),
        }


@dataclass(frozen=True)
class ValuePicksResult:
    picks: list[ValuePick]
    total_scanned: int
    total_qualified: int
    fetched_at: datetime

    def to_dict(self) -> dict:
        return {
            "picks": [p.to_dict() for p in self.picks],
            "totalScanned": self.total_scanned,
            "totalQualified": self.total_qualified,
            "fetchedAt": _iso(self.fetched_at),
        }


@dataclass(frozen=True)
class StockMove:
    symbol: str
    name: str
    price: float
    previous_close: float
    change_percent: float
    change_amount: float
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "previousClose": self.previous_close,
            "changePercent": self.change_percent,
            "changeAmount": self.change_amount,
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class IndexMovers:
    """Gainers for one index."""
    name: str
    display_name: str
    stocks: list[StockMove]
    total_constituents: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "stocks": [s.to_dict() for s in self.stocks],
            "totalConstituents": self.total_constituents,
        }


@dataclass(frozen=True)
class MoversResult:
    indices: list[IndexMovers]
    market_open: bool
    fetched_at: datetime

    def to_dict(self) -> dict:
        return {
            "indices": [i.to_dict() for i in self.indices],
            "marketOpen": self.market_open,
            "fetchedAt": _iso(self.fetched_at),
        }


@dataclass(frozen=True, eq=False)
class ChartSnapshot:
    symbol: str
    span: str
    interval: str
    series: HistoricalSeries = field(repr=False)
    current_price: float
    previous_close: float
    change_amount: float
    change_percent: float
    fundamentals: Fundamentals | None
    sma5: list[float | None]
    sma20: list[float | None]
    crossover: Crossover
    fetched_at: datetime

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "span": self.span,
            "interval": self.interval,
            "points": self.series.to_points(),
            "currentPrice": self.current_price,
            "previousClose": self.previous_close,
            "changeAmount": self.change_amount,
            "changePercent": self.change_percent,
            "fundamentals": self.fundamentals.to_dict() if self.fundamentals else None,
            "sma5": self.sma5,
            "sma20": self.sma20,
            "crossover": self.crossover.to_dict(),
            "fetchedAt": _iso(self.fetched_at),
        }


def utc_from_timestamp(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)
