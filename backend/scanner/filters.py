"""
Candidate filtering — shrink the universe before expensive enrichment.

Checks run cheapest first and each one is a hard reject:

  1. a quote exists
  2. previous close is present and non-zero
  3. price >= min_stock_price
  --- history is fetched only for symbols that got this far ---
  4. at least min_history_bars bars
  5. 52-week high (max of all highs) > 0
  6. drawdown from that high >= the mode's floor

Zero previous close or zero high just means "does not qualify"; nothing raises.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping

from .config import ScannerConfig
from .models import HistoricalSeries, Quote

logger = logging.getLogger(__name__)

TOP_PICKS = "top_picks"
VALUE_PICKS = "value_picks"

SeriesLoader = Callable[[list[str]], Mapping[str, HistoricalSeries]]


@dataclass(frozen=True)
class PricedSymbol:
    """A symbol that passed the quote checks (1–3)."""
    symbol: str
    name: str
    price: float
    previous_close: float
    updated_at: datetime | None = None

    @property
    def change_amount(self) -> float:
        return self.price - self.previous_close

    @property
    def change_percent(self) -> float:
        return (self.price - self.previous_close) / self.previous_close * 100


@dataclass(frozen=True, eq=False)
class Candidate:
    """A symbol that passed every check. Values are full precision."""
    symbol: str
    name: str
    price: float
    previous_close: float
    change_amount: float
    change_percent: float
    high_52_week: float
    drawdown_percent: float
    series: HistoricalSeries = field(repr=False)


def drawdown_percent(high: float, price: float) -> float:
    """Percent decline of price from high. Caller guarantees high > 0."""
    return (high - price) / high * 100


class CandidateFilter:

    def __init__(self, config: ScannerConfig | None = None):
        self.config = config or ScannerConfig()

    def min_drawdown(self, mode: str) -> float:
        if mode == TOP_PICKS:
            return self.config.recovery_min_drawdown_percent
        if mode == VALUE_PICKS:
            return self.config.min_drawdown_percent
        raise ValueError(f"Unknown filter mode '{mode}'")

    def prequalify(self, symbol: str, name: str, quote: Quote | None) -> PricedSymbol | None:
        if quote is None:
            return None
        prev = quote.previous_close
        if not prev:
            return None
        if quote.last_price < self.config.min_stock_price:
            return None
        return PricedSymbol(symbol, name, quote.last_price, prev, quote.updated_at)

    def qualify(
        self,
        priced: PricedSymbol,
        series: HistoricalSeries | None,
        mode: str,
    ) -> Candidate | None:
        if series is None or len(series) < self.config.min_history_bars:
            return None
        high = series.high_52_week
        if high is None or high <= 0:
            return None
        dd = drawdown_percent(high, priced.price)
        if dd < self.min_drawdown(mode):
            return None
        return Candidate(
            symbol=priced.symbol,
            name=priced.name,
            price=priced.price,
            previous_close=priced.previous_close,
            change_amount=priced.change_amount,
            change_percent=priced.change_percent,
            high_52_week=high,
            drawdown_percent=dd,
            series=series,
        )

    def run(
        self,
        names: Mapping[str, str],
        quotes: Mapping[str, Quote],
        load_series: SeriesLoader,
        mode: str,
    ) -> list[Candidate]:
        """
        Filter the universe in `names` order. `load_series` is called once,
        with only the symbols that passed the quote checks.
        """
        self.min_drawdown(mode)    # reject an unknown mode before any fetching

        priced = [
            p for p in (self.prequalify(s, n or s, quotes.get(s)) for s, n in names.items())
            if p is not None
        ]
        logger.info(f"[filter] {len(priced)}/{len(names)} symbols pass quote checks ({mode})")
        if not priced:
            return []

        series_by_symbol = load_series([p.symbol for p in priced])
        candidates = [
            c for c in (self.qualify(p, series_by_symbol.get(p.symbol), mode) for p in priced)
            if c is not None
        ]
        logger.info(f"[filter] {len(candidates)} candidates after history checks ({mode})")
        return candidates
