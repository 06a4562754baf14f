"""
Market data fetching — quotes, historicals and fundamentals.

MarketDataProvider is the seam between the scoring engine and the outside
world; YahooProvider implements it with yfinance. The module-level helpers
fan requests out over a thread pool in bounded batches and isolate failures
per item: a symbol (or a whole quote batch) that fails is simply missing from
the returned map.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Iterator, TypeVar

import pandas as pd
import yfinance as yf

from .models import Fundamentals, HistoricalSeries, Quote

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

# yf.download is not thread-safe; serialize batch downloads
_download_lock = threading.Lock()

# Chart span → (yfinance period, bar interval)
CHART_SPANS: dict[str, tuple[str, str]] = {
    "day":    ("1d", "5m"),
    "week":   ("5d", "15m"),
    "month":  ("1mo", "1d"),
    "3month": ("3mo", "1d"),
    "year":   ("1y", "1d"),
    "5year":  ("5y", "1wk"),
}


# ── Provider interface ───────────────────────────────────────────────────────

class MarketDataProvider(ABC):
    """Source of quotes, OHLCV history and fundamentals."""

    @abstractmethod
    def fetch_quotes(self, symbols: list[str]) -> list[Quote]:
        """Latest quote for each symbol it can resolve. May omit symbols."""
        ...

    @abstractmethod
    def fetch_history(self, symbol: str, period: str = "1y", interval: str = "1d") -> HistoricalSeries:
        """Bars in ascending time order. Raises when the symbol has no data."""
        ...

    @abstractmethod
    def fetch_fundamentals(self, symbol: str) -> Fundamentals:
        ...


class YahooProvider(MarketDataProvider):
    """yfinance-backed provider. Symbols are Yahoo style: "BRK-B", "GOOGL"."""

    def fetch_quotes(self, symbols: list[str]) -> list[Quote]:
        if not symbols:
            return []
        with _download_lock:
            raw = yf.download(
                symbols, period="5d", interval="1d", group_by="ticker",
                auto_adjust=False, progress=False, threads=True,
            )
        if raw is None or raw.empty:
            return []

        quotes: list[Quote] = []
        multi = isinstance(raw.columns, pd.MultiIndex)
        tickers = set(raw.columns.get_level_values(0)) if multi else set()
        for symbol in symbols:
            if multi:
                if symbol not in tickers:
                    continue
                df = raw[symbol]
            elif len(symbols) == 1:
                df = raw
            else:
                continue

            closes = pd.to_numeric(df["Close"], errors="coerce").dropna()
            if closes.empty:
                continue
            quotes.append(Quote.from_mapping({
                "symbol": symbol,
                "last_price": closes.iloc[-1],
                "previous_close": closes.iloc[-2] if len(closes) > 1 else None,
                "updated_at": closes.index[-1],
            }))
        return quotes

    def fetch_history(self, symbol: str, period: str = "1y", interval: str = "1d") -> HistoricalSeries:
        raw = yf.Ticker(symbol).history(period=period, interval=interval, auto_adjust=False)
        if raw is None or raw.empty:
            raise ValueError(f"No data for '{symbol}'. Check the symbol.")
        return HistoricalSeries.from_frame(symbol, raw)

    def fetch_fundamentals(self, symbol: str) -> Fundamentals:
        info = yf.Ticker(symbol).info
        if not info:
            raise ValueError(f"No fundamentals for '{symbol}'")
        return Fundamentals.from_yahoo_info(info)


# ── Fan-out helpers ──────────────────────────────────────────────────────────

def batched(items: list[K], size: int) -> Iterator[list[K]]:
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _fan_out(
    fn: Callable[[K], V],
    items: Iterable[K],
    max_workers: int,
    label: str,
) -> dict[K, V]:
    """Run fn over items in a thread pool. Failed items are logged and omitted."""
    items = list(items)
    results: dict[K, V] = {}
    if not items:
        return results

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items)))) as pool:
        futures = {pool.submit(fn, item): item for item in items}
        for future in as_completed(futures):
            item = futures[future]
            try:
                results[item] = future.result()
            except Exception as exc:
                logger.warning(f"[fetcher] {label} {item}: {exc}")
    return results


def fetch_batch_quotes(
    provider: MarketDataProvider,
    symbols: list[str],
    batch_size: int = 1600,
    max_workers: int = 4,
) -> dict[str, Quote]:
    """
    Quote every symbol in batches of at most `batch_size`. A failed batch
    contributes nothing; the other batches still run.
    """
    quotes: dict[str, Quote] = {}
    if not symbols:
        return quotes

    batches = list(batched(symbols, batch_size))
    by_batch = _fan_out(
        lambda i: provider.fetch_quotes(batches[i]),
        range(len(batches)),
        max_workers,
        "quote batch",
    )
    for i in sorted(by_batch):
        wanted = set(batches[i])
        for quote in by_batch[i]:
            if quote is not None and quote.symbol in wanted:
                quotes[quote.symbol] = quote

    logger.info(f"[fetcher] Quotes resolved for {len(quotes)}/{len(symbols)} symbols "
                f"in {len(batches)} batch(es)")
    return quotes


def fetch_fundamentals_safe(provider: MarketDataProvider, symbol: str) -> Fundamentals | None:
    try:
        return provider.fetch_fundamentals(symbol)
    except Exception as exc:
        logger.warning(f"[fetcher] fundamentals {symbol}: {exc}")
        return None


def fetch_historicals(
    provider: MarketDataProvider,
    symbols: list[str],
    batch_size: int = 50,
    max_workers: int = 8,
    period: str = "1y",
    interval: str = "1d",
) -> dict[str, HistoricalSeries]:
    """
    Fetch history for each symbol. Batches run one after another; symbols
    within a batch run concurrently.
    """
    out: dict[str, HistoricalSeries] = {}
    for batch in batched(symbols, batch_size):
        fetched = _fan_out(
            lambda s: provider.fetch_history(s, period=period, interval=interval),
            batch,
            max_workers,
            "history",
        )
        out.update(fetched)
    return out


def fetch_fundamentals_many(
    provider: MarketDataProvider,
    symbols: list[str],
    max_workers: int = 8,
) -> dict[str, Fundamentals]:
    return _fan_out(provider.fetch_fundamentals, symbols, max_workers, "fundamentals")
