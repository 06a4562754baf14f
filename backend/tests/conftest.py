import json
import threading

import numpy as np
import pandas as pd
import pytest
import requests

from scanner.config import IndexConfig, ScannerConfig
from scanner.fetcher import MarketDataProvider
from scanner.models import Fundamentals, HistoricalSeries, Quote
from scanner.universe import ConstituentResolver


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeProvider(MarketDataProvider):
    """In-memory market data with call recording and per-symbol failures."""

    def __init__(self, quotes=None, histories=None, fundamentals=None, failing_quote_symbols=()):
        self.quotes = dict(quotes or {})
        self.histories = dict(histories or {})
        self.fundamentals = dict(fundamentals or {})
        self.failing_quote_symbols = set(failing_quote_symbols)
        self.quote_calls = []
        self.history_calls = []
        self.fundamental_calls = []
        self._lock = threading.Lock()

    def fetch_quotes(self, symbols):
        with self._lock:
            self.quote_calls.append(list(symbols))
        if self.failing_quote_symbols.intersection(symbols):
            raise ConnectionError("quote batch rejected")
        return [self.quotes[s] for s in symbols if s in self.quotes]

    def fetch_history(self, symbol, period="1y", interval="1d"):
        with self._lock:
            self.history_calls.append(symbol)
        if symbol not in self.histories:
            raise ValueError(f"No data for '{symbol}'")
        return self.histories[symbol]

    def fetch_fundamentals(self, symbol):
        with self._lock:
            self.fundamental_calls.append(symbol)
        if symbol not in self.fundamentals:
            raise ValueError(f"No fundamentals for '{symbol}'")
        return self.fundamentals[symbol]


def make_series(symbol, closes, highs=None, volumes=None, start="2024-01-01"):
    """Business-day OHLCV series; highs default to the closes."""
    closes = [float(c) for c in closes]
    n = len(closes)
    idx = pd.date_range(start=start, periods=n, freq="B", tz="UTC")
    df = pd.DataFrame({
        "open": closes,
        "high": highs if highs is not None else closes,
        "low": closes,
        "close": closes,
        "volume": volumes if volumes is not None else [1_000_000] * n,
    }, index=idx)
    return HistoricalSeries.from_frame(symbol, df)


def drawdown_series(symbol, high, last, n=60):
    """Closes sliding linearly from `high` down to `last`."""
    return make_series(symbol, np.linspace(high, last, n))


# Symbol: (price, previous close). Every series peaks at 100.
UNIVERSE = {
    "AAA": (78.0, 76.0),    # 22% drawdown
    "BBB": (9.0, 8.0),      # below the price floor
    "CCC": (50.0, 0.0),     # no previous close
    "DDD": (99.0, 98.0),    # 1% drawdown
    "EEE": (60.0, 55.0),    # 40% drawdown
    "FFF": (50.0, 48.0),    # 50% drawdown
    "GGG": (50.0, 50.0),    # 50% drawdown, listed after FFF
}

CONSTITUENTS_JSON = json.dumps([
    {"Symbol": s, "Name": f"{s} Corp"} for s in UNIVERSE
])


def fake_fetch_text(pages):
    def fetch(url, timeout):
        if url not in pages:
            raise requests.HTTPError(f"404 Client Error: Not Found for url: {url}")
        return pages[url]
    return fetch


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ScannerConfig(
        indices=[IndexConfig("test", "Test Index", "test.json", "json")],
        constituents_base_url="https://example.test",
        max_workers=4,
    )


@pytest.fixture
def provider():
    quotes = {s: Quote(s, price, prev) for s, (price, prev) in UNIVERSE.items()}
    histories = {s: drawdown_series(s, 100.0, price) for s, (price, _) in UNIVERSE.items()}
    fundamentals = {
        "AAA": Fundamentals(market_cap=5e11, pe_ratio=15.0, dividend_yield=0.01,
                            sector="Technology", industry="Software"),
        "FFF": Fundamentals(market_cap=2e9, pe_ratio=-4.0, sector="Energy",
                            industry="Oil & Gas", description="Drills things."),
    }
    return FakeProvider(quotes=quotes, histories=histories, fundamentals=fundamentals)


@pytest.fixture
def resolver(config, clock):
    pages = {"https://example.test/test.json": CONSTITUENTS_JSON}
    return ConstituentResolver(config, fetch_text=fake_fetch_text(pages), clock=clock)
