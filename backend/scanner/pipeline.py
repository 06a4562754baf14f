"""
scanner/pipeline.py — End-to-end pick pipelines.

Phases run strictly in order, each on the reduced set from the one before:

    constituents → quotes → cheap filters → historicals → preliminary score
                 → fundamentals (bounded pool) → final score → rank

Within a phase, independent fetches fan out concurrently and fail per item.
Only an empty universe or an empty quote map aborts a run; the heavy
pipelines are memoized for `picks_ttl_minutes` and a failed refresh never
replaces a cached result.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from signals.series import compute_sma, detect_crossover
from .cache import Clock, ResultCache
from .config import ScannerConfig
from .errors import QuotesUnavailableError, UniverseUnavailableError
from .fetcher import (
    CHART_SPANS,
    MarketDataProvider,
    YahooProvider,
    fetch_batch_quotes,
    fetch_fundamentals_many,
    fetch_fundamentals_safe,
    fetch_historicals,
)
from .filters import TOP_PICKS, VALUE_PICKS, Candidate, CandidateFilter
from .market_hours import is_market_open
from .models import (
    UNKNOWN,
    ChartSnapshot,
    Constituent,
    Fundamentals,
    HistoricalSeries,
    IndexMovers,
    MoversResult,
    Quote,
    StockMove,
    TopPicksResult,
    ValuePick,
    ValuePicksResult,
    utc_from_timestamp,
)
from .scorer import (
    SMA_FAST,
    SMA_SLOW,
    rank_picks,
    score_final,
    score_preliminary,
    select_for_enrichment,
)
from .universe import ConstituentResolver

logger = logging.getLogger(__name__)


class ScannerPipeline:
    """Owns the provider, resolver and result caches for one process."""

    def __init__(
        self,
        config: ScannerConfig | None = None,
        provider: MarketDataProvider | None = None,
        resolver: ConstituentResolver | None = None,
        clock: Clock = time.time,
    ):
        self.config = config or ScannerConfig()
        self.provider = provider or YahooProvider()
        self.clock = clock
        self.resolver = resolver or ConstituentResolver(self.config, clock=clock)
        self.filter = CandidateFilter(self.config)

        ttl = self.config.picks_ttl_seconds
        self.top_picks_cache: ResultCache[TopPicksResult] = ResultCache(ttl, clock, "top_picks")
        self.value_picks_cache: ResultCache[ValuePicksResult] = ResultCache(ttl, clock, "value_picks")

    # ── Public entry points ─────────────────────────────────────────────────

    def top_picks(self, serve_stale: bool = False) -> TopPicksResult:
        return self.top_picks_cache.get_or_compute(self.compute_top_picks, serve_stale=serve_stale)

    def value_picks(self, serve_stale: bool = False) -> ValuePicksResult:
        return self.value_picks_cache.get_or_compute(self.compute_value_picks, serve_stale=serve_stale)

    # ── Shared phases ───────────────────────────────────────────────────────

    def _now(self) -> datetime:
        return utc_from_timestamp(self.clock())

    def _universe(self) -> tuple[dict[str, list[Constituent]], dict[str, str]]:
        by_index = self.resolver.resolve_all()
        names = self.resolver.symbol_names(by_index)
        if not names:
            raise UniverseUnavailableError("No constituents could be fetched from any index")
        logger.info(f"[pipeline] Universe: {len(names)} unique symbols from {len(by_index)} indices")
        return by_index, names

    def _quotes(self, symbols: list[str]) -> dict[str, Quote]:
        quotes = fetch_batch_quotes(
            self.provider, symbols,
            batch_size=self.config.quote_batch_size,
            max_workers=self.config.max_workers,
        )
        if not quotes:
            raise QuotesUnavailableError(f"No quotes returned for {len(symbols)} symbols")
        return quotes

    def _load_series(self, symbols: list[str]) -> dict[str, HistoricalSeries]:
        return fetch_historicals(
            self.provider, symbols,
            batch_size=self.config.historical_batch_size,
            max_workers=self.config.max_workers,
            period=self.config.history_period,
            interval=self.config.history_interval,
        )

    def _fundamentals(self, symbols: list[str]) -> dict[str, Fundamentals]:
        return fetch_fundamentals_many(self.provider, symbols, max_workers=self.config.max_workers)

    # ── Top picks ───────────────────────────────────────────────────────────

    def compute_top_picks(self) -> TopPicksResult:
        _, names = self._universe()
        quotes = self._quotes(list(names))
        candidates = self.filter.run(names, quotes, self._load_series, TOP_PICKS)

        prelims = [score_preliminary(c) for c in candidates]
        pool = select_for_enrichment(prelims, self.config.prelim_pool_size)
        fundamentals = self._fundamentals([p.candidate.symbol for p in pool])

        scored = [score_final(p, fundamentals.get(p.candidate.symbol)) for p in pool]
        picks = rank_picks(scored, self.config.top_picks_count)
        logger.info(f"[pipeline] Top picks: {len(picks)} published from {len(candidates)} candidates "
                    f"({len(fundamentals)}/{len(pool)} with fundamentals)")

        return TopPicksResult(
            picks=picks,
            total_scanned=len(names),
            total_candidates=len(candidates),
            fetched_at=self._now(),
        )

    # ── Value picks ─────────────────────────────────────────────────────────

    def compute_value_picks(self) -> ValuePicksResult:
        _, names = self._universe()
        quotes = self._quotes(list(names))
        candidates = self.filter.run(names, quotes, self._load_series, VALUE_PICKS)

        # Stable sort: equal drawdowns keep universe order
        deepest = sorted(candidates, key=lambda c: c.drawdown_percent, reverse=True)
        deepest = deepest[:self.config.value_fundamentals_count]
        fundamentals = self._fundamentals([c.symbol for c in deepest])

        picks = [_value_pick(c, fundamentals.get(c.symbol)) for c in deepest]
        logger.info(f"[pipeline] Value picks: {len(picks)} of {len(candidates)} qualified")

        return ValuePicksResult(
            picks=picks,
            total_scanned=len(names),
            total_qualified=len(candidates),
            fetched_at=self._now(),
        )

    # ── Index movers ────────────────────────────────────────────────────────

    def index_movers(self) -> MoversResult:
        """Per-index gainers at or above min_gain_percent. Always fresh."""
        by_index, names = self._universe()
        quotes = self._quotes(list(names))

        indices = []
        for cfg in self.config.indices:
            constituents = by_index.get(cfg.key, [])
            gainers: list[tuple[float, Constituent, Quote]] = []
            for c in constituents:
                quote = quotes.get(c.symbol)
                if quote is None or not quote.previous_close:
                    continue
                pct = quote.change_percent
                if pct >= self.config.min_gain_percent:
                    gainers.append((pct, c, quote))
            gainers.sort(key=lambda g: g[0], reverse=True)

            stocks = [
                StockMove(
                    symbol=c.symbol,
                    name=c.name,
                    price=q.last_price,
                    previous_close=q.previous_close,
                    change_percent=round(pct, 2),
                    change_amount=round(q.change_amount, 2),
                    updated_at=q.updated_at,
                )
                for pct, c, q in gainers
            ]
            indices.append(IndexMovers(cfg.key, cfg.name, stocks, len(constituents)))

        now = self._now()
        return MoversResult(indices=indices, market_open=is_market_open(now), fetched_at=now)

    # ── Chart ───────────────────────────────────────────────────────────────

    def chart(self, symbol: str, span: str = "year") -> ChartSnapshot:
        """
        Bars, SMA5/SMA20 overlays and the latest SMA crossover for one symbol.
        History is required; quote and fundamentals are optional.
        """
        if span not in CHART_SPANS:
            raise ValueError(f"Unknown span '{span}'. Choose from {', '.join(CHART_SPANS)}")
        period, interval = CHART_SPANS[span]

        with ThreadPoolExecutor(max_workers=3) as pool:
            f_hist = pool.submit(self.provider.fetch_history, symbol, period, interval)
            f_quote = pool.submit(fetch_batch_quotes, self.provider, [symbol], 1, 1)
            f_fund = pool.submit(fetch_fundamentals_safe, self.provider, symbol)
            series = f_hist.result()
            quote = f_quote.result().get(symbol)
            fundamentals = f_fund.result()

        current = quote.last_price if quote is not None else (series.last_close or 0.0)
        previous = quote.previous_close if quote is not None and quote.previous_close else 0.0
        if previous > 0:
            change_amount = current - previous
            change_percent = change_amount / previous * 100
        else:
            change_amount = change_percent = 0.0

        closes = series.closes
        sma5 = compute_sma(closes, SMA_FAST)
        sma20 = compute_sma(closes, SMA_SLOW)

        return ChartSnapshot(
            symbol=symbol,
            span=span,
            interval=interval,
            series=series,
            current_price=current,
            previous_close=previous,
            change_amount=round(change_amount, 2),
            change_percent=round(change_percent, 2),
            fundamentals=fundamentals,
            sma5=sma5,
            sma20=sma20,
            crossover=detect_crossover(sma5, sma20),
            fetched_at=self._now(),
        )


def _value_pick(c: Candidate, fundamentals: Fundamentals | None) -> ValuePick:
    f = fundamentals or Fundamentals()
    return ValuePick(
        symbol=c.symbol,
        name=c.name,
        price=c.price,
        previous_close=c.previous_close,
        change_percent=round(c.change_percent, 2),
        change_amount=round(c.change_amount, 2),
        high_52_week=c.high_52_week,
        drawdown_percent=round(c.drawdown_percent, 2),
        market_cap=f.market_cap or 0.0,
        pe_ratio=f.pe_ratio,
        dividend_yield=f.dividend_yield,
        sector=f.sector or UNKNOWN,
        industry=f.industry or UNKNOWN,
        description=f.description or "",
    )
