#!/usr/bin/env python3
"""
run_picks.py  —  Opportunity scanner: S&P 500 + Nasdaq 100 + Dow + Russell 2000

Scans the index universes, filters for drawdown candidates, and prints
ranked picks.

Usage:
    python run_picks.py top
    python run_picks.py top --top 20
    python run_picks.py value --json
    python run_picks.py movers
    python run_picks.py chart NVDA --span 3month
    python run_picks.py top --config scanner.yaml --verbose
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from scanner.config   import ScannerConfig
from scanner.errors   import ScannerError
from scanner.fetcher  import CHART_SPANS
from scanner.pipeline import ScannerPipeline
from scanner.universe import normalize_symbol


# ── Helpers ──────────────────────────────────────────────────────────────────

def _fmt_cap(v: float) -> str:
    try:
        v = float(v)
        if v >= 1e12:
            return f"{v / 1e12:.1f}T"
        if v >= 1e9:
            return f"{v / 1e9:.1f}B"
        if v >= 1e6:
            return f"{v / 1e6:.0f}M"
        return "--" if v <= 0 else f"{v:,.0f}"
    except (ValueError, TypeError):
        return "--"


def _fmt_pct(v: float, plus: bool = True) -> str:
    try:
        v = float(v)
        sign = "+" if plus and v >= 0 else ""
        return f"{sign}{v:.2f}%"
    except (ValueError, TypeError):
        return "  --"


def _banner(title: str) -> None:
    print(f"\n{'═' * 96}")
    print(f"  {title}")
    print(f"{'═' * 96}")


# ── Printers ─────────────────────────────────────────────────────────────────

def print_top_picks(result) -> None:
    _banner(f"TOP PICKS  ·  {result.total_scanned} scanned  ·  "
            f"{result.total_candidates} candidates")
    print(f"  {'#':>3}  {'Ticker':<7} {'Company':<26} {'Price':>9} {'Chg':>8} "
          f"{'Drawdown':>9} {'Score':>6}  Reasoning")
    print(f"  {'─' * 92}")
    for p in result.picks:
        print(f"  {p.rank:>3}  {p.symbol:<7} {p.name[:25]:<26} ${p.price:>8.2f} "
              f"{_fmt_pct(p.change_percent):>8} {_fmt_pct(-p.drawdown_percent, plus=False):>9} "
              f"{p.composite_score:>6.1f}  {p.reasoning}")
    print(f"  {'─' * 92}")


def print_value_picks(result) -> None:
    _banner(f"VALUE PICKS  ·  {result.total_scanned} scanned  ·  "
            f"{result.total_qualified} qualified")
    print(f"  {'Ticker':<7} {'Company':<26} {'Sector':<22} {'Price':>9} "
          f"{'52w High':>9} {'Drawdown':>9} {'Mkt Cap':>8} {'P/E':>7}")
    print(f"  {'─' * 92}")
    for p in result.picks:
        pe = f"{p.pe_ratio:.1f}" if p.pe_ratio is not None else "--"
        print(f"  {p.symbol:<7} {p.name[:25]:<26} {p.sector[:21]:<22} ${p.price:>8.2f} "
              f"${p.high_52_week:>8.2f} {_fmt_pct(-p.drawdown_percent, plus=False):>9} "
              f"{_fmt_cap(p.market_cap):>8} {pe:>7}")
    print(f"  {'─' * 92}")


def print_movers(result) -> None:
    status = "OPEN" if result.market_open else "CLOSED"
    _banner(f"INDEX MOVERS  ·  market {status}")
    for idx in result.indices:
        print(f"\n  {idx.display_name}  ({len(idx.stocks)} of {idx.total_constituents} up)")
        for s in idx.stocks:
            print(f"    {s.symbol:<7} {s.name[:30]:<31} ${s.price:>8.2f} {_fmt_pct(s.change_percent):>8}")


def print_chart(snap) -> None:
    _banner(f"{snap.symbol}  ·  {snap.span}  ·  {snap.interval} bars  ·  {len(snap.series)} points")
    print(f"  Price:     ${snap.current_price:,.2f}  ({_fmt_pct(snap.change_percent)})")
    sma5 = next((v for v in reversed(snap.sma5) if v is not None), None)
    sma20 = next((v for v in reversed(snap.sma20) if v is not None), None)
    if sma5 is not None:
        print(f"  SMA5:      ${sma5:,.2f}")
    if sma20 is not None:
        print(f"  SMA20:     ${sma20:,.2f}")
    if snap.crossover.detected:
        print(f"  Crossover: {snap.crossover.signal} ({snap.crossover.periods_ago} bars ago)")
    else:
        print(f"  Crossover: none in range")
    if snap.fundamentals is not None:
        f = snap.fundamentals
        print(f"  Sector:    {f.sector or '--'} / {f.industry or '--'}")
        print(f"  Mkt Cap:   {_fmt_cap(f.market_cap or 0)}")


# ── Main ─────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Index drawdown scanner and opportunity ranking")
    parser.add_argument("--config", type=Path, help="YAML scanner config")
    parser.add_argument("--json", action="store_true", help="print JSON instead of a table")
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    top = sub.add_parser("top", help="composite-score top picks")
    top.add_argument("--top", type=int, help="number of picks to publish")
    sub.add_parser("value", help="deepest drawdowns with fundamentals")
    sub.add_parser("movers", help="per-index gainers today")
    chart = sub.add_parser("chart", help="bars, SMA overlays and crossover for one symbol")
    chart.add_argument("symbol")
    chart.add_argument("--span", default="year", choices=list(CHART_SPANS))
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    try:
        config = ScannerConfig.from_yaml(args.config) if args.config else ScannerConfig()
        if args.command == "top" and args.top:
            config.top_picks_count = args.top
        pipeline = ScannerPipeline(config)

        if args.command == "top":
            result, printer = pipeline.top_picks(serve_stale=config.serve_stale_on_error), print_top_picks
        elif args.command == "value":
            result, printer = pipeline.value_picks(serve_stale=config.serve_stale_on_error), print_value_picks
        elif args.command == "movers":
            result, printer = pipeline.index_movers(), print_movers
        else:
            result, printer = pipeline.chart(normalize_symbol(args.symbol).upper(), args.span), print_chart
    except (ScannerError, ValueError, OSError) as exc:
        print(f"  ✗ {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        printer(result)
        print(f"\n  ⚠  This is screening data only — not investment advice.\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
