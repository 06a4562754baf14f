"""
signals/series.py — Moving averages and crossover detection over closing prices.

Inputs are plain sequences in ascending chronological order: index 0 is the
oldest sample and the last element is the most recent one. Outputs keep the
same length as the input and use None where a value cannot be computed
(insufficient history), so callers can line them up index-for-index.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

BULLISH = "bullish"
BEARISH = "bearish"


# ── Moving Averages ───────────────────────────────────────────────────────────

def compute_sma(closes: Sequence[float], period: int) -> list[float | None]:
    """
    Simple Moving Average over the trailing `period` samples.

    result[i] is None while i < period - 1, otherwise the arithmetic mean of
    closes[i - period + 1 : i + 1]. A period longer than the series yields
    all None.
    """
    if period < 1:
        raise ValueError(f"SMA period must be >= 1, got {period}")

    n = len(closes)
    out: list[float | None] = [None] * n
    if n < period:
        return out

    arr = np.asarray(closes, dtype=float)
    windows = np.lib.stride_tricks.sliding_window_view(arr, period)
    means = windows.mean(axis=1)
    for offset, value in enumerate(means):
        out[offset + period - 1] = float(value)
    return out


# ── Crossover ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Crossover:
    """Most recent fast/slow cross. Both fields are None when nothing crossed."""
    signal: str | None = None          # "bullish" | "bearish" | None
    periods_ago: int | None = None     # 0 = crossed on the latest sample

    @property
    def detected(self) -> bool:
        return self.signal is not None

    def to_dict(self) -> dict:
        return {"signal": self.signal, "periodsAgo": self.periods_ago}


def detect_crossover(
    fast: Sequence[float | None],
    slow: Sequence[float | None],
) -> Crossover:
    """
    Find the latest crossover of `fast` over/under `slow`, scanning backward.

    Bullish:  fast[i-1] <= slow[i-1] and fast[i] > slow[i]
    Bearish:  fast[i-1] >= slow[i-1] and fast[i] < slow[i]

    Pairs with a missing value are skipped and the scan continues. Equality on
    the prior sample counts as the uncrossed side, so flat stretches where
    fast == slow throughout never register as a cross.
    """
    n = min(len(fast), len(slow))
    for i in range(n - 1, 0, -1):
        f_prev, s_prev = fast[i - 1], slow[i - 1]
        f_cur, s_cur = fast[i], slow[i]
        if f_prev is None or s_prev is None or f_cur is None or s_cur is None:
            continue
        if f_prev <= s_prev and f_cur > s_cur:
            return Crossover(BULLISH, (n - 1) - i)
        if f_prev >= s_prev and f_cur < s_cur:
            return Crossover(BEARISH, (n - 1) - i)
    return Crossover()


def latest(values: Sequence[float | None]) -> float | None:
    """Most recent element of an indicator series, or None when empty."""
    return values[-1] if len(values) else None
