"""
Composite opportunity scoring and ranking.

Six simple, monotonic factor scores in [0, 1] are combined with fixed weights
into a 0–100 composite:

    recovery_potential  deeper drawdown from the 52-week high, capped at 50%
    momentum            price above SMA20, plus SMA5 above SMA20
    volume_confirmation recent 10-bar volume vs the 50-bar baseline
    valuation           P/E inside a sane band
    market_cap          log-scaled size, ~$100M → ~$1T
    recent_momentum     today's change, centred on -2%

A cheaper preliminary score uses only the four factors that need no
fundamentals; it pre-ranks candidates so fundamentals are fetched for a
bounded pool only.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Sequence

from signals.series import Crossover, compute_sma, detect_crossover, latest
from .filters import Candidate
from .models import UNKNOWN, Fundamentals, RankedPick, ScoreBreakdown

# Weights for each factor (sum to 100)
WEIGHTS = {
    "recovery_potential":  25,
    "momentum":            25,
    "volume_confirmation": 15,
    "valuation":           15,
    "market_cap":          10,
    "recent_momentum":     10,
}

# Preliminary score: the factors available before fundamentals are fetched
PRELIM_WEIGHTS = {
    "recovery_potential":  25,
    "momentum":            25,
    "volume_confirmation": 15,
    "recent_momentum":     10,
}

# Factor levels at which a reasoning clause is emitted
REASONING_THRESHOLDS = {
    "recovery_potential":  0.6,
    "momentum_trend":      0.75,
    "momentum_above_sma":  0.5,
    "volume_confirmation": 0.7,
    "valuation":           0.8,
    "market_cap":          0.7,
    "recent_momentum":     0.7,
}

FALLBACK_REASONING = "Balanced upside potential across multiple factors"

SMA_FAST = 5
SMA_SLOW = 20
VOLUME_RECENT_BARS = 10
VOLUME_BASELINE_BARS = 50


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(max(x, lo), hi)


# ── Factor scores (each 0–1) ─────────────────────────────────────────────────

def score_recovery_potential(drawdown_percent: float) -> float:
    return _clamp(drawdown_percent / 50)


def score_momentum(price: float, sma5: float | None, sma20: float | None) -> float:
    score = 0.0
    if sma20 is not None and price > sma20:
        score += 0.5
    if sma5 is not None and sma20 is not None and sma5 > sma20:
        score += 0.5
    return score


def score_volume(volumes: Sequence[float]) -> float:
    """Neutral 0.5 when there is less than a full baseline window."""
    if len(volumes) < VOLUME_BASELINE_BARS:
        return 0.5
    recent = volumes[-VOLUME_RECENT_BARS:]
    baseline = volumes[-VOLUME_BASELINE_BARS:]
    avg_recent = sum(recent) / len(recent)
    avg_long = sum(baseline) / len(baseline)
    if avg_long <= 0:
        return 0.5
    return _clamp((avg_recent / avg_long) / 2)


def score_valuation(pe_ratio: float | None) -> float:
    if pe_ratio is None:
        return 0.5
    if pe_ratio <= 0:
        return 0.2
    if 5 <= pe_ratio <= 20:
        return 1.0
    if pe_ratio < 5:
        return 0.6
    if pe_ratio <= 30:
        return 0.7
    if pe_ratio <= 50:
        return 0.4
    return 0.1


def score_market_cap(market_cap: float | None) -> float:
    if market_cap is None or market_cap <= 0:
        return 0.3
    return _clamp((math.log10(market_cap) - 8) / 4)


def score_recent_momentum(change_percent: float) -> float:
    return _clamp((change_percent + 2) / 6)


def composite_score(bd: ScoreBreakdown) -> float:
    return (
        bd.recovery_potential  * WEIGHTS["recovery_potential"] +
        bd.momentum            * WEIGHTS["momentum"] +
        bd.volume_confirmation * WEIGHTS["volume_confirmation"] +
        bd.valuation           * WEIGHTS["valuation"] +
        bd.market_cap          * WEIGHTS["market_cap"] +
        bd.recent_momentum     * WEIGHTS["recent_momentum"]
    )


def preliminary_score(
    recovery_potential: float,
    momentum: float,
    volume_confirmation: float,
    recent_momentum: float,
) -> float:
    return (
        recovery_potential  * PRELIM_WEIGHTS["recovery_potential"] +
        momentum            * PRELIM_WEIGHTS["momentum"] +
        volume_confirmation * PRELIM_WEIGHTS["volume_confirmation"] +
        recent_momentum     * PRELIM_WEIGHTS["recent_momentum"]
    )


# ── Reasoning ────────────────────────────────────────────────────────────────

def generate_reasoning(
    bd: ScoreBreakdown,
    drawdown_percent: float,
    pe_ratio: float | None,
) -> str:
    """One sentence built from the factor levels; same inputs, same text."""
    t = REASONING_THRESHOLDS
    parts: list[str] = []

    if bd.recovery_potential >= t["recovery_potential"]:
        parts.append(f"{drawdown_percent:.0f}% below 52-week high")
    if bd.momentum >= t["momentum_trend"]:
        parts.append("bullish SMA trend")
    elif bd.momentum >= t["momentum_above_sma"]:
        parts.append("price above SMA20")
    if bd.volume_confirmation >= t["volume_confirmation"]:
        parts.append("strong volume accumulation")
    if bd.valuation >= t["valuation"] and pe_ratio is not None:
        parts.append(f"attractive P/E of {pe_ratio:.1f}")
    if bd.market_cap >= t["market_cap"]:
        parts.append("large-cap stability")
    if bd.recent_momentum >= t["recent_momentum"]:
        parts.append("positive recent momentum")

    if not parts:
        return FALLBACK_REASONING
    text = ", ".join(parts)
    return text[0].upper() + text[1:]


# ── Two-phase scoring ────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class PrelimScore:
    """Phase one: the cheap factors for a filtered candidate."""
    candidate: Candidate
    sma5: float | None
    sma20: float | None
    crossover: Crossover
    recovery_potential: float
    momentum: float
    volume_confirmation: float
    recent_momentum: float
    score: float


def score_preliminary(candidate: Candidate) -> PrelimScore:
    closes = candidate.series.closes
    sma5_arr = compute_sma(closes, SMA_FAST)
    sma20_arr = compute_sma(closes, SMA_SLOW)
    sma5, sma20 = latest(sma5_arr), latest(sma20_arr)

    recovery = score_recovery_potential(candidate.drawdown_percent)
    momentum = score_momentum(candidate.price, sma5, sma20)
    volume = score_volume(candidate.series.volumes)
    recent = score_recent_momentum(candidate.change_percent)

    return PrelimScore(
        candidate=candidate,
        sma5=sma5,
        sma20=sma20,
        crossover=detect_crossover(sma5_arr, sma20_arr),
        recovery_potential=recovery,
        momentum=momentum,
        volume_confirmation=volume,
        recent_momentum=recent,
        score=preliminary_score(recovery, momentum, volume, recent),
    )


def select_for_enrichment(prelims: list[PrelimScore], pool_size: int) -> list[PrelimScore]:
    """Highest preliminary scores first; ties keep input order."""
    return sorted(prelims, key=lambda p: p.score, reverse=True)[:pool_size]


def score_final(prelim: PrelimScore, fundamentals: Fundamentals | None) -> RankedPick:
    """
    Phase two: all six factors. Missing fundamentals score neutral/default
    (P/E unknown → 0.5, market cap unknown → 0.3). Rank is left at 0.
    """
    c = prelim.candidate
    f = fundamentals or Fundamentals()
    pe_ratio = f.pe_ratio

    breakdown = ScoreBreakdown(
        recovery_potential=prelim.recovery_potential,
        momentum=prelim.momentum,
        volume_confirmation=prelim.volume_confirmation,
        valuation=score_valuation(pe_ratio),
        market_cap=score_market_cap(f.market_cap),
        recent_momentum=prelim.recent_momentum,
    )

    return RankedPick(
        rank=0,
        symbol=c.symbol,
        name=c.name,
        price=c.price,
        previous_close=c.previous_close,
        change_percent=c.change_percent,
        change_amount=c.change_amount,
        high_52_week=c.high_52_week,
        drawdown_percent=c.drawdown_percent,
        market_cap=f.market_cap or 0.0,
        pe_ratio=pe_ratio,
        dividend_yield=f.dividend_yield,
        sector=f.sector or UNKNOWN,
        industry=f.industry or UNKNOWN,
        composite_score=composite_score(breakdown),
        score_breakdown=breakdown,
        reasoning=generate_reasoning(breakdown, c.drawdown_percent, pe_ratio),
        crossover=prelim.crossover,
    )


def round_for_display(pick: RankedPick) -> RankedPick:
    """Composite to 1 decimal, percentages and amounts to 2."""
    return replace(
        pick,
        composite_score=round(pick.composite_score, 1),
        change_percent=round(pick.change_percent, 2),
        change_amount=round(pick.change_amount, 2),
        drawdown_percent=round(pick.drawdown_percent, 2),
    )


def rank_picks(picks: list[RankedPick], count: int) -> list[RankedPick]:
    """
    Sort by full-precision composite (descending, stable), keep `count`,
    assign dense 1-based ranks, then round for display.
    """
    ordered = sorted(picks, key=lambda p: p.composite_score, reverse=True)[:count]
    return [round_for_display(replace(p, rank=i + 1)) for i, p in enumerate(ordered)]
