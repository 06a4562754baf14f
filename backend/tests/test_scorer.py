import numpy as np
import pytest

from conftest import make_series
from scanner.filters import Candidate
from scanner.models import Fundamentals, RankedPick, ScoreBreakdown, UNKNOWN
from scanner.scorer import (
    FALLBACK_REASONING,
    composite_score,
    generate_reasoning,
    rank_picks,
    score_final,
    score_market_cap,
    score_momentum,
    score_preliminary,
    score_recent_momentum,
    score_recovery_potential,
    score_valuation,
    score_volume,
    select_for_enrichment,
)
from signals.series import BULLISH


def make_candidate(symbol, closes, price=None, previous_close=None, high=None):
    series = make_series(symbol, closes)
    price = closes[-1] if price is None else price
    previous_close = closes[-2] if previous_close is None else previous_close
    high = max(closes) if high is None else high
    return Candidate(
        symbol=symbol,
        name=f"{symbol} Corp",
        price=price,
        previous_close=previous_close,
        change_amount=price - previous_close,
        change_percent=(price - previous_close) / previous_close * 100,
        high_52_week=high,
        drawdown_percent=(high - price) / high * 100,
        series=series,
    )


def make_pick(symbol, score):
    bd = ScoreBreakdown(0.5, 0.5, 0.5, 0.5, 0.5, 0.5)
    return RankedPick(
        rank=0, symbol=symbol, name=symbol, price=50.0, previous_close=49.0,
        change_percent=2.040816, change_amount=1.0, high_52_week=80.0,
        drawdown_percent=37.5, market_cap=0.0, pe_ratio=None, dividend_yield=None,
        sector=UNKNOWN, industry=UNKNOWN, composite_score=score,
        score_breakdown=bd, reasoning="",
    )


class TestFactorScores:

    @pytest.mark.parametrize("drawdown, expected", [
        (0, 0.0), (25, 0.5), (50, 1.0), (1000, 1.0), (-10, 0.0),
    ])
    def test_recovery_potential(self, drawdown, expected):
        assert score_recovery_potential(drawdown) == pytest.approx(expected)

    def test_momentum(self):
        assert score_momentum(10, 9, 8) == 1.0
        assert score_momentum(7, 9, 8) == 0.5
        assert score_momentum(10, 7, 8) == 0.5
        assert score_momentum(7, 7, 8) == 0.0
        assert score_momentum(10, None, 8) == 0.5
        assert score_momentum(10, 9, None) == 0.0

    def test_volume_needs_full_baseline(self):
        assert score_volume([100] * 49) == 0.5
        assert score_volume([0] * 60) == 0.5

    def test_volume_ratio(self):
        assert score_volume([100] * 50) == pytest.approx(0.5)
        # baseline 180, recent 100
        assert score_volume([200] * 40 + [100] * 10) == pytest.approx((100 / 180) / 2)
        assert score_volume([100] * 40 + [1000] * 10) == 1.0

    @pytest.mark.parametrize("pe, expected", [
        (None, 0.5), (-50, 0.2), (0, 0.2), (3, 0.6), (5, 1.0), (12, 1.0),
        (20, 1.0), (25, 0.7), (30, 0.7), (40, 0.4), (50, 0.4), (60, 0.1),
    ])
    def test_valuation_bands(self, pe, expected):
        assert score_valuation(pe) == expected

    @pytest.mark.parametrize("cap, expected", [
        (None, 0.3), (0, 0.3), (-5, 0.3), (1e6, 0.0), (1e8, 0.0),
        (1e10, 0.5), (1e12, 1.0), (1e14, 1.0),
    ])
    def test_market_cap(self, cap, expected):
        assert score_market_cap(cap) == pytest.approx(expected)

    @pytest.mark.parametrize("change, expected", [
        (-50, 0.0), (-2, 0.0), (1, 0.5), (4, 1.0), (50, 1.0),
    ])
    def test_recent_momentum(self, change, expected):
        assert score_recent_momentum(change) == pytest.approx(expected)


class TestComposite:

    def test_bounds(self):
        assert composite_score(ScoreBreakdown(1, 1, 1, 1, 1, 1)) == 100
        assert composite_score(ScoreBreakdown(0, 0, 0, 0, 0, 0)) == 0

    def test_extreme_inputs_stay_in_range(self):
        bd = ScoreBreakdown(
            recovery_potential=score_recovery_potential(1000),
            momentum=score_momentum(1, None, None),
            volume_confirmation=score_volume([1e12] * 10),
            valuation=score_valuation(-50),
            market_cap=score_market_cap(0),
            recent_momentum=score_recent_momentum(-99),
        )
        assert 0 <= composite_score(bd) <= 100


class TestReasoning:

    def test_every_clause(self):
        text = generate_reasoning(ScoreBreakdown(1, 1, 1, 1, 1, 1), 45.2, 15.0)
        assert text == ("45% below 52-week high, bullish SMA trend, strong volume accumulation, "
                        "attractive P/E of 15.0, large-cap stability, positive recent momentum")

    def test_first_letter_capitalized(self):
        assert generate_reasoning(ScoreBreakdown(0, 0.5, 0, 0, 0, 0), 5.0, None) == "Price above SMA20"

    def test_valuation_clause_needs_pe(self):
        text = generate_reasoning(ScoreBreakdown(0, 0, 0, 1.0, 0, 0), 5.0, None)
        assert text == FALLBACK_REASONING

    def test_fallback(self):
        assert generate_reasoning(ScoreBreakdown(0, 0, 0, 0, 0, 0), 2.0, 80.0) == FALLBACK_REASONING

    def test_deterministic(self):
        bd = ScoreBreakdown(0.7, 1.0, 0.2, 1.0, 0.9, 0.1)
        assert generate_reasoning(bd, 35.0, 12.3) == generate_reasoning(bd, 35.0, 12.3)


class TestTwoPhaseScoring:

    def test_rising_series_has_full_momentum(self):
        closes = list(np.linspace(100, 125, 25))
        prelim = score_preliminary(make_candidate("UP", closes, high=150.0))
        assert prelim.sma5 > prelim.sma20
        assert prelim.momentum == 1.0

    def test_crossover_after_dip(self):
        closes = [110.0] * 20 + [100.0, 104.0, 112.0, 120.0, 125.0]
        prelim = score_preliminary(make_candidate("DIP", closes, high=150.0))
        assert prelim.crossover.signal == BULLISH
        assert 0 <= prelim.crossover.periods_ago <= 24

    def test_select_for_enrichment_is_bounded_and_stable(self):
        closes = list(np.linspace(100, 90, 30))
        a = score_preliminary(make_candidate("A", closes))
        b = score_preliminary(make_candidate("B", closes))
        deep = score_preliminary(make_candidate("C", closes, high=200.0))
        pool = select_for_enrichment([a, b, deep], 2)
        assert [p.candidate.symbol for p in pool] == ["C", "A"]

    def test_final_score_without_fundamentals_is_neutral(self):
        prelim = score_preliminary(make_candidate("N", list(np.linspace(100, 80, 30))))
        pick = score_final(prelim, None)
        assert pick.score_breakdown.valuation == 0.5
        assert pick.score_breakdown.market_cap == 0.3
        assert pick.market_cap == 0.0
        assert pick.sector == UNKNOWN and pick.industry == UNKNOWN
        assert pick.pe_ratio is None
        assert 0 <= pick.composite_score <= 100

    def test_final_score_with_fundamentals(self):
        prelim = score_preliminary(make_candidate("F", list(np.linspace(100, 80, 30))))
        pick = score_final(prelim, Fundamentals(market_cap=1e12, pe_ratio=12.0, sector="Tech"))
        assert pick.score_breakdown.valuation == 1.0
        assert pick.score_breakdown.market_cap == pytest.approx(1.0)
        assert pick.sector == "Tech"
        assert pick.industry == UNKNOWN
        # valuation is the first clause emitted here, so it is capitalized
        assert pick.reasoning.startswith("Attractive P/E of 12.0")


class TestRankPicks:

    def test_dense_ranks_in_score_order(self):
        picks = rank_picks([make_pick("A", 50.0), make_pick("B", 72.345), make_pick("C", 61.0)], 10)
        assert [p.symbol for p in picks] == ["B", "C", "A"]
        assert [p.rank for p in picks] == [1, 2, 3]

    def test_truncates_to_count(self):
        picks = rank_picks([make_pick(s, float(i)) for i, s in enumerate("ABCDE")], 2)
        assert [p.symbol for p in picks] == ["E", "D"]
        assert [p.rank for p in picks] == [1, 2]

    def test_ties_keep_input_order(self):
        picks = rank_picks([make_pick("X", 40.0), make_pick("Y", 40.0)], 2)
        assert [p.symbol for p in picks] == ["X", "Y"]

    def test_display_rounding(self):
        pick = rank_picks([make_pick("A", 72.345)], 1)[0]
        assert pick.composite_score == pytest.approx(72.3)
        assert pick.change_percent == 2.04
        assert pick.drawdown_percent == 37.5

    def test_empty(self):
        assert rank_picks([], 10) == []
