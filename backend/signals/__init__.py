"""Series utilities — simple moving averages and crossover detection."""
from .series import BEARISH, BULLISH, Crossover, compute_sma, detect_crossover, latest

__all__ = ["BULLISH", "BEARISH", "Crossover", "compute_sma", "detect_crossover", "latest"]
