"""
Threshold table for the static signal filter.

Each indicator owns an ordered tuple of tiers. The filter walks the indicators
in table order and, per indicator, fires only the first tier whose condition
holds. Tags, scores and signal candidates are all read from this table; the
filter itself contains no thresholds.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from token_signals.agents.data_structures import RiskLevel, SignalCandidate, TriggerTag


class Comparison(Enum):
    AT_MOST = "<="
    AT_LEAST = ">="
    ABS_AT_LEAST = "|x|>="


@dataclass(frozen=True)
class ThresholdTier:
    """
    One row of the table.

    A tier nominates either a fixed candidate, or one of a signed pair chosen
    by the sign of the value (positive first), or nothing.
    """
    comparison: Comparison
    threshold: float
    tag: TriggerTag
    score: float
    candidate: Optional[SignalCandidate] = None
    signed_candidates: Optional[Tuple[SignalCandidate, SignalCandidate]] = None

    def matches(self, value: float) -> bool:
        if self.comparison is Comparison.AT_MOST:
            return value <= self.threshold
        if self.comparison is Comparison.AT_LEAST:
            return value >= self.threshold
        return abs(value) >= self.threshold

    def candidate_for(self, value: float) -> Optional[SignalCandidate]:
        if self.signed_candidates is not None:
            positive, negative = self.signed_candidates
            return positive if value > 0 else negative
        return self.candidate


@dataclass(frozen=True)
class IndicatorRule:
    """The tiers of one snapshot field, in priority order."""
    field: str
    tiers: Tuple[ThresholdTier, ...]


_VWAP_SIDES = (SignalCandidate.VWAP_DEVIATION_HIGH, SignalCandidate.VWAP_DEVIATION_LOW)

STATIC_FILTER_TABLE: Tuple[IndicatorRule, ...] = (
    IndicatorRule("rsi", (
        ThresholdTier(Comparison.AT_MOST, 20, TriggerTag.RSI_CRITICAL_OVERSOLD, 0.25, SignalCandidate.RSI_OVERSOLD),
        ThresholdTier(Comparison.AT_MOST, 25, TriggerTag.RSI_OVERSOLD, 0.15, SignalCandidate.RSI_OVERSOLD),
        ThresholdTier(Comparison.AT_LEAST, 80, TriggerTag.RSI_CRITICAL_OVERBOUGHT, 0.25, SignalCandidate.RSI_OVERBOUGHT),
        ThresholdTier(Comparison.AT_LEAST, 75, TriggerTag.RSI_OVERBOUGHT, 0.15, SignalCandidate.RSI_OVERBOUGHT),
    )),
    IndicatorRule("vwap_deviation_pct", (
        ThresholdTier(Comparison.ABS_AT_LEAST, 4.0, TriggerTag.VWAP_EXTREME_DEVIATION, 0.30,
                      signed_candidates=_VWAP_SIDES),
        ThresholdTier(Comparison.ABS_AT_LEAST, 3.0, TriggerTag.VWAP_SIGNIFICANT_DEVIATION, 0.20,
                      signed_candidates=_VWAP_SIDES),
    )),
    IndicatorRule("percent_b", (
        ThresholdTier(Comparison.AT_LEAST, 1.0, TriggerTag.BOLLINGER_BREAKOUT_UP, 0.20,
                      SignalCandidate.BOLLINGER_BREAKOUT_UP),
        ThresholdTier(Comparison.AT_MOST, 0.0, TriggerTag.BOLLINGER_BREAKOUT_DOWN, 0.20,
                      SignalCandidate.BOLLINGER_BREAKOUT_DOWN),
        ThresholdTier(Comparison.AT_LEAST, 0.9, TriggerTag.BOLLINGER_OVERBOUGHT, 0.10),
        ThresholdTier(Comparison.AT_MOST, 0.1, TriggerTag.BOLLINGER_OVERSOLD, 0.10),
    )),
    IndicatorRule("adx", (
        ThresholdTier(Comparison.AT_LEAST, 50, TriggerTag.ADX_OVERHEATED, 0.15),
        ThresholdTier(Comparison.AT_LEAST, 40, TriggerTag.ADX_STRONG_TREND, 0.10),
    )),
    IndicatorRule("atr_percent", (
        ThresholdTier(Comparison.AT_LEAST, 8.0, TriggerTag.ATR_EXTREME_VOLATILITY, 0.10,
                      SignalCandidate.HIGH_VOLATILITY),
        ThresholdTier(Comparison.AT_LEAST, 5.0, TriggerTag.ATR_HIGH_VOLATILITY, 0.05),
    )),
    IndicatorRule("obv_zscore", (
        ThresholdTier(Comparison.ABS_AT_LEAST, 4.0, TriggerTag.OBV_EXTREME_DIVERGENCE, 0.10,
                      SignalCandidate.VOLUME_SPIKE),
        ThresholdTier(Comparison.ABS_AT_LEAST, 3.0, TriggerTag.OBV_STRONG_DIVERGENCE, 0.05),
    )),
)

# Checked in order; the first floor the score reaches wins
RISK_LEVEL_FLOORS: Tuple[Tuple[float, RiskLevel], ...] = (
    (0.5, RiskLevel.HIGH),
    (0.3, RiskLevel.MEDIUM),
)


def risk_level_for(confluence_score: float) -> RiskLevel:
    for floor, level in RISK_LEVEL_FLOORS:
        if confluence_score >= floor:
            return level
    return RiskLevel.LOW
