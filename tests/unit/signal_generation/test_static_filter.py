"""
Unit tests for the static signal filter and its threshold table.
"""
import pytest

from token_signals.agents.data_structures import (
    IndicatorSnapshot,
    RiskLevel,
    SignalCandidate,
    TriggerTag,
)
from token_signals.signal_generation.static_filter import StaticSignalFilter, apply_static_filter
from token_signals.signal_generation.thresholds import STATIC_FILTER_TABLE, Comparison, risk_level_for

TOKEN = "token-address"


def _all_tiers():
    for rule in STATIC_FILTER_TABLE:
        for tier in rule.tiers:
            yield rule, tier


class TestThresholdTable:
    """The table itself."""

    def test_indicator_order(self):
        assert [rule.field for rule in STATIC_FILTER_TABLE] == [
            "rsi", "vwap_deviation_pct", "percent_b", "adx", "atr_percent", "obv_zscore",
        ]

    def test_every_tag_appears_once(self):
        tags = [tier.tag for _, tier in _all_tiers()]

        assert len(tags) == len(set(tags)) == len(TriggerTag)

    def test_tag_strings(self):
        assert TriggerTag.RSI_OVERSOLD.value == "RSI_OVERSOLD"
        assert SignalCandidate.VWAP_DEVIATION_HIGH.value == "VWAP_DEVIATION_HIGH"

    @pytest.mark.parametrize("score,expected", [
        (0.0, RiskLevel.LOW),
        (0.29, RiskLevel.LOW),
        (0.3, RiskLevel.MEDIUM),
        (0.49, RiskLevel.MEDIUM),
        (0.5, RiskLevel.HIGH),
        (1.1, RiskLevel.HIGH),
    ])
    def test_risk_level_floors(self, score, expected):
        assert risk_level_for(score) is expected


class TestStaticSignalFilter:
    """Scoring behaviour."""

    def test_rsi_and_bollinger_breakout_escalate(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(rsi=15.0, percent_b=1.05))

        assert result.triggered_indicators == (
            TriggerTag.RSI_CRITICAL_OVERSOLD, TriggerTag.BOLLINGER_BREAKOUT_UP,
        )
        assert result.signal_candidates == (
            SignalCandidate.RSI_OVERSOLD, SignalCandidate.BOLLINGER_BREAKOUT_UP,
        )
        assert result.confluence_score == pytest.approx(0.45)
        assert result.risk_level is RiskLevel.MEDIUM
        assert result.should_proceed is True

    def test_rsi_below_overbought_tier_does_nothing(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(rsi=72.0))

        assert result.triggered_indicators == ()
        assert result.confluence_score == 0.0
        assert result.should_proceed is False

    def test_single_overbought_rsi_does_not_escalate(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(rsi=76.0))

        assert result.triggered_indicators == (TriggerTag.RSI_OVERBOUGHT,)
        assert result.confluence_score == pytest.approx(0.15)
        assert result.risk_level is RiskLevel.LOW
        assert result.should_proceed is False

    @pytest.mark.parametrize("rule,tier", [
        pytest.param(rule, tier, id=tier.tag.value) for rule, tier in _all_tiers()
    ])
    def test_no_single_tier_escalates_alone(self, rule, tier):
        snapshot = IndicatorSnapshot(**{rule.field: float(tier.threshold)})
        result = apply_static_filter(TOKEN, snapshot)

        assert result.triggered_indicators == (tier.tag,)
        assert result.confluence_score == pytest.approx(tier.score)
        assert result.should_proceed is False

    def test_count_gate_blocks_high_scoring_single_trigger(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(vwap_deviation_pct=6.0))

        assert result.confluence_score >= 0.2
        assert len(result.triggered_indicators) == 1
        assert result.should_proceed is False

    def test_score_gate_blocks_two_weak_triggers(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(atr_percent=6.0, obv_zscore=-3.5))

        assert result.triggered_indicators == (
            TriggerTag.ATR_HIGH_VOLATILITY, TriggerTag.OBV_STRONG_DIVERGENCE,
        )
        assert result.confluence_score == pytest.approx(0.1)
        assert result.should_proceed is False

    def test_two_triggers_exactly_at_score_floor_escalate(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(atr_percent=8.0, adx=45.0))

        assert result.confluence_score == 0.2
        assert result.should_proceed is True

    def test_tiers_are_exclusive_per_indicator(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(rsi=5.0, adx=90.0, obv_zscore=10.0))

        assert result.triggered_indicators == (
            TriggerTag.RSI_CRITICAL_OVERSOLD, TriggerTag.ADX_OVERHEATED, TriggerTag.OBV_EXTREME_DIVERGENCE,
        )

    @pytest.mark.parametrize("deviation,tag,candidate", [
        (4.5, TriggerTag.VWAP_EXTREME_DEVIATION, SignalCandidate.VWAP_DEVIATION_HIGH),
        (-4.0, TriggerTag.VWAP_EXTREME_DEVIATION, SignalCandidate.VWAP_DEVIATION_LOW),
        (3.2, TriggerTag.VWAP_SIGNIFICANT_DEVIATION, SignalCandidate.VWAP_DEVIATION_HIGH),
        (-3.0, TriggerTag.VWAP_SIGNIFICANT_DEVIATION, SignalCandidate.VWAP_DEVIATION_LOW),
    ])
    def test_vwap_candidate_follows_sign(self, deviation, tag, candidate):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(vwap_deviation_pct=deviation))

        assert result.triggered_indicators == (tag,)
        assert result.signal_candidates == (candidate,)

    @pytest.mark.parametrize("percent_b,tag", [
        (1.0, TriggerTag.BOLLINGER_BREAKOUT_UP),
        (2.5, TriggerTag.BOLLINGER_BREAKOUT_UP),
        (0.0, TriggerTag.BOLLINGER_BREAKOUT_DOWN),
        (-0.4, TriggerTag.BOLLINGER_BREAKOUT_DOWN),
        (0.95, TriggerTag.BOLLINGER_OVERBOUGHT),
        (0.05, TriggerTag.BOLLINGER_OVERSOLD),
    ])
    def test_percent_b_tiers(self, percent_b, tag):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(percent_b=percent_b))

        assert result.triggered_indicators == (tag,)

    def test_tiers_without_candidates(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(percent_b=0.92, adx=41.0, atr_percent=5.0))

        assert len(result.triggered_indicators) == 3
        assert result.signal_candidates == ()
        assert result.should_proceed is True

    def test_empty_snapshot(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot())

        assert result.triggered_indicators == ()
        assert result.signal_candidates == ()
        assert result.confluence_score == 0.0
        assert result.risk_level is RiskLevel.LOW
        assert result.should_proceed is False

    def test_zero_is_not_absent(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(percent_b=0.0, rsi=None))

        assert result.triggered_indicators == (TriggerTag.BOLLINGER_BREAKOUT_DOWN,)

    def test_neutral_values(self):
        snapshot = IndicatorSnapshot(
            rsi=50.0, vwap_deviation_pct=1.0, percent_b=0.5, adx=20.0, atr_percent=2.0, obv_zscore=0.5,
        )

        assert apply_static_filter(TOKEN, snapshot).triggered_indicators == ()

    def test_everything_extreme(self):
        snapshot = IndicatorSnapshot(
            rsi=90.0, vwap_deviation_pct=-8.0, percent_b=1.4, adx=60.0, atr_percent=12.0, obv_zscore=5.0,
        )
        result = apply_static_filter(TOKEN, snapshot)

        assert result.triggered_indicators == (
            TriggerTag.RSI_CRITICAL_OVERBOUGHT,
            TriggerTag.VWAP_EXTREME_DEVIATION,
            TriggerTag.BOLLINGER_BREAKOUT_UP,
            TriggerTag.ADX_OVERHEATED,
            TriggerTag.ATR_EXTREME_VOLATILITY,
            TriggerTag.OBV_EXTREME_DIVERGENCE,
        )
        assert result.signal_candidates == (
            SignalCandidate.RSI_OVERBOUGHT,
            SignalCandidate.VWAP_DEVIATION_LOW,
            SignalCandidate.BOLLINGER_BREAKOUT_UP,
            SignalCandidate.HIGH_VOLATILITY,
            SignalCandidate.VOLUME_SPIKE,
        )
        assert result.confluence_score == pytest.approx(1.1)
        assert result.risk_level is RiskLevel.HIGH
        assert result.should_proceed is True

    def test_risk_boundaries_after_summing(self):
        medium = apply_static_filter(TOKEN, IndicatorSnapshot(vwap_deviation_pct=3.5, percent_b=0.95))
        high = apply_static_filter(TOKEN, IndicatorSnapshot(vwap_deviation_pct=4.0, percent_b=1.2))

        assert medium.confluence_score == 0.3
        assert medium.risk_level is RiskLevel.MEDIUM
        assert high.confluence_score == 0.5
        assert high.risk_level is RiskLevel.HIGH

    def test_deterministic(self):
        snapshot = IndicatorSnapshot(rsi=18.0, vwap_deviation_pct=-3.3, obv_zscore=3.1, atr_percent=9.0)

        first = apply_static_filter(TOKEN, snapshot)
        second = apply_static_filter(TOKEN, snapshot)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_accepts_persisted_record(self):
        record = {"rsi": "15", "percent_b": "1.05", "adx": None, "vwap_deviation": "NaN"}

        from_record = apply_static_filter(TOKEN, record)
        from_snapshot = apply_static_filter(TOKEN, IndicatorSnapshot(rsi=15.0, percent_b=1.05))

        assert from_record == from_snapshot

    def test_to_dict_uses_contract_strings(self):
        result = apply_static_filter(TOKEN, IndicatorSnapshot(rsi=15.0, percent_b=1.05))

        assert result.to_dict() == {
            "shouldProceed": True,
            "triggeredIndicators": ["RSI_CRITICAL_OVERSOLD", "BOLLINGER_BREAKOUT_UP"],
            "signalCandidates": ["RSI_OVERSOLD", "BOLLINGER_BREAKOUT_UP"],
            "confluenceScore": 0.45,
            "riskLevel": "MEDIUM",
        }

    def test_custom_gates(self):
        relaxed = StaticSignalFilter(confluence_required=1)
        strict = StaticSignalFilter(min_confluence_score=0.5)
        snapshot = IndicatorSnapshot(vwap_deviation_pct=5.0)

        assert relaxed.apply(TOKEN, snapshot).should_proceed is True
        assert strict.apply(TOKEN, IndicatorSnapshot(rsi=15.0, percent_b=1.05)).should_proceed is False

    def test_abs_comparison(self):
        tier = next(tier for _, tier in _all_tiers() if tier.tag is TriggerTag.OBV_STRONG_DIVERGENCE)

        assert tier.comparison is Comparison.ABS_AT_LEAST
        assert tier.matches(-3.0) and tier.matches(3.0)
        assert not tier.matches(2.99)
