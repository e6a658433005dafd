"""
Decision contracts around the LLM analysis stage.

The LLM itself is an external collaborator reached through `SignalAnalyzer`.
This module holds everything that must keep working without it: the context
handed to the analyzer, routing between stages, the decision used when the
static filter rejects a token, and the technical-only fallback used when the
analyzer fails.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from token_signals.agents.data_structures import (
    FinalSignal,
    IndicatorSnapshot,
    RiskLevel,
    SignalDecision,
    SignalDirection,
    SignalTimeframe,
    StaticFilterResult,
    TokenInfo,
)

LLM_ANALYSIS = "llm_analysis"
FORMAT_SIGNAL = "format_signal"
END = "end"

NO_SIGNAL = "NO_SIGNAL"
TECHNICAL_ALERT = "TECHNICAL_ALERT"
FALLBACK_KEY_FACTORS = 3


@dataclass(frozen=True)
class AnalysisContext:
    """Everything the LLM analysis stage receives for one token."""
    token: TokenInfo
    current_price: float
    snapshot: IndicatorSnapshot
    filter_result: StaticFilterResult
    previous_snapshot: Optional[IndicatorSnapshot] = None

    def to_prompt_variables(self) -> Dict[str, str]:
        """
        Flatten the context into the string variables a prompt template uses.
        Absent indicators render as "N/A".
        """
        def show(value: Optional[float]) -> str:
            return "N/A" if value is None else str(value)

        snapshot = self.snapshot
        result = self.filter_result
        return {
            "tokenSymbol": self.token.symbol,
            "tokenAddress": self.token.address,
            "currentPrice": str(self.current_price),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "rsi": show(snapshot.rsi),
            "vwapDeviation": show(snapshot.vwap_deviation_pct),
            "percentB": show(snapshot.percent_b),
            "adx": show(snapshot.adx),
            "atrPercent": show(snapshot.atr_percent),
            "obvZScore": show(snapshot.obv_zscore),
            "triggeredIndicators": ", ".join(tag.value for tag in result.triggered_indicators),
            "signalCandidates": ", ".join(candidate.value for candidate in result.signal_candidates),
            "confluenceScore": f"{result.confluence_score:.3f}",
            "riskLevel": result.risk_level.value,
        }


class SignalAnalyzer(ABC):
    """
    The LLM analysis stage.

    Implementations raise SignalAnalysisError (or any exception) on failure;
    the pipeline then falls back to the technical-only decision.
    """

    @abstractmethod
    async def analyze(self, context: AnalysisContext) -> SignalDecision:
        """Decide whether the escalated snapshot deserves a signal."""
        pass

    async def format_signal(self, context: AnalysisContext, decision: SignalDecision) -> Optional[FinalSignal]:
        """
        Render the user-facing signal. Returning None (the default) selects
        the plain technical alert.
        """
        return None


def route_after_static_filter(result: Optional[StaticFilterResult]) -> str:
    """Only results that pass both escalation gates reach the LLM stage."""
    if result is None:
        raise ValueError("Static filter result not found")
    return LLM_ANALYSIS if result.should_proceed else END


def route_after_llm_analysis(decision: Optional[SignalDecision]) -> str:
    if decision is None:
        raise ValueError("Signal decision not found")
    return FORMAT_SIGNAL if decision.should_generate_signal else END


def build_rejected_decision() -> SignalDecision:
    """Decision recorded when the static filter does not escalate."""
    return SignalDecision(
        should_generate_signal=False,
        signal_type=NO_SIGNAL,
        direction=SignalDirection.NEUTRAL,
        confidence=0.0,
        reasoning="Insufficient technical confluence for signal generation",
        key_factors=[],
        risk_level=RiskLevel.LOW,
        timeframe=SignalTimeframe.SHORT,
    )


def build_fallback_decision(result: StaticFilterResult) -> SignalDecision:
    """
    Technical-only decision used when the LLM stage fails.

    Built straight from the filter result: its first signal candidate, its
    risk level and its first three triggered indicators.
    """
    signal_type = result.signal_candidates[0].value if result.signal_candidates else TECHNICAL_ALERT
    return SignalDecision(
        should_generate_signal=True,
        signal_type=signal_type,
        direction=SignalDirection.NEUTRAL,
        confidence=min(result.confluence_score, 1.0),
        reasoning="LLM analysis failed, falling back to technical indicators",
        key_factors=[tag.value for tag in result.triggered_indicators[:FALLBACK_KEY_FACTORS]],
        risk_level=result.risk_level,
        timeframe=SignalTimeframe.SHORT,
    )


def build_no_signal() -> FinalSignal:
    return FinalSignal(
        level=1,
        title="No Signal",
        message="No trading signal generated",
        priority=RiskLevel.LOW,
        tags=["no-signal"],
    )


def build_fallback_final_signal(token: TokenInfo, current_price: float, decision: SignalDecision) -> FinalSignal:
    """Plain technical alert, used when no formatted signal is available."""
    message = "\n".join([
        f"Technical Alert: ${token.symbol}",
        "",
        f"Signal: {decision.signal_type}",
        f"Direction: {decision.direction.value}",
        f"Price: ${current_price}",
        f"Confidence: {round(decision.confidence * 100)}%",
        "",
        f"Risk: {decision.risk_level.value}",
        f"Timeframe: {decision.timeframe.value}",
        "",
        decision.reasoning,
    ])
    return FinalSignal(
        level=1,
        title=f"Technical Alert: {token.symbol}",
        message=message,
        priority=RiskLevel.HIGH if decision.risk_level is RiskLevel.HIGH else RiskLevel.MEDIUM,
        tags=[token.symbol.lower(), decision.signal_type.lower()],
    )
