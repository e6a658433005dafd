"""
Core data structures for the token signal engine.

This module defines the value types passed between the indicator engine, the
analysis cache, the static filter and the signal pipeline. Indicator values are
Optional throughout: None means "not enough history" (or degenerate math) and
must never be confused with a legitimate 0.0.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from pydantic import BaseModel, Field

OHLCV_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


class AdxDirection(Enum):
    """Directional bias derived from +DI versus -DI."""
    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"


class RiskLevel(Enum):
    """Coarse risk level attached to a filter result or a signal decision."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class TriggerTag(Enum):
    """Threshold tier crossed by an indicator in the static filter."""
    RSI_CRITICAL_OVERSOLD = "RSI_CRITICAL_OVERSOLD"
    RSI_OVERSOLD = "RSI_OVERSOLD"
    RSI_CRITICAL_OVERBOUGHT = "RSI_CRITICAL_OVERBOUGHT"
    RSI_OVERBOUGHT = "RSI_OVERBOUGHT"
    VWAP_EXTREME_DEVIATION = "VWAP_EXTREME_DEVIATION"
    VWAP_SIGNIFICANT_DEVIATION = "VWAP_SIGNIFICANT_DEVIATION"
    BOLLINGER_BREAKOUT_UP = "BOLLINGER_BREAKOUT_UP"
    BOLLINGER_BREAKOUT_DOWN = "BOLLINGER_BREAKOUT_DOWN"
    BOLLINGER_OVERBOUGHT = "BOLLINGER_OVERBOUGHT"
    BOLLINGER_OVERSOLD = "BOLLINGER_OVERSOLD"
    ADX_OVERHEATED = "ADX_OVERHEATED"
    ADX_STRONG_TREND = "ADX_STRONG_TREND"
    ATR_EXTREME_VOLATILITY = "ATR_EXTREME_VOLATILITY"
    ATR_HIGH_VOLATILITY = "ATR_HIGH_VOLATILITY"
    OBV_EXTREME_DIVERGENCE = "OBV_EXTREME_DIVERGENCE"
    OBV_STRONG_DIVERGENCE = "OBV_STRONG_DIVERGENCE"


class SignalCandidate(Enum):
    """Technical-only signal types a triggered tier can nominate."""
    RSI_OVERSOLD = "RSI_OVERSOLD"
    RSI_OVERBOUGHT = "RSI_OVERBOUGHT"
    VWAP_DEVIATION_HIGH = "VWAP_DEVIATION_HIGH"
    VWAP_DEVIATION_LOW = "VWAP_DEVIATION_LOW"
    BOLLINGER_BREAKOUT_UP = "BOLLINGER_BREAKOUT_UP"
    BOLLINGER_BREAKOUT_DOWN = "BOLLINGER_BREAKOUT_DOWN"
    HIGH_VOLATILITY = "HIGH_VOLATILITY"
    VOLUME_SPIKE = "VOLUME_SPIKE"


class SignalDirection(Enum):
    BUY = "BUY"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"


class SignalTimeframe(Enum):
    SHORT = "SHORT"
    MEDIUM = "MEDIUM"
    LONG = "LONG"


def finite_or_none(value: Any) -> Optional[float]:
    """
    Coerce a numeric value (numpy or builtin) to a finite float.

    NaN, +/-inf, None and unparseable input all map to None.
    """
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class OHLCVBar:
    """
    A single candle. Timestamps are integer seconds, strictly increasing
    within a series ordered oldest to newest.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OHLCVBar":
        """Build a bar from a stored row, where decimals are kept as strings."""
        return cls(
            timestamp=int(record["timestamp"]),
            open=float(record["open"]),
            high=float(record["high"]),
            low=float(record["low"]),
            close=float(record["close"]),
            volume=float(record["volume"]),
        )


def bars_to_frame(bars: Sequence[OHLCVBar]) -> pd.DataFrame:
    """
    Convert bars to an OHLCV DataFrame indexed by timestamp.

    Row order is preserved as given; the caller guarantees ascending time.
    """
    frame = pd.DataFrame(
        {
            "Open": [bar.open for bar in bars],
            "High": [bar.high for bar in bars],
            "Low": [bar.low for bar in bars],
            "Close": [bar.close for bar in bars],
            "Volume": [bar.volume for bar in bars],
        },
        index=pd.Index([bar.timestamp for bar in bars], name="timestamp"),
        dtype=float,
    )
    return frame


# Snapshot attribute -> persisted column name
_RECORD_COLUMNS = {
    "vwap": "vwap",
    "vwap_deviation_pct": "vwap_deviation",
    "obv": "obv",
    "obv_zscore": "obv_zscore",
    "percent_b": "percent_b",
    "bb_width": "bb_width",
    "atr": "atr",
    "atr_percent": "atr_percent",
    "adx": "adx",
    "rsi": "rsi",
}


@dataclass(frozen=True)
class IndicatorSnapshot:
    """
    Indicator values for one token at one evaluation.

    Attributes:
        vwap: Volume-weighted average price over the whole window.
        vwap_deviation_pct: (last close - VWAP) / VWAP * 100.
        obv: Latest on-balance volume.
        obv_zscore: Z-score of the latest OBV against its rolling window.
        percent_b: Position of the close within the Bollinger Bands (unclamped).
        bb_width: (upper - lower) / middle band.
        atr: Wilder average true range.
        atr_percent: ATR / close * 100.
        adx: Wilder average directional index (0-100).
        adx_direction: Directional bias from +DI vs -DI.
        rsi: Wilder relative strength index (0-100).
    """
    vwap: Optional[float] = None
    vwap_deviation_pct: Optional[float] = None
    obv: Optional[float] = None
    obv_zscore: Optional[float] = None
    percent_b: Optional[float] = None
    bb_width: Optional[float] = None
    atr: Optional[float] = None
    atr_percent: Optional[float] = None
    adx: Optional[float] = None
    adx_direction: Optional[AdxDirection] = None
    rsi: Optional[float] = None

    def numeric_values(self) -> Dict[str, Optional[float]]:
        """All numeric fields by attribute name."""
        return {name: getattr(self, name) for name in _RECORD_COLUMNS}

    def to_record(self) -> Dict[str, Optional[str]]:
        """
        Render the snapshot in its persisted row shape: decimal strings, with
        None kept for absent values.
        """
        record: Dict[str, Optional[str]] = {}
        for attribute, column in _RECORD_COLUMNS.items():
            value = getattr(self, attribute)
            record[column] = None if value is None else repr(value)
        record["adx_direction"] = self.adx_direction.value if self.adx_direction else None
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "IndicatorSnapshot":
        """Parse a persisted row. Missing or non-finite columns become None."""
        values: Dict[str, Any] = {
            attribute: finite_or_none(record.get(column))
            for attribute, column in _RECORD_COLUMNS.items()
        }
        direction = record.get("adx_direction")
        # Older rows stored the flat case as NEUTRAL
        if direction == "NEUTRAL":
            direction = AdxDirection.FLAT.value
        values["adx_direction"] = AdxDirection(direction) if direction in AdxDirection.__members__ else None
        return cls(**values)


@dataclass
class CachedEntry:
    """An analysis held by the TechnicalAnalysisCache. Owned by the cache only."""
    token_key: str
    snapshot: IndicatorSnapshot
    price: float
    observed_at_ms: int


@dataclass(frozen=True)
class StaticFilterResult:
    """
    Output of the static pre-LLM filter.

    Tags are kept in evaluation order so results are comparable field for field.
    """
    should_proceed: bool
    triggered_indicators: Tuple[TriggerTag, ...] = ()
    signal_candidates: Tuple[SignalCandidate, ...] = ()
    confluence_score: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shouldProceed": self.should_proceed,
            "triggeredIndicators": [tag.value for tag in self.triggered_indicators],
            "signalCandidates": [candidate.value for candidate in self.signal_candidates],
            "confluenceScore": self.confluence_score,
            "riskLevel": self.risk_level.value,
        }


@dataclass(frozen=True)
class TokenInfo:
    """A token tracked by the batch: its on-chain address and display symbol."""
    address: str
    symbol: str


class SignalDecision(BaseModel):
    """
    Structured decision produced by the LLM analysis stage (or by the
    technical-only fallback when that stage fails).
    """
    should_generate_signal: bool
    signal_type: str
    direction: SignalDirection = SignalDirection.NEUTRAL
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    key_factors: List[str] = Field(default_factory=list, max_length=3)
    risk_level: RiskLevel = RiskLevel.LOW
    timeframe: SignalTimeframe = SignalTimeframe.SHORT


class FinalSignal(BaseModel):
    """User-facing signal ready for broadcast."""
    level: int = Field(ge=1, le=3)
    title: str
    message: str
    priority: RiskLevel
    tags: List[str] = Field(default_factory=list)


@dataclass
class SignalEvaluation:
    """
    Outcome of one evaluation cycle for one token.

    When the token could not be evaluated (no bars, too few bars, provider
    failure) only skipped_reason is set.
    """
    token: TokenInfo
    current_price: Optional[float] = None
    snapshot: Optional[IndicatorSnapshot] = None
    previous_snapshot: Optional[IndicatorSnapshot] = None
    filter_result: Optional[StaticFilterResult] = None
    decision: Optional[SignalDecision] = None
    final_signal: Optional[FinalSignal] = None
    used_fallback: bool = False
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def has_signal(self) -> bool:
        return bool(self.decision and self.decision.should_generate_signal and self.final_signal)
