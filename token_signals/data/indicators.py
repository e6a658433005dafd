"""
Indicator engine: turns an ordered OHLCV series into an IndicatorSnapshot.

Six practical indicators are computed for the static signal filter:

- VWAP and the close's deviation from it
- OBV and the z-score of the latest OBV against its rolling window
- Bollinger %B and band width
- ATR and ATR% of price
- ADX with a +DI/-DI directional bias
- RSI

The whole snapshot is withheld (None) below the minimum history. Above it,
each indicator still degrades to None on its own when its window is unmet or
its math is degenerate, so callers always receive either finite floats or None.

Input is assumed well formed: ascending timestamps, non-negative volume.
Nothing here validates or reorders bars.
"""
from typing import Callable, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np
import pandas as pd

from token_signals.agents.data_structures import (
    AdxDirection,
    IndicatorSnapshot,
    OHLCVBar,
    bars_to_frame,
    finite_or_none,
)
from token_signals.config.settings import settings
from token_signals.utils.logging import get_logger

logger = get_logger(__name__)

OHLCVSeries = Union[Sequence[OHLCVBar], pd.DataFrame]
T = TypeVar("T")

# Tolerance, relative to the window mean, under which a deviation counts as zero
_ZERO_STD_TOLERANCE = 1e-12


def _as_frame(series: OHLCVSeries) -> pd.DataFrame:
    if isinstance(series, pd.DataFrame):
        return series
    return bars_to_frame(series)


def _wilder_average(values: np.ndarray, period: int) -> np.ndarray:
    """
    Wilder's running average: seeded with the simple mean of the first
    `period` values, then avg = (avg * (period - 1) + value) / period.

    Returns one value per input from index period - 1 onwards.
    """
    averages = np.empty(len(values) - period + 1)
    average = values[:period].mean()
    averages[0] = average
    for i, value in enumerate(values[period:], start=1):
        average = (average * (period - 1) + value) / period
        averages[i] = average
    return averages


def _wilder_sum(values: np.ndarray, period: int) -> np.ndarray:
    """
    Wilder's running sum, used for directional movement: seeded with the sum
    of the first `period` values, then total = total - total / period + value.
    """
    totals = np.empty(len(values) - period + 1)
    total = values[:period].sum()
    totals[0] = total
    for i, value in enumerate(values[period:], start=1):
        total = total - total / period + value
        totals[i] = total
    return totals


def _true_range(frame: pd.DataFrame) -> np.ndarray:
    """True range from the second bar on (the first bar has no prior close)."""
    high = frame["High"].to_numpy(dtype=float)
    low = frame["Low"].to_numpy(dtype=float)
    close = frame["Close"].to_numpy(dtype=float)
    previous_close = close[:-1]
    return np.maximum.reduce([
        high[1:] - low[1:],
        np.abs(high[1:] - previous_close),
        np.abs(low[1:] - previous_close),
    ])


def calculate_vwap(series: OHLCVSeries) -> Optional[float]:
    """
    Cumulative VWAP over the whole window, using the typical price (H+L+C)/3.

    A single bar yields its own typical price. Zero total volume yields None.
    """
    frame = _as_frame(series)
    if frame.empty:
        return None

    typical = (frame["High"] + frame["Low"] + frame["Close"]) / 3
    if len(frame) == 1:
        return finite_or_none(typical.iloc[0])

    total_volume = frame["Volume"].sum()
    if total_volume == 0:
        return None
    return finite_or_none((typical * frame["Volume"]).sum() / total_volume)


def calculate_vwap_deviation(current_price: float, vwap: Optional[float]) -> Optional[float]:
    """Deviation of the current price from VWAP, in percent."""
    if vwap is None or vwap == 0:
        return None
    return finite_or_none((current_price - vwap) / vwap * 100)


def calculate_obv_history(series: OHLCVSeries) -> pd.Series:
    """
    On-balance volume for every bar after the first.

    OBV starts from zero and adds the bar's volume on an up close, subtracts
    it on a down close and carries over on a tie.
    """
    frame = _as_frame(series)
    if len(frame) < 2:
        return pd.Series(dtype=float)

    direction = np.sign(frame["Close"].diff()).iloc[1:]
    return (direction * frame["Volume"].iloc[1:]).cumsum()


def calculate_obv(series: OHLCVSeries) -> Optional[float]:
    """Latest OBV, or None when the series has no prior close to compare."""
    history = calculate_obv_history(series)
    if history.empty:
        return None
    return finite_or_none(history.iloc[-1])


def calculate_obv_zscore(obv_history: pd.Series, period: int) -> Optional[float]:
    """
    Z-score of the latest OBV against the last `period` OBV values
    (population standard deviation). A flat window scores 0.0.
    """
    if len(obv_history) < period:
        return None

    window = obv_history.iloc[-period:].to_numpy(dtype=float)
    mean = window.mean()
    std = window.std()
    if std <= _ZERO_STD_TOLERANCE * abs(mean):
        return 0.0
    return finite_or_none((window[-1] - mean) / std)


def calculate_percent_b(
    series: OHLCVSeries, period: int, std_dev: float
) -> Tuple[Optional[float], Optional[float]]:
    """
    Bollinger %B and band width for the latest close.

    %B = (close - lower) / (upper - lower). It is not clamped: values above 1
    or below 0 mark a close outside the bands.

    Returns:
        (percent_b, bb_width). percent_b is None when the bands collapse to a
        single price; bb_width is None when the middle band is zero.
    """
    closes = _as_frame(series)["Close"]
    if len(closes) < period:
        return None, None

    window = closes.iloc[-period:]
    middle = window.mean()
    deviation = window.std(ddof=0)
    upper = middle + std_dev * deviation
    lower = middle - std_dev * deviation
    band = upper - lower

    collapsed = band <= _ZERO_STD_TOLERANCE * abs(middle)
    percent_b = None if collapsed else finite_or_none((closes.iloc[-1] - lower) / band)
    bb_width = None if middle == 0 else finite_or_none(band / middle)
    return percent_b, bb_width


def calculate_atr(series: OHLCVSeries, period: int) -> Optional[float]:
    """Wilder ATR; needs period + 1 bars."""
    frame = _as_frame(series)
    if len(frame) < period + 1:
        return None
    return finite_or_none(_wilder_average(_true_range(frame), period)[-1])


def calculate_atr_percent(atr: Optional[float], current_price: float) -> Optional[float]:
    if atr is None or current_price == 0:
        return None
    return finite_or_none(atr / current_price * 100)


def calculate_adx(
    series: OHLCVSeries, period: int
) -> Tuple[Optional[float], Optional[AdxDirection]]:
    """
    Wilder ADX with the directional bias of the latest +DI versus -DI.

    Needs 2 * period bars: period smoothed bars to get the first DX, then
    period DX values to seed the ADX average.
    """
    frame = _as_frame(series)
    if len(frame) < 2 * period:
        return None, None

    high = frame["High"].to_numpy(dtype=float)
    low = frame["Low"].to_numpy(dtype=float)
    up_move = high[1:] - high[:-1]
    down_move = low[:-1] - low[1:]
    plus_dm = np.where((up_move > down_move) & (up_move > 0), up_move, 0.0)
    minus_dm = np.where((down_move > up_move) & (down_move > 0), down_move, 0.0)

    smoothed_tr = _wilder_sum(_true_range(frame), period)
    smoothed_plus = _wilder_sum(plus_dm, period)
    smoothed_minus = _wilder_sum(minus_dm, period)

    with np.errstate(divide="ignore", invalid="ignore"):
        plus_di = np.where(smoothed_tr > 0, 100 * smoothed_plus / smoothed_tr, 0.0)
        minus_di = np.where(smoothed_tr > 0, 100 * smoothed_minus / smoothed_tr, 0.0)
        di_sum = plus_di + minus_di
        dx = np.where(di_sum > 0, 100 * np.abs(plus_di - minus_di) / di_sum, 0.0)

    adx = finite_or_none(_wilder_average(dx, period)[-1])

    if plus_di[-1] > minus_di[-1]:
        direction = AdxDirection.UP
    elif plus_di[-1] < minus_di[-1]:
        direction = AdxDirection.DOWN
    else:
        direction = AdxDirection.FLAT
    return adx, direction


def calculate_rsi(series: OHLCVSeries, period: int) -> Optional[float]:
    """
    Wilder RSI; needs period + 1 bars.

    With no average loss RSI is 100, or 50 when price did not move at all.
    """
    closes = _as_frame(series)["Close"].to_numpy(dtype=float)
    if len(closes) < period + 1:
        return None

    changes = np.diff(closes)
    average_gain = _wilder_average(np.clip(changes, 0, None), period)[-1]
    average_loss = _wilder_average(np.clip(-changes, 0, None), period)[-1]

    if average_loss == 0:
        return 100.0 if average_gain > 0 else 50.0
    relative_strength = average_gain / average_loss
    return finite_or_none(100 - 100 / (1 + relative_strength))


class TechnicalIndicatorEngine:
    """
    Computes IndicatorSnapshots with a fixed set of periods.

    Periods default to the INDICATOR_* settings.
    """

    def __init__(
        self,
        minimum_data_points: Optional[int] = None,
        obv_zscore_period: Optional[int] = None,
        bollinger_period: Optional[int] = None,
        bollinger_std_dev: Optional[float] = None,
        atr_period: Optional[int] = None,
        adx_period: Optional[int] = None,
        rsi_period: Optional[int] = None,
    ):
        config = settings.indicators
        self.minimum_data_points = minimum_data_points if minimum_data_points is not None else config.MINIMUM_DATA_POINTS
        self.obv_zscore_period = obv_zscore_period if obv_zscore_period is not None else config.OBV_ZSCORE_PERIOD
        self.bollinger_period = bollinger_period if bollinger_period is not None else config.BOLLINGER_PERIOD
        self.bollinger_std_dev = bollinger_std_dev if bollinger_std_dev is not None else config.BOLLINGER_STD_DEV
        self.atr_period = atr_period if atr_period is not None else config.ATR_PERIOD
        self.adx_period = adx_period if adx_period is not None else config.ADX_PERIOD
        self.rsi_period = rsi_period if rsi_period is not None else config.RSI_PERIOD

    def _guarded(self, name: str, calculation: Callable[[], T], default: T) -> T:
        """Run one indicator; arithmetic failures degrade it to `default`."""
        try:
            return calculation()
        except (ArithmeticError, ValueError) as e:
            logger.error("indicator_calculation_failed", indicator=name, error=str(e))
            return default

    def compute(self, series: OHLCVSeries) -> Optional[IndicatorSnapshot]:
        """
        Compute all indicators for the latest bar of `series`.

        Returns:
            The snapshot, or None when the series is shorter than the minimum
            number of data points.
        """
        frame = _as_frame(series)
        if len(frame) < self.minimum_data_points:
            logger.warning(
                "insufficient_data_points",
                data_points=len(frame),
                minimum=self.minimum_data_points,
            )
            return None

        current_price = float(frame["Close"].iloc[-1])

        vwap = self._guarded("VWAP", lambda: calculate_vwap(frame), None)
        vwap_deviation = calculate_vwap_deviation(current_price, vwap)

        obv_history = self._guarded("OBV", lambda: calculate_obv_history(frame), pd.Series(dtype=float))
        obv = finite_or_none(obv_history.iloc[-1]) if not obv_history.empty else None
        obv_zscore = self._guarded(
            "OBV_ZSCORE", lambda: calculate_obv_zscore(obv_history, self.obv_zscore_period), None
        )

        percent_b, bb_width = self._guarded(
            "BBANDS",
            lambda: calculate_percent_b(frame, self.bollinger_period, self.bollinger_std_dev),
            (None, None),
        )

        atr = self._guarded("ATR", lambda: calculate_atr(frame, self.atr_period), None)
        atr_percent = calculate_atr_percent(atr, current_price)

        adx, adx_direction = self._guarded("ADX", lambda: calculate_adx(frame, self.adx_period), (None, None))

        rsi = self._guarded("RSI", lambda: calculate_rsi(frame, self.rsi_period), None)

        snapshot = IndicatorSnapshot(
            vwap=vwap,
            vwap_deviation_pct=vwap_deviation,
            obv=obv,
            obv_zscore=obv_zscore,
            percent_b=percent_b,
            bb_width=bb_width,
            atr=atr,
            atr_percent=atr_percent,
            adx=adx,
            adx_direction=adx_direction,
            rsi=rsi,
        )
        logger.debug("indicators_computed", price=current_price, **snapshot.to_record())
        return snapshot


def compute_indicators(
    series: OHLCVSeries, engine: Optional[TechnicalIndicatorEngine] = None
) -> Optional[IndicatorSnapshot]:
    """Compute a snapshot with the default engine (or the one given)."""
    return (engine or TechnicalIndicatorEngine()).compute(series)
