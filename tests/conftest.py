"""
Pytest configuration and shared fixtures for the token signal test suite.

This module provides deterministic OHLCV series and the shared helpers used
by the indicator, filter, cache and pipeline tests.
"""

import pytest
import numpy as np
from typing import Callable, List, Optional, Sequence

from token_signals.agents.data_structures import OHLCVBar, TokenInfo

START_TIMESTAMP = 1703000000
BAR_SECONDS = 60


# ==============================
# Pytest Configuration
# ==============================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Tests running several components together"
    )


# ==============================
# Market Data Fixtures
# ==============================

def _make_bars(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    spread: float = 1.0,
) -> List[OHLCVBar]:
    """Bars with the given closes; high/low sit `spread` above/below the close."""
    if volumes is None:
        volumes = [1_000_000.0] * len(closes)
    bars = []
    previous_close = closes[0] if len(closes) else 0.0
    for i, (close, volume) in enumerate(zip(closes, volumes)):
        bars.append(OHLCVBar(
            timestamp=START_TIMESTAMP + i * BAR_SECONDS,
            open=float(previous_close),
            high=float(close) + spread,
            low=float(close) - spread,
            close=float(close),
            volume=float(volume),
        ))
        previous_close = close
    return bars


@pytest.fixture
def make_bars() -> Callable[..., List[OHLCVBar]]:
    """Factory building bars from a list of closes (and optional volumes)."""
    return _make_bars


@pytest.fixture
def sample_bars() -> List[OHLCVBar]:
    """100 one-minute bars of a noisy, slightly rising meme-token price."""
    rng = np.random.default_rng(42)

    closes = 100 + np.cumsum(rng.normal(0.2, 1.5, 100))
    closes = np.maximum(closes, 50)
    highs = closes + rng.uniform(0.1, 3, 100)
    lows = closes - rng.uniform(0.1, 3, 100)
    volumes = rng.uniform(800_000, 2_800_000, 100)

    bars = []
    previous_close = closes[0]
    for i in range(100):
        bars.append(OHLCVBar(
            timestamp=START_TIMESTAMP + i * BAR_SECONDS,
            open=float(previous_close),
            high=float(highs[i]),
            low=float(lows[i]),
            close=float(closes[i]),
            volume=float(volumes[i]),
        ))
        previous_close = closes[i]
    return bars


@pytest.fixture
def random_bars_factory() -> Callable[[int, int], List[OHLCVBar]]:
    """Factory for seeded random-walk series of any length."""
    def factory(seed: int, count: int = 80) -> List[OHLCVBar]:
        rng = np.random.default_rng(seed)
        closes = np.abs(10 + np.cumsum(rng.normal(0, 0.8, count))) + 0.01
        volumes = rng.uniform(0, 5_000_000, count)
        spread = rng.uniform(0.001, 0.5)
        return _make_bars(closes.tolist(), volumes.tolist(), spread=spread)
    return factory


@pytest.fixture
def token() -> TokenInfo:
    return TokenInfo(address="So11111111111111111111111111111111111111112", symbol="BONK")
