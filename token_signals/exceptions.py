"""
Exception hierarchy for the token signal engine.

Insufficient history and degenerate math are never raised; they surface as
None fields. These exceptions cover the external collaborators only.
"""


class TokenSignalsError(Exception):
    """Base class for all errors raised by this package."""


class MarketDataError(TokenSignalsError):
    """Raised by market data providers when OHLCV bars cannot be fetched."""


class SignalAnalysisError(TokenSignalsError):
    """Raised when the LLM analysis stage fails or returns an unusable decision."""
