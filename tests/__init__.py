"""
Token Signals Test Suite

Tests are organized by component under unit/:
- agents: Shared data structures
- config: Settings defaults and environment overrides
- data: Indicator engine and analysis cache
- signal_generation: Static filter, decisions and the signal pipeline
"""

__version__ = "1.0.0"
