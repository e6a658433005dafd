"""
Token signal engine.

Computes technical indicators for on-chain tokens, scores them with a static
pre-LLM filter and runs the periodic signal pipeline around it.
"""

__version__ = "1.0.0"
