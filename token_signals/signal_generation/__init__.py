"""
Signal generation: the static pre-LLM filter, its threshold table, the
decision contracts around the LLM stage and the batch pipeline.
"""

from .static_filter import StaticSignalFilter, apply_static_filter
from .thresholds import STATIC_FILTER_TABLE, risk_level_for
from .decisions import (
    AnalysisContext,
    SignalAnalyzer,
    build_fallback_decision,
    build_rejected_decision,
    route_after_llm_analysis,
    route_after_static_filter,
)
from .pipeline import SignalPipeline

__all__ = [
    # Filter
    "StaticSignalFilter",
    "apply_static_filter",
    "STATIC_FILTER_TABLE",
    "risk_level_for",
    # LLM stage contracts
    "AnalysisContext",
    "SignalAnalyzer",
    "build_fallback_decision",
    "build_rejected_decision",
    "route_after_llm_analysis",
    "route_after_static_filter",
    # Orchestration
    "SignalPipeline",
]
