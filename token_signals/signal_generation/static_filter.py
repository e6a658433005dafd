"""
Static pre-LLM signal filter.

A zero-cost gate in front of the LLM analysis stage: a snapshot is escalated
only when several indicators cross their threshold tiers at once. The tiers
themselves live in `thresholds.STATIC_FILTER_TABLE`.
"""
import math
from typing import Any, List, Mapping, Optional, Union

from token_signals.agents.data_structures import (
    IndicatorSnapshot,
    SignalCandidate,
    StaticFilterResult,
    TriggerTag,
)
from token_signals.config.settings import settings
from token_signals.utils.logging import get_logger

from .thresholds import STATIC_FILTER_TABLE, risk_level_for

logger = get_logger(__name__)

SnapshotLike = Union[IndicatorSnapshot, Mapping[str, Any]]


class StaticSignalFilter:
    """
    Scores an indicator snapshot against the threshold table.

    The result is a pure function of the snapshot and the two escalation
    gates: a minimum confluence score and a minimum number of triggered
    indicators. Both gates must hold for `should_proceed`.
    """

    def __init__(self, min_confluence_score: Optional[float] = None, confluence_required: Optional[int] = None):
        config = settings.pipeline
        self.min_confluence_score = (
            min_confluence_score if min_confluence_score is not None else config.MIN_CONFLUENCE_SCORE
        )
        self.confluence_required = (
            confluence_required if confluence_required is not None else config.CONFLUENCE_REQUIRED
        )

    def apply(self, token_key: str, snapshot: SnapshotLike) -> StaticFilterResult:
        """
        Apply the filter to one token's snapshot.

        Args:
            token_key: Token address, used for logging only.
            snapshot: An IndicatorSnapshot, or a persisted analysis row
                (decimal strings) which is parsed first.

        Returns:
            StaticFilterResult with tags in table order.
        """
        if not isinstance(snapshot, IndicatorSnapshot):
            snapshot = IndicatorSnapshot.from_record(snapshot)

        triggered: List[TriggerTag] = []
        candidates: List[SignalCandidate] = []
        scores: List[float] = []

        for rule in STATIC_FILTER_TABLE:
            value = getattr(snapshot, rule.field)
            if value is None:
                continue
            for tier in rule.tiers:
                if not tier.matches(value):
                    continue
                triggered.append(tier.tag)
                scores.append(tier.score)
                candidate = tier.candidate_for(value)
                if candidate is not None:
                    candidates.append(candidate)
                break

        # Rounded so that e.g. 0.15 + 0.15 reaches the 0.3 floor
        confluence_score = round(math.fsum(scores), 10)
        risk_level = risk_level_for(confluence_score)
        should_proceed = (
            confluence_score >= self.min_confluence_score
            and len(triggered) >= self.confluence_required
        )

        result = StaticFilterResult(
            should_proceed=should_proceed,
            triggered_indicators=tuple(triggered),
            signal_candidates=tuple(candidates),
            confluence_score=confluence_score,
            risk_level=risk_level,
        )

        logger.info(
            "static_signal_filter_applied",
            token_address=token_key,
            triggered_indicators=[tag.value for tag in triggered],
            signal_candidates=[candidate.value for candidate in candidates],
            confluence_score=f"{confluence_score:.3f}",
            risk_level=risk_level.value,
            should_proceed=should_proceed,
        )
        return result


def apply_static_filter(
    token_key: str, snapshot: SnapshotLike, signal_filter: Optional[StaticSignalFilter] = None
) -> StaticFilterResult:
    """Apply the default filter (or the one given) to a snapshot."""
    return (signal_filter or StaticSignalFilter()).apply(token_key, snapshot)
