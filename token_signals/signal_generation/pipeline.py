"""
Signal pipeline for the periodic token batch.

Each cycle, for every tracked token:

1. fetch the latest OHLCV bars (external provider)
2. compute the indicator snapshot
3. read the previous snapshot from the cache and store the current one
4. apply the static filter
5. only when the filter escalates, run the LLM analysis stage, falling back
   to a technical-only decision when it fails
6. build the final user-facing signal

Tokens are evaluated concurrently; evaluations of the same token are
serialized by a per-token lock since the cache itself is not locked.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

from token_signals.agents.data_structures import (
    FinalSignal,
    IndicatorSnapshot,
    SignalDecision,
    SignalEvaluation,
    TokenInfo,
)
from token_signals.config.settings import settings
from token_signals.data.cache import TechnicalAnalysisCache
from token_signals.data.indicators import TechnicalIndicatorEngine
from token_signals.data.providers.base_provider import BaseMarketDataProvider
from token_signals.exceptions import MarketDataError
from token_signals.utils.logging import bound_log_context, get_logger

from .decisions import (
    END,
    FORMAT_SIGNAL,
    AnalysisContext,
    SignalAnalyzer,
    build_fallback_decision,
    build_fallback_final_signal,
    build_no_signal,
    build_rejected_decision,
    route_after_llm_analysis,
    route_after_static_filter,
)
from .static_filter import StaticSignalFilter

logger = get_logger(__name__)


class SignalPipeline:
    """
    Orchestrates indicator computation, the static filter and the LLM stage.

    All collaborators are injected. The cache in particular is owned by the
    pipeline instance, so two pipelines never share analysis state.
    """

    def __init__(
        self,
        cache: Optional[TechnicalAnalysisCache] = None,
        analyzer: Optional[SignalAnalyzer] = None,
        provider: Optional[BaseMarketDataProvider] = None,
        engine: Optional[TechnicalIndicatorEngine] = None,
        signal_filter: Optional[StaticSignalFilter] = None,
        lookback_bars: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        """
        Initialize the signal pipeline.

        Args:
            cache: Analysis cache; a new one is created when omitted.
            analyzer: LLM analysis stage. Without one, every escalated token
                gets the technical-only fallback decision.
            provider: OHLCV source, required by evaluate_token and run_batch.
            engine: Indicator engine (default periods when omitted).
            signal_filter: Static filter (default gates when omitted).
            lookback_bars: Bars fetched per token.
            max_concurrency: Tokens evaluated at the same time in run_batch.
        """
        config = settings.pipeline
        self.cache = cache if cache is not None else TechnicalAnalysisCache()
        self.analyzer = analyzer
        self.provider = provider
        self.engine = engine or TechnicalIndicatorEngine()
        self.signal_filter = signal_filter or StaticSignalFilter()
        self.lookback_bars = lookback_bars if lookback_bars is not None else config.LOOKBACK_BARS
        self.max_concurrency = max_concurrency if max_concurrency is not None else config.MAX_CONCURRENCY

        # Only tokens currently being evaluated (or waited on) hold an entry
        self._token_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

        self.metrics = {
            "tokens_evaluated": 0,
            "tokens_skipped": 0,
            "escalations": 0,
            "fallbacks": 0,
            "signals_generated": 0,
        }

    @asynccontextmanager
    async def _token_lock(self, token_address: str) -> AsyncIterator[None]:
        """Serialize evaluations of one token; the lock is dropped once unused."""
        lock = self._token_locks.get(token_address)
        if lock is None:
            lock = asyncio.Lock()
            self._token_locks[token_address] = lock
        self._lock_users[token_address] = self._lock_users.get(token_address, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[token_address] -= 1
            if self._lock_users[token_address] == 0:
                del self._lock_users[token_address]
                del self._token_locks[token_address]

    async def evaluate_snapshot(
        self,
        token: TokenInfo,
        snapshot: IndicatorSnapshot,
        current_price: float,
        now_ms: Optional[int] = None,
    ) -> SignalEvaluation:
        """
        Run one evaluation for an already computed snapshot.

        Args:
            token: The token being evaluated.
            snapshot: Its indicator snapshot for this cycle.
            current_price: Latest close.
            now_ms: Evaluation time in epoch milliseconds (wall clock if omitted).

        Returns:
            SignalEvaluation with the filter result, decision and final signal.
        """
        async with self._token_lock(token.address):
            with bound_log_context(token_address=token.address, token_symbol=token.symbol):
                return await self._evaluate_locked(token, snapshot, current_price, now_ms)

    async def evaluate_token(self, token: TokenInfo, now_ms: Optional[int] = None) -> SignalEvaluation:
        """
        Fetch bars for a token and evaluate them.

        Missing data, too little history and provider failures produce a
        skipped evaluation instead of an exception.
        """
        if self.provider is None:
            raise ValueError("No market data provider configured for the signal pipeline")

        async with self._token_lock(token.address):
            with bound_log_context(token_address=token.address, token_symbol=token.symbol):
                try:
                    bars = await self.provider.fetch_ohlcv(token.address, self.lookback_bars)
                except MarketDataError as e:
                    logger.error("market_data_fetch_failed", error=str(e))
                    return self._skip(token, "market_data_error")

                if not bars:
                    logger.info("no_market_data")
                    return self._skip(token, "no_data")

                snapshot = self.engine.compute(bars)
                if snapshot is None:
                    logger.info("insufficient_data", data_length=len(bars))
                    return self._skip(token, "insufficient_data")

                return await self._evaluate_locked(token, snapshot, bars[-1].close, now_ms)

    async def run_batch(self, tokens: Iterable[TokenInfo], now_ms: Optional[int] = None) -> List[SignalEvaluation]:
        """
        Evaluate every token of one cycle concurrently.

        A token whose evaluation raises is logged and left out; the others are
        unaffected. Skipped evaluations are returned along with the rest.
        """
        tokens = list(tokens)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(token: TokenInfo) -> SignalEvaluation:
            async with semaphore:
                return await self.evaluate_token(token, now_ms)

        logger.info("signal_batch_started", token_count=len(tokens))
        results = await asyncio.gather(*(run_one(token) for token in tokens), return_exceptions=True)

        evaluations: List[SignalEvaluation] = []
        for token, result in zip(tokens, results):
            if isinstance(result, BaseException):
                logger.error("token_evaluation_failed", token_address=token.address, error=repr(result))
                continue
            evaluations.append(result)

        logger.info(
            "signal_batch_completed",
            token_count=len(tokens),
            evaluated=sum(1 for evaluation in evaluations if not evaluation.skipped),
            signals=sum(1 for evaluation in evaluations if evaluation.has_signal),
            failed=len(tokens) - len(evaluations),
        )
        return evaluations

    def get_metrics(self) -> Dict[str, Any]:
        return {**self.metrics, "cache_size": len(self.cache)}

    def _skip(self, token: TokenInfo, reason: str) -> SignalEvaluation:
        self.metrics["tokens_skipped"] += 1
        return SignalEvaluation(token=token, skipped_reason=reason)

    async def _evaluate_locked(
        self,
        token: TokenInfo,
        snapshot: IndicatorSnapshot,
        current_price: float,
        now_ms: Optional[int],
    ) -> SignalEvaluation:
        previous = self.cache.get_previous(token.address, now_ms)
        self.cache.set_current(token.address, snapshot, current_price, now_ms)

        filter_result = self.signal_filter.apply(token.address, snapshot)
        self.metrics["tokens_evaluated"] += 1

        evaluation = SignalEvaluation(
            token=token,
            current_price=current_price,
            snapshot=snapshot,
            previous_snapshot=previous,
            filter_result=filter_result,
        )

        if route_after_static_filter(filter_result) == END:
            logger.info("static_filter_rejected", confluence_score=filter_result.confluence_score)
            evaluation.decision = build_rejected_decision()
            return evaluation

        self.metrics["escalations"] += 1
        context = AnalysisContext(
            token=token,
            current_price=current_price,
            snapshot=snapshot,
            filter_result=filter_result,
            previous_snapshot=previous,
        )
        evaluation.decision, evaluation.used_fallback = await self._analyze(context)

        if route_after_llm_analysis(evaluation.decision) == FORMAT_SIGNAL:
            evaluation.final_signal = await self._format(context, evaluation.decision)
            self.metrics["signals_generated"] += 1
        else:
            evaluation.final_signal = build_no_signal()

        return evaluation

    async def _analyze(self, context: AnalysisContext) -> Tuple[SignalDecision, bool]:
        """Run the LLM stage; returns (decision, used_fallback)."""
        if self.analyzer is None:
            logger.warning("signal_analyzer_not_configured")
            self.metrics["fallbacks"] += 1
            return build_fallback_decision(context.filter_result), True

        logger.info(
            "llm_signal_analysis_started",
            triggered_indicators=[tag.value for tag in context.filter_result.triggered_indicators],
        )
        try:
            decision = await self.analyzer.analyze(context)
            if not isinstance(decision, SignalDecision):
                decision = SignalDecision.model_validate(decision)
        except Exception as e:
            logger.error("llm_signal_analysis_failed", error=str(e))
            self.metrics["fallbacks"] += 1
            return build_fallback_decision(context.filter_result), True

        logger.info(
            "llm_signal_analysis_completed",
            should_generate_signal=decision.should_generate_signal,
            signal_type=decision.signal_type,
            confidence=decision.confidence,
        )
        return decision, False

    async def _format(self, context: AnalysisContext, decision: SignalDecision) -> FinalSignal:
        if self.analyzer is not None:
            try:
                formatted = await self.analyzer.format_signal(context, decision)
            except Exception as e:
                logger.error("signal_formatting_failed", error=str(e))
                formatted = None
            if formatted is not None:
                return formatted
        return build_fallback_final_signal(context.token, context.current_price, decision)
