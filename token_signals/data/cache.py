"""
In-memory cache of the latest technical analysis per token.

The cache keeps the previous snapshot of each token available between
evaluation cycles without a database round trip. It is a continuity aid only:
a cold cache must never stop a token from being evaluated.

Entries expire lazily (checked when read) and the cache is size-bounded by
evicting the entry with the oldest observation time. There is no internal
locking; callers must not write the same token concurrently.
"""
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from token_signals.agents.data_structures import CachedEntry, IndicatorSnapshot
from token_signals.config.settings import settings
from token_signals.utils.logging import get_logger

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheStats:
    """Point-in-time statistics of a TechnicalAnalysisCache."""
    size: int
    max_size: int
    tokens: List[str] = field(default_factory=list)
    oldest_token: Optional[str] = None
    oldest_age_ms: Optional[int] = None


class TechnicalAnalysisCache:
    """
    A size-bounded, expiring store of the most recent analysis per token.

    Unlike a module-level singleton, each pipeline constructs (or is given)
    its own instance.
    """

    def __init__(self, max_size: Optional[int] = None, expiry_ms: Optional[int] = None):
        """
        Initializes the cache.

        Args:
            max_size: Maximum number of tokens held. Defaults to SIGNAL_CACHE_MAX_SIZE.
            expiry_ms: Age after which an entry is treated as absent.
                Defaults to SIGNAL_CACHE_EXPIRY_MS (24 hours).
        """
        self.max_size = max_size if max_size is not None else settings.cache.MAX_SIZE
        self.expiry_ms = expiry_ms if expiry_ms is not None else settings.cache.EXPIRY_MS
        self._entries: Dict[str, CachedEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, token_key: str) -> bool:
        return token_key in self._entries

    def get_previous(self, token_key: str, now_ms: Optional[int] = None) -> Optional[IndicatorSnapshot]:
        """
        Retrieves the previous snapshot for a token if present and not expired.

        An expired entry is removed as a side effect.

        Args:
            token_key: Token address.
            now_ms: Current time in epoch milliseconds (defaults to the wall clock).

        Returns:
            The cached snapshot, or None.
        """
        entry = self._entries.get(token_key)
        if entry is None:
            logger.debug("analysis_cache_miss", token_address=token_key)
            return None

        now_ms = _now_ms() if now_ms is None else now_ms
        age_ms = now_ms - entry.observed_at_ms
        if age_ms > self.expiry_ms:
            del self._entries[token_key]
            logger.info(
                "analysis_cache_expired",
                token_address=token_key,
                cache_age_ms=age_ms,
                expiry_ms=self.expiry_ms,
            )
            return None

        logger.debug("analysis_cache_hit", token_address=token_key, cache_age_ms=age_ms)
        return entry.snapshot

    def get_entry(self, token_key: str) -> Optional[CachedEntry]:
        """Raw entry lookup, ignoring expiry. Intended for inspection."""
        return self._entries.get(token_key)

    def set_current(
        self,
        token_key: str,
        snapshot: IndicatorSnapshot,
        price: float,
        now_ms: Optional[int] = None,
    ) -> None:
        """
        Stores the latest snapshot for a token, replacing any previous one.

        Inserting a new token at capacity first evicts the entry with the
        oldest observation time.
        """
        if token_key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()

        observed_at_ms = _now_ms() if now_ms is None else now_ms
        self._entries[token_key] = CachedEntry(
            token_key=token_key,
            snapshot=snapshot,
            price=price,
            observed_at_ms=observed_at_ms,
        )
        logger.debug(
            "analysis_cached",
            token_address=token_key,
            cache_size=len(self._entries),
            price=price,
        )

    def _oldest(self) -> Optional[CachedEntry]:
        oldest: Optional[CachedEntry] = None
        for entry in self._entries.values():
            if oldest is None or entry.observed_at_ms < oldest.observed_at_ms:
                oldest = entry
        return oldest

    def _evict_oldest(self) -> None:
        oldest = self._oldest()
        if oldest is None:
            return
        del self._entries[oldest.token_key]
        logger.info(
            "analysis_cache_evicted",
            evicted_key=oldest.token_key,
            evicted_at_ms=oldest.observed_at_ms,
            cache_size=len(self._entries),
        )

    def clear_token(self, token_key: str) -> bool:
        """Removes one token's entry. Returns whether anything was removed."""
        removed = self._entries.pop(token_key, None) is not None
        if removed:
            logger.info("analysis_cache_token_cleared", token_address=token_key, cache_size=len(self._entries))
        return removed

    def clear(self) -> None:
        """Clears all entries."""
        previous_size = len(self._entries)
        self._entries.clear()
        logger.info("analysis_cache_cleared", previous_cache_size=previous_size)

    def stats(self, now_ms: Optional[int] = None) -> CacheStats:
        """Size, capacity, cached tokens and the oldest entry's age."""
        oldest = self._oldest()
        if oldest is None:
            return CacheStats(size=0, max_size=self.max_size)

        now_ms = _now_ms() if now_ms is None else now_ms
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            tokens=list(self._entries),
            oldest_token=oldest.token_key,
            oldest_age_ms=now_ms - oldest.observed_at_ms,
        )
