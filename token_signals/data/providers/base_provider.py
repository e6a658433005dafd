"""
Abstract base class for market data providers used by the signal pipeline.
"""
from abc import ABC, abstractmethod
from typing import List, Mapping, Any, Optional, Sequence

from token_signals.agents.data_structures import OHLCVBar


class BaseMarketDataProvider(ABC):
    """
    Abstract base class for all OHLCV data providers.

    This class defines the interface that provider implementations (the
    on-chain market data API, the OHLCV table, test fakes) must adhere to,
    so the pipeline can fetch bars from any source in the same way.
    """

    @abstractmethod
    async def fetch_ohlcv(self, token_address: str, limit: int) -> Optional[List[OHLCVBar]]:
        """
        Fetches the latest bars for a token.

        Args:
            token_address: The token's on-chain address.
            limit: Maximum number of most recent bars to return.

        Returns:
            Bars ordered oldest to newest, or None if nothing is available.

        Raises:
            MarketDataError: If the underlying source fails.
        """
        pass

    @staticmethod
    def bars_from_records(records: Sequence[Mapping[str, Any]]) -> List[OHLCVBar]:
        """
        Converts stored rows to bars in ascending timestamp order.

        Stores usually return the latest rows first; this puts them back in
        the order the indicator engine expects.
        """
        bars = [OHLCVBar.from_record(record) for record in records]
        bars.sort(key=lambda bar: bar.timestamp)
        return bars
