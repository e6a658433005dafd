from .base_provider import BaseMarketDataProvider

__all__ = ["BaseMarketDataProvider"]
