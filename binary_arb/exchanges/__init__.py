from .base import FeedError, IVSurfaceSource, MarketSearchSource
from .deribit import DeribitClient, build_iv_snapshot
from .polymarket import PolymarketGammaClient

__all__ = [
    "DeribitClient",
    "FeedError",
    "IVSurfaceSource",
    "MarketSearchSource",
    "PolymarketGammaClient",
    "build_iv_snapshot",
]
