from slabscan.market.comps import (
    MarketCompAggregator,
    build_market_aggregator,
    fallback_valuation,
)
from slabscan.market.ebay import EbayCompsClient, EbayTokenCache

__all__ = [
    "EbayCompsClient",
    "EbayTokenCache",
    "MarketCompAggregator",
    "build_market_aggregator",
    "fallback_valuation",
]
