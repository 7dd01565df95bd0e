"""
Services package for the Electricity Price Store.
Contains range completion, the upstream price client and the price service.
"""

from .price_service import price_service, PriceService
from .price_source import PriceSourceClient
from .range_completer import complete_range

__all__ = [
    "complete_range",
    "price_service",
    "PriceService",
    "PriceSourceClient",
]
