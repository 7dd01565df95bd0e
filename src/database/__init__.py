"""
Database package for the Electricity Price Store.
Contains the asyncpg-backed price store and its range cache.
"""

from .cache import RangeCache
from .service import price_store, PriceStore

__all__ = [
    "price_store",
    "PriceStore",
    "RangeCache",
]
