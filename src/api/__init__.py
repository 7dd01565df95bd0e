"""
API package for the Electricity Price Store.
Contains FastAPI route handlers.
"""

from .routes import router

__all__ = [
    "router",
]
