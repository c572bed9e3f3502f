"""Database models."""

from db import Base

# Import all models so they register on Base.metadata
from models.store import Store
from models.store_version import StoreVersion

__all__ = [
    "Base",
    "Store",
    "StoreVersion",
]
