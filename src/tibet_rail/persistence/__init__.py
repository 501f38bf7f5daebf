"""
Persistence Layer for TIBET Rail

SQLite snapshots of token stores.
"""

from .database import Database, get_database
from .repository import TokenRepository

__all__ = [
    "Database",
    "get_database",
    "TokenRepository",
]
