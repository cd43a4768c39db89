"""
SQLAlchemy ORM models and shared enums.

Models:
    base: Declarative base plus the BatchState and FieldType enums
    cache_entry: Key-value cache used for the table schema memo

Usage:
    from models.base import Base, BatchState
    from models.cache_entry import CacheEntry
"""

__all__ = [
    "Base",
    "BatchState",
    "FieldType",
    "CacheEntry",
]
