"""
Database Module
"""
from .connection import init_database, close_database, get_engine
from .models import Base, SHARD_TABLES, TEXT_SHARD_KEY

__all__ = [
    "init_database",
    "close_database",
    "get_engine",
    "Base",
    "SHARD_TABLES",
    "TEXT_SHARD_KEY",
]
