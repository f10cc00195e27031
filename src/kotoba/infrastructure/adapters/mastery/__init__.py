# Infrastructure Mastery Adapters Package
from .memory_store import MemoryMasteryStore, MemoryWordCatalog
from .sqlite_store import SqliteDatabase, SqliteMasteryStore, SqliteWordCatalog

__all__ = [
    "MemoryMasteryStore",
    "MemoryWordCatalog",
    "SqliteDatabase",
    "SqliteMasteryStore",
    "SqliteWordCatalog",
]
