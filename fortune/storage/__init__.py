"""Persistence adapters.

`memory` keeps records in process; `sqlite` persists them to a file.
Third-party backends can be added with `register_adapter`.
"""

from __future__ import annotations

from fortune.storage.adapter import ADAPTERS, Adapter, Record, create_adapter, register_adapter
from fortune.storage.memory_adapter import MemoryAdapter
from fortune.storage.sqlite_adapter import SQLiteAdapter

register_adapter("memory", MemoryAdapter)
register_adapter("sqlite", SQLiteAdapter)

__all__ = ["ADAPTERS", "Adapter", "MemoryAdapter", "Record", "SQLiteAdapter", "create_adapter", "register_adapter"]
