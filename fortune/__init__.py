"""fortune: JSON API resources over FastAPI with pluggable storage adapters."""

from __future__ import annotations

from fortune.app import Fortune, create, create_from_config
from fortune.exceptions import TransformRejected
from fortune.storage import ADAPTERS as adapters
from fortune.storage import Adapter, register_adapter

__all__ = ["Adapter", "Fortune", "TransformRejected", "adapters", "create", "create_from_config", "register_adapter"]
