from __future__ import annotations

import copy
import threading
from typing import Any, Mapping

from fortune.config.load_config import FortuneOptions
from fortune.schema import ResourceModel
from fortune.storage.adapter import Adapter, Record


class MemoryAdapter(Adapter):
    """In-process store; data lives as long as the adapter.

    Records are copied in and out so callers never share state with the store.
    """

    name = "memory"

    def __init__(self, options: FortuneOptions | None = None) -> None:
        super().__init__(options)
        self._data: dict[str, dict[str, Record]] = {}
        self._lock = threading.Lock()

    def _connect(self) -> None:
        return None

    def _prepare(self, model: ResourceModel) -> None:
        with self._lock:
            self._data.setdefault(model.name, {})

    def _table(self, model: ResourceModel) -> dict[str, Record]:
        return self._data.setdefault(model.name, {})

    def _get(self, model: ResourceModel, resource_id: str) -> Record | None:
        with self._lock:
            return copy.deepcopy(self._table(model).get(resource_id))

    def _scan(
        self,
        model: ResourceModel,
        *,
        ids: list[str] | None,
        query: Mapping[str, Any] | None,
        limit: int | None,
        after: tuple[float, str] | None,
    ) -> list[Record]:
        with self._lock:
            records = copy.deepcopy(list(self._table(model).values()))

        if ids is not None:
            wanted = set(ids)
            records = [r for r in records if r.id in wanted]
        if query:
            records = [r for r in records if all(r.fields.get(k) == v for k, v in query.items())]
        records.sort(key=lambda r: (r.created_at, r.id))
        if after is not None:
            records = [r for r in records if (r.created_at, r.id) > (float(after[0]), str(after[1]))]
        if limit is not None:
            records = records[:limit]
        return records

    def _insert(self, model: ResourceModel, record: Record) -> None:
        with self._lock:
            self._table(model)[record.id] = copy.deepcopy(record)

    def _replace(self, model: ResourceModel, record: Record) -> None:
        with self._lock:
            self._table(model)[record.id] = copy.deepcopy(record)

    def _remove(self, model: ResourceModel, resource_id: str) -> bool:
        with self._lock:
            return self._table(model).pop(resource_id, None) is not None
