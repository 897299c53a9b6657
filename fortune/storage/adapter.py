from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping

from fortune.config.load_config import ConfigError, FortuneOptions
from fortune.exceptions import AdapterConnectionError, ResourceConflictError
from fortune.schema import ResourceModel, build_model
from fortune.utils.logger import get_logger


logger = get_logger(__name__)


def _utc_ts() -> float:
    return time.time()


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Record:
    id: str
    created_at: float
    fields: dict[str, Any] = field(default_factory=dict)

    def flatten(self) -> dict[str, Any]:
        return {"id": self.id, **self.fields}


class Adapter:
    """Base persistence adapter.

    Subclasses implement `_connect` and the `_get/_scan/_insert/_replace/_remove`
    primitives; validation and model bookkeeping live here.
    """

    name = "base"

    def __init__(self, options: FortuneOptions | None = None) -> None:
        self.options = options or FortuneOptions()
        self._models: dict[str, ResourceModel] = {}
        self._connected = False
        self._connect_lock = threading.Lock()
        self._last_ts = 0.0

    def _next_ts(self) -> float:
        # Strictly increasing so (created_at, id) follows insertion order.
        with self._connect_lock:
            ts = max(_utc_ts(), self._last_ts + 1e-6)
            self._last_ts = ts
            return ts

    # connection

    def _connect(self) -> None:
        raise NotImplementedError

    def await_connection(self) -> None:
        if self._connected:
            return
        with self._connect_lock:
            if self._connected:
                return
            try:
                self._connect()
            except AdapterConnectionError:
                raise
            except Exception as e:
                raise AdapterConnectionError(f"{self.name} adapter failed to connect: {e}") from e
            self._connected = True
            logger.debug("%s adapter connected", self.name)

    @property
    def connected(self) -> bool:
        return self._connected

    def close(self) -> None:
        self._connected = False

    # models

    def schema(self, name: str, schema: Mapping[str, Any], options: Mapping[str, Any] | None = None) -> ResourceModel:
        return build_model(name, schema, options)

    def model(self, name: str, model: ResourceModel | None = None) -> ResourceModel | None:
        if model is None:
            return self._models.get(name)
        self._prepare(model)
        self._models[name] = model
        return model

    @property
    def models(self) -> dict[str, ResourceModel]:
        return dict(self._models)

    def _prepare(self, model: ResourceModel) -> None:
        """Hook for backends that need storage per model (tables, collections)."""

    # storage primitives

    def _get(self, model: ResourceModel, resource_id: str) -> Record | None:
        raise NotImplementedError

    def _scan(
        self,
        model: ResourceModel,
        *,
        ids: list[str] | None,
        query: Mapping[str, Any] | None,
        limit: int | None,
        after: tuple[float, str] | None,
    ) -> list[Record]:
        raise NotImplementedError

    def _insert(self, model: ResourceModel, record: Record) -> None:
        raise NotImplementedError

    def _replace(self, model: ResourceModel, record: Record) -> None:
        raise NotImplementedError

    def _remove(self, model: ResourceModel, resource_id: str) -> bool:
        raise NotImplementedError

    # operations

    def create(self, model: ResourceModel, fields: Mapping[str, Any], resource_id: str | None = None) -> Record:
        values = {**model.blank(), **model.validate(fields)}
        rid = str(resource_id) if resource_id not in (None, "") else new_id()
        if self._get(model, rid) is not None:
            raise ResourceConflictError(f'"{model.name}" resource "{rid}" already exists.')
        record = Record(id=rid, created_at=self._next_ts(), fields=values)
        self._insert(model, record)
        return record

    def update(self, model: ResourceModel, resource_id: str, fields: Mapping[str, Any]) -> Record | None:
        existing = self._get(model, str(resource_id))
        if existing is None:
            return None
        values = {**model.blank(), **model.validate(fields)}
        record = Record(id=existing.id, created_at=existing.created_at, fields=values)
        self._replace(model, record)
        return record

    def delete(self, model: ResourceModel, resource_id: str) -> bool:
        return self._remove(model, str(resource_id))

    def find(self, model: ResourceModel, resource_id: str) -> Record | None:
        return self._get(model, str(resource_id))

    def find_many(
        self,
        model: ResourceModel,
        *,
        ids: list[str] | None = None,
        query: Mapping[str, Any] | None = None,
        limit: int | None = None,
        after: tuple[float, str] | None = None,
    ) -> list[Record]:
        return self._scan(
            model,
            ids=[str(i) for i in ids] if ids is not None else None,
            query=dict(query) if query else None,
            limit=int(limit) if limit is not None else None,
            after=after,
        )


ADAPTERS: dict[str, type[Adapter]] = {}


def register_adapter(name: str, cls: type[Adapter]) -> None:
    if not (isinstance(cls, type) and issubclass(cls, Adapter)):
        raise TypeError(f"Adapter {name!r} must subclass Adapter.")
    ADAPTERS[name] = cls


def create_adapter(options: FortuneOptions) -> Adapter:
    selected = options.adapter
    if isinstance(selected, Adapter):
        return selected
    cls = ADAPTERS.get(str(selected))
    if cls is None:
        raise ConfigError(f"Unknown adapter {selected!r}. Available: {', '.join(sorted(ADAPTERS))}")
    return cls(options)
