from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

from fastapi import Request

from fortune.utils.logger import get_logger


logger = get_logger(__name__)

BEFORE = "before"
AFTER = "after"

Transform = Callable[[dict[str, Any], Request], Union[dict[str, Any], None, Awaitable[Union[dict[str, Any], None]]]]


class TransformRegistry:
    """Before/after transforms keyed by resource name, one per stage."""

    def __init__(self) -> None:
        self._stages: dict[str, dict[str, Transform]] = {BEFORE: {}, AFTER: {}}

    def add(self, stage: str, names: str, fn: Transform) -> None:
        if stage not in self._stages:
            raise ValueError(f"Unknown transform stage: {stage!r}")
        if not callable(fn):
            return
        for key in str(names).split():
            if key in self._stages[stage]:
                logger.debug('Replacing %s transform for "%s"', stage, key)
            self._stages[stage][key] = fn

    def get(self, stage: str, name: str) -> Transform | None:
        return self._stages.get(stage, {}).get(name)

    async def apply(self, stage: str, name: str, record: dict[str, Any], request: Request) -> dict[str, Any]:
        fn = self.get(stage, name)
        if fn is None:
            return record
        result = fn(record, request)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return record
        if not isinstance(result, dict):
            raise TypeError(f'{stage} transform for "{name}" must return a dict or None, got {type(result).__name__}')
        return result
