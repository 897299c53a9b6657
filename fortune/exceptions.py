from __future__ import annotations

from typing import Any


class FortuneError(Exception):
    pass


class SchemaError(FortuneError):
    pass


class AdapterError(FortuneError):
    pass


class AdapterConnectionError(AdapterError):
    pass


class ResourceConflictError(AdapterError):
    pass


class ResourceValidationError(AdapterError):
    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class TransformRejected(FortuneError):
    """Raised by a transform to refuse the request it is running for."""

    def __init__(self, message: str = "Request rejected.", *, status_code: int = 403) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
