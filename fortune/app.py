from __future__ import annotations

import copy
from typing import Any, Callable, Mapping

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from fortune.api.cors import CorsPolicy, CrossDomainMiddleware
from fortune.api.errors import (
    APIError,
    api_error_handler,
    conflict_error_handler,
    resource_validation_error_handler,
    transform_rejected_handler,
    unhandled_error_handler,
    validation_error_handler,
)
from fortune.api.routers.health import router as health_router
from fortune.api.routes import WRITE_METHODS, register_routes, remove_routes
from fortune.api.serialize import collection_path
from fortune.config.load_config import AppConfig, FortuneOptions, merge_options
from fortune.exceptions import ResourceConflictError, ResourceValidationError, TransformRejected
from fortune.hooks import AFTER, BEFORE, Transform, TransformRegistry
from fortune.schema import ResourceModel, pluralize, scrub_schema
from fortune.storage import create_adapter
from fortune.utils.logger import get_logger


logger = get_logger(__name__)

READ_ONLY = "read_only"
NO_INDEX = "no_index"


class Fortune:
    """Resource registry wired to a FastAPI router and a persistence adapter.

    Most methods return `self` so definitions chain::

        app = create({"adapter": "memory"})
        app.resource("person", {"name": str, "pets": [{"ref": "pet", "inverse": "owner"}]}) \\
           .resource("pet", {"name": str, "owner": {"ref": "person", "inverse": "pets"}}) \\
           .after(hide_secrets)
    """

    def __init__(self, options: Mapping[str, Any] | FortuneOptions | None = None) -> None:
        self.options = merge_options(options)

        self.router = FastAPI(title="fortune", version="0.1.0")
        self.router.state.fortune = self

        self.router.add_exception_handler(APIError, api_error_handler)
        self.router.add_exception_handler(RequestValidationError, validation_error_handler)
        self.router.add_exception_handler(ResourceValidationError, resource_validation_error_handler)
        self.router.add_exception_handler(ResourceConflictError, conflict_error_handler)
        self.router.add_exception_handler(TransformRejected, transform_rejected_handler)
        self.router.add_exception_handler(Exception, unhandled_error_handler)

        # Also read by the 500 handler, which runs outside the middleware stack.
        self.router.state.cors = CorsPolicy(self.options.cors) if self.options.cors_enabled else None
        if self.router.state.cors is not None:
            self.router.add_middleware(CrossDomainMiddleware, policy=self.router.state.cors)

        self.router.include_router(health_router, prefix=self.options.namespace, tags=["system"])

        self.adapter = create_adapter(self.options)
        self.hooks = TransformRegistry()

        self._schema: dict[str, dict[str, Any]] = {}
        self._resource = ""
        self._routed: set[str] = set()
        self._pending: dict[str, set[str]] = {}

    @property
    def models(self) -> dict[str, ResourceModel]:
        return self.adapter.models

    def resource(
        self, name: str, schema: Mapping[str, Any] | None = None, options: Mapping[str, Any] | None = None
    ) -> Fortune:
        """Define a resource and route it.

        Without a schema this only selects `name` as the target of chained calls.
        """
        self._resource = name
        if not isinstance(schema, Mapping):
            return self
        if self.adapter.model(name) is not None:
            logger.warning('Resource "%s" was already defined.', name)
            return self

        # Connection failures propagate to the caller.
        self.adapter.await_connection()

        scrubbed = scrub_schema(schema)
        self._schema[name] = copy.deepcopy(scrubbed)

        try:
            model = self.adapter.schema(name, scrubbed, options)
            self._route(name, self.adapter.model(name, model))
        except Exception:
            logger.exception('There was an error loading the "%s" resource.', name)
        return self

    def _route(self, name: str, model: ResourceModel | None) -> None:
        if model is None:
            return
        register_routes(self, model)
        self._routed.add(name)
        for marker in sorted(self._pending.pop(name, set())):
            self._apply_marker(name, marker)

    def _add_transform(self, name: str | Transform, fn: Transform | None, stage: str) -> None:
        if callable(name):
            fn = name
            name = self._resource
        if callable(fn):
            self.hooks.add(stage, str(name), fn)

    def before(self, name: str | Transform, fn: Transform | None = None) -> Fortune:
        """Transform incoming resources before they are written.

        `name` may be space separated ("cat dog human"). The function gets the
        resource dict and the request, and returns the resource to persist
        (or None to keep the mutated input). Raise `TransformRejected` to refuse.
        """
        self._add_transform(name, fn, BEFORE)
        return self

    def after(self, name: str | Transform, fn: Transform | None = None) -> Fortune:
        """Transform outgoing resources after they are read, before the response."""
        self._add_transform(name, fn, AFTER)
        return self

    def transform(
        self,
        name: str | Transform | None,
        before: Transform | None = None,
        after: Transform | None = None,
    ) -> Fortune:
        if not isinstance(name, str):
            name, before, after = self._resource, name, before
        self.before(name, before)
        self.after(name, after)
        return self

    def use(self, middleware: Callable[..., Any], **kwargs: Any) -> Fortune:
        self.router.add_middleware(middleware, **kwargs)
        return self

    def listen(self, port: int, host: str = "127.0.0.1", **kwargs: Any) -> Fortune:
        import uvicorn

        logger.info("A fortune is available on port %s...", port)
        uvicorn.run(self.router, host=host, port=int(port), **kwargs)
        return self

    def _collection(self, name: str) -> str:
        model = self.adapter.model(name)
        return collection_path(self.options, model.collection if model is not None else pluralize(name))

    def _apply_marker(self, name: str, marker: str) -> None:
        collection = self._collection(name)
        if marker == READ_ONLY:
            removed = remove_routes(self.router, collection, WRITE_METHODS)
        else:
            removed = remove_routes(self.router, collection, ["GET"], [collection])
        logger.debug('Marked "%s" %s (%d routes removed)', name, marker, removed)

    def _mark(self, name: str | None, marker: str) -> Fortune:
        if not isinstance(name, str):
            name = self._resource
        if name in self._routed:
            self._apply_marker(name, marker)
        else:
            self._pending.setdefault(name, set()).add(marker)
        return self

    def read_only(self, name: str | None = None) -> Fortune:
        """Remove POST, PUT, PATCH and DELETE routes; the adapter can still write."""
        return self._mark(name, READ_ONLY)

    def no_index(self, name: str | None = None) -> Fortune:
        """Remove the GET collection route."""
        return self._mark(name, NO_INDEX)

    def close(self) -> None:
        self.adapter.close()


def create(options: Mapping[str, Any] | FortuneOptions | None = None) -> Fortune:
    return Fortune(options)


def create_from_config(config: AppConfig, overrides: Mapping[str, Any] | None = None) -> Fortune:
    """Build an app from a loaded TOML config; `overrides` win over file options."""
    app = create({**config.options, **dict(overrides or {})})
    for res in config.resources:
        app.resource(res.name, res.schema)
        if res.read_only:
            app.read_only(res.name)
        if res.no_index:
            app.no_index(res.name)
    return app
