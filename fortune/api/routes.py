from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Iterable

from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.routing import APIRoute

from fortune.api.errors import APIError
from fortune.api.pagination import Cursor, CursorError, decode_cursor, encode_cursor
from fortune.api.patch import apply_patch
from fortune.api.responses import response_class
from fortune.api.serialize import collection_path, document, extract_resources, resource_href
from fortune.hooks import AFTER, BEFORE
from fortune.relationships import sync_inverse
from fortune.schema import TO_ONE, ResourceModel
from fortune.storage.adapter import Record
from fortune.utils.logger import get_logger

if TYPE_CHECKING:
    from fortune.app import Fortune


logger = get_logger(__name__)

MAX_LIMIT = 1000
WRITE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def _split_ids(raw: str) -> list[str]:
    ids: list[str] = []
    for part in raw.split(","):
        s = part.strip()
        if s and s not in ids:
            ids.append(s)
    return ids


def _parse_limit(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        limit = int(raw)
    except ValueError as e:
        raise APIError(status_code=400, code="invalid_argument", message="limit must be an integer.") from e
    if limit < 1 or limit > MAX_LIMIT:
        raise APIError(
            status_code=400,
            code="invalid_argument",
            message=f"limit must be between 1 and {MAX_LIMIT}.",
        )
    return limit


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a valid JSON number.")


async def _read_json(request: Request) -> Any:
    try:
        return json.loads(await request.body(), parse_constant=_reject_constant)
    except (ValueError, UnicodeDecodeError) as e:
        raise APIError(status_code=400, code="invalid_argument", message="Request body must be valid JSON.") from e


def _not_found(model: ResourceModel, ids: list[str]) -> APIError:
    return APIError(
        status_code=404,
        code="not_found",
        message=f'No "{model.collection}" found.',
        details={"ids": ids},
    )


def register_routes(app: Fortune, model: ResourceModel) -> None:
    """Add collection and item routes for one resource to the app's router."""
    name = model.name
    options = app.options
    adapter = app.adapter
    hooks = app.hooks
    respond = response_class(options.production)
    collection = collection_path(options, model.collection)
    item = f"{collection}/{{ids}}"
    filterable = {k for k, f in model.fields.items() if not f.is_link or f.kind == TO_ONE}

    def _document(records: list[dict[str, Any]], *, status_code: int = 200) -> Response:
        return respond(document(model, records, options, adapter.models), status_code=status_code)

    async def _outgoing(records: list[Record], request: Request) -> list[dict[str, Any]]:
        return [await hooks.apply(AFTER, name, r.flatten(), request) for r in records]

    async def _incoming(resources: list[dict[str, Any]], request: Request) -> list[dict[str, Any]]:
        # All before-transforms run ahead of the first write.
        return [dict(await hooks.apply(BEFORE, name, r, request)) for r in resources]

    def _find(ids: list[str]) -> list[Record]:
        found = {r.id: r for r in adapter.find_many(model, ids=ids)}
        return [found[i] for i in ids if i in found]

    async def list_resources(request: Request) -> Response:
        params = request.query_params
        limit = _parse_limit(params.get("limit"))
        after: tuple[float, str] | None = None
        if params.get("cursor"):
            try:
                after = decode_cursor(params["cursor"], collection=model.collection).position
            except CursorError as e:
                raise APIError(status_code=400, code="invalid_argument", message=str(e)) from e

        query = {k: v for k, v in params.items() if k in filterable}
        if query:
            query = model.validate(query)

        records = adapter.find_many(
            model, query=query, limit=(limit + 1 if limit is not None else None), after=after
        )
        has_more = limit is not None and len(records) > limit
        if has_more:
            records = records[:limit]

        body = document(model, await _outgoing(records, request), options, adapter.models)
        if has_more:
            last = records[-1]
            body["meta"] = {
                "next_cursor": encode_cursor(
                    Cursor(collection=model.collection, created_at=last.created_at, item_id=last.id)
                )
            }
        return respond(body)

    async def create_resources(request: Request) -> Response:
        resources = await _incoming(extract_resources(model, await _read_json(request)), request)
        created: list[Record] = []
        for resource in resources:
            rid = resource.pop("id", None)
            record = adapter.create(model, resource, resource_id=rid)
            sync_inverse(adapter, adapter.models, model, record.id, None, record.fields)
            created.append(record)

        # Inverse links may have touched records of this same resource.
        created = _find([r.id for r in created])
        response = _document(await _outgoing(created, request), status_code=201)
        response.headers["Location"] = resource_href(options, model.collection, created[0].id)
        return response

    async def delete_collection(request: Request) -> Response:
        for record in adapter.find_many(model):
            if adapter.delete(model, record.id):
                sync_inverse(adapter, adapter.models, model, record.id, record.fields, None)
        return Response(status_code=204)

    async def get_resources(ids: str, request: Request) -> Response:
        wanted = _split_ids(ids)
        records = _find(wanted)
        if not records:
            raise _not_found(model, wanted)
        return _document(await _outgoing(records, request))

    async def replace_resource(ids: str, request: Request) -> Response:
        wanted = _split_ids(ids)
        if len(wanted) != 1:
            raise APIError(status_code=400, code="invalid_argument", message="PUT addresses exactly one resource.")
        rid = wanted[0]

        resources = extract_resources(model, await _read_json(request))
        if len(resources) != 1:
            raise APIError(status_code=400, code="invalid_argument", message="PUT takes exactly one resource.")
        resource = resources[0]
        if resource.get("id") not in (None, "") and str(resource["id"]) != rid:
            raise APIError(
                status_code=400,
                code="invalid_argument",
                message="Resource id does not match the URL.",
                details={"url_id": rid, "body_id": str(resource["id"])},
            )
        resource["id"] = rid
        resource = (await _incoming([resource], request))[0]
        resource.pop("id", None)

        existing = adapter.find(model, rid)
        if existing is None:
            record = adapter.create(model, resource, resource_id=rid)
            sync_inverse(adapter, adapter.models, model, rid, None, record.fields)
            status_code = 201
        else:
            record = adapter.update(model, rid, resource)
            sync_inverse(adapter, adapter.models, model, rid, existing.fields, record.fields if record else None)
            status_code = 200

        return _document(await _outgoing(_find([rid]), request), status_code=status_code)

    async def patch_resources(ids: str, request: Request) -> Response:
        wanted = _split_ids(ids)
        operations = await _read_json(request)
        existing = _find(wanted)
        if not existing:
            raise _not_found(model, wanted)

        patched = await _incoming([apply_patch(model, r.flatten(), operations) for r in existing], request)
        for before, resource in zip(existing, patched):
            resource.pop("id", None)
            record = adapter.update(model, before.id, resource)
            if record is not None:
                sync_inverse(adapter, adapter.models, model, before.id, before.fields, record.fields)

        return _document(await _outgoing(_find([r.id for r in existing]), request))

    async def delete_resources(ids: str, request: Request) -> Response:
        wanted = _split_ids(ids)
        records = _find(wanted)
        if not records:
            raise _not_found(model, wanted)
        for record in records:
            if adapter.delete(model, record.id):
                sync_inverse(adapter, adapter.models, model, record.id, record.fields, None)
        return Response(status_code=204)

    router = app.router
    tags = [model.collection]
    router.add_api_route(collection, list_resources, methods=["GET"], name=f"{name}:index", tags=tags)
    router.add_api_route(collection, create_resources, methods=["POST"], name=f"{name}:create", tags=tags)
    router.add_api_route(collection, delete_collection, methods=["DELETE"], name=f"{name}:clear", tags=tags)
    router.add_api_route(item, get_resources, methods=["GET"], name=f"{name}:get", tags=tags)
    router.add_api_route(item, replace_resource, methods=["PUT"], name=f"{name}:replace", tags=tags)
    router.add_api_route(item, patch_resources, methods=["PATCH"], name=f"{name}:patch", tags=tags)
    router.add_api_route(item, delete_resources, methods=["DELETE"], name=f"{name}:delete", tags=tags)
    router.openapi_schema = None
    logger.debug('Routed "%s" at %s', name, collection)


def remove_routes(
    router: FastAPI,
    collection: str,
    methods: Iterable[str],
    paths: Iterable[str] | None = None,
) -> int:
    """Drop routes under `collection` (or exactly `paths`) for the given methods.

    Returns the number of routes removed.
    """
    verbs = {m.upper() for m in methods}
    exact = set(paths) if paths is not None else None
    kept = []
    removed = 0
    for route in router.router.routes:
        if isinstance(route, APIRoute) and route.methods & verbs:
            path = route.path
            if exact is not None:
                matches = path in exact
            else:
                matches = path == collection or path.startswith(collection + "/")
            if matches:
                remaining = set(route.methods) - verbs
                if not remaining:
                    removed += 1
                    continue
                route.methods = remaining
        kept.append(route)
    router.router.routes[:] = kept
    router.openapi_schema = None
    return removed
