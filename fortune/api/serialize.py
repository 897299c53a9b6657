"""JSON API style documents.

Outgoing resources keep attributes at the top level and move relationship
ids under `links`; the document carries a top-level `links` map describing
each relationship of the collection.
"""

from __future__ import annotations

from typing import Any, Mapping

from fortune.config.load_config import FortuneOptions
from fortune.exceptions import ResourceValidationError
from fortune.schema import RESERVED_KEYS, ResourceModel, pluralize


def collection_path(options: FortuneOptions, collection: str) -> str:
    return f"{options.namespace}/{collection}"


def resource_href(options: FortuneOptions, collection: str, resource_id: str) -> str:
    return f"{options.base_url}{collection_path(options, collection)}/{resource_id}"


def serialize_resource(model: ResourceModel, flat: Mapping[str, Any], options: FortuneOptions) -> dict[str, Any]:
    out: dict[str, Any] = {"id": flat.get("id")}
    links: dict[str, Any] = {}
    for key, value in flat.items():
        if key in RESERVED_KEYS:
            continue
        spec = model.fields.get(key)
        if spec is not None and spec.is_link:
            links[key] = value
        else:
            out[key] = value
    if model.links:
        out["links"] = links
    if options.base_url:
        out["href"] = resource_href(options, model.collection, str(flat.get("id")))
    return out


def top_level_links(
    model: ResourceModel, options: FortuneOptions, models: Mapping[str, ResourceModel]
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, spec in model.links.items():
        related = models.get(spec.ref or "")
        related_collection = related.collection if related is not None else pluralize(spec.ref or "")
        entry: dict[str, Any] = {"type": related_collection}
        if options.base_url:
            entry["href"] = (
                f"{options.base_url}{collection_path(options, related_collection)}/{{{model.collection}.{key}}}"
            )
        out[f"{model.collection}.{key}"] = entry
    return out


def document(
    model: ResourceModel,
    records: list[Mapping[str, Any]],
    options: FortuneOptions,
    models: Mapping[str, ResourceModel],
) -> dict[str, Any]:
    body: dict[str, Any] = {model.collection: [serialize_resource(model, r, options) for r in records]}
    links = top_level_links(model, options, models)
    if links:
        body["links"] = links
    return body


def deserialize_resource(model: ResourceModel, item: Any) -> dict[str, Any]:
    if not isinstance(item, Mapping):
        raise ResourceValidationError(f'Each "{model.collection}" entry must be an object.')
    out: dict[str, Any] = {k: v for k, v in item.items() if k not in ("href", "links")}
    links = item.get("links")
    if links is not None:
        if not isinstance(links, Mapping):
            raise ResourceValidationError(f'"links" of a "{model.name}" resource must be an object.')
        out.update(links)
    return out


def extract_resources(model: ResourceModel, body: Any) -> list[dict[str, Any]]:
    if not isinstance(body, Mapping) or model.collection not in body:
        raise ResourceValidationError(f'Request body must contain "{model.collection}".')
    items = body[model.collection]
    if isinstance(items, Mapping):
        items = [items]
    if not isinstance(items, list) or not items:
        raise ResourceValidationError(f'"{model.collection}" must be a non-empty list of resources.')
    return [deserialize_resource(model, it) for it in items]
