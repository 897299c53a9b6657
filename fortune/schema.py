"""Resource schemas.

A schema maps field names to descriptors. Descriptors are either attribute
types (a Python type, a type name, or ``{"type": ...}``) or associations:

    {"ref": "pet", "inverse": "owner"}      # belongs to
    [{"ref": "pet", "inverse": "owner"}]    # has many
    "pet" / ["pet"]                         # same, without inverse

Attribute values are validated with a pydantic model generated per resource.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Union

import inflection
from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from fortune.exceptions import ResourceValidationError, SchemaError
from fortune.utils.logger import get_logger


logger = get_logger(__name__)

RESERVED_KEYS = ("id", "href", "links")

ATTRIBUTE = "attribute"
TO_ONE = "to_one"
TO_MANY = "to_many"

NUMBER = Union[int, float]

_TYPE_NAMES: dict[str, Any] = {
    "string": str,
    "str": str,
    "number": NUMBER,
    "integer": int,
    "int": int,
    "float": float,
    "boolean": bool,
    "bool": bool,
    "date": datetime,
    "datetime": datetime,
    "array": list,
    "list": list,
    "object": dict,
    "dict": dict,
    "buffer": bytes,
    "bytes": bytes,
}

_PY_TYPES = (str, int, float, bool, datetime, list, dict, bytes)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str
    type: Any = None
    ref: str | None = None
    inverse: str | None = None

    @property
    def is_link(self) -> bool:
        return self.kind != ATTRIBUTE


@dataclass
class ResourceModel:
    name: str
    collection: str
    fields: dict[str, FieldSpec]
    validator: type[BaseModel]
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def attributes(self) -> dict[str, FieldSpec]:
        return {k: f for k, f in self.fields.items() if not f.is_link}

    @property
    def links(self) -> dict[str, FieldSpec]:
        return {k: f for k, f in self.fields.items() if f.is_link}

    def validate(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Coerce attribute values and normalize relationship ids.

        Unknown keys are dropped. Only keys present in `values` are returned.
        """
        attrs = {k: v for k, v in values.items() if k in self.fields and not self.fields[k].is_link}
        try:
            parsed = self.validator.model_validate(attrs)
        except ValidationError as e:
            raise ResourceValidationError(
                f'Invalid "{self.name}" resource.',
                errors=e.errors(include_url=False, include_context=False, include_input=False),
            ) from e
        out = parsed.model_dump(mode="json", by_alias=True, exclude_unset=True)

        for key, spec in self.links.items():
            if key in values:
                out[key] = normalize_link(spec, values[key])
        return out

    def blank(self) -> dict[str, Any]:
        return {k: ([] if f.kind == TO_MANY else None) for k, f in self.fields.items()}


def pluralize(name: str) -> str:
    return inflection.pluralize(name)


def normalize_link(spec: FieldSpec, value: Any) -> str | list[str] | None:
    if spec.kind == TO_ONE:
        if value is None or value == "":
            return None
        if isinstance(value, (list, tuple, dict)):
            raise ResourceValidationError(
                f'Link "{spec.name}" expects a single id.',
                errors=[{"loc": ["links", spec.name], "msg": "expected a single id", "type": "link_type"}],
            )
        return str(value)

    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    ids: list[str] = []
    for v in value:
        if isinstance(v, (list, tuple, dict)) or v is None:
            raise ResourceValidationError(
                f'Link "{spec.name}" expects a list of ids.',
                errors=[{"loc": ["links", spec.name], "msg": "expected a list of ids", "type": "link_type"}],
            )
        s = str(v)
        if s not in ids:
            ids.append(s)
    return ids


def scrub_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    scrubbed = dict(schema)
    for key in RESERVED_KEYS:
        if key in scrubbed:
            del scrubbed[key]
            logger.warning('Reserved key "%s" is not allowed.', key)
    return scrubbed


def _attribute_type(name: str, desc: Any) -> Any:
    if isinstance(desc, str):
        t = _TYPE_NAMES.get(desc.strip().lower())
        if t is None:
            raise SchemaError(f'Unknown type "{desc}" for field "{name}".')
        return t
    if isinstance(desc, type) and issubclass(desc, _PY_TYPES):
        return desc
    raise SchemaError(f'Unsupported type {desc!r} for field "{name}".')


def _ref(name: str, desc: Mapping[str, Any]) -> tuple[str, str | None]:
    ref = str(desc.get("ref") or "").strip()
    if not ref:
        raise SchemaError(f'Empty "ref" for field "{name}".')
    inverse = desc.get("inverse")
    return ref, (str(inverse) if inverse else None)


def parse_field(name: str, desc: Any) -> FieldSpec:
    if isinstance(desc, type):
        return FieldSpec(name=name, kind=ATTRIBUTE, type=_attribute_type(name, desc))

    if isinstance(desc, str):
        if desc.strip().lower() in _TYPE_NAMES:
            return FieldSpec(name=name, kind=ATTRIBUTE, type=_TYPE_NAMES[desc.strip().lower()])
        return FieldSpec(name=name, kind=TO_ONE, ref=desc.strip())

    if isinstance(desc, Mapping):
        if "ref" in desc:
            ref, inverse = _ref(name, desc)
            return FieldSpec(name=name, kind=TO_ONE, ref=ref, inverse=inverse)
        if "type" in desc:
            return FieldSpec(name=name, kind=ATTRIBUTE, type=_attribute_type(name, desc["type"]))
        raise SchemaError(f'Field "{name}" needs either "type" or "ref".')

    if isinstance(desc, (list, tuple)):
        if len(desc) != 1:
            raise SchemaError(f'Array descriptor for field "{name}" must have exactly one element.')
        inner = desc[0]
        if isinstance(inner, Mapping) and "ref" in inner:
            ref, inverse = _ref(name, inner)
            return FieldSpec(name=name, kind=TO_MANY, ref=ref, inverse=inverse)
        if isinstance(inner, str) and inner.strip().lower() not in _TYPE_NAMES:
            return FieldSpec(name=name, kind=TO_MANY, ref=inner.strip())
        if isinstance(inner, Mapping) and "type" in inner:
            inner = inner["type"]
        return FieldSpec(name=name, kind=ATTRIBUTE, type=list[_attribute_type(name, inner)])

    raise SchemaError(f'Unsupported descriptor {desc!r} for field "{name}".')


def _build_validator(name: str, specs: dict[str, FieldSpec]) -> type[BaseModel]:
    # Aliased positional names avoid clashes with BaseModel attributes (json, copy, schema...).
    definitions: dict[str, Any] = {}
    for i, spec in enumerate(s for s in specs.values() if not s.is_link):
        definitions[f"f_{i}"] = (Optional[spec.type], Field(default=None, alias=spec.name))
    return create_model(
        f"{inflection.camelize(inflection.underscore(name))}Resource",
        __config__=ConfigDict(extra="ignore", populate_by_name=False, allow_inf_nan=False),
        **definitions,
    )


def build_model(name: str, schema: Mapping[str, Any], options: Mapping[str, Any] | None = None) -> ResourceModel:
    if not name or not str(name).strip():
        raise SchemaError("Resource name must be a non-empty string.")
    specs: dict[str, FieldSpec] = {}
    for key, desc in schema.items():
        if key in RESERVED_KEYS:
            raise SchemaError(f'Reserved key "{key}" is not allowed.')
        specs[str(key)] = parse_field(str(key), desc)
    return ResourceModel(
        name=name,
        collection=pluralize(name),
        fields=specs,
        validator=_build_validator(name, specs),
        options=dict(options or {}),
    )
