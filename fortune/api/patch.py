from __future__ import annotations

from typing import Any, Mapping

from fortune.exceptions import ResourceValidationError
from fortune.schema import TO_MANY, ResourceModel


_OPS = {"add", "replace", "remove"}


def _fail(message: str, index: int) -> ResourceValidationError:
    return ResourceValidationError(message, errors=[{"loc": ["body", index], "msg": message, "type": "patch"}])


def _target(model: ResourceModel, path: Any, index: int) -> tuple[str, str | None]:
    """Return (field, trailing segment) addressed by a patch path."""
    if not isinstance(path, str) or not path.startswith("/"):
        raise _fail(f"Invalid patch path: {path!r}", index)
    parts = path.split("/")[1:]
    if parts and parts[0] == model.collection:
        if len(parts) < 2 or not parts[1].isdigit():
            raise _fail(f"Invalid patch path: {path!r}", index)
        parts = parts[2:]
    if parts and parts[0] == "links":
        parts = parts[1:]
    if not parts or len(parts) > 2:
        raise _fail(f"Invalid patch path: {path!r}", index)

    name = parts[0]
    if name not in model.fields:
        raise _fail(f'Unknown field "{name}" on "{model.name}".', index)
    trailing = parts[1] if len(parts) == 2 else None
    if trailing is not None and model.fields[name].kind != TO_MANY:
        raise _fail(f"Invalid patch path: {path!r}", index)
    return name, trailing


def apply_patch(model: ResourceModel, flat: Mapping[str, Any], operations: Any) -> dict[str, Any]:
    """Apply JSON Patch style operations to one flattened resource."""
    if not isinstance(operations, list) or not operations:
        raise ResourceValidationError("PATCH body must be a non-empty list of operations.")

    out = dict(flat)
    for i, op in enumerate(operations):
        if not isinstance(op, Mapping) or op.get("op") not in _OPS:
            raise _fail(f"Unsupported patch operation at index {i}.", i)
        name, trailing = _target(model, op.get("path"), i)
        kind = model.fields[name].kind
        verb = op["op"]

        if verb != "remove" and "value" not in op:
            raise _fail(f'Operation "{verb}" at index {i} needs a value.', i)

        if kind != TO_MANY:
            out[name] = None if verb == "remove" else op["value"]
            continue

        current = [str(v) for v in (out.get(name) or [])]
        if verb == "replace" and trailing is None:
            out[name] = op["value"]
        elif verb == "replace" and trailing != "-":
            if trailing not in current:
                raise _fail(f'"{trailing}" is not linked by "{name}".', i)
            value = op["value"]
            if isinstance(value, (list, tuple, dict)) or value is None:
                raise _fail(f'Operation "replace" at index {i} needs a single id.', i)
            new = str(value)
            # Swap in place; `new` keeps the position of the id it replaces.
            out[name] = [new if v == trailing else v for v in current if v != new or new == trailing]
        elif verb in {"add", "replace"}:
            value = op["value"]
            for v in value if isinstance(value, list) else [value]:
                if str(v) not in current:
                    current.append(str(v))
            out[name] = current
        else:
            victim = trailing if trailing not in (None, "-") else op.get("value")
            if victim is None:
                out[name] = []
            else:
                drop = {str(v) for v in (victim if isinstance(victim, list) else [victim])}
                out[name] = [v for v in current if v not in drop]
    return out
