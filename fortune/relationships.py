"""Keep inverse relationship fields in step with writes.

When a person's `pets` gains a pet whose `owner` is the inverse, the pet's
`owner` is set to the person; unlinking clears it again. Related records that
do not exist are skipped.
"""

from __future__ import annotations

from typing import Any, Mapping

from fortune.schema import TO_MANY, FieldSpec, ResourceModel
from fortune.storage.adapter import Adapter
from fortune.utils.logger import get_logger


logger = get_logger(__name__)


def _ids(value: Any) -> set[str]:
    if value is None or value == "":
        return set()
    if isinstance(value, (list, tuple)):
        return {str(v) for v in value}
    return {str(value)}


def _attach(adapter: Adapter, model: ResourceModel, resource_id: str, spec: FieldSpec, target_id: str) -> str | None:
    """Point `spec` on `resource_id` at `target_id`; return the id it pointed at before (to-one only)."""
    record = adapter.find(model, resource_id)
    if record is None:
        logger.debug('Skipping link on missing "%s" resource "%s"', model.name, resource_id)
        return None
    fields = dict(record.fields)
    previous = None
    if spec.kind == TO_MANY:
        current = [str(v) for v in (fields.get(spec.name) or [])]
        if target_id in current:
            return None
        fields[spec.name] = current + [target_id]
    else:
        previous = fields.get(spec.name)
        if previous == target_id:
            return None
        fields[spec.name] = target_id
    adapter.update(model, resource_id, fields)
    return str(previous) if previous else None


def _detach(adapter: Adapter, model: ResourceModel, resource_id: str, spec: FieldSpec, target_id: str) -> None:
    record = adapter.find(model, resource_id)
    if record is None:
        return
    fields = dict(record.fields)
    if spec.kind == TO_MANY:
        current = [str(v) for v in (fields.get(spec.name) or [])]
        if target_id not in current:
            return
        fields[spec.name] = [v for v in current if v != target_id]
    else:
        if fields.get(spec.name) != target_id:
            return
        fields[spec.name] = None
    adapter.update(model, resource_id, fields)


def sync_inverse(
    adapter: Adapter,
    models: Mapping[str, ResourceModel],
    model: ResourceModel,
    resource_id: str,
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
) -> None:
    """Propagate link changes of one record (`before` -> `after`) to inverse fields.

    Pass `before=None` for a create and `after=None` for a delete.
    """
    for key, spec in model.links.items():
        if not spec.inverse:
            continue
        related = models.get(spec.ref or "")
        if related is None:
            continue
        inverse = related.fields.get(spec.inverse)
        if inverse is None or not inverse.is_link:
            logger.debug('Inverse "%s.%s" is not a link; skipping', related.name, spec.inverse)
            continue

        old = _ids(before.get(key) if before else None)
        new = _ids(after.get(key) if after else None)

        for target in sorted(new - old):
            previous = _attach(adapter, related, target, inverse, resource_id)
            if previous and previous != resource_id:
                # The related record switched owners; drop it from the old owner.
                _detach(adapter, model, previous, spec, target)
        for target in sorted(old - new):
            _detach(adapter, related, target, inverse, resource_id)
