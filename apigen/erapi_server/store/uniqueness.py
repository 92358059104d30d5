"""
Uniqueness index for fields declared ``unique``.

Values are compared after normalization: every non-alphanumeric character
is removed and the remainder is compared case sensitively, so
``"128-6-32-856404-0"`` and ``"1286328564040"`` are the same value.

Invariants:
    - One index per entity, one value map per unique field
    - A normalized value maps to exactly one live instance id
    - The index is not locked itself; the owning InstanceCollection
      only touches it inside its critical section
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from ..schema.types import EntityDef

_SEPARATORS = re.compile(r"[\W_]+")


def normalize_unique_value(value: Any) -> str | None:
    """Normalize a value for uniqueness comparison.

    Returns:
        The normalized key, or None when the value does not take part
        in uniqueness (None, or nothing left after normalization)
    """
    if value is None:
        return None
    if isinstance(value, bool):
        text = "true" if value else "false"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    normalized = _SEPARATORS.sub("", text)
    return normalized or None


class UniquenessIndex:
    """Normalized-value index over the unique fields of one entity."""

    def __init__(self, entity: EntityDef) -> None:
        self.entity = entity
        self._fields = [f.name for f in entity.get_unique_fields()]
        self._values: dict[str, dict[str, int]] = {name: {} for name in self._fields}

    @property
    def field_names(self) -> list[str]:
        return list(self._fields)

    def owner_of(self, field_name: str, value: Any) -> int | None:
        """Return the id of the instance holding ``value`` for ``field_name``."""
        key = normalize_unique_value(value)
        if key is None or field_name not in self._values:
            return None
        return self._values[field_name].get(key)

    def collides(
        self,
        field_name: str,
        value: Any,
        exclude_id: int | None = None,
    ) -> bool:
        """Whether ``value`` is already held by another instance.

        Args:
            field_name: Unique field being checked
            value: Candidate value (already converted)
            exclude_id: Instance excluded from the check (self on update)
        """
        owner = self.owner_of(field_name, value)
        return owner is not None and owner != exclude_id

    def add(self, instance_id: int, values: Mapping[str, Any]) -> None:
        for name in self._fields:
            key = normalize_unique_value(values.get(name))
            if key is None:
                continue
            owner = self._values[name].get(key)
            if owner is not None and owner != instance_id:
                raise ValueError(
                    f"Unique value collision on {self.entity.name}.{name} "
                    f"between instances {owner} and {instance_id}"
                )
            self._values[name][key] = instance_id

    def remove(self, instance_id: int, values: Mapping[str, Any]) -> None:
        for name in self._fields:
            key = normalize_unique_value(values.get(name))
            if key is not None and self._values[name].get(key) == instance_id:
                del self._values[name][key]

    def replace(
        self,
        instance_id: int,
        old_values: Mapping[str, Any],
        new_values: Mapping[str, Any],
    ) -> None:
        self.remove(instance_id, old_values)
        self.add(instance_id, new_values)

    def clear(self) -> None:
        for values in self._values.values():
            values.clear()

    def size(self, field_name: str) -> int:
        return len(self._values.get(field_name, {}))
