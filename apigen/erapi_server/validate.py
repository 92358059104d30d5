"""
Payload validation for the entity API engine.

This module applies the field rules of an EntityDef to an incoming payload:
- System generated fields cannot be supplied on create
- Required fields must be present (full create/replace only)
- Values must convert to the field kind and satisfy its constraints
- Unique values must not collide with another live instance

Invariants:
    - Every field is checked; the first failure per field wins
    - All failures are returned together, in field declaration order,
      followed by unknown keys in sorted order
    - Uniqueness is checked against the caller's UniquenessIndex, so the
      caller must hold the collection lock for check-then-write
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from .errors import ValidationError
from .schema.types import ID_FIELD_NAME, EntityDef, FieldDef, FieldValueError

if TYPE_CHECKING:
    from .store.uniqueness import UniquenessIndex

logger = logging.getLogger(__name__)


class Validator:
    """Generic, schema-driven payload validator.

    The validator holds no state; one instance is shared by every
    collection.

    Example:
        >>> validator = Validator()
        >>> values = validator.check_create(item_entity, {"price": "1.50"}, index)
        >>> values["price"]
        1.5
    """

    def check_create(
        self,
        entity: EntityDef,
        payload: Mapping[str, Any],
        index: UniquenessIndex,
    ) -> Dict[str, Any]:
        """Validate a create payload.

        Args:
            entity: Entity being created
            payload: Decoded request payload
            index: Uniqueness index of the target collection

        Returns:
            Complete field values (without ``id``) with defaults applied

        Raises:
            ValidationError: With every field-level failure
        """
        values, errors = self._check(entity, payload, index, creating=True, partial=False)
        if errors:
            raise ValidationError(errors, entity_name=entity.name)
        return values

    def check_update(
        self,
        entity: EntityDef,
        payload: Mapping[str, Any],
        index: UniquenessIndex,
        instance_id: int,
        current: Mapping[str, Any],
        partial: bool,
    ) -> Dict[str, Any]:
        """Validate a replace (partial=False) or amend (partial=True) payload.

        Args:
            entity: Entity being updated
            payload: Decoded request payload
            index: Uniqueness index of the target collection
            instance_id: Id of the instance being updated
            current: Current field values of the instance
            partial: Merge supplied fields instead of replacing all

        Returns:
            The new complete field values (without ``id``)

        Raises:
            ValidationError: With every field-level failure
        """
        values, errors = self._check(
            entity,
            payload,
            index,
            creating=False,
            partial=partial,
            instance_id=instance_id,
            current=current,
        )
        if errors:
            raise ValidationError(errors, entity_name=entity.name)
        return values

    def _check(
        self,
        entity: EntityDef,
        payload: Mapping[str, Any],
        index: UniquenessIndex,
        creating: bool,
        partial: bool,
        instance_id: Optional[int] = None,
        current: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], List[str]]:
        errors: List[str] = []
        values: Dict[str, Any] = {}

        for field_def in entity.fields:
            supplied = field_def.name in payload
            value = payload.get(field_def.name)

            if field_def.system_generated:
                if field_def.name == ID_FIELD_NAME:
                    existing = instance_id
                elif current is not None:
                    existing = current.get(field_def.name)
                else:
                    existing = field_def.initial_value()
                if supplied:
                    error = self._system_field_error(field_def, value, creating, existing)
                    if error:
                        errors.append(error)
                if field_def.name != ID_FIELD_NAME:
                    values[field_def.name] = existing
                continue

            if not supplied:
                if partial and current is not None:
                    values[field_def.name] = current.get(field_def.name)
                elif field_def.required:
                    errors.append(f"Field {field_def.name} is mandatory")
                else:
                    values[field_def.name] = field_def.initial_value()
                continue

            if value is None:
                if field_def.required:
                    errors.append(f"Field {field_def.name} is mandatory")
                else:
                    values[field_def.name] = None
                continue

            try:
                converted = field_def.convert(value)
            except FieldValueError as e:
                errors.append(f"Field {field_def.name} {e}")
                continue

            if field_def.unique and index.collides(
                field_def.name, converted, exclude_id=instance_id
            ):
                errors.append(f"Field {field_def.name} Value is not unique")
                continue

            values[field_def.name] = converted

        known = set(entity.get_field_names())
        for key in sorted(k for k in payload.keys() if k not in known):
            errors.append(f"Could not find field: {key}")

        if errors:
            logger.debug(
                "Payload rejected",
                extra={"entity": entity.name, "errors": errors},
            )
        return values, errors

    @staticmethod
    def _system_field_error(
        field_def: FieldDef,
        value: Any,
        creating: bool,
        existing: Any,
    ) -> Optional[str]:
        if creating:
            return f"Not allowed to create with {field_def.name}"
        try:
            same = value is not None and field_def.convert(value) == existing
        except FieldValueError:
            same = False
        if same:
            return None
        return f"Not allowed to amend {field_def.name}"
