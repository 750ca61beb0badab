"""Card types and their custom-field visibility groups.

Each custom field of a card type belongs to exactly one visibility group:

* ``always``   -- listed in ``always_visible_fields`` (ordered)
* ``optional`` -- listed in ``optionally_visible_fields`` (ordered)
* ``hidden``   -- in neither list

Every operation returns a new ``CardType``; the input is never modified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from cardweave.errors import DuplicateFieldError, NotFoundError, VisibilityInvariantError
from cardweave.rank import insert_item, move_item, remove_item
from cardweave.types.resources import CustomFieldDict
from cardweave.validation import check_name

logger = logging.getLogger(__name__)

VisibilityGroup = Literal["always", "optional", "hidden"]
Direction = Literal["up", "down"]

# Fixed order walked by cycle_group(); "down" moves forward, "up" backward.
VISIBILITY_CYCLE: tuple[VisibilityGroup, ...] = ("always", "optional", "hidden")


@dataclass(frozen=True)
class CustomField:
    """A custom field attached to a card type."""

    name: str
    display_name: str | None = None
    description: str | None = None
    is_calculated: bool = False
    is_editable: bool | None = None

    def __post_init__(self) -> None:
        if self.is_editable is None:
            object.__setattr__(self, "is_editable", not self.is_calculated)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CustomField:
        name, error = check_name(raw.get("name"), "field name")
        if error:
            raise ValueError(error)
        return cls(
            name=name,
            display_name=raw.get("displayName"),
            description=raw.get("description"),
            is_calculated=bool(raw.get("isCalculated", False)),
            is_editable=raw.get("isEditable"),
        )

    def to_dict(self) -> CustomFieldDict:
        out: CustomFieldDict = {"name": self.name, "isCalculated": self.is_calculated}
        if self.display_name is not None:
            out["displayName"] = self.display_name
        if self.description is not None:
            out["description"] = self.description
        if self.is_editable != (not self.is_calculated):
            out["isEditable"] = self.is_editable
        return out


@dataclass(frozen=True)
class CardType:
    """A card type: its workflow and its visibility-grouped custom fields."""

    name: str
    workflow: str
    custom_fields: tuple[CustomField, ...] = ()
    always_visible_fields: tuple[str, ...] = ()
    optionally_visible_fields: tuple[str, ...] = ()
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def get_field(self, name: str) -> CustomField | None:
        for f in self.custom_fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        return self.get_field(name) is not None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CardType:
        """Parse a card type from its JSON-compatible dict form.

        Keys this model does not use are kept in ``extra`` and written back by
        ``to_dict()``.
        """
        if not isinstance(raw, dict):
            msg = f"Card type must be a dict, got {type(raw).__name__}"
            raise ValueError(msg)
        name, error = check_name(raw.get("name"), "card type name")
        if error:
            raise ValueError(error)
        workflow = raw.get("workflow")
        if not isinstance(workflow, str):
            msg = f"Card type '{name}': 'workflow' must be a string"
            raise ValueError(msg)
        known = {"name", "workflow", "customFields", "alwaysVisibleFields", "optionallyVisibleFields"}
        return cls(
            name=name,
            workflow=workflow,
            custom_fields=tuple(CustomField.from_dict(f) for f in raw.get("customFields") or []),
            always_visible_fields=tuple(raw.get("alwaysVisibleFields") or []),
            optionally_visible_fields=tuple(raw.get("optionallyVisibleFields") or []),
            extra={k: v for k, v in raw.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "name": self.name,
            "workflow": self.workflow,
            "customFields": [f.to_dict() for f in self.custom_fields],
            "alwaysVisibleFields": list(self.always_visible_fields),
            "optionallyVisibleFields": list(self.optionally_visible_fields),
        }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def group_of(card_type: CardType, field_name: str) -> VisibilityGroup:
    """Current visibility group of a field.

    Raises:
        NotFoundError: If the field is not one of the card type's custom fields.
    """
    _require_field(card_type, field_name)
    if field_name in card_type.always_visible_fields:
        return "always"
    if field_name in card_type.optionally_visible_fields:
        return "optional"
    return "hidden"


def fields_by_group(card_type: CardType) -> dict[VisibilityGroup, list[CustomField]]:
    """Custom fields grouped for display; hidden fields follow custom-field order."""
    by_name = {f.name: f for f in card_type.custom_fields}
    listed = set(card_type.always_visible_fields) | set(card_type.optionally_visible_fields)
    return {
        "always": [by_name[n] for n in card_type.always_visible_fields if n in by_name],
        "optional": [by_name[n] for n in card_type.optionally_visible_fields if n in by_name],
        "hidden": [f for f in card_type.custom_fields if f.name not in listed],
    }


def validate_card_type(card_type: CardType) -> list[str]:
    """Check visibility invariants. Empty list means valid."""
    errors: list[str] = []
    names: set[str] = set()
    for f in card_type.custom_fields:
        if f.name in names:
            errors.append(f"duplicate custom field '{f.name}'")
        names.add(f.name)
    for list_name, entries in (
        ("alwaysVisibleFields", card_type.always_visible_fields),
        ("optionallyVisibleFields", card_type.optionally_visible_fields),
    ):
        seen: set[str] = set()
        for entry in entries:
            if entry in seen:
                errors.append(f"{list_name} lists '{entry}' more than once")
            seen.add(entry)
            if entry not in names:
                errors.append(f"{list_name} entry '{entry}' is not a custom field")
    for both in sorted(set(card_type.always_visible_fields) & set(card_type.optionally_visible_fields)):
        errors.append(f"field '{both}' is in both alwaysVisibleFields and optionallyVisibleFields")
    return errors


def _require_field(card_type: CardType, field_name: str) -> None:
    if not card_type.has_field(field_name):
        raise NotFoundError("Custom field", f"{card_type.name}.{field_name}")


def _check_exclusive(card_type: CardType, field_name: str) -> None:
    if field_name in card_type.always_visible_fields and field_name in card_type.optionally_visible_fields:
        msg = f"Field '{field_name}' of card type '{card_type.name}' ended up in both visibility lists"
        raise VisibilityInvariantError(msg)


def _list_attr(group: VisibilityGroup) -> str | None:
    if group == "always":
        return "always_visible_fields"
    if group == "optional":
        return "optionally_visible_fields"
    if group == "hidden":
        return None
    msg = f"Unknown visibility group '{group}': must be one of {list(VISIBILITY_CYCLE)}"
    raise ValueError(msg)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def add_field(card_type: CardType, new_field: CustomField, into_group: VisibilityGroup = "always") -> CardType:
    """Append a custom field and, unless hidden, its name to the target group.

    Raises:
        DuplicateFieldError: If a field with the same name already exists.
    """
    target = _list_attr(into_group)
    if card_type.has_field(new_field.name):
        raise DuplicateFieldError(card_type.name, new_field.name)
    updated = replace(card_type, custom_fields=(*card_type.custom_fields, new_field))
    if target is not None:
        updated = replace(updated, **{target: insert_item(getattr(updated, target), new_field.name)})
    logger.debug("Added field %s to %s (%s)", new_field.name, card_type.name, into_group)
    return updated


def remove_field(card_type: CardType, field_name: str) -> CardType:
    """Remove a custom field and its entry in any visibility list.

    Raises:
        NotFoundError: If the field does not exist.
    """
    _require_field(card_type, field_name)
    logger.debug("Removing field %s from %s", field_name, card_type.name)
    return replace(
        card_type,
        custom_fields=tuple(f for f in card_type.custom_fields if f.name != field_name),
        always_visible_fields=remove_item(card_type.always_visible_fields, field_name),
        optionally_visible_fields=remove_item(card_type.optionally_visible_fields, field_name),
    )


def update_field(card_type: CardType, field_name: str, **changes: Any) -> CardType:
    """Replace attributes of an existing field (not its name or group).

    Changing ``is_calculated`` without passing ``is_editable`` re-derives
    ``is_editable`` from the new value.

    Raises:
        NotFoundError: If the field does not exist.
        ValueError: If *changes* tries to rename the field.
    """
    _require_field(card_type, field_name)
    if "name" in changes and changes["name"] != field_name:
        msg = "Custom fields cannot be renamed in place; remove and add the field instead"
        raise ValueError(msg)
    if "is_calculated" in changes and "is_editable" not in changes:
        changes["is_editable"] = None
    return replace(
        card_type,
        custom_fields=tuple(replace(f, **changes) if f.name == field_name else f for f in card_type.custom_fields),
    )


def set_group(
    card_type: CardType,
    field_name: str,
    target_group: VisibilityGroup,
    target_index: int | None = None,
) -> CardType:
    """Move a field into *target_group* at *target_index* (default: append).

    The field is first removed from whichever list holds it, so moving within
    the same group relocates it. An index past the end appends.

    Raises:
        NotFoundError: If the field does not exist.
        ValueError: If *target_index* is negative or the group is unknown.
    """
    target = _list_attr(target_group)
    _require_field(card_type, field_name)
    updated = replace(
        card_type,
        always_visible_fields=remove_item(card_type.always_visible_fields, field_name),
        optionally_visible_fields=remove_item(card_type.optionally_visible_fields, field_name),
    )
    if target is not None:
        updated = replace(updated, **{target: insert_item(getattr(updated, target), field_name, target_index)})
    _check_exclusive(updated, field_name)
    logger.debug("Field %s of %s -> %s[%s]", field_name, card_type.name, target_group, target_index)
    return updated


def reorder_within_group(card_type: CardType, field_name: str, direction: Direction) -> CardType:
    """Swap a field one position toward the front ("up") or back ("down").

    A field already at the boundary, or a hidden field, is left in place.
    """
    group = group_of(card_type, field_name)
    target = _list_attr(group)
    if target is None:
        return card_type
    entries: tuple[str, ...] = getattr(card_type, target)
    current = entries.index(field_name)
    if direction == "up":
        new_index = current - 1
    elif direction == "down":
        new_index = current + 1
    else:
        msg = f"Unknown direction '{direction}': must be 'up' or 'down'"
        raise ValueError(msg)
    if new_index < 0 or new_index >= len(entries):
        return card_type
    return replace(card_type, **{target: move_item(entries, field_name, new_index)})


def cycle_group(card_type: CardType, field_name: str, direction: Direction = "down") -> CardType:
    """Move a field to the next group in always -> optional -> hidden (wrapping).

    "up" walks the cycle backwards. The field is appended to the destination.
    """
    current = VISIBILITY_CYCLE.index(group_of(card_type, field_name))
    if direction == "down":
        step = 1
    elif direction == "up":
        step = -1
    else:
        msg = f"Unknown direction '{direction}': must be 'up' or 'down'"
        raise ValueError(msg)
    return set_group(card_type, field_name, VISIBILITY_CYCLE[(current + step) % len(VISIBILITY_CYCLE)])
