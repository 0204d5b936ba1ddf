"""
Composite keys of the flat remote table.

    SHIFT#{shiftId}
    PATIENT#{patientId}#{shiftId}
    NOTE#{noteId}#{patientId}

The table can only match keys by prefix, so a lookup by own id is a prefix
query on ``{TYPE}#{id}#`` and a listing by parent is a type-prefix query
followed by a filter on the parent segment. A secondary index keyed by parent
id would avoid the over-read at the cost of extra writes.
"""

from dataclasses import dataclass
from enum import StrEnum

SEPARATOR = "#"


class EntityType(StrEnum):
    SHIFT = "SHIFT"
    PATIENT = "PATIENT"
    NOTE = "NOTE"


@dataclass(frozen=True)
class EntityKey:
    type: EntityType
    own_id: str
    parent_id: str | None = None

    def __str__(self) -> str:
        return compose_key(self.type, self.own_id, self.parent_id)


def compose_key(
    entity_type: EntityType, own_id: str, parent_id: str | None = None
) -> str:
    parts = [entity_type.value, own_id]
    if parent_id is not None:
        parts.append(parent_id)
    return SEPARATOR.join(parts)


def parse_key(entity_id: str) -> EntityKey:
    parts = entity_id.split(SEPARATOR)
    if len(parts) not in (2, 3):
        raise ValueError(f"malformed entity key: {entity_id!r}")
    entity_type = EntityType(parts[0])
    parent_id = parts[2] if len(parts) == 3 else None
    return EntityKey(entity_type, parts[1], parent_id)


def type_prefix(entity_type: EntityType) -> str:
    return f"{entity_type.value}{SEPARATOR}"


def own_prefix(entity_type: EntityType, own_id: str) -> str:
    """Prefix of a child record (patient or note) looked up by its own id."""
    # trailing separator keeps "PATIENT#12" from matching "PATIENT#123#..."
    return f"{compose_key(entity_type, own_id)}{SEPARATOR}"

