"""
Domain models for shifts, patients and notes.

The JSON shape (local document and API payloads) is camelCase; Python code
uses the snake_case attribute names.
"""

import random
import string
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shiftnotes.errors import ValidationError

_ID_ALPHABET = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    return datetime.now(UTC)


def generate_id() -> str:
    """
    Local identifier: ``{epoch millis}-{9 base36 chars}``.

    The numeric prefix doubles as a creation time for records written before
    ``createdAt`` existed.
    """
    millis = int(utcnow().timestamp() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{millis}-{suffix}"


def timestamp_from_id(entity_id: str) -> datetime | None:
    head = entity_id.split("-", 1)[0]
    if not head.isdigit():
        return None
    try:
        return datetime.fromtimestamp(int(head) / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


class DomainModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Note(DomainModel):
    id: str
    content: str
    created_at: datetime
    edited_at: datetime | None = None


class Patient(DomainModel):
    id: str
    name: str
    notes: list[Note] = Field(default_factory=list)
    archived: bool = False
    # absent on records written by early versions; see migration
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def effective_created_at(self) -> datetime | None:
        return self.created_at or timestamp_from_id(self.id)


class Shift(DomainModel):
    id: str
    name: str
    created_at: datetime
    updated_at: datetime | None = None
    patients: list[Patient] = Field(default_factory=list)


class AppData(DomainModel):
    """The whole local document."""

    shifts: list[Shift] = Field(default_factory=list)
    current_shift_id: str | None = None

    def to_json(self) -> dict[str, Any]:
        data = super().to_json()
        # currentShiftId is always present in the stored document, even as null
        data["currentShiftId"] = self.current_shift_id
        return data

    def find_shift(self, shift_id: str) -> Shift | None:
        return next((s for s in self.shifts if s.id == shift_id), None)

    def find_patient(self, patient_id: str) -> tuple[Shift, Patient] | None:
        for shift in self.shifts:
            for patient in shift.patients:
                if patient.id == patient_id:
                    return shift, patient
        return None

    def find_note(self, note_id: str) -> tuple[Patient, Note] | None:
        for shift in self.shifts:
            for patient in shift.patients:
                for note in patient.notes:
                    if note.id == note_id:
                        return patient, note
        return None


def require_text(value: str | None, field: str, message: str) -> str:
    """Trim ``value`` and reject it when nothing is left."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(message, field=field)
    return text
