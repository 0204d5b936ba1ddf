"""
Repository contract shared by the local-document and remote-table backends.

Presentation code only ever sees these protocols; the backend is picked once
when the ``Backend`` bundle is built.
"""

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from shiftnotes.models import Note, Patient, Shift

# returns the caller's owner id or raises Unauthorized
IdentityProvider = Callable[[], Awaitable[str]]


class ShiftRepository(Protocol):
    async def list(self) -> list[Shift]: ...

    async def get(self, shift_id: str) -> Shift: ...

    async def create(self, name: str) -> Shift: ...

    async def update(self, shift_id: str, *, name: str) -> Shift: ...

    async def delete(self, shift_id: str) -> None: ...


class PatientRepository(Protocol):
    async def list(self, shift_id: str) -> list[Patient]: ...

    async def get(self, patient_id: str) -> Patient: ...

    async def create(self, shift_id: str, name: str) -> Patient: ...

    async def update(
        self,
        patient_id: str,
        *,
        name: str | None = None,
        archived: bool | None = None,
    ) -> Patient: ...

    async def delete(self, patient_id: str) -> None: ...


class NoteRepository(Protocol):
    async def list(self, patient_id: str) -> list[Note]: ...

    async def create(self, patient_id: str, content: str) -> Note: ...

    async def update(self, note_id: str, *, content: str) -> Note: ...

    async def delete(self, note_id: str) -> None: ...


class SelectionStore(Protocol):
    """Where the current shift id survives between sessions."""

    def load_current_shift_id(self) -> str | None: ...

    def save_current_shift_id(self, shift_id: str | None) -> None: ...


class MemorySelectionStore:
    def __init__(self, shift_id: str | None = None) -> None:
        self._shift_id = shift_id

    def load_current_shift_id(self) -> str | None:
        return self._shift_id

    def save_current_shift_id(self, shift_id: str | None) -> None:
        self._shift_id = shift_id


@dataclass(frozen=True)
class Backend:
    shifts: ShiftRepository
    patients: PatientRepository
    notes: NoteRepository
    selection: SelectionStore


def notes_in_display_order(notes: Iterable[Note]) -> list[Note]:
    return sorted(notes, key=lambda n: n.created_at)

