"""
A user's working session over one backend.

Writes always go through the repository first; once persisted, the shift
tree is re-read and the selection reconciled against it. Nothing is
mutated locally ahead of the backend.
"""

import logging

from shiftnotes.errors import NotFound, PartialCascadeFailure
from shiftnotes.models import Note, Patient, Shift
from shiftnotes.repositories.base import Backend, notes_in_display_order
from shiftnotes.selection import (
    PatientSelected,
    SelectionController,
    SelectionState,
    ShiftsChanged,
    ShiftSwitched,
)

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(self, backend: Backend) -> None:
        self._backend = backend
        self._selection = SelectionController()
        self._shifts: list[Shift] = []

    @property
    def selection(self) -> SelectionController:
        return self._selection

    @property
    def shifts(self) -> list[Shift]:
        return list(self._shifts)

    @property
    def current_shift(self) -> Shift | None:
        shift_id = self._selection.current_shift_id
        return next((s for s in self._shifts if s.id == shift_id), None)

    @property
    def patients(self) -> list[Patient]:
        shift = self.current_shift
        return list(shift.patients) if shift else []

    @property
    def selected_patient(self) -> Patient | None:
        patient_id = self._selection.selected_patient_id
        return next((p for p in self.patients if p.id == patient_id), None)

    @property
    def notes(self) -> list[Note]:
        patient = self.selected_patient
        return notes_in_display_order(patient.notes) if patient else []

    async def load(self) -> None:
        stored_shift_id = self._backend.selection.load_current_shift_id()
        self._selection = SelectionController(SelectionState(stored_shift_id))
        await self.refresh()

    async def refresh(self) -> None:
        self._shifts = await self._backend.shifts.list()
        self._selection.dispatch(ShiftsChanged(self._shifts))
        self._persist_current_shift()

    # -- shifts ------------------------------------------------------------

    async def create_shift(self, name: str) -> Shift:
        shift = await self._backend.shifts.create(name)
        await self.refresh()
        self._switch(shift.id)
        return shift

    async def rename_shift(self, shift_id: str, name: str) -> Shift:
        shift = await self._backend.shifts.update(shift_id, name=name)
        await self.refresh()
        return shift

    async def switch_shift(self, shift_id: str) -> None:
        await self.refresh()
        if not any(s.id == shift_id for s in self._shifts):
            raise NotFound("Shift", shift_id)
        self._switch(shift_id)

    async def delete_shift(self, shift_id: str) -> None:
        try:
            await self._backend.shifts.delete(shift_id)
        except PartialCascadeFailure:
            # the shift itself is gone; reflect that before reporting
            await self.refresh()
            raise
        await self.refresh()

    # -- patients ----------------------------------------------------------

    async def add_patient(self, name: str) -> Patient:
        shift = self.current_shift
        if shift is None:
            raise NotFound("Shift", None)
        patient = await self._backend.patients.create(shift.id, name)
        await self.refresh()
        self.select_patient(patient.id)
        return patient

    async def rename_patient(self, patient_id: str, name: str) -> Patient:
        patient = await self._backend.patients.update(patient_id, name=name)
        await self.refresh()
        return patient

    async def toggle_archive(self, patient_id: str) -> Patient:
        current = next((p for p in self.patients if p.id == patient_id), None)
        if current is None:
            raise NotFound("Patient", patient_id)
        patient = await self._backend.patients.update(
            patient_id, archived=not current.archived
        )
        await self.refresh()
        return patient

    async def delete_patient(self, patient_id: str) -> None:
        try:
            await self._backend.patients.delete(patient_id)
        except PartialCascadeFailure:
            await self.refresh()
            raise
        await self.refresh()

    def select_patient(self, patient_id: str) -> None:
        self._selection.dispatch(PatientSelected(patient_id))

    # -- notes -------------------------------------------------------------

    async def add_note(self, content: str) -> Note:
        patient = self.selected_patient
        if patient is None:
            raise NotFound("Patient", None)
        note = await self._backend.notes.create(patient.id, content)
        await self.refresh()
        return note

    async def edit_note(self, note_id: str, content: str) -> Note:
        note = await self._backend.notes.update(note_id, content=content)
        await self.refresh()
        return note

    async def delete_note(self, note_id: str) -> None:
        await self._backend.notes.delete(note_id)
        await self.refresh()

    def _switch(self, shift_id: str) -> None:
        shift = next(s for s in self._shifts if s.id == shift_id)
        self._selection.dispatch(ShiftSwitched(shift_id, shift.patients))
        self._persist_current_shift()

    def _persist_current_shift(self) -> None:
        shift_id = self._selection.current_shift_id
        if self._backend.selection.load_current_shift_id() != shift_id:
            logger.debug("current shift is now %s", shift_id)
            self._backend.selection.save_current_shift_id(shift_id)
