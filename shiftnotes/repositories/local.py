"""
Repositories over the local JSON document.

Each mutation works on a deep copy of the document, persists it, and only
then becomes the in-memory state, so a failed write leaves nothing changed.
Lookups walk the tree; unlike the remote table there is no key layout to
query against.
"""

import logging
from pathlib import Path

from shiftnotes.config import settings
from shiftnotes.errors import NotFound, ValidationError
from shiftnotes.models import (
    AppData,
    Note,
    Patient,
    Shift,
    generate_id,
    require_text,
    utcnow,
)
from shiftnotes.repositories.base import Backend, notes_in_display_order
from shiftnotes.selection import fallback_shift_id
from shiftnotes.storage import LocalDocumentStore

logger = logging.getLogger(__name__)


def _patient_view(patient: Patient) -> Patient:
    view = patient.model_copy(deep=True)
    view.notes = notes_in_display_order(view.notes)
    return view


def _shift_view(shift: Shift) -> Shift:
    view = shift.model_copy(deep=True)
    view.patients = [_patient_view(p) for p in view.patients]
    return view


class _DocumentRepository:
    def __init__(self, store: LocalDocumentStore) -> None:
        self._store = store

    @property
    def _document(self) -> AppData:
        return self._store.document

    def _draft(self) -> AppData:
        return self._document.model_copy(deep=True)

    def _commit(self, draft: AppData) -> None:
        self._store.save(draft)


class LocalShiftRepository(_DocumentRepository):
    async def list(self) -> list[Shift]:
        return [_shift_view(s) for s in self._document.shifts]

    async def get(self, shift_id: str) -> Shift:
        shift = self._document.find_shift(shift_id)
        if shift is None:
            raise NotFound("Shift", shift_id)
        return _shift_view(shift)

    async def create(self, name: str) -> Shift:
        name = require_text(name, "name", "Shift name is required")
        shift = Shift(id=generate_id(), name=name, created_at=utcnow())
        draft = self._draft()
        draft.shifts.append(shift)
        self._commit(draft)
        logger.info("created shift %s", shift.id)
        return shift.model_copy(deep=True)

    async def update(self, shift_id: str, *, name: str) -> Shift:
        name = require_text(name, "name", "Shift name is required")
        draft = self._draft()
        shift = draft.find_shift(shift_id)
        if shift is None:
            raise NotFound("Shift", shift_id)
        shift.name = name
        shift.updated_at = utcnow()
        self._commit(draft)
        logger.info("updated shift %s", shift_id)
        return _shift_view(shift)

    async def delete(self, shift_id: str) -> None:
        draft = self._draft()
        shift = draft.find_shift(shift_id)
        if shift is None:
            raise NotFound("Shift", shift_id)
        draft.shifts = [s for s in draft.shifts if s.id != shift_id]
        # the stored pointer must never outlive its shift
        draft.current_shift_id = fallback_shift_id(draft.current_shift_id, draft.shifts)
        self._commit(draft)
        logger.info(
            "deleted shift %s with %d patient(s) and %d note(s)",
            shift_id,
            len(shift.patients),
            sum(len(p.notes) for p in shift.patients),
        )


class LocalPatientRepository(_DocumentRepository):
    async def list(self, shift_id: str) -> list[Patient]:
        shift = self._document.find_shift(shift_id)
        if shift is None:
            return []
        return [_patient_view(p) for p in shift.patients]

    async def get(self, patient_id: str) -> Patient:
        found = self._document.find_patient(patient_id)
        if found is None:
            raise NotFound("Patient", patient_id)
        return _patient_view(found[1])

    async def create(self, shift_id: str, name: str) -> Patient:
        name = require_text(name, "name", "Patient name is required")
        draft = self._draft()
        shift = draft.find_shift(shift_id)
        if shift is None:
            raise NotFound("Shift", shift_id)
        patient = Patient(id=generate_id(), name=name, archived=False, created_at=utcnow())
        shift.patients.append(patient)
        self._commit(draft)
        logger.info("created patient %s in shift %s", patient.id, shift_id)
        return patient.model_copy(deep=True)

    async def update(
        self,
        patient_id: str,
        *,
        name: str | None = None,
        archived: bool | None = None,
    ) -> Patient:
        if name is None and archived is None:
            raise ValidationError("Nothing to update")
        if name is not None:
            name = require_text(name, "name", "Patient name is required")
        draft = self._draft()
        found = draft.find_patient(patient_id)
        if found is None:
            raise NotFound("Patient", patient_id)
        patient = found[1]
        if name is not None:
            patient.name = name
        if archived is not None:
            patient.archived = archived
        patient.updated_at = utcnow()
        self._commit(draft)
        logger.info("updated patient %s", patient_id)
        return _patient_view(patient)

    async def delete(self, patient_id: str) -> None:
        draft = self._draft()
        found = draft.find_patient(patient_id)
        if found is None:
            raise NotFound("Patient", patient_id)
        shift, patient = found
        shift.patients = [p for p in shift.patients if p.id != patient_id]
        self._commit(draft)
        logger.info("deleted patient %s and %d note(s)", patient_id, len(patient.notes))


class LocalNoteRepository(_DocumentRepository):
    async def list(self, patient_id: str) -> list[Note]:
        found = self._document.find_patient(patient_id)
        if found is None:
            return []
        return [n.model_copy() for n in notes_in_display_order(found[1].notes)]

    async def create(self, patient_id: str, content: str) -> Note:
        content = require_text(content, "content", "Note content is required")
        draft = self._draft()
        found = draft.find_patient(patient_id)
        if found is None:
            raise NotFound("Patient", patient_id)
        note = Note(id=generate_id(), content=content, created_at=utcnow())
        found[1].notes.append(note)
        self._commit(draft)
        logger.info("created note %s for patient %s", note.id, patient_id)
        return note.model_copy()

    async def update(self, note_id: str, *, content: str) -> Note:
        content = require_text(content, "content", "Note content is required")
        draft = self._draft()
        found = draft.find_note(note_id)
        if found is None:
            raise NotFound("Note", note_id)
        note = found[1]
        note.content = content
        note.edited_at = utcnow()
        self._commit(draft)
        logger.info("edited note %s", note_id)
        return note.model_copy()

    async def delete(self, note_id: str) -> None:
        draft = self._draft()
        found = draft.find_note(note_id)
        if found is None:
            raise NotFound("Note", note_id)
        patient = found[0]
        patient.notes = [n for n in patient.notes if n.id != note_id]
        self._commit(draft)
        logger.info("deleted note %s", note_id)


def build_local_backend(
    store: LocalDocumentStore | Path | str | None = None,
) -> Backend:
    if store is None:
        store = settings.data_path
    if not isinstance(store, LocalDocumentStore):
        store = LocalDocumentStore(store)
    return Backend(
        shifts=LocalShiftRepository(store),
        patients=LocalPatientRepository(store),
        notes=LocalNoteRepository(store),
        selection=store,
    )
