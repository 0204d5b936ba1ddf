"""
Repositories over the flat remote table.

Every record lives under the caller's owner id; see ``shiftnotes.keys`` for
the composite key layout. Deletes of shifts and patients are two-phase with
no transaction spanning them: the primary record goes first, then the
descendants in sequential batches. A failed batch leaves orphans behind and
surfaces as ``PartialCascadeFailure``; deleting the same id again finds the
leftovers by their parent segment and finishes the job.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime
from uuid import uuid4

from shiftnotes.config import settings
from shiftnotes.errors import (
    NotFound,
    PartialCascadeFailure,
    PersistenceFailure,
    Unauthorized,
    ValidationError,
)
from shiftnotes.keys import (
    EntityType,
    compose_key,
    own_prefix,
    parse_key,
    type_prefix,
)
from shiftnotes.models import Note, Patient, Shift, require_text, utcnow
from shiftnotes.repositories.base import (
    Backend,
    IdentityProvider,
    MemorySelectionStore,
    SelectionStore,
    notes_in_display_order,
)
from shiftnotes.table import InMemoryEntityTable, StoreError, TableItem

logger = logging.getLogger(__name__)


class _TableRepository:
    entity_name = "Entity"

    def __init__(
        self,
        table: InMemoryEntityTable,
        identity: IdentityProvider,
        *,
        batch_size: int | None = None,
    ) -> None:
        self._table = table
        self._identity = identity
        self._batch_size = min(
            batch_size or settings.cascade_batch_size, table.max_batch_size
        )

    async def _owner(self) -> str:
        owner_id = await self._identity()
        if not owner_id:
            raise Unauthorized()
        return owner_id

    # -- table access; store errors become PersistenceFailure --------------

    def _query(self, owner_id: str, prefix: str) -> list[TableItem]:
        try:
            return self._table.query(owner_id, prefix)
        except StoreError as exc:
            logger.error("query %r failed: %s", prefix, exc)
            raise PersistenceFailure(str(exc)) from exc

    def _get(self, owner_id: str, entity_id: str) -> TableItem | None:
        try:
            return self._table.get(owner_id, entity_id)
        except StoreError as exc:
            logger.error("get %r failed: %s", entity_id, exc)
            raise PersistenceFailure(str(exc)) from exc

    def _delete(self, owner_id: str, entity_id: str) -> None:
        try:
            self._table.delete(owner_id, entity_id)
        except StoreError as exc:
            logger.error("delete %r failed: %s", entity_id, exc)
            raise PersistenceFailure(str(exc)) from exc

    def _write(
        self,
        owner_id: str,
        entity_id: str,
        snapshot: str,
        *,
        created_at: datetime,
        updated_at: datetime,
    ) -> None:
        item = TableItem(
            owner_id=owner_id,
            entity_id=entity_id,
            entity_type=parse_key(entity_id).type,
            data=snapshot,
            created_at=created_at,
            updated_at=updated_at,
        )
        try:
            self._table.put(item)
        except StoreError as exc:
            logger.error("put %r failed: %s", entity_id, exc)
            raise PersistenceFailure(str(exc)) from exc

    def _find_child(
        self, owner_id: str, entity_type: EntityType, own_id: str
    ) -> TableItem | None:
        items = self._query(owner_id, own_prefix(entity_type, own_id))
        return items[0] if items else None

    # -- tree assembly -----------------------------------------------------

    def _children(
        self, owner_id: str, entity_type: EntityType, parent_ids: Iterable[str]
    ) -> dict[str, list[TableItem]]:
        wanted = set(parent_ids)
        grouped: dict[str, list[TableItem]] = defaultdict(list)
        if not wanted:
            return grouped
        for item in self._query(owner_id, type_prefix(entity_type)):
            parent_id = parse_key(item.entity_id).parent_id
            if parent_id in wanted:
                grouped[parent_id].append(item)
        return grouped

    def _notes_by_patient(
        self, owner_id: str, patient_ids: Iterable[str]
    ) -> dict[str, list[Note]]:
        return {
            patient_id: notes_in_display_order(
                Note.model_validate_json(i.data) for i in items
            )
            for patient_id, items in self._children(
                owner_id, EntityType.NOTE, patient_ids
            ).items()
        }

    def _patients_by_shift(
        self, owner_id: str, shift_ids: Iterable[str]
    ) -> dict[str, list[Patient]]:
        grouped = self._children(owner_id, EntityType.PATIENT, shift_ids)
        patient_ids = [
            parse_key(i.entity_id).own_id for items in grouped.values() for i in items
        ]
        notes = self._notes_by_patient(owner_id, patient_ids)
        result: dict[str, list[Patient]] = {}
        for shift_id, items in grouped.items():
            ordered = sorted(items, key=lambda i: (i.created_at, i.entity_id))
            result[shift_id] = [
                _patient_from_item(i, notes.get(parse_key(i.entity_id).own_id, []))
                for i in ordered
            ]
        return result

    # -- cascade -----------------------------------------------------------

    def _note_keys_under(self, owner_id: str, patient_ids: Iterable[str]) -> list[str]:
        grouped = self._children(owner_id, EntityType.NOTE, patient_ids)
        return [i.entity_id for items in grouped.values() for i in items]

    def _cascade(self, owner_id: str, primary_id: str, entity_ids: Sequence[str]) -> int:
        removed = 0
        for start in range(0, len(entity_ids), self._batch_size):
            batch = list(entity_ids[start : start + self._batch_size])
            try:
                self._table.batch_delete(owner_id, batch)
            except StoreError as exc:
                remaining = len(entity_ids) - removed
                logger.error(
                    "cascade delete of %s %s failed after %d record(s), %d left: %s",
                    self.entity_name,
                    primary_id,
                    removed,
                    remaining,
                    exc,
                )
                raise PartialCascadeFailure(
                    self.entity_name, primary_id, removed=removed, remaining=remaining
                ) from exc
            removed += len(batch)
            logger.debug(
                "cascade %s %s: removed batch of %d", self.entity_name, primary_id, len(batch)
            )
        return removed


def _shift_snapshot(shift: Shift) -> str:
    return shift.model_dump_json(by_alias=True, exclude_none=True, exclude={"patients"})


def _patient_snapshot(patient: Patient) -> str:
    return patient.model_dump_json(by_alias=True, exclude_none=True, exclude={"notes"})


def _note_snapshot(note: Note) -> str:
    return note.model_dump_json(by_alias=True, exclude_none=True)


def _patient_from_item(item: TableItem, notes: list[Note]) -> Patient:
    patient = Patient.model_validate_json(item.data)
    patient.notes = notes
    return patient


class TableShiftRepository(_TableRepository):
    entity_name = "Shift"

    async def list(self) -> list[Shift]:
        owner_id = await self._owner()
        items = self._query(owner_id, type_prefix(EntityType.SHIFT))
        shifts = [Shift.model_validate_json(i.data) for i in items]
        patients = self._patients_by_shift(owner_id, [s.id for s in shifts])
        for shift in shifts:
            shift.patients = patients.get(shift.id, [])
        return sorted(shifts, key=lambda s: (s.created_at, s.id))

    async def get(self, shift_id: str) -> Shift:
        owner_id = await self._owner()
        return self._load(owner_id, shift_id)

    async def create(self, name: str) -> Shift:
        owner_id = await self._owner()
        name = require_text(name, "name", "Shift name is required")
        now = utcnow()
        shift = Shift(id=str(uuid4()), name=name, created_at=now)
        self._write(
            owner_id,
            compose_key(EntityType.SHIFT, shift.id),
            _shift_snapshot(shift),
            created_at=now,
            updated_at=now,
        )
        logger.info("created shift %s", shift.id)
        return shift

    async def update(self, shift_id: str, *, name: str) -> Shift:
        owner_id = await self._owner()
        name = require_text(name, "name", "Shift name is required")
        item = self._get(owner_id, compose_key(EntityType.SHIFT, shift_id))
        if item is None:
            raise NotFound("Shift", shift_id)
        shift = Shift.model_validate_json(item.data)
        shift.name = name
        shift.updated_at = utcnow()
        self._write(
            owner_id,
            item.entity_id,
            _shift_snapshot(shift),
            created_at=item.created_at,
            updated_at=shift.updated_at,
        )
        logger.info("updated shift %s", shift_id)
        return self._load(owner_id, shift_id)

    async def delete(self, shift_id: str) -> None:
        owner_id = await self._owner()
        entity_id = compose_key(EntityType.SHIFT, shift_id)
        primary = self._get(owner_id, entity_id)
        if primary is not None:
            self._delete(owner_id, entity_id)

        patient_items = self._children(owner_id, EntityType.PATIENT, [shift_id])
        patient_keys = [i.entity_id for i in patient_items.get(shift_id, [])]
        patient_ids = [parse_key(k).own_id for k in patient_keys]
        # notes go first so a retry can still reach them through their patient
        descendants = self._note_keys_under(owner_id, patient_ids) + patient_keys

        if primary is None and not descendants:
            raise NotFound("Shift", shift_id)
        if primary is None:
            logger.warning(
                "shift %s already removed, retrying cascade of %d record(s)",
                shift_id,
                len(descendants),
            )
        removed = self._cascade(owner_id, shift_id, descendants)
        logger.info("deleted shift %s and %d descendant record(s)", shift_id, removed)

    def _load(self, owner_id: str, shift_id: str) -> Shift:
        item = self._get(owner_id, compose_key(EntityType.SHIFT, shift_id))
        if item is None:
            raise NotFound("Shift", shift_id)
        shift = Shift.model_validate_json(item.data)
        shift.patients = self._patients_by_shift(owner_id, [shift_id]).get(shift_id, [])
        return shift


class TablePatientRepository(_TableRepository):
    entity_name = "Patient"

    async def list(self, shift_id: str) -> list[Patient]:
        owner_id = await self._owner()
        if self._get(owner_id, compose_key(EntityType.SHIFT, shift_id)) is None:
            raise NotFound("Shift", shift_id)
        return self._patients_by_shift(owner_id, [shift_id]).get(shift_id, [])

    async def get(self, patient_id: str) -> Patient:
        owner_id = await self._owner()
        item = self._find_child(owner_id, EntityType.PATIENT, patient_id)
        if item is None:
            raise NotFound("Patient", patient_id)
        return _patient_from_item(
            item, self._notes_by_patient(owner_id, [patient_id]).get(patient_id, [])
        )

    async def create(self, shift_id: str, name: str) -> Patient:
        owner_id = await self._owner()
        name = require_text(name, "name", "Patient name is required")
        if self._get(owner_id, compose_key(EntityType.SHIFT, shift_id)) is None:
            raise NotFound("Shift", shift_id)
        now = utcnow()
        patient = Patient(id=str(uuid4()), name=name, archived=False, created_at=now)
        self._write(
            owner_id,
            compose_key(EntityType.PATIENT, patient.id, shift_id),
            _patient_snapshot(patient),
            created_at=now,
            updated_at=now,
        )
        logger.info("created patient %s in shift %s", patient.id, shift_id)
        return patient

    async def update(
        self,
        patient_id: str,
        *,
        name: str | None = None,
        archived: bool | None = None,
    ) -> Patient:
        owner_id = await self._owner()
        if name is None and archived is None:
            raise ValidationError("Nothing to update")
        if name is not None:
            name = require_text(name, "name", "Patient name is required")

        # the shift segment of the key is unknown here, hence the prefix query
        item = self._find_child(owner_id, EntityType.PATIENT, patient_id)
        if item is None:
            raise NotFound("Patient", patient_id)
        patient = Patient.model_validate_json(item.data)
        if name is not None:
            patient.name = name
        if archived is not None:
            patient.archived = archived
        patient.updated_at = utcnow()
        self._write(
            owner_id,
            item.entity_id,
            _patient_snapshot(patient),
            created_at=item.created_at,
            updated_at=patient.updated_at,
        )
        logger.info("updated patient %s", patient_id)
        patient.notes = self._notes_by_patient(owner_id, [patient_id]).get(patient_id, [])
        return patient

    async def delete(self, patient_id: str) -> None:
        owner_id = await self._owner()
        primary = self._find_child(owner_id, EntityType.PATIENT, patient_id)
        if primary is not None:
            self._delete(owner_id, primary.entity_id)

        descendants = self._note_keys_under(owner_id, [patient_id])
        if primary is None and not descendants:
            raise NotFound("Patient", patient_id)
        if primary is None:
            logger.warning(
                "patient %s already removed, retrying cascade of %d note(s)",
                patient_id,
                len(descendants),
            )
        removed = self._cascade(owner_id, patient_id, descendants)
        logger.info("deleted patient %s and %d note(s)", patient_id, removed)


class TableNoteRepository(_TableRepository):
    entity_name = "Note"

    async def list(self, patient_id: str) -> list[Note]:
        owner_id = await self._owner()
        if self._find_child(owner_id, EntityType.PATIENT, patient_id) is None:
            raise NotFound("Patient", patient_id)
        return self._notes_by_patient(owner_id, [patient_id]).get(patient_id, [])

    async def create(self, patient_id: str, content: str) -> Note:
        owner_id = await self._owner()
        content = require_text(content, "content", "Note content is required")
        if self._find_child(owner_id, EntityType.PATIENT, patient_id) is None:
            raise NotFound("Patient", patient_id)
        now = utcnow()
        note = Note(id=str(uuid4()), content=content, created_at=now)
        self._write(
            owner_id,
            compose_key(EntityType.NOTE, note.id, patient_id),
            _note_snapshot(note),
            created_at=now,
            updated_at=now,
        )
        logger.info("created note %s for patient %s", note.id, patient_id)
        return note

    async def update(self, note_id: str, *, content: str) -> Note:
        owner_id = await self._owner()
        content = require_text(content, "content", "Note content is required")
        item = self._find_child(owner_id, EntityType.NOTE, note_id)
        if item is None:
            raise NotFound("Note", note_id)
        note = Note.model_validate_json(item.data)
        note.content = content
        note.edited_at = utcnow()
        self._write(
            owner_id,
            item.entity_id,
            _note_snapshot(note),
            created_at=item.created_at,
            updated_at=note.edited_at,
        )
        logger.info("edited note %s", note_id)
        return note

    async def delete(self, note_id: str) -> None:
        owner_id = await self._owner()
        item = self._find_child(owner_id, EntityType.NOTE, note_id)
        if item is None:
            raise NotFound("Note", note_id)
        self._delete(owner_id, item.entity_id)
        logger.info("deleted note %s", note_id)


def build_remote_backend(
    table: InMemoryEntityTable,
    identity: IdentityProvider,
    *,
    selection: SelectionStore | None = None,
    batch_size: int | None = None,
) -> Backend:
    return Backend(
        shifts=TableShiftRepository(table, identity, batch_size=batch_size),
        patients=TablePatientRepository(table, identity, batch_size=batch_size),
        notes=TableNoteRepository(table, identity, batch_size=batch_size),
        selection=selection or MemorySelectionStore(),
    )
