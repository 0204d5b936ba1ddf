"""
Selection of the active shift and the selected patient.

The state is a pair of ids reconciled against live collections by pure
transition functions, one per event:

- ``ShiftsChanged``: the shift collection was re-read
- ``ShiftSwitched``: the user opened another shift
- ``PatientsChanged``: the active shift's patients were re-read
- ``PatientSelected``: the user picked a patient

Rules applied after every event:

1. no active shift means no selected patient;
2. with patients but no selection, pick the first non-archived patient in
   collection order, else the first patient;
3. a selection that left the collection is re-picked by rule 2 (or cleared
   when the collection is empty);
4. an explicit pick stands until the next re-evaluation.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from shiftnotes.errors import NotFound
from shiftnotes.models import Patient, Shift

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionState:
    current_shift_id: str | None = None
    selected_patient_id: str | None = None


@dataclass(frozen=True)
class ShiftsChanged:
    shifts: Sequence[Shift]


@dataclass(frozen=True)
class ShiftSwitched:
    shift_id: str | None
    patients: Sequence[Patient] = ()


@dataclass(frozen=True)
class PatientsChanged:
    patients: Sequence[Patient]


@dataclass(frozen=True)
class PatientSelected:
    patient_id: str


SelectionEvent = ShiftsChanged | ShiftSwitched | PatientsChanged | PatientSelected


def auto_select_patient(patients: Sequence[Patient]) -> str | None:
    if not patients:
        return None
    active = next((p for p in patients if not p.archived), None)
    return (active or patients[0]).id


def fallback_shift_id(current_shift_id: str | None, shifts: Sequence[Shift]) -> str | None:
    """Keep the current shift if it still exists, else the first remaining one."""
    if current_shift_id is None:
        return None
    if any(s.id == current_shift_id for s in shifts):
        return current_shift_id
    return shifts[0].id if shifts else None


def reconcile_patients(state: SelectionState, patients: Sequence[Patient]) -> SelectionState:
    if state.current_shift_id is None:
        return replace(state, selected_patient_id=None)
    selected = state.selected_patient_id
    if selected is not None and any(p.id == selected for p in patients):
        return state
    return replace(state, selected_patient_id=auto_select_patient(patients))


def transition(state: SelectionState, event: SelectionEvent) -> SelectionState:
    match event:
        case ShiftsChanged(shifts=shifts):
            shift_id = fallback_shift_id(state.current_shift_id, shifts)
            shift = next((s for s in shifts if s.id == shift_id), None)
            patients = shift.patients if shift else []
            if shift_id != state.current_shift_id:
                return reconcile_patients(SelectionState(shift_id, None), patients)
            return reconcile_patients(state, patients)
        case ShiftSwitched(shift_id=shift_id, patients=patients):
            # never carry a patient across shifts
            return reconcile_patients(SelectionState(shift_id, None), patients)
        case PatientsChanged(patients=patients):
            return reconcile_patients(state, patients)
        case PatientSelected(patient_id=patient_id):
            if state.current_shift_id is None:
                return replace(state, selected_patient_id=None)
            return replace(state, selected_patient_id=patient_id)
    raise TypeError(f"unknown selection event: {event!r}")


class SelectionController:
    """Holds the selection state plus the patients it was last reconciled with."""

    def __init__(self, state: SelectionState | None = None) -> None:
        self._state = state or SelectionState()
        self._patients: tuple[Patient, ...] = ()

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def current_shift_id(self) -> str | None:
        return self._state.current_shift_id

    @property
    def selected_patient_id(self) -> str | None:
        return self._state.selected_patient_id

    def dispatch(self, event: SelectionEvent) -> SelectionState:
        if isinstance(event, PatientSelected) and not any(
            p.id == event.patient_id for p in self._patients
        ):
            raise NotFound("Patient", event.patient_id)

        new_state = transition(self._state, event)
        match event:
            case ShiftsChanged(shifts=shifts):
                shift = next(
                    (s for s in shifts if s.id == new_state.current_shift_id), None
                )
                self._patients = tuple(shift.patients) if shift else ()
            case ShiftSwitched(patients=patients) | PatientsChanged(patients=patients):
                self._patients = tuple(patients)

        if new_state != self._state:
            logger.debug("selection %s -> %s", self._state, new_state)
        self._state = new_state
        return new_state
