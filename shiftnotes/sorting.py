"""
Patient list ordering.

Patients are split into active and archived partitions, each ordered by its
own cyclable sort option. The choice per partition is remembered on disk.
"""

import logging
import unicodedata
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Literal, NamedTuple

import pydantic
from pydantic import BaseModel

from shiftnotes.config import settings
from shiftnotes.models import Patient

logger = logging.getLogger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=UTC)


class SortOption(StrEnum):
    TIME_DESC = "time-desc"
    TIME_ASC = "time-asc"
    ALPHA_ASC = "alpha-asc"
    ALPHA_DESC = "alpha-desc"

    @property
    def label(self) -> str:
        return SORT_LABELS[self]


SORT_CYCLE: tuple[SortOption, ...] = (
    SortOption.TIME_DESC,
    SortOption.TIME_ASC,
    SortOption.ALPHA_ASC,
    SortOption.ALPHA_DESC,
)

SORT_LABELS: dict[SortOption, str] = {
    SortOption.TIME_DESC: "Newest first",
    SortOption.TIME_ASC: "Oldest first",
    SortOption.ALPHA_ASC: "A to Z",
    SortOption.ALPHA_DESC: "Z to A",
}


class SortPreferences(BaseModel):
    active: SortOption = SortOption.TIME_DESC
    archived: SortOption = SortOption.TIME_DESC


class PatientPartition(NamedTuple):
    active: list[Patient]
    archived: list[Patient]


def get_next_sort_option(current: SortOption) -> SortOption:
    return SORT_CYCLE[(SORT_CYCLE.index(current) + 1) % len(SORT_CYCLE)]


def patient_timestamp(patient: Patient) -> datetime:
    # patients with neither createdAt nor a timestamped id sort as oldest
    return patient.effective_created_at or _EPOCH


def _name_key(patient: Patient) -> tuple[str, str]:
    # accents and case only break ties, so "Émile" sorts among the e's
    folded = unicodedata.normalize("NFKD", patient.name.casefold())
    base = "".join(c for c in folded if not unicodedata.combining(c))
    return base, folded


def sort_patients(patients: Iterable[Patient], option: SortOption) -> list[Patient]:
    """Return a sorted copy; ties keep their input order."""
    items = list(patients)
    match option:
        case SortOption.TIME_DESC:
            return sorted(items, key=patient_timestamp, reverse=True)
        case SortOption.TIME_ASC:
            return sorted(items, key=patient_timestamp)
        case SortOption.ALPHA_ASC:
            return sorted(items, key=_name_key)
        case SortOption.ALPHA_DESC:
            return sorted(items, key=_name_key, reverse=True)
    raise ValueError(f"unknown sort option: {option!r}")


def cycle_preference(
    preferences: SortPreferences, partition: Literal["active", "archived"]
) -> SortPreferences:
    current = getattr(preferences, partition)
    return preferences.model_copy(update={partition: get_next_sort_option(current)})


def partition_patients(patients: Sequence[Patient]) -> PatientPartition:
    return PatientPartition(
        active=[p for p in patients if not p.archived],
        archived=[p for p in patients if p.archived],
    )


def arrange_patients(
    patients: Sequence[Patient], preferences: SortPreferences
) -> PatientPartition:
    active, archived = partition_patients(patients)
    return PatientPartition(
        active=sort_patients(active, preferences.active),
        archived=sort_patients(archived, preferences.archived),
    )


def load_sort_preferences(path: Path | None = None) -> SortPreferences:
    path = path or settings.sort_preferences_path
    try:
        return SortPreferences.model_validate_json(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return SortPreferences()
    except (OSError, pydantic.ValidationError) as exc:
        logger.warning("ignoring unreadable sort preferences at %s: %s", path, exc)
        return SortPreferences()


def save_sort_preferences(
    preferences: SortPreferences, path: Path | None = None
) -> None:
    path = path or settings.sort_preferences_path
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(preferences.model_dump_json(), encoding="utf-8")
    except OSError as exc:
        # best effort; the in-memory preference still applies
        logger.error("could not save sort preferences to %s: %s", path, exc)
