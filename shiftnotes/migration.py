"""Load-time migration of the local document."""

import logging

from shiftnotes.models import AppData, timestamp_from_id

logger = logging.getLogger(__name__)


def migrate_document(document: AppData) -> tuple[AppData, bool]:
    """
    Backfill ``Patient.createdAt`` from the timestamp prefix of the id.

    Returns the migrated copy and whether anything changed. Running it on an
    already migrated document changes nothing.
    """
    migrated = document.model_copy(deep=True)
    changed = False
    for shift in migrated.shifts:
        for patient in shift.patients:
            if patient.created_at is not None:
                continue
            derived = timestamp_from_id(patient.id)
            if derived is None:
                logger.warning(
                    "patient %s has no createdAt and its id carries no timestamp",
                    patient.id,
                )
                continue
            patient.created_at = derived
            changed = True
    return migrated, changed
