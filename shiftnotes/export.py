"""Plain-text export of a patient's notes."""

import re
from datetime import date, datetime

from shiftnotes.models import Patient
from shiftnotes.repositories.base import notes_in_display_order

RULE = "=" * 40


def format_export_timestamp(value: datetime) -> str:
    """``MM/DD/YYYY h:mm AM/PM`` in the timestamp's own timezone."""
    hour = value.hour % 12 or 12
    meridiem = "PM" if value.hour >= 12 else "AM"
    return f"{value:%m/%d/%Y} {hour}:{value:%M} {meridiem}"


def format_notes_as_text(patient: Patient, exported_at: datetime) -> str:
    lines = [
        RULE,
        f"PATIENT: {patient.name}",
        f"TOTAL NOTES: {len(patient.notes)}",
        f"EXPORTED: {format_export_timestamp(exported_at)}",
        RULE,
        "",
    ]
    for index, note in enumerate(notes_in_display_order(patient.notes), start=1):
        lines.append(f"NOTE {index}")
        lines.append(f"Created: {format_export_timestamp(note.created_at)}")
        if note.edited_at is not None:
            lines.append(f"Edited: {format_export_timestamp(note.edited_at)}")
        lines.extend(["---", note.content, "", ""])
    return "\n".join(lines)


def export_filename(patient_name: str, on: date) -> str:
    safe_name = re.sub(r"\s+", "_", re.sub(r"[^a-zA-Z0-9\s]", "", patient_name))
    return f"{safe_name}_Notes_{on.month}-{on.day}-{on.year}.txt"
