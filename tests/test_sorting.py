from datetime import UTC, datetime

import pytest

from shiftnotes.config import settings
from shiftnotes.models import Patient
from shiftnotes.sorting import (
    SortOption,
    SortPreferences,
    arrange_patients,
    cycle_preference,
    get_next_sort_option,
    load_sort_preferences,
    partition_patients,
    patient_timestamp,
    save_sort_preferences,
    sort_patients,
)


@pytest.fixture
def patients() -> list[Patient]:
    return [
        Patient(id="a", name="bob", created_at=datetime(2025, 1, 1, tzinfo=UTC)),
        Patient(id="b", name="Alice", created_at=datetime(2025, 2, 1, tzinfo=UTC)),
        Patient(id="c", name="carol", created_at=datetime(2025, 1, 15, tzinfo=UTC)),
    ]


def _ids(patients: list[Patient]) -> list[str]:
    return [p.id for p in patients]


def test_cycle_returns_to_start_after_four_steps() -> None:
    for start in SortOption:
        option = start
        seen = []
        for _ in range(4):
            option = get_next_sort_option(option)
            seen.append(option)
        assert option is start
        assert len(set(seen)) == 4


def test_every_option_orders_differently(patients) -> None:
    orders = {option: _ids(sort_patients(patients, option)) for option in SortOption}

    assert orders[SortOption.TIME_DESC] == ["b", "c", "a"]
    assert orders[SortOption.TIME_ASC] == ["a", "c", "b"]
    assert orders[SortOption.ALPHA_ASC] == ["b", "a", "c"]
    assert orders[SortOption.ALPHA_DESC] == ["c", "a", "b"]
    assert _ids(patients) == ["a", "b", "c"]


def test_accented_names_sort_with_their_base_letter() -> None:
    names = ["zoe", "Émile", "Frank", "Ève", "eve"]
    patients = [Patient(id=name, name=name) for name in names]

    ascending = [p.name for p in sort_patients(patients, SortOption.ALPHA_ASC)]
    descending = [p.name for p in sort_patients(patients, SortOption.ALPHA_DESC)]

    assert ascending == ["Émile", "eve", "Ève", "Frank", "zoe"]
    assert descending == list(reversed(ascending))


def test_labels() -> None:
    assert [o.label for o in SortOption] == [
        "Newest first",
        "Oldest first",
        "A to Z",
        "Z to A",
    ]


def test_legacy_patients_use_id_timestamp() -> None:
    legacy = Patient(id="1751443260000-jklmnopqr", name="Legacy")
    newer = Patient(id="n", name="Newer", created_at=datetime(2025, 8, 1, tzinfo=UTC))

    assert patient_timestamp(legacy) == datetime(2025, 7, 2, 8, 1, tzinfo=UTC)
    assert _ids(sort_patients([legacy, newer], SortOption.TIME_ASC)) == [legacy.id, "n"]


def test_partition_keeps_input_order(patients) -> None:
    patients[1].archived = True

    active, archived = partition_patients(patients)

    assert _ids(active) == ["a", "c"]
    assert _ids(archived) == ["b"]


def test_partitions_sort_independently(patients) -> None:
    patients[0].archived = True
    patients[2].archived = True
    prefs = SortPreferences(active=SortOption.ALPHA_ASC, archived=SortOption.TIME_ASC)

    arranged = arrange_patients(patients, prefs)

    assert _ids(arranged.active) == ["b"]
    assert _ids(arranged.archived) == ["a", "c"]
    assert cycle_preference(prefs, "archived") == SortPreferences(
        active=SortOption.ALPHA_ASC, archived=SortOption.ALPHA_ASC
    )


def test_preferences_persist(tmp_path) -> None:
    path = tmp_path / "prefs.json"
    assert load_sort_preferences(path) == SortPreferences()

    prefs = SortPreferences(active=SortOption.ALPHA_DESC)
    save_sort_preferences(prefs, path)

    assert load_sort_preferences(path) == prefs


def test_unreadable_preferences_fall_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "prefs.json"
    path.write_text('{"active": "sideways"}', encoding="utf-8")

    assert load_sort_preferences(path) == SortPreferences()


def test_preferences_default_to_configured_path(tmp_path, monkeypatch) -> None:
    path = tmp_path / "configured" / "prefs.json"
    monkeypatch.setattr(settings, "sort_preferences_path", path)

    save_sort_preferences(SortPreferences(archived=SortOption.TIME_ASC))

    assert path.exists()
    assert load_sort_preferences() == SortPreferences(archived=SortOption.TIME_ASC)
