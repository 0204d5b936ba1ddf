import pytest
import pytest_asyncio

from shiftnotes.errors import NotFound, PartialCascadeFailure
from shiftnotes.repositories.local import build_local_backend
from shiftnotes.repositories.remote import TableShiftRepository, build_remote_backend
from shiftnotes.table import InMemoryEntityTable, StoreError
from shiftnotes.workspace import Workspace


async def user_1() -> str:
    return "user-1"


@pytest.fixture(params=["local", "remote"])
def backend(request, tmp_path):
    if request.param == "local":
        return build_local_backend(tmp_path / "shiftnotes.json")
    return build_remote_backend(InMemoryEntityTable(), user_1)


@pytest_asyncio.fixture
async def workspace(backend) -> Workspace:
    ws = Workspace(backend)
    await ws.load()
    return ws


@pytest.mark.asyncio
async def test_night_shift_scenario(workspace: Workspace, backend) -> None:
    shift = await workspace.create_shift("Night Shift")
    assert workspace.current_shift.id == shift.id

    jane = await workspace.add_patient("Jane Doe")
    assert workspace.selected_patient.id == jane.id

    await workspace.add_note("BP 120/80")
    await workspace.add_note("Discharged")
    assert [n.content for n in workspace.notes] == ["BP 120/80", "Discharged"]

    await workspace.delete_patient(jane.id)

    assert await backend.patients.list(shift.id) == []
    # the remote backend reports a missing parent, the local one an empty list
    if isinstance(backend.shifts, TableShiftRepository):
        with pytest.raises(NotFound):
            await backend.notes.list(jane.id)
    else:
        assert await backend.notes.list(jane.id) == []
    remaining = await backend.shifts.get(shift.id)
    assert remaining.patients == []
    assert workspace.current_shift.id == shift.id
    assert workspace.selected_patient is None


@pytest.mark.asyncio
async def test_auto_selects_active_patient_and_keeps_archived_selection(
    workspace: Workspace, backend
) -> None:
    await workspace.create_shift("Night Shift")
    archived = await workspace.add_patient("Archived Al")
    active = await workspace.add_patient("Active Ann")
    await workspace.toggle_archive(archived.id)

    fresh = Workspace(backend)
    await fresh.load()
    assert fresh.selected_patient.id == active.id

    await fresh.toggle_archive(active.id)
    assert fresh.selected_patient.id == active.id
    assert fresh.selected_patient.archived is True


@pytest.mark.asyncio
async def test_deleting_current_shift_falls_back(workspace: Workspace) -> None:
    night = await workspace.create_shift("Night Shift")
    await workspace.add_patient("Jane Doe")
    day = await workspace.create_shift("Day Shift")
    assert workspace.current_shift.id == day.id
    assert workspace.selected_patient is None

    await workspace.delete_shift(day.id)

    assert workspace.current_shift.id == night.id
    assert workspace.selected_patient.name == "Jane Doe"

    await workspace.delete_shift(night.id)

    assert workspace.current_shift is None
    assert workspace.selected_patient is None
    with pytest.raises(NotFound):
        await workspace.add_patient("Nobody")


@pytest.mark.asyncio
async def test_switching_shift_reselects(workspace: Workspace) -> None:
    night = await workspace.create_shift("Night Shift")
    jane = await workspace.add_patient("Jane Doe")
    day = await workspace.create_shift("Day Shift")
    john = await workspace.add_patient("John Roe")

    await workspace.switch_shift(night.id)
    assert workspace.selected_patient.id == jane.id

    await workspace.switch_shift(day.id)
    assert workspace.selected_patient.id == john.id

    with pytest.raises(NotFound):
        await workspace.switch_shift("missing")


@pytest.mark.asyncio
async def test_current_shift_is_restored_on_load(workspace: Workspace, backend) -> None:
    night = await workspace.create_shift("Night Shift")
    await workspace.create_shift("Day Shift")
    await workspace.switch_shift(night.id)

    fresh = Workspace(backend)
    await fresh.load()

    assert fresh.current_shift.id == night.id


@pytest.mark.asyncio
async def test_selection_tracks_patient_deletes(workspace: Workspace) -> None:
    await workspace.create_shift("Night Shift")
    first = await workspace.add_patient("Jane Doe")
    second = await workspace.add_patient("John Roe")
    workspace.select_patient(first.id)

    await workspace.delete_patient(first.id)
    assert workspace.selected_patient.id == second.id

    await workspace.rename_patient(second.id, "John Q. Roe")
    assert workspace.selected_patient.name == "John Q. Roe"

    with pytest.raises(NotFound):
        workspace.select_patient(first.id)


@pytest.mark.asyncio
async def test_notes_edit_and_delete(workspace: Workspace) -> None:
    await workspace.create_shift("Night Shift")
    await workspace.add_patient("Jane Doe")
    note = await workspace.add_note("BP 120/80")

    edited = await workspace.edit_note(note.id, "BP 118/76")
    assert edited.edited_at is not None
    assert [n.content for n in workspace.notes] == ["BP 118/76"]

    await workspace.delete_note(note.id)
    assert workspace.notes == []


class FailingFirstBatch(InMemoryEntityTable):
    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def batch_delete(self, owner_id, entity_ids) -> None:
        self.calls += 1
        if self.calls == 1:
            raise StoreError("throttled")
        super().batch_delete(owner_id, entity_ids)


@pytest.mark.asyncio
async def test_partial_cascade_still_reconciles_selection() -> None:
    table = FailingFirstBatch()
    workspace = Workspace(build_remote_backend(table, user_1))
    await workspace.load()
    night = await workspace.create_shift("Night Shift")
    await workspace.add_patient("Jane Doe")

    with pytest.raises(PartialCascadeFailure):
        await workspace.delete_shift(night.id)

    assert workspace.current_shift is None
    assert workspace.selected_patient is None

    await workspace.delete_shift(night.id)
    assert len(table) == 0
