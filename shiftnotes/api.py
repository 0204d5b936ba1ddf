"""
HTTP surface of the remote backend.

Every route resolves the caller from the bearer token, then delegates to
the table-backed repositories; domain errors are turned into JSON responses
by the handler registered in ``create_app``.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from shiftnotes.config import Settings, configure_logging, settings
from shiftnotes.errors import ShiftNotesError, Unauthorized, ValidationError
from shiftnotes.repositories.base import Backend
from shiftnotes.repositories.remote import build_remote_backend
from shiftnotes.table import InMemoryEntityTable

logger = logging.getLogger(__name__)

router = APIRouter()

# bearer token -> owner id, or None when the token is not valid
TokenVerifier = Callable[[str], Awaitable[str | None]]

bearer_scheme = HTTPBearer(auto_error=False)


class ShiftRequest(BaseModel):
    name: str | None = None


class PatientCreateRequest(BaseModel):
    name: str | None = None


class PatientUpdateRequest(BaseModel):
    name: str | None = None
    archived: bool | None = None


class NoteRequest(BaseModel):
    content: str | None = None


def static_token_verifier(tokens: Mapping[str, str]) -> TokenVerifier:
    async def verify(token: str) -> str | None:
        return tokens.get(token)

    return verify


async def resolve_owner(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str:
    if credentials is None:
        raise Unauthorized()
    verifier: TokenVerifier = request.app.state.token_verifier
    owner_id = await verifier(credentials.credentials)
    if not owner_id:
        raise Unauthorized("Invalid token")
    return owner_id


def get_backend(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Backend:
    async def identity() -> str:
        return await resolve_owner(request, credentials)

    return build_remote_backend(
        request.app.state.table,
        identity,
        batch_size=request.app.state.settings.cascade_batch_size,
    )


def _no_content() -> Response:
    return Response(status_code=204)


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


# -- shifts -----------------------------------------------------------------


@router.get("/shifts")
async def list_shifts(backend: Backend = Depends(get_backend)) -> dict:
    shifts = await backend.shifts.list()
    return {"shifts": [s.to_json() for s in shifts]}


@router.post("/shifts", status_code=201)
async def create_shift(body: ShiftRequest, backend: Backend = Depends(get_backend)) -> dict:
    shift = await backend.shifts.create(body.name)
    return {"shift": shift.to_json()}


@router.get("/shifts/{shift_id}")
async def get_shift(shift_id: str, backend: Backend = Depends(get_backend)) -> dict:
    shift = await backend.shifts.get(shift_id)
    return {"shift": shift.to_json()}


@router.put("/shifts/{shift_id}")
async def update_shift(
    shift_id: str, body: ShiftRequest, backend: Backend = Depends(get_backend)
) -> dict:
    shift = await backend.shifts.update(shift_id, name=body.name)
    return {"shift": shift.to_json()}


@router.delete("/shifts/{shift_id}", status_code=204)
async def delete_shift(shift_id: str, backend: Backend = Depends(get_backend)) -> Response:
    await backend.shifts.delete(shift_id)
    return _no_content()


# -- patients ---------------------------------------------------------------


@router.get("/shifts/{shift_id}/patients")
async def list_patients(shift_id: str, backend: Backend = Depends(get_backend)) -> dict:
    patients = await backend.patients.list(shift_id)
    return {"patients": [p.to_json() for p in patients]}


@router.post("/shifts/{shift_id}/patients", status_code=201)
async def create_patient(
    shift_id: str, body: PatientCreateRequest, backend: Backend = Depends(get_backend)
) -> dict:
    patient = await backend.patients.create(shift_id, body.name)
    return {"patient": patient.to_json()}


@router.get("/patients/{patient_id}")
async def get_patient(patient_id: str, backend: Backend = Depends(get_backend)) -> dict:
    patient = await backend.patients.get(patient_id)
    return {"patient": patient.to_json()}


@router.put("/patients/{patient_id}")
async def update_patient(
    patient_id: str, body: PatientUpdateRequest, backend: Backend = Depends(get_backend)
) -> dict:
    patient = await backend.patients.update(
        patient_id, name=body.name, archived=body.archived
    )
    return {"patient": patient.to_json()}


@router.delete("/patients/{patient_id}", status_code=204)
async def delete_patient(patient_id: str, backend: Backend = Depends(get_backend)) -> Response:
    await backend.patients.delete(patient_id)
    return _no_content()


# -- notes ------------------------------------------------------------------


@router.get("/patients/{patient_id}/notes")
async def list_notes(patient_id: str, backend: Backend = Depends(get_backend)) -> dict:
    notes = await backend.notes.list(patient_id)
    return {"notes": [n.to_json() for n in notes]}


@router.post("/patients/{patient_id}/notes", status_code=201)
async def create_note(
    patient_id: str, body: NoteRequest, backend: Backend = Depends(get_backend)
) -> dict:
    note = await backend.notes.create(patient_id, body.content)
    return {"note": note.to_json()}


@router.put("/notes/{note_id}")
async def update_note(
    note_id: str, body: NoteRequest, backend: Backend = Depends(get_backend)
) -> dict:
    note = await backend.notes.update(note_id, content=body.content)
    return {"note": note.to_json()}


@router.delete("/notes/{note_id}", status_code=204)
async def delete_note(note_id: str, backend: Backend = Depends(get_backend)) -> Response:
    await backend.notes.delete(note_id)
    return _no_content()


async def handle_shiftnotes_error(request: Request, exc: ShiftNotesError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # bodies are parsed before any route runs; callers without a valid
    # token still see 401 first
    try:
        await resolve_owner(request, await bearer_scheme(request))
    except Unauthorized as unauthorized:
        return await handle_shiftnotes_error(request, unauthorized)

    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    error = ValidationError(first.get("msg", "Invalid request"), field=field or None)
    return await handle_shiftnotes_error(request, error)


def create_app(
    *,
    table: InMemoryEntityTable | None = None,
    token_verifier: TokenVerifier | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    app_settings = app_settings or settings
    configure_logging(app_settings.log_level)

    app = FastAPI(title=app_settings.app_name)
    app.state.settings = app_settings
    app.state.table = table if table is not None else InMemoryEntityTable()
    app.state.token_verifier = token_verifier or static_token_verifier(
        app_settings.api_tokens
    )

    app.add_exception_handler(ShiftNotesError, handle_shiftnotes_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.include_router(router)
    return app
