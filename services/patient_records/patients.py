"""Patient procedures: listing and lookup for users, writes for administrators."""

from __future__ import annotations

from shared.http.errors import NotFoundError
from shared.models.patient import (
    PaginationRequest,
    Patient,
    PatientCreate,
    PatientIdInput,
    PatientListResponse,
    PatientUpdateInput,
)

from .context import ProcedureContext
from .error_mapper import PATIENT_NOT_FOUND
from .guards import GuardLevel
from .procedures import ProcedureRouter
from .query import list_patients

patient_router = ProcedureRouter()


@patient_router.query(
    "getAll",
    level=GuardLevel.AUTHENTICATED,
    input_model=PaginationRequest,
    failure_message="Failed to fetch patients",
)
async def get_all(
    context: ProcedureContext, params: PaginationRequest
) -> PatientListResponse:
    return await list_patients(context.store, params)


@patient_router.query(
    "getById",
    level=GuardLevel.AUTHENTICATED,
    input_model=PatientIdInput,
    failure_message="Failed to fetch patient",
)
async def get_by_id(context: ProcedureContext, params: PatientIdInput) -> Patient:
    patient = await context.store.find_one(params.id)
    if patient is None:
        raise NotFoundError(PATIENT_NOT_FOUND)
    return patient


@patient_router.mutation(
    "create",
    level=GuardLevel.ADMIN,
    input_model=PatientCreate,
    failure_message="Failed to create patient",
)
async def create(context: ProcedureContext, params: PatientCreate) -> Patient:
    return await context.store.create(params.to_store_fields())


@patient_router.mutation(
    "update",
    level=GuardLevel.ADMIN,
    input_model=PatientUpdateInput,
    failure_message="Failed to update patient",
)
async def update(context: ProcedureContext, params: PatientUpdateInput) -> Patient:
    return await context.store.update(params.id, params.data.changes())


@patient_router.mutation(
    "delete",
    level=GuardLevel.ADMIN,
    input_model=PatientIdInput,
    failure_message="Failed to delete patient",
)
async def delete(context: ProcedureContext, params: PatientIdInput) -> Patient:
    return await context.store.delete(params.id)


def build_app_router() -> ProcedureRouter:
    """Return the root router with every procedure the service exposes."""

    return ProcedureRouter().mount("patient", patient_router)


app_router = build_app_router()


__all__ = [
    "app_router",
    "build_app_router",
    "create",
    "delete",
    "get_all",
    "get_by_id",
    "patient_router",
    "update",
]
