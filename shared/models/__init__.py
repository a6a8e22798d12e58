"""Data models shared across the patient records service."""

from .base import CamelModel, to_camel
from .identity import Identity, Role
from .query import AnyOf, FieldCondition, FilterOperator, OrderBy, StoreQuery, matches
from .patient import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PaginationRequest,
    PaginationResult,
    Patient,
    PatientCreate,
    PatientIdInput,
    PatientListResponse,
    PatientUpdate,
    PatientUpdateInput,
    SortField,
    SortOrder,
)

__all__ = [
    "AnyOf",
    "CamelModel",
    "DEFAULT_PAGE_SIZE",
    "FieldCondition",
    "FilterOperator",
    "Identity",
    "MAX_PAGE_SIZE",
    "OrderBy",
    "PaginationRequest",
    "PaginationResult",
    "Patient",
    "PatientCreate",
    "PatientIdInput",
    "PatientListResponse",
    "PatientUpdate",
    "PatientUpdateInput",
    "Role",
    "SortField",
    "SortOrder",
    "StoreQuery",
    "matches",
    "to_camel",
]
