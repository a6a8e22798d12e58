"""Translate patient listing requests into store queries and page envelopes."""

from __future__ import annotations

import math

from repositories.patients import PatientStore
from shared.models.patient import (
    PaginationRequest,
    PaginationResult,
    PatientListResponse,
)
from shared.models.query import (
    AnyOf,
    FieldCondition,
    FilterOperator,
    OrderBy,
    StoreQuery,
)

# Phone numbers are digits and punctuation, so a case-sensitive match suffices.
SEARCH_FIELDS: tuple[tuple[str, FilterOperator], ...] = (
    ("first_name", FilterOperator.ICONTAINS),
    ("last_name", FilterOperator.ICONTAINS),
    ("email", FilterOperator.ICONTAINS),
    ("phone_number", FilterOperator.CONTAINS),
)


def build_search_filter(search: str | None) -> AnyOf | None:
    """Return the OR-filter for ``search``; empty or missing text disables filtering."""

    if not search:
        return None
    return AnyOf(
        tuple(
            FieldCondition(field=field, operator=operator, value=search)
            for field, operator in SEARCH_FIELDS
        )
    )


def translate(request: PaginationRequest) -> StoreQuery:
    """Map a validated listing request onto the store-agnostic query form."""

    return StoreQuery(
        where=build_search_filter(request.search),
        order=OrderBy(field=request.sort_by.attribute, direction=request.sort_order),
        offset=request.offset,
        limit=request.limit,
    )


def build_pagination(total: int, page: int, limit: int) -> PaginationResult:
    """Compute the pagination envelope from the match count alone.

    The envelope never looks at the fetched slice, so a page past the end
    reports accurate totals alongside an empty list.
    """

    total_pages = math.ceil(total / limit)
    return PaginationResult(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


async def list_patients(
    store: PatientStore, request: PaginationRequest
) -> PatientListResponse:
    """Count the matches, fetch the requested page and wrap both.

    The count and the fetch are separate store calls without a shared
    snapshot; concurrent writes may make ``total`` and the slice disagree.
    """

    query = translate(request)
    total = await store.count(query.where)
    patients = await store.find_many(query.where, query.order, query.offset, query.limit)
    return PatientListResponse(
        patients=patients,
        pagination=build_pagination(total, request.page, request.limit),
    )


__all__ = [
    "SEARCH_FIELDS",
    "build_pagination",
    "build_search_filter",
    "list_patients",
    "translate",
]
