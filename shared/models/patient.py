"""Patient record models and the input contracts of the patient procedures."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any

from email_validator import EmailNotValidError, validate_email
from pydantic import (
    AfterValidator,
    BeforeValidator,
    Field,
    ValidationInfo,
    field_validator,
)

from .base import CamelModel

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10

_REQUIRED_MESSAGES = {
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "phone_number": "Phone number is required",
    "dob": "Date of birth is required",
}


# ---------------------------------------------------------------------------
# Field validators
# ---------------------------------------------------------------------------


def _require_text(value: str, info: ValidationInfo) -> str:
    if not value:
        raise ValueError(_REQUIRED_MESSAGES.get(info.field_name or "", "Value is required"))
    return value


def _check_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError("Invalid email address") from exc
    return value


def _parse_dob(value: Any) -> Any:
    """Coerce ISO date or date-time text into a calendar date.

    Date-time values keep only their date part. Anything that is not text or a
    date is handed back unchanged so pydantic reports the type error itself.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date) or not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        raise ValueError(_REQUIRED_MESSAGES["dob"])
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as exc:
        raise ValueError("Invalid date of birth") from exc


RequiredText = Annotated[str, AfterValidator(_require_text)]
EmailText = Annotated[str, AfterValidator(_check_email)]
DateOfBirth = Annotated[date, BeforeValidator(_parse_dob)]


# ---------------------------------------------------------------------------
# Stored record
# ---------------------------------------------------------------------------


class Patient(CamelModel):
    """A persisted patient record as returned by the record store."""

    id: int = Field(description="Store-assigned identifier, never reused")
    first_name: str
    last_name: str
    email: str
    phone_number: str
    dob: date
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Procedure inputs
# ---------------------------------------------------------------------------


class PatientCreate(CamelModel):
    """User supplied fields required to create a patient."""

    first_name: RequiredText
    last_name: RequiredText
    email: EmailText
    phone_number: RequiredText
    dob: DateOfBirth

    def to_store_fields(self) -> dict[str, Any]:
        return self.model_dump()


class PatientUpdate(CamelModel):
    """Partial patient fields; omitted fields are left untouched."""

    first_name: RequiredText | None = None
    last_name: RequiredText | None = None
    email: EmailText | None = None
    phone_number: RequiredText | None = None
    dob: DateOfBirth | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        # Defaults are not validated, so this only fires for explicit nulls.
        if value is None:
            raise ValueError("Field may be omitted but not null")
        return value

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller actually supplied."""

        return self.model_dump(exclude_unset=True)


class PatientIdInput(CamelModel):
    """Input for point operations addressing a single patient."""

    id: int = Field(strict=True)


class PatientUpdateInput(CamelModel):
    """Input for the update procedure."""

    id: int = Field(strict=True)
    data: PatientUpdate


class SortField(str, Enum):
    """Columns a patient listing may be ordered by."""

    FIRST_NAME = "firstName"
    LAST_NAME = "lastName"
    EMAIL = "email"
    PHONE_NUMBER = "phoneNumber"
    DOB = "dob"
    CREATED_AT = "createdAt"

    @property
    def attribute(self) -> str:
        """Return the snake_case record attribute backing this sort key."""

        return {
            SortField.FIRST_NAME: "first_name",
            SortField.LAST_NAME: "last_name",
            SortField.EMAIL: "email",
            SortField.PHONE_NUMBER: "phone_number",
            SortField.DOB: "dob",
            SortField.CREATED_AT: "created_at",
        }[self]


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class PaginationRequest(CamelModel):
    """Paging, search and ordering parameters for patient listings."""

    page: int = Field(default=1, ge=1, strict=True)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, strict=True)
    search: str | None = Field(
        default=None,
        description="Case-insensitive text matched against names, email and phone number.",
    )
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.ASC

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


# ---------------------------------------------------------------------------
# Procedure results
# ---------------------------------------------------------------------------


class PaginationResult(CamelModel):
    """Pagination envelope returned alongside a page of patients."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PatientListResponse(CamelModel):
    """A page of patients plus its pagination envelope."""

    patients: list[Patient] = Field(default_factory=list)
    pagination: PaginationResult


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "PaginationRequest",
    "PaginationResult",
    "Patient",
    "PatientCreate",
    "PatientIdInput",
    "PatientListResponse",
    "PatientUpdate",
    "PatientUpdateInput",
    "SortField",
    "SortOrder",
]
