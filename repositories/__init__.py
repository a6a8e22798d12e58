"""Record store implementations for patient data."""

from .patients import (
    InMemoryPatientStore,
    PatientStore,
    RecordNotFoundError,
    StoreError,
    UniqueViolationError,
)

__all__ = [
    "InMemoryPatientStore",
    "PatientStore",
    "RecordNotFoundError",
    "StoreError",
    "UniqueViolationError",
]
