from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from repositories.patients import InMemoryPatientStore  # noqa: E402
from shared.config import get_settings  # noqa: E402
from shared.models.identity import Identity, Role  # noqa: E402

SAMPLE_PATIENTS = (
    {
        "first_name": "John",
        "last_name": "Doe",
        "email": "john.doe@example.com",
        "phone_number": "+1-555-0101",
        "dob": "1985-03-15",
    },
    {
        "first_name": "Jane",
        "last_name": "Smith",
        "email": "jane.smith@example.com",
        "phone_number": "+1-555-0102",
        "dob": "1990-07-22",
    },
    {
        "first_name": "Michael",
        "last_name": "Johnson",
        "email": "michael.johnson@example.com",
        "phone_number": "+1-555-0103",
        "dob": "1978-11-08",
    },
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def admin() -> Identity:
    return Identity(id="admin-1", email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def user() -> Identity:
    return Identity(id="user-1", email="user@example.com", role=Role.USER)


@pytest.fixture
def sample_patients() -> tuple[dict[str, str], ...]:
    return SAMPLE_PATIENTS


@pytest.fixture
def store() -> InMemoryPatientStore:
    return InMemoryPatientStore(SAMPLE_PATIENTS)
