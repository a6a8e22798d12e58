"""Load the demo patient roster into the configured patient store."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from repositories.patients import PatientStore, UniqueViolationError
from repositories.sql import SqlPatientStore
from shared.config import get_settings
from shared.models.patient import PatientCreate

DEMO_PATIENTS: tuple[Mapping[str, Any], ...] = (
    {
        "firstName": "John",
        "lastName": "Doe",
        "email": "john.doe@example.com",
        "phoneNumber": "+1-555-0101",
        "dob": "1985-03-15",
    },
    {
        "firstName": "Jane",
        "lastName": "Smith",
        "email": "jane.smith@example.com",
        "phoneNumber": "+1-555-0102",
        "dob": "1990-07-22",
    },
    {
        "firstName": "Michael",
        "lastName": "Johnson",
        "email": "michael.johnson@example.com",
        "phoneNumber": "+1-555-0103",
        "dob": "1978-11-08",
    },
    {
        "firstName": "Emily",
        "lastName": "Davis",
        "email": "emily.davis@example.com",
        "phoneNumber": "+1-555-0104",
        "dob": "1992-05-30",
    },
    {
        "firstName": "David",
        "lastName": "Wilson",
        "email": "david.wilson@example.com",
        "phoneNumber": "+1-555-0105",
        "dob": "1987-09-12",
    },
    {
        "firstName": "Sarah",
        "lastName": "Brown",
        "email": "sarah.brown@example.com",
        "phoneNumber": "+1-555-0106",
        "dob": "1995-01-18",
    },
    {
        "firstName": "Robert",
        "lastName": "Miller",
        "email": "robert.miller@example.com",
        "phoneNumber": "+1-555-0107",
        "dob": "1982-06-25",
    },
    {
        "firstName": "Lisa",
        "lastName": "Anderson",
        "email": "lisa.anderson@example.com",
        "phoneNumber": "+1-555-0108",
        "dob": "1988-12-03",
    },
)


@dataclass(slots=True)
class SeedSummary:
    created: int = 0
    skipped: int = 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Insert the demo patients, leaving existing emails untouched."
    )
    parser.add_argument(
        "--database-url",
        dest="database_url",
        default=None,
        help="SQLAlchemy async database URL (default: the configured database URL).",
    )
    parser.add_argument(
        "--create-schema",
        dest="create_schema",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Control whether the patients table is created before inserting rows.",
    )
    return parser


async def seed_patients(
    store: PatientStore, patients: Iterable[Mapping[str, Any]] = DEMO_PATIENTS
) -> SeedSummary:
    """Create each patient in ``patients`` unless its email is already taken."""

    summary = SeedSummary()
    for raw in patients:
        payload = PatientCreate.model_validate(raw)
        try:
            await store.create(payload.to_store_fields())
        except UniqueViolationError:
            summary.skipped += 1
            continue
        summary.created += 1
    return summary


async def _run_async(args: argparse.Namespace) -> int:
    database = get_settings().database
    store = SqlPatientStore(
        args.database_url or database.url,
        echo=database.echo,
        pool_size=database.pool_size,
    )
    try:
        if args.create_schema:
            await store.create_schema()
        summary = await seed_patients(store)
    finally:
        await store.dispose()

    print(
        f"Seeded {summary.created} patients "
        f"({summary.skipped} already present)"
    )
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    parsed_args = parser.parse_args(None if argv is None else list(argv))
    try:
        return asyncio.run(_run_async(parsed_args))
    except KeyboardInterrupt:  # pragma: no cover - manual cancellation guard
        return 130
    except Exception as exc:  # pragma: no cover - surface script errors cleanly
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
