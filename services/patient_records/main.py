"""Entrypoint module for the patient records FastAPI service."""

from __future__ import annotations

import uvicorn
from fastapi import FastAPI

from shared.config import get_settings

from .app import get_app

app: FastAPI = get_app()

__all__ = ["app", "get_app", "main"]


def main() -> None:
    """Run the patient records service using ``uvicorn``."""

    settings = get_settings()
    uvicorn.run(
        "services.patient_records.main:app",
        host=settings.app.host,
        port=settings.app.port,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":  # pragma: no cover
    main()
