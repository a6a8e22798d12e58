"""Observability utilities for the patient records service."""

from .logger import (
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    redact_patient_fields,
    request_context,
)
from .middleware import RequestContextMiddleware
from .audit import (
    AuditRepository,
    InMemoryAuditRepository,
    PatientAudit,
    StdoutAuditRepository,
    get_audit_repository,
    record_patient_audit,
)

__all__ = [
    "AuditRepository",
    "InMemoryAuditRepository",
    "PatientAudit",
    "RequestContextMiddleware",
    "StdoutAuditRepository",
    "configure_logging",
    "generate_request_id",
    "get_audit_repository",
    "get_logger",
    "get_request_id",
    "record_patient_audit",
    "redact_patient_fields",
    "request_context",
]
