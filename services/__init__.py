"""Service modules for the patient records application."""

__all__ = ["patient_records"]
