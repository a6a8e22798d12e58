"""Operational scripts for the patient records service."""
