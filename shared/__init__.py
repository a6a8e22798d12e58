"""Shared building blocks for the patient records service."""
