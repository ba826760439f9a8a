"""Pydantic schemas for external (camelCase) payloads."""
