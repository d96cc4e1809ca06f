"""Pydantic schemas and domain models."""
