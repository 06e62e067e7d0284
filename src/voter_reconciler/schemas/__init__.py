"""Pydantic v2 schemas."""
