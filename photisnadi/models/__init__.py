"""Pydantic models for synchronized entities."""
