"""Pydantic models for work items, stage results, media metadata and title specs."""
