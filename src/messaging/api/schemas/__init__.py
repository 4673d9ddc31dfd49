"""Pydantic request/response models for the operator API."""
