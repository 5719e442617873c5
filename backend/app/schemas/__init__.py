"""Pydantic request/response schemas for the GymApp API."""
