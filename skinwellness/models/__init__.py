"""Pydantic models for the API surface, analysis domain and SkinXS payloads."""
