"""Pydantic schemas shared by services and API endpoints."""
