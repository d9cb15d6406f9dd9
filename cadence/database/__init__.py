"""Cadence ORM models."""
