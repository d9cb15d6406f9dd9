"""Cadence feature modules."""
