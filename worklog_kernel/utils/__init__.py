"""Deterministic utilities shared by the worklog kernel."""
