"""Scoring, mapping, orchestration and validation services."""
