"""Resilience – retry delay computation and failure classification."""
