"""Observability – logging, lifecycle events and queue health monitoring."""
