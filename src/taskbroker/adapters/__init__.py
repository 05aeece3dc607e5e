"""Adapters – concrete integrations with external infrastructure."""
