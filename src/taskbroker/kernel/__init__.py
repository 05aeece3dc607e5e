"""Kernel – errors, task envelope and time primitives with no broker dependency."""
