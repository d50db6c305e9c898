"""Exceptions raised for malformed input and broken reference data."""

from __future__ import annotations


class InvalidInputError(ValueError):
    """Raised when an ABI or bytecode argument cannot be interpreted."""


class RegistryError(Exception):
    """Raised when reference standard data is missing or inconsistent."""
