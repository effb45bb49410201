"""Exceptions shared across the workshop runner."""

from __future__ import annotations

__all__ = ["ConfigurationError"]


class ConfigurationError(Exception):
    """
    Raised for problems detected before any step executes.

    Duplicate step names, unknown step references, missing config files,
    unset required variables and missing CLI tools all end up here.
    """
    pass
