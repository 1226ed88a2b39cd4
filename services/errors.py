"""Exceptions raised inside the health engine."""

from __future__ import annotations


class ConfigError(ValueError):
    """A threshold field could not be used as configured."""

    def __init__(self, field_name: str, raw_value: object) -> None:
        super().__init__(f"Threshold field {field_name!r} has unusable value {raw_value!r}.")
        self.field_name = field_name
        self.raw_value = raw_value


class FetchError(RuntimeError):
    """The reading source failed to answer a query."""
