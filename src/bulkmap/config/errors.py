"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when required configuration values are absent or blank."""


class InvalidBulkConfigError(ConfigurationError):
    """Raised when a bulk configuration cannot be applied to an operation."""


class MultiplePropertyListSetError(ConfigurationError):
    """Raised when both the include and exclude list are set for one role."""

    def __init__(self, include_name: str, exclude_name: str) -> None:
        self.include_name = include_name
        self.exclude_name = exclude_name
        super().__init__(
            f"Only one of '{include_name}' and '{exclude_name}' can be set, not both."
        )


class UnknownPropertyError(ConfigurationError):
    """Raised when a configured property name does not resolve to a property."""

    def __init__(self, property_name: str, list_name: str) -> None:
        self.property_name = property_name
        self.list_name = list_name
        super().__init__(
            f"PropertyName '{property_name}' specified in '{list_name}' not found in properties."
        )
