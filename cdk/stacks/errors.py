"""Errors raised while resolving the deployment context and declaring resources.

Every error here is fatal for a synth run: the app logs it and exits
without creating a stack.
"""

from __future__ import annotations


class AppConfigError(Exception):
    """Base class for deploy-time configuration failures."""


class ContextResolutionError(AppConfigError):
    """The current branch could not be determined or matched to an environment."""


class ConfigurationValidationError(AppConfigError):
    """A required field is missing or malformed in the resolved configuration."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class GraphConstructionError(AppConfigError):
    """The declared resource graph is inconsistent (bad name, dangling edge, ...)."""
