# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Exception types raised by the Arden CLI library code."""

from typing import Optional


class ArdenError(Exception):
    """Base class for Arden CLI errors."""


class TelemetryError(ArdenError):
    """Submitting events to the telemetry API failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class EventValidationError(ArdenError):
    """An event does not match the telemetry envelope schema."""

    def __init__(self, message: str, index: Optional[int] = None):
        if index is not None:
            message = f"Event at index {index} is invalid: {message}"
        super().__init__(message)
        self.index = index


class SettingsError(ArdenError):
    """A settings file could not be read or parsed."""
