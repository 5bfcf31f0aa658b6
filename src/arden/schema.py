# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Telemetry envelope schema and validation.

Defines the event format accepted by the Arden Stats API:

    {"agent": "A-CLAUDECODE", "user": "<ULID>", "time": <epoch ms>,
     "bid": 0, "mult": 0, "data": {...flat string/number values...}}
"""

import base64
import binascii
import json
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import EventValidationError

# Agent IDs are letters, digits and hyphens (e.g. A-CLAUDECODE, A-1F2E)
AGENT_PATTERN = r"^[A-Za-z0-9-]{1,64}$"

# ULID: Crockford base32, excluding I, L, O, U
ULID_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

MAX_DATA_BYTES = 1024

FlatValue = Union[str, int, float]


class TelemetryEvent(BaseModel):
    """A single telemetry event as sent to POST /api/events."""

    model_config = ConfigDict(extra="forbid")

    agent: str = Field(..., pattern=AGENT_PATTERN, description="Agent ID")
    user: Optional[str] = Field(None, pattern=ULID_PATTERN, description="User ULID")
    time: int = Field(..., ge=0, description="Timestamp in epoch milliseconds")
    bid: int = Field(0, ge=0, description="Bid amount in micro-cents")
    mult: int = Field(0, ge=0, description="Bid multiplier")
    data: Union[Dict[str, FlatValue], str] = Field(default_factory=dict, description="Event payload")

    @field_validator("data")
    @classmethod
    def _check_data_size(cls, value: Union[Dict[str, FlatValue], str]) -> Union[Dict[str, FlatValue], str]:
        if isinstance(value, str):
            try:
                decoded = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError):
                raise ValueError("Invalid base64 data")
            if len(decoded) > MAX_DATA_BYTES:
                raise ValueError(f"Decoded data exceeds {MAX_DATA_BYTES} bytes")
            return value

        encoded = json.dumps(value, separators=(",", ":")).encode("utf-8")
        if len(encoded) > MAX_DATA_BYTES:
            raise ValueError(f"Encoded JSON data exceeds {MAX_DATA_BYTES} bytes")
        return value

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to a JSON-ready dictionary, omitting an unset user."""
        return self.model_dump(exclude_none=True)


def current_time_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def build_event(
    agent: str,
    user: Optional[str] = None,
    time_ms: Optional[int] = None,
    bid: int = 0,
    mult: int = 0,
    data: Optional[Union[Dict[str, Any], str]] = None,
) -> Dict[str, Any]:
    """
    Build an event dictionary with defaults filled in.

    The result is not validated; pass it to validate_event().
    """
    return {
        "agent": agent,
        "user": user,
        "time": time_ms if time_ms is not None else current_time_ms(),
        "bid": bid,
        "mult": mult,
        "data": data if data is not None else {},
    }


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "event"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def validate_event(event: Union[Dict[str, Any], TelemetryEvent]) -> TelemetryEvent:
    """
    Validate one event.

    Raises:
        EventValidationError: If the event does not match the schema
    """
    if isinstance(event, TelemetryEvent):
        return event
    if not isinstance(event, dict):
        raise EventValidationError(f"expected an object, got {type(event).__name__}")
    try:
        return TelemetryEvent.model_validate(event)
    except ValidationError as e:
        raise EventValidationError(_format_validation_error(e)) from e


def validate_events(events: Iterable[Union[Dict[str, Any], TelemetryEvent]]) -> List[TelemetryEvent]:
    """Validate a sequence of events, reporting the index of the first bad one."""
    validated = []
    for index, event in enumerate(events):
        try:
            validated.append(validate_event(event))
        except EventValidationError as e:
            raise EventValidationError(str(e), index=index) from e
    return validated


def flatten_data(payload: Dict[str, Any], prefix: str = "") -> Dict[str, FlatValue]:
    """
    Flatten a nested payload into dotted keys with string/number values.

    Nested dicts become "parent.child" keys. Booleans become "true"/"false",
    lists are JSON-encoded, and None values are dropped.

    Example:
        >>> flatten_data({"event": {"usage": {"input_tokens": 10}}, "ok": True})
        {'event.usage.input_tokens': 10, 'ok': 'true'}
    """
    flat: Dict[str, FlatValue] = {}
    for key, value in payload.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            flat.update(flatten_data(value, name))
        elif isinstance(value, bool):
            flat[name] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            flat[name] = value
        else:
            flat[name] = json.dumps(value, separators=(",", ":"))
    return flat
