# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Validate telemetry events without sending them (`arden events validate`)."""

import gzip
import json
import logging
import sys
from typing import Any, List, Optional, TextIO

from ..errors import ArdenError
from ..schema import TelemetryEvent, validate_events

logger = logging.getLogger(__name__)


def load_events(file: Optional[str] = None, stdin: Optional[TextIO] = None) -> List[Any]:
    """
    Load one event or a list of events from a file, a .gz file, or stdin.

    Raises:
        ArdenError: If nothing can be read or the content is not JSON
    """
    try:
        if file and file != "-":
            if file.endswith(".gz"):
                with gzip.open(file, "rt", encoding="utf-8") as f:
                    text = f.read()
            else:
                with open(file, "r", encoding="utf-8") as f:
                    text = f.read()
        else:
            text = (stdin or sys.stdin).read()
            if not text.strip():
                raise ArdenError("No data provided. Use --file <path> or pipe JSON to stdin")
    except OSError as e:
        raise ArdenError(f"Could not read events: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ArdenError(f"Invalid JSON: {e}") from e

    return data if isinstance(data, list) else [data]


def summarize(events: List[TelemetryEvent]) -> str:
    agents = {event.agent for event in events}
    users = {event.user for event in events if event.user}
    total_bid = sum(event.bid for event in events)
    return f"Summary: {len(agents)} agents, {len(users)} users, {total_bid} total bid"


def validate_command(file: Optional[str] = None, print_events: bool = False, stdin: Optional[TextIO] = None) -> int:
    """Validate events and report a summary. Returns the process exit code."""
    try:
        events = load_events(file, stdin)
        logger.info(f"Validating {len(events)} events...")
        validated = validate_events(events)
    except ArdenError as e:
        logger.error(f"Validation failed: {e}")
        return 1

    if print_events:
        print(json.dumps([event.to_dict() for event in validated], indent=2))

    print(f"✓ All {len(validated)} events are valid")
    print(summarize(validated))
    return 0
