# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Send a single telemetry event (`arden events send`).

Data sources are merged in order: --data (JSON text, @file, or - for stdin),
then trailing key=value arguments, which win on conflicts.
"""

import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, TextIO, Union

from ..agents import get_agent_name
from ..client import TelemetryClient
from ..config import get_api_token, get_user_id
from ..errors import ArdenError
from ..sanitize import sanitize
from ..schema import build_event, validate_event

logger = logging.getLogger(__name__)


def parse_key_value_pairs(pairs: List[str]) -> Dict[str, Union[str, int, float]]:
    """
    Parse key=value arguments.

    Values that look numeric become numbers; everything after the first '='
    is the value.

    Raises:
        ArdenError: If an argument has no '='
    """
    data: Dict[str, Union[str, int, float]] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ArdenError(f"Invalid key=value pair: {pair}")
        data[key] = _coerce_number(value)
    return data


def _coerce_number(value: str) -> Union[str, int, float]:
    if value.strip() == "":
        return value
    try:
        return int(value)
    except ValueError:
        pass
    try:
        number = float(value)
    except ValueError:
        return value
    if number != number or number in (float("inf"), float("-inf")):
        return value
    return number


def load_data_payload(data: Optional[str], stdin: Optional[TextIO] = None) -> Any:
    """
    Resolve the --data option.

    Args:
        data: JSON string, "@path" to read a file, or "-" to read stdin

    Raises:
        ArdenError: If the file cannot be read or the content is not JSON
    """
    if not data:
        return {}

    try:
        if data == "-":
            text = (stdin or sys.stdin).read()
        elif data.startswith("@"):
            with open(data[1:], "r", encoding="utf-8") as f:
                text = f.read()
        else:
            text = data
    except OSError as e:
        raise ArdenError(f"Could not read data: {e}") from e

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ArdenError(f"Invalid JSON data: {e}") from e


def _parse_int(name: str, value: Optional[str], default: Optional[int] = 0) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ArdenError(f"--{name} must be an integer, got {value!r}")


def send_event(
    agent: Optional[str],
    user: Optional[str] = None,
    bid: Optional[str] = "0",
    mult: Optional[str] = "0",
    time_ms: Optional[str] = None,
    data: Optional[str] = None,
    pairs: Optional[List[str]] = None,
    host: Optional[str] = None,
    token: Optional[str] = None,
    dry_run: bool = False,
    print_event: bool = False,
    stdin: Optional[TextIO] = None,
) -> int:
    """
    Build, validate and send one event.

    Returns:
        Process exit code: 0 on success (or dry run), 1 on any failure
    """
    try:
        extra = parse_key_value_pairs(pairs or [])

        if not agent:
            raise ArdenError("--agent is required")

        payload = load_data_payload(data, stdin)
        if isinstance(payload, dict):
            payload = {**payload, **extra}
        elif extra:
            raise ArdenError("key=value pairs can only be combined with a JSON object in --data")

        event = build_event(
            agent=agent,
            user=get_user_id(user),
            time_ms=_parse_int("time", time_ms, default=None),
            bid=_parse_int("bid", bid),
            mult=_parse_int("mult", mult),
            data=payload,
        )
        validated = validate_event(event)
    except ArdenError as e:
        logger.error(f"Failed to send event: {e}")
        return 1

    if print_event or os.getenv("LOG_LEVEL", "").lower() == "debug":
        print(json.dumps(sanitize(validated.to_dict()), indent=2))

    if dry_run:
        logger.info("Dry run - event validated successfully")
        return 0

    client = TelemetryClient(host=host, token=get_api_token(token))
    logger.debug(f"Sending {get_agent_name(validated.agent) or validated.agent} event to {client.host}")

    try:
        response = client.send_events([validated])
    except ArdenError as e:
        logger.error(f"Failed to send event: {e}")
        return 1

    if response.status == "accepted":
        print("✓ Event sent successfully")
        return 0

    for rejection in response.rejected:
        logger.error(f"Error: {rejection.get('error')}")

    if response.status == "partial":
        logger.warning(
            f"Event partially processed. Accepted: {response.accepted_count}, "
            f"Rejected: {response.rejected_count}"
        )
        return 0

    logger.error("Event rejected")
    return 1
