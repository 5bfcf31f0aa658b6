# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Handler for Claude Code hooks (`arden claude hook <Hook>`).

Claude Code runs the installed hook command and passes a JSON payload on
stdin containing session_id, transcript_path, cwd and hook-specific fields.
The payload is stripped of local paths, wrapped with Arden metadata and sent
to the telemetry API.

Exit codes:
  0 - sent (or printed / dry run)
  1 - unknown hook, missing stdin, or send failure
  2 - stdin is not valid JSON
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from ..agents import AgentId
from ..client import TelemetryClient, build_telemetry_event, send_telemetry
from ..errors import ArdenError
from ..sanitize import sanitize

logger = logging.getLogger(__name__)

# Hook names Claude Code can invoke
CLAUDE_HOOKS = (
    "PreToolUse",
    "PostToolUse",
    "Notification",
    "Stop",
    "SubagentStop",
)

# Local paths are never sent
STRIPPED_FIELDS = ("cwd", "transcript_path")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID_JSON = 2


def is_claude_hook(name: str) -> bool:
    """Check if name is a known Claude Code hook (case-sensitive)."""
    return name in CLAUDE_HOOKS


def read_stdin(stream: Optional[TextIO] = None) -> str:
    """
    Read the hook payload from stdin.

    Raises:
        ArdenError: If stdin is an interactive terminal or empty
    """
    stream = stream or sys.stdin
    if stream.isatty():
        raise ArdenError(
            "This command is meant to be called by Claude Code with JSON data via stdin, "
            "not interactively."
        )
    data = stream.read()
    if not data.strip():
        raise ArdenError("No data received from stdin. This command expects JSON data from Claude Code.")
    return data


def build_hook_event(hook: str, payload: Any) -> Dict[str, Any]:
    """Wrap a hook payload with Arden metadata, dropping local paths."""
    if isinstance(payload, dict):
        sanitized = {key: value for key, value in payload.items() if key not in STRIPPED_FIELDS}
    else:
        sanitized = {"value": payload}

    return {
        "provider": AgentId.CLAUDE_CODE.value,
        "hook": hook,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": sanitized,
    }


def handle_claude_hook(
    hook: str,
    dry_run: bool = False,
    print_only: bool = False,
    host: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> int:
    """
    Process one hook invocation.

    Args:
        hook: Hook name (one of CLAUDE_HOOKS)
        dry_run: Validate the envelope but skip the API call
        print_only: Print the enriched payload to stdout instead of sending
        host: API host override
        stream: Input stream (defaults to sys.stdin)

    Returns:
        Process exit code
    """
    if not is_claude_hook(hook):
        print(f"Unknown Claude Code hook: {hook}", file=sys.stderr)
        print(f"Available hooks: {', '.join(CLAUDE_HOOKS)}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        raw = read_stdin(stream)
    except (ArdenError, OSError) as e:
        print(f"Failed to handle Claude hook {hook}: {e}", file=sys.stderr)
        return EXIT_FAILURE

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        print(f"Invalid JSON received for hook {hook}", file=sys.stderr)
        return EXIT_INVALID_JSON

    event = build_hook_event(hook, payload)

    if print_only:
        print(json.dumps(sanitize(event), indent=2))
        return EXIT_OK

    if dry_run:
        try:
            build_telemetry_event(AgentId.CLAUDE_CODE.value, event, event["timestamp"])
        except ArdenError as e:
            print(f"Failed to handle Claude hook {hook}: {e}", file=sys.stderr)
            return EXIT_FAILURE
        print(f"[DRY RUN] Would send telemetry for hook: {hook}", file=sys.stderr)
        return EXIT_OK

    sent = send_telemetry(
        f"claude.{hook}",
        AgentId.CLAUDE_CODE.value,
        event,
        timestamp=event["timestamp"],
        client=TelemetryClient(host=host),
    )
    if not sent:
        print(f"Failed to handle Claude hook {hook}: telemetry was not accepted", file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_OK
