# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Import Claude Code usage data from local JSONL session logs.

Claude Code stores one JSONL file per session under
~/.claude/projects/<project-dir>/<session-id>.jsonl, where <project-dir> is
the workspace path with separators replaced by dashes
(e.g. -Users-username-Dev-project).

Each line is one record. Assistant records carry token usage; those (and
substantial user prompts) are transformed into canonical events and sent to
the telemetry API.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..agents import AgentId
from ..client import TelemetryClient, build_telemetry_event, send_telemetry
from ..errors import EventValidationError

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_DIR = Path.home() / ".claude"
DEFAULT_LIMIT = 100

# User messages at or below this many characters are not worth recording
MIN_USER_CONTENT_LENGTH = 50

TELEMETRY_EVENT_NAME = "claude.usage"

# Per-token rates in tenths of a micro-cent, so the sum stays an integer
INPUT_TOKEN_RATE_TENTHS = 3          # 0.3 micro-cents (~$3 / 1M tokens)
OUTPUT_TOKEN_RATE_TENTHS = 15        # 1.5 micro-cents (~$15 / 1M tokens)
CACHE_CREATION_RATE_TENTHS = 3       # priced like input tokens


@dataclass
class ImportSummary:
    """Outcome of an import run."""
    files: int = 0
    events_sent: int = 0
    events_failed: int = 0
    malformed_lines: int = 0
    files_failed: int = 0

    @property
    def events_total(self) -> int:
        return self.events_sent + self.events_failed


# =============================================================================
# FILE DISCOVERY
# =============================================================================

def find_jsonl_files(projects_dir: Union[str, Path]) -> List[Path]:
    """
    Recursively find all .jsonl files below the projects directory.

    Args:
        projects_dir: Claude projects directory (~/.claude/projects)

    Returns:
        Sorted list of JSONL file paths; empty if the directory does not exist
    """
    root = Path(projects_dir)
    if not root.is_dir():
        return []

    files: List[Path] = []

    def _on_error(error: OSError) -> None:
        logger.error(f"Failed to scan projects directory: {error}")

    for dirpath, _dirnames, filenames in os.walk(root, onerror=_on_error):
        for filename in filenames:
            if filename.endswith(".jsonl"):
                files.append(Path(dirpath) / filename)

    return sorted(files)


def extract_project_path(jsonl_file: Union[str, Path]) -> str:
    """
    Derive the project path from the session file's parent directory name.

    Example:
        >>> extract_project_path("/x/-Users-mhostetler-Source-Project-name/session.jsonl")
        'Users/mhostetler/Source/Project/name'
        >>> extract_project_path("/x/simple-name/session.jsonl")
        'simple-name'
    """
    dir_name = Path(jsonl_file).parent.name
    if dir_name.startswith("-"):
        return dir_name[1:].replace("-", "/")
    return dir_name


# =============================================================================
# FILTER / TRANSFORM
# =============================================================================

def _get_message(event: Dict[str, Any]) -> Dict[str, Any]:
    message = event.get("message")
    return message if isinstance(message, dict) else {}


def _get_usage(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    usage = _get_message(event).get("usage")
    return usage if isinstance(usage, dict) else None


def _content_text(content: Any) -> str:
    """Text of a message's content: a plain string or a list of text blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        )
    return ""


def _is_meta(event: Dict[str, Any]) -> bool:
    return bool(event.get("isMeta") or _get_message(event).get("isMeta"))


def should_process_event(event: Dict[str, Any]) -> bool:
    """
    Decide whether a Claude Code log record is worth recording.

    - assistant records with a usage object: yes
    - user records that are not meta and have more than 50 characters of text: yes
    - everything else: no
    """
    if not isinstance(event, dict):
        return False

    event_type = event.get("type")

    if event_type == "assistant":
        return _get_usage(event) is not None

    if event_type == "user":
        if _is_meta(event):
            return False
        text = _content_text(_get_message(event).get("content"))
        return len(text) > MIN_USER_CONTENT_LENGTH

    return False


def _token_count(usage: Dict[str, Any], key: str) -> int:
    try:
        return max(int(usage.get(key) or 0), 0)
    except (TypeError, ValueError):
        return 0


def estimate_cost_micro_cents(usage: Dict[str, Any]) -> int:
    """
    Rough cost estimate for a usage record, in integer micro-cents.

    input * 0.3 + output * 1.5 + cache_creation * 0.3, rounded half-up.
    Cache reads are not priced.
    """
    tenths = (
        _token_count(usage, "input_tokens") * INPUT_TOKEN_RATE_TENTHS
        + _token_count(usage, "output_tokens") * OUTPUT_TOKEN_RATE_TENTHS
        + _token_count(usage, "cache_creation_input_tokens") * CACHE_CREATION_RATE_TENTHS
    )
    return (tenths + 5) // 10


def transform_to_arden_event(
    event: Dict[str, Any],
    project_path: str,
    session_id: str,
) -> Dict[str, Any]:
    """
    Transform a Claude Code log record into a canonical Arden event.

    Optional fields are omitted rather than set to None.
    estimatedCostMicroCents is present exactly when usage is.
    The input record is not modified.

    Args:
        event: Parsed JSONL record
        project_path: Project path from extract_project_path()
        session_id: Session ID (the JSONL file stem)

    Returns:
        Canonical event dictionary
    """
    message = _get_message(event)
    usage = _get_usage(event)

    details: Dict[str, Any] = {"type": event.get("type")}
    optional = {
        "model": message.get("model"),
        "role": message.get("role"),
        "usage": dict(usage) if usage is not None else None,
        "version": event.get("version"),
        "userType": event.get("userType"),
        "workingDirectory": event.get("cwd"),
        "estimatedCostMicroCents": estimate_cost_micro_cents(usage) if usage is not None else None,
    }
    details.update({key: value for key, value in optional.items() if value is not None})

    return {
        "provider": AgentId.CLAUDE_CODE.value,
        "sessionId": session_id,
        "projectPath": project_path,
        "timestamp": event.get("timestamp") or datetime.now(timezone.utc).isoformat(),
        "event": details,
    }


# =============================================================================
# FILE PROCESSING
# =============================================================================

def read_events(file_path: Path, limit: int, summary: Optional[ImportSummary] = None) -> List[Dict[str, Any]]:
    """
    Parse the first `limit` lines of a JSONL file.

    Blank lines are ignored; malformed lines are logged and skipped.
    """
    events = []
    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        for line_number, line in enumerate(f, start=1):
            if line_number > limit:
                break
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipped malformed JSON line {line_number} in {file_path}: {e}")
                if summary is not None:
                    summary.malformed_lines += 1
                continue
            if isinstance(record, dict):
                events.append(record)
    return events


def process_jsonl_file(
    file_path: Path,
    limit: int,
    summary: ImportSummary,
    client: Optional[TelemetryClient] = None,
    dry_run: bool = False,
) -> int:
    """
    Transform and submit the recordable events of one session file.

    In dry-run mode events are validated and printed as JSON instead of sent.

    Returns:
        Number of events sent (or that would be sent, in dry-run mode)
    """
    project_path = extract_project_path(file_path)
    session_id = file_path.stem
    processed = 0

    for record in read_events(file_path, limit, summary):
        if not should_process_event(record):
            continue

        arden_event = transform_to_arden_event(record, project_path, session_id)

        if dry_run:
            try:
                build_telemetry_event(AgentId.CLAUDE_CODE.value, arden_event, arden_event["timestamp"])
            except EventValidationError as e:
                logger.warning(f"Event from {file_path.name} would be rejected: {e}")
                summary.events_failed += 1
                continue
            print(json.dumps(arden_event))
            summary.events_sent += 1
            processed += 1
            continue

        if send_telemetry(
            TELEMETRY_EVENT_NAME,
            AgentId.CLAUDE_CODE.value,
            arden_event,
            timestamp=arden_event["timestamp"],
            client=client,
        ):
            summary.events_sent += 1
            processed += 1
        else:
            summary.events_failed += 1

    return processed


def import_claude_usage(
    claude_dir: Union[str, Path] = DEFAULT_CLAUDE_DIR,
    limit: int = DEFAULT_LIMIT,
    dry_run: bool = False,
    client: Optional[TelemetryClient] = None,
) -> ImportSummary:
    """
    Import usage events from every session file under <claude_dir>/projects.

    Raises:
        FileNotFoundError: If the projects directory does not exist
        ValueError: If limit is not positive
    """
    if limit <= 0:
        raise ValueError(f"limit must be a positive integer, got {limit}")

    projects_dir = Path(claude_dir).expanduser() / "projects"
    if not projects_dir.is_dir():
        raise FileNotFoundError(f"Claude projects directory not found: {projects_dir}")

    summary = ImportSummary()
    jsonl_files = find_jsonl_files(projects_dir)
    summary.files = len(jsonl_files)

    if not jsonl_files:
        logger.info("No Claude Code JSONL files found")
        return summary

    logger.info(f"Found {len(jsonl_files)} Claude Code session files")
    if dry_run:
        logger.info("[DRY RUN] Events will be printed, not sent")
    elif client is None:
        client = TelemetryClient()

    for jsonl_file in jsonl_files:
        try:
            count = process_jsonl_file(jsonl_file, limit, summary, client=client, dry_run=dry_run)
            logger.info(f"Processed {count} events from {jsonl_file.name} ({extract_project_path(jsonl_file)})")
        except OSError as e:
            summary.files_failed += 1
            logger.error(f"Failed to process {jsonl_file}: {e}")

    return summary
