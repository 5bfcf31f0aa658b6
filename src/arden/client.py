# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
HTTP client for the Arden Stats telemetry API.

Events are validated, split into chunks of CHUNK_SIZE and POSTed to
{host}/api/events. Bodies larger than GZIP_THRESHOLD are gzip-compressed.
"""

import gzip
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from . import __version__
from .config import get_api_token, get_host, load_config
from .errors import ArdenError, TelemetryError
from .sanitize import sanitize
from .schema import TelemetryEvent, current_time_ms, flatten_data, validate_event, validate_events

logger = logging.getLogger(__name__)

EVENTS_PATH = "api/events"
CHUNK_SIZE = 100
GZIP_THRESHOLD = 1024 * 1024


@dataclass
class TelemetryResponse:
    """Response body returned by POST /api/events."""
    status: str = "accepted"
    accepted_count: int = 0
    rejected_count: int = 0
    event_ids: List[str] = field(default_factory=list)
    rejected: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TelemetryResponse":
        """Create response from the decoded JSON body."""
        return cls(
            status=data.get("status", "accepted"),
            accepted_count=int(data.get("accepted_count") or 0),
            rejected_count=int(data.get("rejected_count") or 0),
            event_ids=list(data.get("event_ids") or []),
            rejected=list(data.get("rejected") or []),
        )

    @classmethod
    def combine(cls, results: List["TelemetryResponse"], chunk_size: int = CHUNK_SIZE) -> "TelemetryResponse":
        """
        Combine per-chunk responses into one.

        Rejected indices are shifted so they refer to positions in the full
        event list rather than within a chunk.
        """
        combined = cls()
        for chunk_index, result in enumerate(results):
            combined.accepted_count += result.accepted_count
            combined.rejected_count += result.rejected_count
            combined.event_ids.extend(result.event_ids)
            offset = chunk_index * chunk_size
            for rejection in result.rejected:
                entry = dict(rejection)
                entry["index"] = int(entry.get("index", 0)) + offset
                combined.rejected.append(entry)

        if combined.rejected_count > 0:
            combined.status = "partial" if combined.accepted_count > 0 else "rejected"
        return combined


class TelemetryClient:
    """
    Client for telemetry event submission.

    Uses urllib.request with a per-request timeout. Raises TelemetryError on
    any transport or HTTP failure; there are no retries.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            host: API base URL (defaults to configured host)
            token: Bearer token (defaults to configured token)
            timeout: Request timeout in seconds (defaults to configured timeout)
        """
        config = load_config()
        self.host = get_host(host, config)
        self.token = token if token is not None else get_api_token(config=config)
        self.timeout = timeout if timeout is not None else config.timeout

    def _headers(self, gzipped: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"arden-cli/{__version__}",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if gzipped:
            headers["Content-Encoding"] = "gzip"
        return headers

    def send_events(self, events: Iterable[Union[Dict[str, Any], TelemetryEvent]]) -> TelemetryResponse:
        """
        Validate and submit events.

        Args:
            events: Event dicts or TelemetryEvent objects

        Returns:
            Combined TelemetryResponse across all chunks

        Raises:
            EventValidationError: If any event is invalid (nothing is sent)
            TelemetryError: If a request fails
        """
        validated = validate_events(events)
        if not validated:
            return TelemetryResponse()

        results = []
        for start in range(0, len(validated), CHUNK_SIZE):
            chunk = validated[start:start + CHUNK_SIZE]
            results.append(self._send_chunk(chunk))

        return TelemetryResponse.combine(results)

    def _send_chunk(self, events: List[TelemetryEvent]) -> TelemetryResponse:
        """POST one chunk; a single event is sent as an object, not a list."""
        body: Any = events[0].to_dict() if len(events) == 1 else [e.to_dict() for e in events]
        data = json.dumps(body).encode("utf-8")

        gzipped = len(data) > GZIP_THRESHOLD
        if gzipped:
            data = gzip.compress(data)

        url = f"{self.host}/{EVENTS_PATH}"
        headers = self._headers(gzipped)
        logger.debug(f"POST {url} ({len(events)} events) headers={sanitize(headers)}")

        request = urllib.request.Request(url, data=data, headers=headers, method="POST")

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            detail = ""
            try:
                detail = e.read().decode("utf-8", errors="replace").strip()
            except OSError:
                pass
            message = f"HTTP {e.code} from {url}"
            if detail:
                message = f"{message}: {detail[:200]}"
            raise TelemetryError(message, status=e.code) from e
        except urllib.error.URLError as e:
            raise TelemetryError(f"Could not reach {url}: {e.reason}") from e
        except (TimeoutError, OSError) as e:
            raise TelemetryError(f"Request to {url} failed: {e}") from e

        if not raw:
            return TelemetryResponse(accepted_count=len(events))

        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise TelemetryError(f"Invalid JSON response from {url}: {e}") from e

        if not isinstance(payload, dict):
            raise TelemetryError(f"Unexpected response from {url}: {payload!r}")

        logger.debug(f"Received response: {payload}")
        return TelemetryResponse.from_dict(payload)


def timestamp_to_ms(timestamp: Optional[str]) -> int:
    """Convert an ISO-8601 timestamp to epoch milliseconds, or now if unparseable."""
    if timestamp:
        try:
            return int(datetime.fromisoformat(timestamp.replace("Z", "+00:00")).timestamp() * 1000)
        except (ValueError, TypeError):
            pass
    return current_time_ms()


def build_telemetry_event(agent: str, payload: Dict[str, Any], timestamp: Optional[str] = None) -> TelemetryEvent:
    """
    Wrap a nested payload in a validated envelope.

    Raises:
        EventValidationError: If the envelope does not match the schema
            (for example, flattened data over 1 KiB)
    """
    return validate_event({
        "agent": agent,
        "time": timestamp_to_ms(timestamp),
        "bid": 0,
        "mult": 0,
        "data": flatten_data(payload),
    })


def send_telemetry(
    name: str,
    agent: str,
    payload: Dict[str, Any],
    timestamp: Optional[str] = None,
    client: Optional[TelemetryClient] = None,
) -> bool:
    """
    Wrap a nested payload in an envelope and submit it.

    Args:
        name: Label used in log messages (e.g. "claude.usage")
        agent: Agent ID for the envelope
        payload: Nested payload, flattened into the envelope's data
        timestamp: ISO timestamp used for the envelope time
        client: Client to send with (a default client is created otherwise)

    Returns:
        True if the API accepted the event, False on any failure
    """
    client = client or TelemetryClient()
    try:
        event = build_telemetry_event(agent, payload, timestamp)
        response = client.send_events([event])
    except ArdenError as e:
        logger.error(f"[TELEMETRY] Failed to send {name} to {client.host}: {e}")
        return False

    if response.status == "rejected":
        errors = "; ".join(str(r.get("error")) for r in response.rejected) or "no details"
        logger.error(f"[TELEMETRY] {name} rejected by {client.host}: {errors}")
        return False

    logger.debug(f"[TELEMETRY] {name} sent to {client.host}")
    return True
