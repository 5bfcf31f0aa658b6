#!/usr/bin/env python3
# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Tests for the telemetry HTTP client.

urllib.request.urlopen is patched; no network access happens.
"""

import gzip
import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from arden import client as client_module
from arden.client import (
    TelemetryClient,
    TelemetryResponse,
    send_telemetry,
    timestamp_to_ms,
)
from arden.errors import EventValidationError, TelemetryError


def _event(**overrides) -> dict:
    event = {"agent": "A-CLAUDECODE", "time": 1700000000000, "bid": 0, "mult": 0, "data": {"k": "v"}}
    event.update(overrides)
    return event


def _mock_urlopen(*bodies: bytes) -> MagicMock:
    """urlopen mock whose successive responses return the given bodies."""
    responses = []
    for body in bodies:
        response = MagicMock()
        response.read.return_value = body
        context = MagicMock()
        context.__enter__.return_value = response
        responses.append(context)
    return MagicMock(side_effect=responses)


def _accepted(count: int = 1) -> bytes:
    return json.dumps({"status": "accepted", "accepted_count": count}).encode()


class TestTelemetryClient:

    def test_posts_single_event_as_object(self):
        urlopen = _mock_urlopen(_accepted())
        client = TelemetryClient(host="https://example.test/", token="secret-token-123", timeout=5)

        with patch("arden.client.urllib.request.urlopen", urlopen):
            response = client.send_events([_event()])

        assert response.status == "accepted"
        assert response.accepted_count == 1

        request = urlopen.call_args.args[0]
        assert request.full_url == "https://example.test/api/events"
        assert request.get_method() == "POST"
        assert request.get_header("Authorization") == "Bearer secret-token-123"
        assert request.get_header("Content-type") == "application/json"
        assert json.loads(request.data) == _event()
        assert urlopen.call_args.kwargs["timeout"] == 5

    def test_no_authorization_without_token(self):
        urlopen = _mock_urlopen(_accepted())
        client = TelemetryClient(host="https://example.test", token="")

        with patch("arden.client.urllib.request.urlopen", urlopen):
            client.send_events([_event()])

        assert urlopen.call_args.args[0].get_header("Authorization") is None

    def test_uses_configured_host_and_token(self, monkeypatch):
        monkeypatch.setenv("HOST", "https://env-host.test")
        monkeypatch.setenv("ARDEN_API_TOKEN", "env-token")

        client = TelemetryClient()

        assert client.host == "https://env-host.test"
        assert client.token == "env-token"

    def test_uses_configured_timeout(self, isolated_config):
        isolated_config.mkdir(parents=True)
        (isolated_config / "config.yaml").write_text("timeout: 7.5\n")
        urlopen = _mock_urlopen(_accepted())

        client = TelemetryClient(host="https://example.test", token="")
        with patch("arden.client.urllib.request.urlopen", urlopen):
            client.send_events([_event()])

        assert client.timeout == 7.5
        assert urlopen.call_args.kwargs["timeout"] == 7.5

    def test_default_timeout(self):
        assert TelemetryClient(host="https://example.test", token="").timeout == 30.0

    def test_chunks_large_batches(self):
        events = [_event(time=i) for i in range(150)]
        second = json.dumps({
            "status": "partial",
            "accepted_count": 49,
            "rejected_count": 1,
            "rejected": [{"index": 3, "error": "duplicate"}],
        }).encode()
        urlopen = _mock_urlopen(_accepted(100), second)

        with patch("arden.client.urllib.request.urlopen", urlopen):
            response = TelemetryClient(host="https://example.test", token="").send_events(events)

        assert urlopen.call_count == 2
        assert len(json.loads(urlopen.call_args_list[0].args[0].data)) == 100
        assert len(json.loads(urlopen.call_args_list[1].args[0].data)) == 50
        assert response.status == "partial"
        assert response.accepted_count == 149
        assert response.rejected_count == 1
        assert response.rejected == [{"index": 103, "error": "duplicate"}]

    def test_gzips_large_bodies(self, monkeypatch):
        monkeypatch.setattr(client_module, "GZIP_THRESHOLD", 10)
        urlopen = _mock_urlopen(_accepted())

        with patch("arden.client.urllib.request.urlopen", urlopen):
            TelemetryClient(host="https://example.test", token="").send_events([_event()])

        request = urlopen.call_args.args[0]
        assert request.get_header("Content-encoding") == "gzip"
        assert json.loads(gzip.decompress(request.data)) == _event()

    def test_invalid_event_is_not_sent(self):
        urlopen = _mock_urlopen(_accepted())

        with patch("arden.client.urllib.request.urlopen", urlopen):
            with pytest.raises(EventValidationError, match="index 1"):
                TelemetryClient(host="https://example.test", token="").send_events([_event(), _event(bid=-1)])

        urlopen.assert_not_called()

    def test_http_error_raises_telemetry_error(self):
        error = urllib.error.HTTPError(
            "https://example.test/api/events", 401, "Unauthorized", {}, io.BytesIO(b"bad token")
        )

        with patch("arden.client.urllib.request.urlopen", side_effect=error):
            with pytest.raises(TelemetryError) as exc_info:
                TelemetryClient(host="https://example.test", token="").send_events([_event()])

        assert exc_info.value.status == 401
        assert "bad token" in str(exc_info.value)

    def test_connection_error_raises_telemetry_error(self):
        error = urllib.error.URLError("connection refused")

        with patch("arden.client.urllib.request.urlopen", side_effect=error):
            with pytest.raises(TelemetryError, match="connection refused"):
                TelemetryClient(host="https://example.test", token="").send_events([_event()])

    def test_invalid_json_response(self):
        with patch("arden.client.urllib.request.urlopen", _mock_urlopen(b"<html>")):
            with pytest.raises(TelemetryError, match="Invalid JSON"):
                TelemetryClient(host="https://example.test", token="").send_events([_event()])

    def test_empty_response_counts_as_accepted(self):
        with patch("arden.client.urllib.request.urlopen", _mock_urlopen(b"")):
            response = TelemetryClient(host="https://example.test", token="").send_events([_event()])

        assert response.status == "accepted"
        assert response.accepted_count == 1


class TestTelemetryResponse:

    def test_all_rejected(self):
        combined = TelemetryResponse.combine([
            TelemetryResponse(status="rejected", rejected_count=2, rejected=[{"index": 0, "error": "x"}]),
        ])
        assert combined.status == "rejected"

    def test_from_dict_defaults(self):
        response = TelemetryResponse.from_dict({"status": "accepted"})
        assert response.accepted_count == 0
        assert response.rejected == []


class TestSendTelemetry:

    def test_wraps_payload_in_envelope(self):
        client = MagicMock()
        client.host = "https://example.test"
        client.send_events.return_value = TelemetryResponse(accepted_count=1)

        payload = {"sessionId": "s1", "event": {"type": "assistant", "usage": {"input_tokens": 10}}}
        assert send_telemetry("claude.usage", "A-CLAUDECODE", payload,
                              timestamp="2024-01-01T00:00:00Z", client=client) is True

        event = client.send_events.call_args.args[0][0]
        assert event.agent == "A-CLAUDECODE"
        assert event.time == 1704067200000
        assert event.data == {"sessionId": "s1", "event.type": "assistant", "event.usage.input_tokens": 10}

    def test_returns_false_on_transport_failure(self):
        client = MagicMock()
        client.host = "https://example.test"
        client.send_events.side_effect = TelemetryError("down")

        assert send_telemetry("claude.usage", "A-CLAUDECODE", {"a": 1}, client=client) is False

    def test_returns_false_when_rejected(self):
        client = MagicMock()
        client.host = "https://example.test"
        client.send_events.return_value = TelemetryResponse(
            status="rejected", rejected_count=1, rejected=[{"index": 0, "error": "nope"}]
        )

        assert send_telemetry("claude.usage", "A-CLAUDECODE", {"a": 1}, client=client) is False

    def test_returns_false_on_oversized_payload(self):
        client = MagicMock()
        client.host = "https://example.test"

        assert send_telemetry("claude.usage", "A-CLAUDECODE", {"a": "x" * 2000}, client=client) is False
        client.send_events.assert_not_called()


class TestTimestampToMs:

    def test_parses_zulu_timestamps(self):
        assert timestamp_to_ms("2024-01-01T00:00:00.500Z") == 1704067200500

    def test_falls_back_to_now(self):
        assert timestamp_to_ms("not-a-timestamp") > 1704067200000
        assert timestamp_to_ms(None) > 1704067200000
