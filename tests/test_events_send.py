#!/usr/bin/env python3
# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""Tests for `arden events send`."""

import io
import json
import logging
from unittest.mock import patch

import pytest

from arden.client import TelemetryResponse
from arden.errors import ArdenError, TelemetryError
from arden.events.send import load_data_payload, parse_key_value_pairs, send_event

VALID_ULID = "01ARZ3NDEKTSV4RRFFQ69G5FAV"


@pytest.fixture
def mock_client():
    with patch("arden.events.send.TelemetryClient") as client_cls:
        client = client_cls.return_value
        client.host = "https://example.test"
        client.send_events.return_value = TelemetryResponse(status="accepted", accepted_count=1)
        yield client_cls


def _sent_event(client_cls):
    return client_cls.return_value.send_events.call_args.args[0][0]


class TestParseKeyValuePairs:

    def test_numbers_and_strings(self):
        assert parse_key_value_pairs(["tokens=100", "ratio=0.5", "model=opus", "expr=a=b"]) == {
            "tokens": 100,
            "ratio": 0.5,
            "model": "opus",
            "expr": "a=b",
        }

    def test_non_finite_stays_string(self):
        assert parse_key_value_pairs(["x=nan", "y=inf"]) == {"x": "nan", "y": "inf"}

    def test_empty_value(self):
        assert parse_key_value_pairs(["note="]) == {"note": ""}

    @pytest.mark.parametrize("pair", ["novalue", "=value"])
    def test_invalid_pair(self, pair):
        with pytest.raises(ArdenError, match="Invalid key=value pair"):
            parse_key_value_pairs([pair])


class TestLoadDataPayload:

    def test_inline_json(self):
        assert load_data_payload('{"a": 1}') == {"a": 1}

    def test_file(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text('{"from": "file"}')
        assert load_data_payload(f"@{path}") == {"from": "file"}

    def test_stdin(self):
        assert load_data_payload("-", io.StringIO('{"from": "stdin"}')) == {"from": "stdin"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ArdenError, match="Could not read data"):
            load_data_payload(f"@{tmp_path / 'missing.json'}")

    def test_invalid_json(self):
        with pytest.raises(ArdenError, match="Invalid JSON"):
            load_data_payload("{oops")


class TestSendEvent:

    def test_missing_agent_fails_without_network(self, mock_client, caplog):
        with caplog.at_level(logging.ERROR):
            assert send_event(agent=None) == 1

        mock_client.assert_not_called()
        assert "--agent is required" in caplog.text

    def test_invalid_pair_reported_before_agent(self, mock_client, caplog):
        with caplog.at_level(logging.ERROR):
            assert send_event(agent=None, pairs=["broken"]) == 1
        assert "Invalid key=value pair: broken" in caplog.text

    def test_sends_event(self, mock_client, capsys):
        result = send_event(
            agent="A-CLAUDECODE",
            user=VALID_ULID,
            bid="5",
            time_ms="1700000000000",
            data='{"model": "opus", "tokens": 1}',
            pairs=["tokens=42"],
            host="https://example.test",
            token="cli-token",
        )

        assert result == 0
        mock_client.assert_called_once_with(host="https://example.test", token="cli-token")
        event = _sent_event(mock_client)
        assert event.agent == "A-CLAUDECODE"
        assert event.user == VALID_ULID
        assert event.bid == 5
        assert event.time == 1700000000000
        assert event.data == {"model": "opus", "tokens": 42}
        assert "Event sent successfully" in capsys.readouterr().out

    def test_user_from_environment(self, mock_client, monkeypatch):
        monkeypatch.setenv("ARDEN_USER_ID", VALID_ULID)
        assert send_event(agent="A-CLAUDECODE") == 0
        assert _sent_event(mock_client).user == VALID_ULID

    def test_dry_run_validates_only(self, mock_client):
        assert send_event(agent="A-CLAUDECODE", pairs=["a=1"], dry_run=True) == 0
        mock_client.assert_not_called()

    def test_print_event(self, mock_client, capsys):
        assert send_event(agent="A-CLAUDECODE", pairs=["a=1"], dry_run=True, print_event=True) == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed["agent"] == "A-CLAUDECODE"
        assert printed["data"] == {"a": 1}

    def test_invalid_event(self, mock_client, caplog):
        with caplog.at_level(logging.ERROR):
            assert send_event(agent="A-CLAUDECODE", bid="-1") == 1
        mock_client.assert_not_called()
        assert "bid" in caplog.text

    def test_non_integer_bid(self, mock_client):
        assert send_event(agent="A-CLAUDECODE", bid="lots") == 1
        mock_client.assert_not_called()

    def test_invalid_data_json(self, mock_client):
        assert send_event(agent="A-CLAUDECODE", data="{oops") == 1
        mock_client.assert_not_called()

    def test_partial_is_success(self, mock_client):
        mock_client.return_value.send_events.return_value = TelemetryResponse(
            status="partial", accepted_count=1, rejected_count=1, rejected=[{"index": 1, "error": "dup"}]
        )
        assert send_event(agent="A-CLAUDECODE") == 0

    def test_rejected_is_failure(self, mock_client, caplog):
        mock_client.return_value.send_events.return_value = TelemetryResponse(
            status="rejected", rejected_count=1, rejected=[{"index": 0, "error": "bad agent"}]
        )
        with caplog.at_level(logging.ERROR):
            assert send_event(agent="A-CLAUDECODE") == 1
        assert "bad agent" in caplog.text

    def test_transport_error(self, mock_client, caplog):
        mock_client.return_value.send_events.side_effect = TelemetryError("HTTP 401: Unauthorized", status=401)
        with caplog.at_level(logging.ERROR):
            assert send_event(agent="A-CLAUDECODE") == 1
        assert "401" in caplog.text
