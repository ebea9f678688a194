import logging

import pytest

from models import Entry, InvalidTimestamp, parse_timestamp
from parser import ParseError, parse_jsonl, parse_manifest


class TestParseJsonl:

    def test_parses_records_in_order(self):
        content = (
            b'{"artist": "A", "song": "X", "ts": "2024-01-01T10:00:00Z"}\n'
            b'{"artist": "B", "song": "Y", "ts": "2024-01-01T09:00:00Z", "station": "kexp"}\n'
        )

        assert parse_jsonl(content) == [
            Entry(artist="A", song="X", ts="2024-01-01T10:00:00Z"),
            Entry(artist="B", song="Y", ts="2024-01-01T09:00:00Z"),
        ]

    def test_accepts_text(self):
        entries = parse_jsonl('{"artist": "A", "song": "X", "ts": "2024-01-01T10:00:00Z"}')
        assert len(entries) == 1

    @pytest.mark.parametrize("content", [b"", b"   \n\n", ""])
    def test_empty_input(self, content):
        assert parse_jsonl(content) == []

    def test_skips_invalid_json_with_warning(self, caplog):
        content = (
            b'{"artist": "A", "song": "X", "ts": "2024-01-01T10:00:00Z"}\n'
            b'{"artist": "B", "song": \n'
            b'\n'
            b'{"artist": "C", "song": "Z", "ts": "2024-01-01T11:00:00Z"}\n'
        )

        with caplog.at_level(logging.WARNING, logger="parser"):
            entries = parse_jsonl(content)

        assert [e.artist for e in entries] == ["A", "C"]
        assert "line 2" in caplog.text

    @pytest.mark.parametrize("line", [
        b'{"song": "X", "ts": "2024-01-01T10:00:00Z"}',
        b'{"artist": "", "song": "X", "ts": "2024-01-01T10:00:00Z"}',
        b'{"artist": "A", "song": null, "ts": "2024-01-01T10:00:00Z"}',
        b'{"artist": "A", "song": "X"}',
        b'{"artist": "A", "song": 7, "ts": "2024-01-01T10:00:00Z"}',
        b'{"artist": "A", "song": "X", "ts": "last tuesday"}',
        b'["A", "X", "2024-01-01T10:00:00Z"]',
    ])
    def test_drops_malformed_records(self, line):
        assert parse_jsonl(line) == []


class TestParseManifest:

    def test_valid(self):
        manifest = parse_manifest(
            b'{"generated": "2025-12-10T08:00:00Z", "files": ["2025-W49.jsonl", "2025-W50.jsonl"]}'
        )

        assert manifest.generated == "2025-12-10T08:00:00Z"
        assert manifest.files == ["2025-W49.jsonl", "2025-W50.jsonl"]

    def test_missing_files_is_empty(self):
        assert parse_manifest(b'{"generated": "x"}').files == []

    @pytest.mark.parametrize("content", [
        b"{not json",
        b'["2025-W50.jsonl"]',
        b'{"files": "2025-W50.jsonl"}',
        b'{"files": [1, 2]}',
    ])
    def test_malformed(self, content):
        with pytest.raises(ParseError):
            parse_manifest(content)


class TestParseTimestamp:

    def test_z_suffix_is_utc(self):
        parsed = parse_timestamp("2024-01-01T10:00:00Z")
        assert parsed.utcoffset().total_seconds() == 0
        assert parsed.hour == 10

    def test_naive_becomes_aware(self):
        assert parse_timestamp("2024-01-01T10:00:00").tzinfo is not None

    @pytest.mark.parametrize("value", ["", "soon", None, 12])
    def test_invalid(self, value):
        with pytest.raises(InvalidTimestamp):
            parse_timestamp(value)

    def test_invalid_timestamp_is_value_error(self):
        with pytest.raises(ValueError):
            Entry(artist="A", song="X", ts="nope").timestamp
