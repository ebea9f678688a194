"""
Shared pytest fixtures.

Play logs for the API tests are written relative to the real clock, since
the routes sample the current time themselves.
"""

import time
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import orjson
import pytest

from app import create_app
from data_loader import iso_week_label, write_manifest
from models import Entry

UTC = timezone.utc


def make_entry(artist, song, ts):
    if isinstance(ts, datetime):
        ts = ts.isoformat()
    return Entry(artist=artist, song=song, ts=ts)


def write_jsonl(path, records):
    path.write_bytes(b"\n".join(orjson.dumps(r) for r in records) + b"\n")


@pytest.fixture
def sample_entries():
    return [
        make_entry("A", "X", "2024-01-01T10:00:00Z"),
        make_entry("A", "X", "2024-01-01T11:00:00Z"),
        make_entry("B", "Y", "2024-01-01T10:30:00Z"),
    ]


@pytest.fixture
def data_dir(tmp_path):
    now = datetime.now(UTC)
    recent = [
        {"artist": "Phoebe Bridgers", "song": "Motion Sickness",
         "ts": (now - timedelta(hours=3)).isoformat()},
        {"artist": "Phoebe Bridgers", "song": "Motion Sickness",
         "ts": (now - timedelta(hours=2)).isoformat()},
        {"artist": "boygenius", "song": "Not Strong Enough",
         "ts": (now - timedelta(hours=1)).isoformat()},
    ]
    old_ts = now - timedelta(days=60)
    old = [
        {"artist": "Bon Iver", "song": "Holocene", "ts": old_ts.isoformat()},
        {"artist": "Bon Iver", "song": "Holocene"},
    ]

    write_jsonl(tmp_path / f"{iso_week_label(old_ts)}.jsonl", old)
    write_jsonl(tmp_path / f"{iso_week_label(now)}.jsonl", recent)
    write_manifest(tmp_path)
    return tmp_path


@pytest.fixture
def app(data_dir):
    test_app = create_app(data_dir)
    test_app.config['TESTING'] = True
    yield test_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def new_york(monkeypatch):
    """Run with America/New_York as the host timezone."""
    if not hasattr(time, 'tzset'):
        pytest.skip("time.tzset is not available on this platform")

    monkeypatch.setenv('TZ', 'America/New_York')
    time.tzset()
    yield ZoneInfo('America/New_York')

    monkeypatch.undo()
    time.tzset()
