import logging
from typing import List, Union

import orjson

from models import Entry, InvalidTimestamp, Manifest, parse_timestamp

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('artist', 'song', 'ts')


class ParseError(Exception):
    """Raised when parsing fails."""
    pass


def parse_jsonl(content: Union[bytes, str]) -> List[Entry]:
    """
    Parse a JSON Lines play log.

    Args:
        content: Raw JSONL text, one play record per line

    Returns:
        List of Entry objects in file order. Lines that are not JSON
        objects, records missing artist/song/ts and records with an
        unparseable timestamp are skipped.
    """
    if isinstance(content, bytes):
        content = content.decode('utf-8')

    entries = []

    for line_number, line in enumerate(content.splitlines(), 1):
        line = line.strip()
        if not line:
            continue

        try:
            record = orjson.loads(line)
        except orjson.JSONDecodeError:
            logger.warning("Invalid JSON on line %d: %s", line_number, line)
            continue

        if not isinstance(record, dict):
            logger.warning("Expected JSON object on line %d", line_number)
            continue

        # Skip records with missing or empty required fields
        values = [record.get(name) for name in REQUIRED_FIELDS]
        if not all(isinstance(value, str) and value for value in values):
            continue

        artist, song, ts = values
        try:
            parse_timestamp(ts)
        except InvalidTimestamp:
            logger.warning("Invalid timestamp on line %d: %s", line_number, ts)
            continue

        entries.append(Entry(artist=artist, song=song, ts=ts))

    return entries


def parse_manifest(content: bytes) -> Manifest:
    """
    Parse a manifest.json listing the available JSONL files.

    Raises:
        ParseError: If the JSON is malformed or has the wrong shape
    """
    try:
        data = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        raise ParseError("Expected JSON object for manifest")

    files = data.get('files', [])
    if not isinstance(files, list) or not all(isinstance(f, str) for f in files):
        raise ParseError("Manifest 'files' must be a list of filenames")

    return Manifest(generated=str(data.get('generated', '')), files=files)
