"""
Data Loader

Reads weekly JSONL play logs from a data directory, guided by manifest.json.
"""

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import orjson

from models import Entry, Manifest
from parser import ParseError, parse_jsonl, parse_manifest

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = 'manifest.json'
DEFAULT_WEEKS_BACK = 4


def iso_week_label(d: Union[date, datetime]) -> str:
    """ISO week label like '2025-W50'."""
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def current_week_filename(now: Optional[datetime] = None) -> str:
    if now is None:
        now = datetime.now().astimezone()
    return f"{iso_week_label(now)}.jsonl"


def fallback_manifest(now: Optional[datetime] = None) -> Manifest:
    """Manifest listing only the current week's file."""
    if now is None:
        now = datetime.now().astimezone()
    return Manifest(
        generated=now.astimezone(timezone.utc).isoformat(),
        files=[current_week_filename(now)]
    )


def write_manifest(data_dir: Union[str, Path], now: Optional[datetime] = None) -> Manifest:
    """
    Regenerate manifest.json from the JSONL files present in data_dir.

    Args:
        data_dir: Directory holding the weekly JSONL files
        now: Generation time (defaults to the current time)

    Returns:
        The Manifest that was written
    """
    data_dir = Path(data_dir)
    if now is None:
        now = datetime.now(timezone.utc)

    files = sorted(p.name for p in data_dir.glob('*.jsonl') if p.is_file())
    manifest = Manifest(
        generated=now.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
        files=files
    )

    (data_dir / MANIFEST_FILENAME).write_bytes(
        orjson.dumps(manifest, option=orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE)
    )
    logger.info("Wrote manifest with %d files to %s", len(files), data_dir)
    return manifest


class DataCache:
    """Parsed entries per data file, owned by a DataLoader."""

    def __init__(self):
        self._files: Dict[str, List[Entry]] = {}

    def __contains__(self, filename: str) -> bool:
        return filename in self._files

    def __len__(self) -> int:
        return len(self._files)

    def get(self, filename: str) -> Optional[List[Entry]]:
        return self._files.get(filename)

    def set(self, filename: str, entries: List[Entry]) -> None:
        self._files[filename] = entries

    def clear(self) -> None:
        self._files.clear()


class DataLoader:
    """Loads play entries from a directory of weekly JSONL files."""

    def __init__(self, data_dir: Union[str, Path], cache: Optional[DataCache] = None):
        self.data_dir = Path(data_dir)
        self.cache = cache if cache is not None else DataCache()

    def load_manifest(self, now: Optional[datetime] = None) -> Manifest:
        """
        Read manifest.json, falling back to a current-week manifest when it
        is missing or malformed.
        """
        path = self.data_dir / MANIFEST_FILENAME
        try:
            return parse_manifest(path.read_bytes())
        except FileNotFoundError:
            logger.warning("Manifest not found at %s, using fallback", path)
        except (OSError, ParseError) as e:
            logger.error("Failed to load manifest %s: %s", path, e)

        return fallback_manifest(now)

    def fetch_data_file(self, filename: str) -> List[Entry]:
        """
        Parsed entries of one data file, served from the cache when possible.

        Unreadable files, and names resolving outside data_dir, are logged
        and yield an empty list (not cached).
        """
        cached = self.cache.get(filename)
        if cached is not None:
            return cached

        path = self.data_dir / filename
        if not path.resolve().is_relative_to(self.data_dir.resolve()):
            logger.warning("Refusing to read %s outside %s", filename, self.data_dir)
            return []

        try:
            content = path.read_bytes()
            entries = parse_jsonl(content)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error fetching %s: %s", filename, e)
            return []

        self.cache.set(filename, entries)
        return entries

    def fetch_multiple_files(self, filenames: Iterable[str]) -> List[Entry]:
        """Combine entries from several files, ordered by timestamp."""
        entries = []
        for filename in filenames:
            entries.extend(self.fetch_data_file(filename))

        entries.sort(key=lambda e: e.timestamp)
        return entries

    def load_recent_data(self, weeks_back: int = DEFAULT_WEEKS_BACK) -> Tuple[Manifest, List[Entry]]:
        """
        Load the most recent weekly files.

        Args:
            weeks_back: Number of trailing manifest files to load

        Returns:
            Tuple of (manifest, entries)
        """
        manifest = self.load_manifest()
        if not manifest.files or weeks_back <= 0:
            return manifest, []

        return manifest, self.fetch_multiple_files(manifest.files[-weeks_back:])

    def load_all_data(self) -> Tuple[Manifest, List[Entry]]:
        manifest = self.load_manifest()
        if not manifest.files:
            return manifest, []

        return manifest, self.fetch_multiple_files(manifest.files)

    def load_current_week_data(self, now: Optional[datetime] = None) -> List[Entry]:
        return self.fetch_data_file(current_week_filename(now))

    def clear_cache(self) -> None:
        self.cache.clear()
