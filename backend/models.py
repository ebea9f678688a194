from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union


class InvalidTimestamp(ValueError):
    """Raised when a play timestamp cannot be parsed."""
    pass


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Convert an ISO 8601 string (or datetime) to a timezone-aware datetime.

    Naive values are taken to be in the host's local timezone.

    Raises:
        InvalidTimestamp: If the value is not a valid ISO 8601 timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except (ValueError, AttributeError, TypeError) as e:
            raise InvalidTimestamp(f"Invalid timestamp {value!r}: {e}") from e

    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


@dataclass(frozen=True)
class Entry:
    artist: str
    song: str
    ts: str  # ISO 8601, as received

    @property
    def timestamp(self) -> datetime:
        """Parsed ts, computed on first access and kept on the instance."""
        parsed = self.__dict__.get('_timestamp')
        if parsed is None:
            parsed = parse_timestamp(self.ts)
            # Not a dataclass field: stays out of eq/hash/repr and serialization
            object.__setattr__(self, '_timestamp', parsed)
        return parsed


@dataclass
class SongCount:
    artist: str
    song: str
    count: int


@dataclass
class ArtistCount:
    artist: str
    count: int


@dataclass
class HourlyBucket:
    hour: str  # YYYY-MM-DDTHH (UTC)
    count: int


@dataclass
class Stats:
    total_songs: int
    unique_songs: int
    unique_artists: int
    this_week: int
    top_songs: List[SongCount]
    top_artists: List[ArtistCount]
    top_week_songs: List[SongCount]
    latest_entry: Optional[Entry] = None


@dataclass
class Manifest:
    generated: str
    files: List[str] = field(default_factory=list)
