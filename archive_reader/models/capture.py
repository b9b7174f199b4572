from dataclasses import dataclass
from typing import Optional

from archive_reader.models.extraction import ExtractionResult

SOURCE_AVAILABILITY = "availability"
SOURCE_HISTORICAL_INDEX = "historical_index"

MODE_DIRECT = "direct"
MODE_REPLAY = "replay"


@dataclass(frozen=True)
class Capture:
    """One archived copy of a page, as reported by an index service."""

    url: str
    timestamp: Optional[str]
    original_url: str
    source: str = SOURCE_AVAILABILITY


@dataclass(frozen=True)
class ReplayVariant:
    """A concrete URL to fetch for a capture in a given replay mode."""

    capture_url: str
    mode: str
    base_url: str


@dataclass(frozen=True)
class ResolvedPage:
    """The best candidate found so far; replaced wholesale, never mutated."""

    capture_url: str
    capture_timestamp: Optional[str]
    capture_source: str
    replay_mode: str
    extraction: ExtractionResult

    def to_dict(self, original_url: str) -> dict:
        payload = {
            "status": "archived",
            "originalUrl": original_url,
            "archiveUrl": self.capture_url,
            "archiveTimestamp": self.capture_timestamp,
            "archiveSource": self.capture_source,
            "replayMode": self.replay_mode,
        }
        payload.update(self.extraction.to_dict())
        return payload
