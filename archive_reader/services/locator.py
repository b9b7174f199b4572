import json
from typing import Any, Optional
from urllib.parse import urlencode

import structlog

from archive_reader.config import WaybackEndpoints
from archive_reader.models.capture import (
    SOURCE_AVAILABILITY,
    SOURCE_HISTORICAL_INDEX,
    Capture,
)
from archive_reader.services.archive_utils import build_archive_url, extract_timestamp
from archive_reader.services.exceptions import UpstreamUnavailable
from archive_reader.services.fetch import DeadlineFetcher

logger = structlog.get_logger(__name__)

EVENT_LOCATOR_LOOKUP = "locator_lookup"


class SnapshotLocator:
    """Finds archived captures of a URL through the availability and CDX indexes.

    Failures never propagate: an unreachable or malformed index answer is
    reported as "no capture".
    """

    def __init__(
        self,
        fetcher: DeadlineFetcher,
        endpoints: WaybackEndpoints,
        *,
        api_timeout: float,
        history_limit: int = 6,
    ) -> None:
        self.fetcher = fetcher
        self.endpoints = endpoints
        self.api_timeout = api_timeout
        self.history_limit = history_limit

    async def locate(self, url: str) -> list[Capture]:
        closest = await self.lookup_availability(url)
        if closest is not None:
            return [closest]
        return await self.lookup_history(url, self.history_limit)

    async def _get_json(self, api_url: str, url: str, operation: str) -> Optional[Any]:
        try:
            response = await self.fetcher.get(api_url, timeout=self.api_timeout)
        except UpstreamUnavailable as exc:
            # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
            logger.info(
                event=EVENT_LOCATOR_LOOKUP,
                operation=operation,
                url=url,
                status="error",
                error_type=exc.__class__.__name__,
            )
            return None
        if not response.ok:
            logger.info(
                event=EVENT_LOCATOR_LOOKUP,
                operation=operation,
                url=url,
                status="http_error",
                status_code=response.status_code,
            )
            return None
        try:
            return json.loads(response.text or "null")
        except json.JSONDecodeError:
            logger.info(
                event=EVENT_LOCATOR_LOOKUP,
                operation=operation,
                url=url,
                status="parse_error",
            )
            return None

    async def lookup_availability(self, url: str) -> Optional[Capture]:
        api_url = f"{self.endpoints.availability_url}?{urlencode({'url': url})}"
        payload = await self._get_json(api_url, url, "locator.availability")
        if not isinstance(payload, dict):
            return None
        snapshots = payload.get("archived_snapshots")
        closest = snapshots.get("closest") if isinstance(snapshots, dict) else None
        if not isinstance(closest, dict) or not closest.get("url"):
            logger.info(
                event=EVENT_LOCATOR_LOOKUP,
                operation="locator.availability",
                url=url,
                status="miss",
            )
            return None

        capture_url = str(closest["url"])
        # The availability API sometimes reports plain http capture links.
        insecure_origin = "http://" + self.endpoints.origin.split("://", 1)[-1]
        if capture_url.startswith(f"{insecure_origin}/"):
            capture_url = self.endpoints.origin + capture_url[len(insecure_origin) :]
        capture = Capture(
            url=capture_url,
            timestamp=extract_timestamp(capture_url, closest.get("timestamp")),
            original_url=str(closest.get("original") or url),
            source=SOURCE_AVAILABILITY,
        )
        logger.info(
            event=EVENT_LOCATOR_LOOKUP,
            operation="locator.availability",
            url=url,
            status="hit",
            timestamp=capture.timestamp,
        )
        return capture

    async def lookup_history(self, url: str, limit: int) -> list[Capture]:
        params = {
            "url": url,
            "output": "json",
            "fl": "timestamp,original,statuscode",
            "filter": "statuscode:200",
            "limit": str(limit),
            "sort": "descending",
        }
        api_url = f"{self.endpoints.cdx_url}?{urlencode(params)}"
        rows = await self._get_json(api_url, url, "locator.history")
        captures = parse_cdx_rows(rows, url, origin=self.endpoints.origin)[:limit]
        logger.info(
            event=EVENT_LOCATOR_LOOKUP,
            operation="locator.history",
            url=url,
            status="hit" if captures else "miss",
            count=len(captures),
        )
        return captures


def parse_cdx_rows(rows: Any, url: str, *, origin: str) -> list[Capture]:
    """Turn a row-oriented CDX answer (header row first) into captures."""
    if not isinstance(rows, list) or len(rows) < 2:
        return []
    captures: list[Capture] = []
    seen: set[str] = set()
    for row in rows[1:]:
        if not isinstance(row, list) or not row:
            continue
        timestamp = extract_timestamp(None, str(row[0]))
        if not timestamp or timestamp in seen:
            continue
        original = str(row[1]) if len(row) > 1 and row[1] else url
        seen.add(timestamp)
        captures.append(
            Capture(
                url=build_archive_url(original, timestamp, None, origin=origin),
                timestamp=timestamp,
                original_url=original,
                source=SOURCE_HISTORICAL_INDEX,
            )
        )
    return captures
