from dataclasses import dataclass
from typing import Optional

import structlog

from archive_reader.config import WaybackEndpoints
from archive_reader.services.exceptions import CaptureSubmissionRejected
from archive_reader.services.fetch import DeadlineFetcher
from archive_reader.utils.text_cleaner import strip_markup

logger = structlog.get_logger(__name__)

CATEGORY_UNKNOWN = "unknown"


@dataclass(frozen=True)
class Classification:
    category: str
    label: str


@dataclass(frozen=True)
class Submission:
    """An accepted capture request."""

    status_code: int
    archive_url: Optional[str]


def classify_save_failure(status: Optional[int], detail: str) -> Classification:
    lower = (detail or "").lower()
    status = status or 0
    if "robots.txt" in lower:
        return Classification("robots", "Blocked by robots.txt")
    if "access is forbidden" in lower or status == 403:
        return Classification("forbidden", "Access forbidden")
    if "unavailable for archiving" in lower or "cannot be archived" in lower:
        return Classification("blocked", "Unavailable for archiving")
    if "rate limit" in lower or status == 429:
        return Classification("rate_limited", "Wayback rate limit")
    if status == 401:
        return Classification("unauthorized", "Unauthorized")
    if status == 404:
        return Classification("not_found", "Not found")
    if status >= 500:
        return Classification("service_error", "Wayback service error")
    if "blocked" in lower:
        return Classification("blocked", "Unavailable for archiving")
    return Classification(CATEGORY_UNKNOWN, "Unavailable for archiving")


class CaptureSubmitter:
    """Asks the archive to capture a URL that has no snapshot yet."""

    def __init__(
        self, fetcher: DeadlineFetcher, endpoints: WaybackEndpoints, *, timeout: float
    ) -> None:
        self.fetcher = fetcher
        self.endpoints = endpoints
        self.timeout = timeout

    async def submit(self, url: str) -> Submission:
        """Request a capture; raises CaptureSubmissionRejected or UpstreamUnavailable."""
        response = await self.fetcher.get(
            f"{self.endpoints.save_url}/{url}",
            timeout=self.timeout,
            allow_redirects=False,
        )
        detail = strip_markup(response.text)
        classification = classify_save_failure(response.status_code, detail)

        archive_url = None
        content_location = response.header("content-location")
        if content_location:
            archive_url = (
                f"{self.endpoints.origin}{content_location}"
                if content_location.startswith("/")
                else content_location
            )

        accepted = response.status_code < 400
        mentions_failure = bool(detail) and (
            classification.category != CATEGORY_UNKNOWN or "archiving" in detail
        )
        if not accepted or mentions_failure:
            # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
            logger.info(
                event="submission_result",
                operation="submission.request",
                url=url,
                status="rejected",
                status_code=response.status_code,
                category=classification.category,
            )
            raise CaptureSubmissionRejected(
                f"{classification.label} ({response.status_code})",
                url=url,
                status_code=response.status_code,
                category=classification.category,
                label=classification.label,
                detail=detail,
                archive_url=archive_url,
            )

        logger.info(
            event="submission_result",
            operation="submission.request",
            url=url,
            status="submitted",
            status_code=response.status_code,
            archive_url=archive_url,
        )
        return Submission(status_code=response.status_code, archive_url=archive_url)
