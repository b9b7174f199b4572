from __future__ import annotations


class ArchiveReaderError(Exception):
    """Base class for archive resolution pipeline errors."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url

    def to_detail(self) -> dict[str, str | None]:
        return {"type": self.__class__.__name__, "message": str(self), "url": self.url}


class ValidationError(ArchiveReaderError):
    """The caller supplied a missing or malformed target URL."""


class UpstreamUnavailable(ArchiveReaderError):
    """An archive service answered with a failure or could not be reached."""

    def __init__(
        self, message: str, *, url: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code


class NetworkError(UpstreamUnavailable):
    """Network instability while talking to an archive service."""


class FetchCancelled(UpstreamUnavailable):
    """A fetch was cancelled because its time budget ran out."""


class DeadlineExceeded(FetchCancelled):
    """The shared request deadline left no room to issue another call."""


class FetchTimeout(FetchCancelled):
    """A single call exceeded the timeout derived from the deadline."""


class ExtractionFailure(ArchiveReaderError):
    """HTML parsed but no extractor produced readable content."""


class CaptureSubmissionRejected(ArchiveReaderError):
    """The archive refused to capture the target URL."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        category: str = "unknown",
        label: str = "Unavailable for archiving",
        detail: str = "",
        archive_url: str | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.category = category
        self.label = label
        self.detail = detail
        self.archive_url = archive_url


__all__ = [
    "ArchiveReaderError",
    "ValidationError",
    "UpstreamUnavailable",
    "NetworkError",
    "FetchCancelled",
    "DeadlineExceeded",
    "FetchTimeout",
    "ExtractionFailure",
    "CaptureSubmissionRejected",
]
