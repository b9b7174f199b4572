import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
import structlog

from archive_reader.config import (
    DEFAULT_THRESHOLDS,
    ExtractionThresholds,
    RequestBudget,
    WaybackEndpoints,
)
from archive_reader.models.capture import (
    MODE_DIRECT,
    MODE_REPLAY,
    SOURCE_HISTORICAL_INDEX,
    Capture,
    ReplayVariant,
    ResolvedPage,
)
from archive_reader.services import quality
from archive_reader.services.archive_utils import (
    ARCHIVE_ORIGIN,
    MODIFIER_DIRECT,
    build_archive_url,
    generate_url_variants,
    validate_target_url,
)
from archive_reader.services.exceptions import (
    ArchiveReaderError,
    CaptureSubmissionRejected,
    ExtractionFailure,
    FetchCancelled,
    UpstreamUnavailable,
    ValidationError,
)
from archive_reader.services.fetch import ClockFn, Deadline, DeadlineFetcher, build_session
from archive_reader.services.locator import SnapshotLocator
from archive_reader.services.parser import ContentExtractor
from archive_reader.services.submission import CaptureSubmitter

logger = structlog.get_logger(__name__)

STATUS_ARCHIVED = "archived"
STATUS_LINK_ONLY = "archived_link_only"
STATUS_SUBMITTED = "submitted"
STATUS_BLOCKED = "blocked"

_STATUS_SCORES = {
    STATUS_ARCHIVED: 5,
    STATUS_LINK_ONLY: 4,
    STATUS_SUBMITTED: 3,
    STATUS_BLOCKED: 2,
}


@dataclass(frozen=True)
class ResolveResponse:
    status_code: int
    payload: dict[str, Any]

    @property
    def status(self) -> Optional[str]:
        return self.payload.get("status")


def score_response(response: ResolveResponse) -> int:
    """Rank outcomes: archived > link-only > submitted > blocked > upstream > client."""
    if response.status in _STATUS_SCORES:
        return _STATUS_SCORES[response.status]
    if response.status_code >= 502:
        return 1
    return 0


def replay_variants(
    capture: Capture, *, origin: str = ARCHIVE_ORIGIN
) -> list[ReplayVariant]:
    """Direct (stored bytes) first, then the service-rewritten replay page."""
    variants: list[ReplayVariant] = []
    if capture.timestamp:
        variants.append(
            ReplayVariant(
                capture_url=build_archive_url(
                    capture.original_url, capture.timestamp, MODIFIER_DIRECT, origin=origin
                ),
                mode=MODE_DIRECT,
                base_url=capture.original_url,
            )
        )
    if all(variant.capture_url != capture.url for variant in variants):
        variants.append(
            ReplayVariant(capture_url=capture.url, mode=MODE_REPLAY, base_url=capture.url)
        )
    return variants


@dataclass
class _RequestContext:
    target: str
    deadline: Deadline
    fetcher: DeadlineFetcher
    locator: SnapshotLocator
    submitter: CaptureSubmitter
    last_error: Optional[dict[str, Any]] = None
    attempts: list[dict[str, Any]] = field(default_factory=list)

    def record(self, exc: ArchiveReaderError, **extra: Any) -> None:
        self.last_error = exc.to_detail()
        self.attempts.append({**self.last_error, **extra})


class ArchiveResolver:
    """Resolves a target URL to the best archived clean view within one deadline."""

    def __init__(
        self,
        *,
        budget: Optional[RequestBudget] = None,
        endpoints: Optional[WaybackEndpoints] = None,
        thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
        session: Optional[requests.Session] = None,
        extractor: Optional[ContentExtractor] = None,
        clock: ClockFn = time.monotonic,
    ) -> None:
        self.budget = budget or RequestBudget.from_settings()
        self.endpoints = endpoints or WaybackEndpoints.from_settings()
        self.thresholds = thresholds
        self.session = session
        self.extractor = extractor or ContentExtractor(
            thresholds, origin=self.endpoints.origin
        )
        self.clock = clock

    def _context(self, target: str) -> _RequestContext:
        deadline = Deadline.after(self.budget.deadline_seconds, self.clock)
        fetcher = DeadlineFetcher(
            deadline,
            session=self.session or build_session(self.endpoints.user_agent),
            reserve=self.budget.reserve_seconds,
            min_timeout=self.budget.min_call_timeout,
        )
        return _RequestContext(
            target=target,
            deadline=deadline,
            fetcher=fetcher,
            locator=SnapshotLocator(
                fetcher,
                self.endpoints,
                api_timeout=self.budget.api_timeout,
                history_limit=self.budget.history_limit,
            ),
            submitter=CaptureSubmitter(
                fetcher, self.endpoints, timeout=self.budget.save_timeout
            ),
        )

    async def resolve_async(self, raw_url: Optional[str]) -> ResolveResponse:
        try:
            target = validate_target_url(raw_url)
        except ValidationError as exc:
            return ResolveResponse(400, {"error": str(exc)})

        ctx = self._context(target)
        try:
            return await self._resolve_target(ctx)
        finally:
            ctx.fetcher.close()

    async def _resolve_target(self, ctx: _RequestContext) -> ResolveResponse:
        target = ctx.target
        started = time.perf_counter()
        outcomes: list[ResolveResponse] = []
        for index, variant in enumerate(generate_url_variants(target)):
            if index > 0 and ctx.deadline.expired(self.budget.variant_min_seconds):
                # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
                logger.info(
                    event="resolver_variant_skipped",
                    operation="resolver.variant",
                    url=variant,
                    reason="deadline",
                )
                break
            outcome = await self._resolve_variant(ctx, variant, primary=index == 0)
            if outcome is None:
                continue
            outcomes.append(outcome)
            if outcome.status == STATUS_ARCHIVED:
                break

        best = outcomes[0]
        for outcome in outcomes[1:]:
            if score_response(outcome) > score_response(best):
                best = outcome
        logger.info(
            event="resolver_finish",
            operation="resolver.resolve",
            url=target,
            status=best.status or "error",
            status_code=best.status_code,
            variants_tried=len(outcomes),
            elapsed_ms=int((time.perf_counter() - started) * 1000),
            timeouts_used=[round(value, 3) for value in ctx.fetcher.timeouts_used],
        )
        return best

    def resolve(self, raw_url: Optional[str]) -> ResolveResponse:
        try:
            return asyncio.run(self.resolve_async(raw_url))
        except RuntimeError as exc:
            if "asyncio.run()" not in str(exc):
                raise
            loop = asyncio.new_event_loop()
            try:
                asyncio.set_event_loop(loop)
                return loop.run_until_complete(self.resolve_async(raw_url))
            finally:
                asyncio.set_event_loop(None)
                loop.close()

    async def _resolve_variant(
        self, ctx: _RequestContext, url: str, *, primary: bool
    ) -> Optional[ResolveResponse]:
        captures = await ctx.locator.locate(url)
        if not captures:
            if not primary:
                return None
            return await self._request_capture(ctx, url)

        best = await self._try_candidates(ctx, url, captures)
        if best is not None:
            payload = best.to_dict(ctx.target)
            if url != ctx.target:
                payload["resolvedUrl"] = url
            return ResolveResponse(200, payload)

        capture = captures[0]
        payload: dict[str, Any] = {
            "status": STATUS_LINK_ONLY,
            "originalUrl": ctx.target,
            "archiveUrl": capture.url,
            "archiveTimestamp": capture.timestamp,
            "archiveSource": capture.source,
            "message": "An archived copy exists, but a clean view could not be extracted.",
        }
        if ctx.last_error:
            payload["details"] = ctx.last_error
        if url != ctx.target:
            payload["resolvedUrl"] = url
        return ResolveResponse(200, payload)

    async def _try_candidates(
        self, ctx: _RequestContext, url: str, captures: list[Capture]
    ) -> Optional[ResolvedPage]:
        budget = self.budget
        candidates = list(captures[: budget.max_captures])
        history_checked = candidates[0].source == SOURCE_HISTORICAL_INDEX
        best: Optional[ResolvedPage] = None
        index = 0

        while index < min(len(candidates), budget.max_captures):
            capture = candidates[index]
            stop = False
            variants = replay_variants(capture, origin=self.endpoints.origin)
            for variant in variants[: budget.max_replay_modes]:
                if ctx.deadline.expired(ctx.fetcher.reserve + budget.min_attempt_seconds):
                    # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
                    logger.info(
                        event="resolver_attempt",
                        operation="resolver.attempt",
                        url=variant.capture_url,
                        status="skipped",
                        reason="deadline",
                    )
                    stop = True
                    break
                try:
                    page = await self._attempt(ctx, capture, variant)
                except FetchCancelled as exc:
                    ctx.record(exc, mode=variant.mode)
                    if best is not None:
                        stop = True
                        break
                    continue
                except UpstreamUnavailable as exc:
                    ctx.record(exc, mode=variant.mode)
                    continue
                if page is None:
                    continue
                best = quality.pick_better(best, page, self.thresholds)
                if not quality.should_try_alternate_replay_mode(
                    best.extraction.quality, self.thresholds
                ):
                    break
            if stop:
                break
            if best is not None and not quality.should_try_additional_captures(
                best.extraction.quality, self.thresholds
            ):
                break

            index += 1
            if index >= len(candidates) and index < budget.max_captures and not history_checked:
                history_checked = True
                seen = {candidate.timestamp for candidate in candidates}
                for extra in await ctx.locator.lookup_history(url, budget.history_limit):
                    if extra.timestamp not in seen:
                        candidates.append(extra)
                        break
        return best

    async def _attempt(
        self, ctx: _RequestContext, capture: Capture, variant: ReplayVariant
    ) -> Optional[ResolvedPage]:
        response = await ctx.fetcher.get(
            variant.capture_url, timeout=self.budget.snapshot_timeout
        )
        if not response.ok:
            raise UpstreamUnavailable(
                f"Archive returned HTTP {response.status_code}",
                url=variant.capture_url,
                status_code=response.status_code,
            )
        extraction = self.extractor.extract(
            response.text, variant.base_url, capture.timestamp
        )
        if extraction is None:
            ctx.record(
                ExtractionFailure(
                    "Could not extract readable content from the archive.",
                    url=variant.capture_url,
                ),
                mode=variant.mode,
            )
            return None
        # structlog treats the first positional argument as the ``event`` field; keep it keyword-only.
        logger.info(
            event="resolver_attempt",
            operation="resolver.attempt",
            url=variant.capture_url,
            status="success",
            mode=variant.mode,
            chars=extraction.quality.extracted_text_length,
            coverage=round(extraction.quality.coverage, 3),
        )
        return ResolvedPage(
            capture_url=capture.url,
            capture_timestamp=capture.timestamp,
            capture_source=capture.source,
            replay_mode=variant.mode,
            extraction=extraction,
        )

    async def _request_capture(self, ctx: _RequestContext, url: str) -> ResolveResponse:
        try:
            submission = await ctx.submitter.submit(url)
        except CaptureSubmissionRejected as exc:
            return ResolveResponse(
                200,
                {
                    "status": STATUS_BLOCKED,
                    "originalUrl": ctx.target,
                    "archiveUrl": exc.archive_url,
                    "submission": {
                        "ok": False,
                        "statusCode": exc.status_code,
                        "category": exc.category,
                        "label": exc.label,
                        "detail": exc.detail,
                        "message": str(exc),
                    },
                    "message": "Wayback could not archive this URL.",
                },
            )
        except UpstreamUnavailable as exc:
            ctx.record(exc)
            return ResolveResponse(
                502,
                {"error": "Wayback save request failed.", "details": exc.to_detail()},
            )
        return ResolveResponse(
            200,
            {
                "status": STATUS_SUBMITTED,
                "originalUrl": ctx.target,
                "archiveUrl": submission.archive_url,
                "message": "This URL was not archived yet. A request to archive it has been submitted.",
            },
        )


def resolve(raw_url: Optional[str], **kwargs: Any) -> ResolveResponse:
    return ArchiveResolver(**kwargs).resolve(raw_url)
