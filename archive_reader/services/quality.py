"""Completeness scoring and candidate selection.

``compare_*`` functions follow the ``cmp`` convention: a positive result means
the first argument wins, negative means the second wins, zero is a tie.
"""

from typing import Optional

from archive_reader.config import DEFAULT_THRESHOLDS, ExtractionThresholds
from archive_reader.models.capture import ResolvedPage
from archive_reader.models.extraction import ExtractionQuality, ExtractionResult


def resolve_source_length(
    article_length: int,
    body_length: int,
    thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
) -> int:
    """Best estimate of the original article length.

    Pages whose marked-up article region is truncated keep the real text in
    the surrounding markup; the body length wins when it is substantial and
    close to double the article length.
    """
    if (
        body_length >= thresholds.body_override_floor
        and body_length >= article_length * thresholds.body_override_ratio
    ):
        return body_length
    return article_length


def coverage_ratio(extracted: int, source: int) -> float:
    return extracted / source if source > 0 else 0.0


def needs_warning(
    extracted: int, source: int, thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS
) -> bool:
    if source <= 0:
        return False
    return (
        source >= thresholds.warning_min_source
        and extracted >= thresholds.warning_min_extracted
        and coverage_ratio(extracted, source) < thresholds.warning_coverage_cutoff
        and source - extracted > thresholds.warning_min_gap
    )


def assess(
    extracted: int, source: int, thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS
) -> ExtractionQuality:
    coverage = coverage_ratio(extracted, source)
    warning = None
    if needs_warning(extracted, source, thresholds):
        warning = (
            "This archived copy may be incomplete: about "
            f"{extracted:,} of {source:,} characters ({coverage:.0%}) were extracted."
        )
    return ExtractionQuality(
        extracted_text_length=extracted,
        source_text_length=source,
        coverage=coverage,
        has_warning=warning is not None,
        warning=warning,
    )


def _length_override(
    longer: int, shorter: int, thresholds: ExtractionThresholds
) -> bool:
    return (
        longer >= shorter * thresholds.override_min_ratio
        and longer - shorter >= thresholds.override_min_delta
    )


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def compare_extractions(
    a: Optional[ExtractionResult],
    b: Optional[ExtractionResult],
    thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
) -> int:
    if a is None and b is None:
        return 0
    if b is None:
        return 1
    if a is None:
        return -1

    qa, qb = a.quality, b.quality
    la, lb = qa.extracted_text_length, qb.extracted_text_length
    # Raw completeness trumps heuristic warnings once the gap is large.
    if _length_override(la, lb, thresholds):
        return 1
    if _length_override(lb, la, thresholds):
        return -1

    warnings = _sign(int(qb.has_warning) - int(qa.has_warning))
    if warnings:
        return warnings
    if la != lb:
        return _sign(la - lb)
    return _sign(qa.coverage - qb.coverage)


def compare_resolved_pages(
    a: Optional[ResolvedPage],
    b: Optional[ResolvedPage],
    thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
) -> int:
    if a is None or b is None:
        return compare_extractions(
            a.extraction if a else None, b.extraction if b else None, thresholds
        )
    result = compare_extractions(a.extraction, b.extraction, thresholds)
    if result:
        return result
    ts_a, ts_b = a.capture_timestamp or "", b.capture_timestamp or ""
    return (ts_a > ts_b) - (ts_a < ts_b)


def pick_better(
    current: Optional[ResolvedPage],
    candidate: Optional[ResolvedPage],
    thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
) -> Optional[ResolvedPage]:
    """The candidate replaces the current page only when it strictly wins."""
    if compare_resolved_pages(candidate, current, thresholds) > 0:
        return candidate
    return current


def should_try_alternate_replay_mode(
    extraction_quality: ExtractionQuality,
    thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
) -> bool:
    return _keep_searching(
        extraction_quality,
        coverage_cutoff=thresholds.alternate_mode_coverage,
        gap_floor=thresholds.alternate_mode_gap,
        unscored_min=thresholds.alternate_mode_min_unscored,
    )


def should_try_additional_captures(
    extraction_quality: ExtractionQuality,
    thresholds: ExtractionThresholds = DEFAULT_THRESHOLDS,
) -> bool:
    return _keep_searching(
        extraction_quality,
        coverage_cutoff=thresholds.additional_capture_coverage,
        gap_floor=thresholds.additional_capture_gap,
        unscored_min=thresholds.additional_capture_min_unscored,
    )


def _keep_searching(
    extraction_quality: ExtractionQuality,
    *,
    coverage_cutoff: float,
    gap_floor: int,
    unscored_min: int,
) -> bool:
    source = extraction_quality.source_text_length
    extracted = extraction_quality.extracted_text_length
    if source <= 0:
        return extracted < unscored_min
    if extraction_quality.has_warning:
        return True
    if min(extraction_quality.coverage, 1.0) < coverage_cutoff:
        return True
    return source - extracted > gap_floor
