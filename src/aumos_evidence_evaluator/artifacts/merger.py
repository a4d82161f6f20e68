"""Artifact merger: combine two assessment-results bodies.

Identity decides the merge:
- Same UUID: the same logical document. The incoming body wins unchanged;
  this is the path taken when an evaluation only rewrote threshold props.
- Different UUIDs: a union of both Result lists ordered by start time,
  newest first, under a freshly generated UUID and last-modified stamp.

Neither input is mutated.
"""

import uuid
from datetime import UTC, datetime

from aumos_evidence_evaluator.core.models import (
    AssessmentResults,
    Metadata,
    Result,
    format_timestamp,
)
from aumos_evidence_evaluator.observability import get_logger

logger = get_logger(__name__)

OSCAL_VERSION = "1.1.2"

_GENERATED_REMARKS = "Assessment Results generated from aumos-evidence-evaluator"


def merge_assessment_results(
    original: AssessmentResults,
    incoming: AssessmentResults,
    now: datetime | None = None,
) -> AssessmentResults:
    """Merge two artifact bodies.

    Args:
        original: The body currently stored at the location.
        incoming: The body being written.
        now: Timestamp to stamp on a union merge. Defaults to the current time.

    Returns:
        incoming itself when the UUIDs match, otherwise a new body holding
        every Result from both sides sorted by start descending.
    """
    if original.uuid == incoming.uuid:
        return incoming

    stamp = format_timestamp(now or datetime.now(UTC))

    merged = original.model_copy()
    merged.results = sort_results_newest_first([*original.results, *incoming.results])
    merged.uuid = str(uuid.uuid4())
    metadata = original.metadata.model_copy() if original.metadata is not None else Metadata()
    metadata.last_modified = stamp
    merged.metadata = metadata

    logger.debug(
        "Merged assessment results",
        original_uuid=original.uuid,
        incoming_uuid=incoming.uuid,
        merged_uuid=merged.uuid,
        result_count=len(merged.results),
    )
    return merged


def sort_results_newest_first(results: list[Result]) -> list[Result]:
    """Return results ordered by start time, most recent first.

    Equal start times are ordered by UUID, descending, matching the
    resolver's choice of latest result.
    """
    return sorted(results, key=lambda result: (result.started_at, result.uuid), reverse=True)


def generate_assessment_results(
    results: list[Result],
    title: str,
    version: str,
    now: datetime | None = None,
) -> AssessmentResults:
    """Wrap Results in a brand-new artifact body.

    Args:
        results: Results to include, in the given order.
        title: Metadata title.
        version: Metadata document version.
        now: Timestamp used for published and last-modified.

    Returns:
        A body with a fresh UUID and fully populated metadata.
    """
    stamp = format_timestamp(now or datetime.now(UTC))
    return AssessmentResults(
        uuid=str(uuid.uuid4()),
        metadata=Metadata(
            title=title,
            version=version,
            oscal_version=OSCAL_VERSION,
            remarks=_GENERATED_REMARKS,
            published=stamp,
            last_modified=stamp,
        ),
        results=list(results),
    )
