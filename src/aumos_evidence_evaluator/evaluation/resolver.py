"""Threshold resolver: pick the baseline and the latest Result per target.

Decision table, Results ordered by start time (ties broken by UUID):

| marked threshold=true | results | outcome                                       |
|-----------------------|---------|-----------------------------------------------|
| 0                     | 0       | NO_DATA                                       |
| any                   | 1       | INSUFFICIENT_DATA, the Result is the          |
|                       |         | provisional baseline                          |
| 0                     | >= 2    | threshold = second to last, latest = last     |
| 1                     | >= 2    | threshold = the marked one, latest = last;    |
|                       |         | LATEST_IS_THRESHOLD if they are the same      |
| >= 2                  | >= 2    | threshold = newest marked, or the next newest |
|                       |         | if the newest is the latest; every other      |
|                       |         | marked Result gets threshold=false            |

A Result is never compared against itself. More than two marked Results
for a target is tolerated but logged as a data-integrity warning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from aumos_evidence_evaluator.core.models import Result
from aumos_evidence_evaluator.core.properties import (
    PropertyUpdate,
    is_threshold,
    threshold_update,
)
from aumos_evidence_evaluator.evaluation.grouper import EvalResult
from aumos_evidence_evaluator.observability import get_logger

logger = get_logger(__name__)


class ResolutionStatus(StrEnum):
    """Whether a target's Results can be compared."""

    READY = "ready"
    INSUFFICIENT_DATA = "insufficient-data"
    NO_DATA = "no-data"
    LATEST_IS_THRESHOLD = "latest-is-threshold"


MSG_NO_DATA = "no results found - no comparison possible"
MSG_INSUFFICIENT = "less than 2 results found - no comparison possible"
MSG_LATEST_IS_THRESHOLD = "latest result is already the threshold - no comparison possible"


@dataclass
class Resolution:
    """The threshold / latest pair chosen for one target.

    Attributes:
        target: The target name.
        status: Whether a comparison can proceed.
        threshold: The baseline Result. None unless status is READY or
            LATEST_IS_THRESHOLD.
        latest: The most recent Result, when any exists.
        pending_updates: Grouping updates followed by resolver updates.
        message: Human-readable explanation for non-READY statuses.
    """

    target: str
    status: ResolutionStatus
    threshold: Result | None = None
    latest: Result | None = None
    pending_updates: list[PropertyUpdate] = field(default_factory=list)
    message: str = ""

    @property
    def provisional_threshold(self) -> Result | None:
        """Return the Result to record as a new baseline when data is insufficient."""
        if self.status is ResolutionStatus.INSUFFICIENT_DATA:
            return self.latest
        return None


def _by_time(results: list[Result]) -> list[Result]:
    return sorted(results, key=lambda result: (result.started_at, result.uuid))


def resolve_target(eval_result: EvalResult) -> Resolution:
    """Apply the decision table to one target's working set.

    Args:
        eval_result: The grouped Results for a target.

    Returns:
        The Resolution, carrying the grouping updates plus any displacement
        updates decided here.
    """
    target = eval_result.target
    updates = list(eval_result.pending_updates)
    ordered = _by_time(eval_result.results)

    if not ordered:
        return Resolution(target=target, status=ResolutionStatus.NO_DATA, message=MSG_NO_DATA)

    latest = ordered[-1]
    if len(ordered) == 1:
        logger.debug("Single result for target", target=target, result_uuid=latest.uuid)
        return Resolution(
            target=target,
            status=ResolutionStatus.INSUFFICIENT_DATA,
            latest=latest,
            pending_updates=updates,
            message=MSG_INSUFFICIENT,
        )

    marked = [result for result in ordered if is_threshold(result)]

    if not marked:
        return Resolution(
            target=target,
            status=ResolutionStatus.READY,
            threshold=ordered[-2],
            latest=latest,
            pending_updates=updates,
        )

    if len(marked) == 1:
        threshold = marked[0]
        if threshold.uuid == latest.uuid:
            return Resolution(
                target=target,
                status=ResolutionStatus.LATEST_IS_THRESHOLD,
                threshold=threshold,
                latest=latest,
                pending_updates=updates,
                message=MSG_LATEST_IS_THRESHOLD,
            )
        return Resolution(
            target=target,
            status=ResolutionStatus.READY,
            threshold=threshold,
            latest=latest,
            pending_updates=updates,
        )

    if len(marked) > 2:
        logger.warning(
            "More than two results marked as threshold",
            target=target,
            marked_uuids=[result.uuid for result in marked],
        )

    # Newest marked wins unless it is the latest result itself.
    candidates = [result for result in reversed(marked) if result.uuid != latest.uuid]
    if not candidates:
        return Resolution(
            target=target,
            status=ResolutionStatus.LATEST_IS_THRESHOLD,
            threshold=latest,
            latest=latest,
            pending_updates=updates,
            message=MSG_LATEST_IS_THRESHOLD,
        )
    threshold = candidates[0]
    for result in marked:
        if result.uuid != threshold.uuid:
            updates.append(threshold_update(result, marked=False))

    logger.debug(
        "Resolved threshold among multiple markers",
        target=target,
        threshold_uuid=threshold.uuid,
        latest_uuid=latest.uuid,
        marked=len(marked),
    )
    return Resolution(
        target=target,
        status=ResolutionStatus.READY,
        threshold=threshold,
        latest=latest,
        pending_updates=updates,
    )


def resolve_results(eval_results: dict[str, EvalResult]) -> dict[str, Resolution]:
    """Resolve every target.

    Args:
        eval_results: Mapping of target -> EvalResult from the grouper.

    Returns:
        Mapping of target -> Resolution, in the same order.
    """
    return {target: resolve_target(eval_result) for target, eval_result in eval_results.items()}
