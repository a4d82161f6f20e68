"""Result grouper: partition Results from many artifacts by target.

Every Result carrying findings is appended to the bucket named by its target
property (or the default target for artifacts written before multi-target
support). A Result marked threshold=true competes with the bucket's current
threshold by start time; the later one is kept and the displaced one gets a
pending threshold=false update, so stale baselines never survive a run.

Nothing is mutated here. Displacements are returned as PropertyUpdates on
the EvalResult and applied by the engine after every decision is made.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from aumos_evidence_evaluator.artifacts.codec import Artifact
from aumos_evidence_evaluator.core.models import Result
from aumos_evidence_evaluator.core.properties import (
    PropertyUpdate,
    is_threshold,
    target_of,
    threshold_update,
)
from aumos_evidence_evaluator.observability import get_logger

logger = get_logger(__name__)


@dataclass
class EvalResult:
    """Working set for one target, rebuilt on every evaluation run.

    Attributes:
        target: The target name shared by every Result in the set.
        threshold: The most recent Result marked threshold=true, if any.
        results: All Results for the target in encounter order.
        pending_updates: Property writes decided while grouping.
    """

    target: str
    threshold: Result | None = None
    results: list[Result] = field(default_factory=list)
    pending_updates: list[PropertyUpdate] = field(default_factory=list)

    def add(self, result: Result) -> None:
        """Append a Result, applying the threshold displacement rule.

        A Result whose UUID is already in the set is skipped.

        Args:
            result: A Result belonging to this target.
        """
        if any(existing.uuid == result.uuid for existing in self.results):
            logger.warning("Duplicate result skipped", target=self.target, result_uuid=result.uuid)
            return
        self.results.append(result)
        if not is_threshold(result):
            return

        if self.threshold is None:
            self.threshold = result
        elif result.started_at > self.threshold.started_at:
            self.pending_updates.append(threshold_update(self.threshold, marked=False))
            self.threshold = result
        elif result.uuid != self.threshold.uuid:
            self.pending_updates.append(threshold_update(result, marked=False))


def group_results(
    artifacts: dict[str, Artifact],
    default_target: str = "default",
) -> dict[str, EvalResult]:
    """Build per-target working sets from every artifact.

    Args:
        artifacts: Mapping of location -> Artifact, typically every file
            passed to one evaluation.
        default_target: Target name for Results without a target property.

    Returns:
        Mapping of target name -> EvalResult. Targets appear in first-seen
        order. Results without findings are skipped.
    """
    buckets: dict[str, EvalResult] = {}

    for location, artifact in artifacts.items():
        for result in artifact.results:
            if not result.findings:
                logger.debug(
                    "Skipping result without findings",
                    location=location,
                    result_uuid=result.uuid,
                )
                continue
            target = target_of(result, default_target)
            if target not in buckets:
                buckets[target] = EvalResult(target=target)
            buckets[target].add(result)

    for bucket in buckets.values():
        logger.debug(
            "Grouped results for target",
            target=bucket.target,
            result_count=len(bucket.results),
            threshold_uuid=bucket.threshold.uuid if bucket.threshold else None,
            displaced=len(bucket.pending_updates),
        )
    return buckets
