"""Evaluation engine: group, resolve, classify, update markers, persist.

One evaluation run walks every target through:

    COLLECTING -> RESOLVING -> {INSUFFICIENT_DATA | COMPARING}
               -> {PASSED | FAILED} -> PERSISTING -> DONE

Threshold marker policy per target:
- INSUFFICIENT_DATA: the single Result is recorded as the provisional
  baseline (threshold=true). A warning, not a failure.
- PASSED: the latest Result becomes the threshold and the old one is
  unmarked. With advance_on_improvement_only the threshold only moves when
  new passing findings exist, otherwise the old one is re-asserted.
- FAILED (regression): the old threshold is re-asserted, latest stays false.
- FAILED (latest already the threshold, unusable findings): no marker beyond
  grouping/resolution displacement changes.

All property writes are collected and applied once at the end of
evaluate(). Only artifacts whose props actually changed are written back,
each independently; a failed write is reported per location and never
blocks the others.
"""

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from aumos_evidence_evaluator.artifacts.codec import Artifact
from aumos_evidence_evaluator.core.interfaces import IArtifactStore
from aumos_evidence_evaluator.core.properties import (
    PropertyUpdate,
    apply_updates,
    threshold_update,
)
from aumos_evidence_evaluator.errors import EvaluationError, EvaluatorError, PersistenceError
from aumos_evidence_evaluator.evaluation.classifier import (
    NEW_PASSING_FINDINGS,
    ComparisonResult,
    evaluate_results,
)
from aumos_evidence_evaluator.evaluation.grouper import EvalResult, group_results
from aumos_evidence_evaluator.evaluation.resolver import (
    MSG_NO_DATA,
    ResolutionStatus,
    resolve_target,
)
from aumos_evidence_evaluator.observability import get_logger
from aumos_evidence_evaluator.settings import Settings, get_settings

logger = get_logger(__name__)


class EvaluationState(StrEnum):
    """States a target passes through during one evaluation run."""

    COLLECTING = "collecting"
    RESOLVING = "resolving"
    INSUFFICIENT_DATA = "insufficient-data"
    COMPARING = "comparing"
    PASSED = "passed"
    FAILED = "failed"
    PERSISTING = "persisting"
    DONE = "done"


_TERMINAL_STATES = (
    EvaluationState.INSUFFICIENT_DATA,
    EvaluationState.PASSED,
    EvaluationState.FAILED,
)


@dataclass
class TargetOutcome:
    """Evaluation outcome for one target.

    Attributes:
        target: The target name.
        states: Every state visited, in order.
        threshold_uuid: UUID of the Result used (or recorded) as threshold.
        latest_uuid: UUID of the latest Result.
        comparison: Bucket classification, when a comparison ran.
        threshold_advanced: True when the latest Result became the threshold.
        message: Explanation for warnings and failures.
    """

    target: str
    states: list[EvaluationState] = field(
        default_factory=lambda: [EvaluationState.COLLECTING, EvaluationState.RESOLVING]
    )
    threshold_uuid: str | None = None
    latest_uuid: str | None = None
    comparison: ComparisonResult | None = None
    threshold_advanced: bool = False
    message: str = ""

    @property
    def state(self) -> EvaluationState:
        """Return the terminal evaluation state (INSUFFICIENT_DATA, PASSED or FAILED)."""
        for state in reversed(self.states):
            if state in _TERMINAL_STATES:
                return state
        return self.states[-1]

    @property
    def passed(self) -> bool:
        """Return False only for a FAILED outcome."""
        return self.state is not EvaluationState.FAILED

    def transition(self, state: EvaluationState) -> None:
        """Record entry into a new state."""
        self.states.append(state)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready representation."""
        return {
            "target": self.target,
            "state": self.state.value,
            "passed": self.passed,
            "threshold": self.threshold_uuid,
            "latest": self.latest_uuid,
            "threshold_advanced": self.threshold_advanced,
            "message": self.message,
            "comparison": self.comparison.to_dict() if self.comparison else None,
        }


@dataclass
class PersistenceFailure:
    """A write-back that failed for one artifact location."""

    location: str
    reason: str


@dataclass
class EvaluationReport:
    """Outcome of one evaluation run across all targets.

    Attributes:
        outcomes: Mapping of target -> TargetOutcome, sorted by target.
        touched: Locations of artifacts whose props changed, in input order.
        written: Locations successfully written back.
        persistence_failures: One entry per location that could not be written.
        message: Run-level explanation (e.g. no results at all).
    """

    outcomes: dict[str, TargetOutcome] = field(default_factory=dict)
    touched: list[str] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    persistence_failures: list[PersistenceFailure] = field(default_factory=list)
    message: str = ""

    @property
    def passed(self) -> bool:
        """True when at least one target was evaluated and none failed."""
        return bool(self.outcomes) and all(outcome.passed for outcome in self.outcomes.values())

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready representation."""
        return {
            "passed": self.passed,
            "message": self.message,
            "targets": {target: outcome.to_dict() for target, outcome in self.outcomes.items()},
            "touched": list(self.touched),
            "written": list(self.written),
            "persistence_failures": [
                {"location": failure.location, "reason": failure.reason}
                for failure in self.persistence_failures
            ],
        }


class EvaluationEngine:
    """Evaluates compliance posture across one or more artifacts.

    Args:
        settings: Evaluator settings. Defaults to the process-wide instance.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize EvaluationEngine.

        Args:
            settings: Evaluator settings, or None for get_settings().
        """
        self._settings = settings or get_settings()

    def evaluate(self, artifacts: dict[str, Artifact]) -> EvaluationReport:
        """Evaluate every target found in the artifacts.

        Threshold props on the in-memory artifacts are updated before this
        returns. Nothing is written.

        Args:
            artifacts: Mapping of location -> Artifact.

        Returns:
            The EvaluationReport listing outcomes and touched locations.
        """
        owners: dict[int, str] = {}
        for location, artifact in artifacts.items():
            for result in artifact.results:
                owners[id(result)] = location

        eval_results = group_results(artifacts, self._settings.default_target)
        if not eval_results:
            logger.warning(MSG_NO_DATA, artifact_count=len(artifacts))
            return EvaluationReport(message=MSG_NO_DATA)

        report = EvaluationReport()
        updates: list[PropertyUpdate] = []
        for target in sorted(eval_results):
            outcome, target_updates = self._evaluate_target(eval_results[target])
            report.outcomes[target] = outcome
            updates.extend(target_updates)

        changed = apply_updates(updates)
        touched = {owners[id(result)] for result in changed if id(result) in owners}
        report.touched = [location for location in artifacts if location in touched]
        return report

    def _evaluate_target(self, eval_result: EvalResult) -> tuple[TargetOutcome, list[PropertyUpdate]]:
        """Resolve and classify one target.

        Args:
            eval_result: The grouped Results for the target.

        Returns:
            The outcome and the ordered property updates it requires.
        """
        target = eval_result.target
        outcome = TargetOutcome(target=target)
        resolution = resolve_target(eval_result)
        updates = list(resolution.pending_updates)
        threshold, latest = resolution.threshold, resolution.latest
        outcome.latest_uuid = latest.uuid if latest else None
        outcome.threshold_uuid = threshold.uuid if threshold else None

        if resolution.status is ResolutionStatus.INSUFFICIENT_DATA:
            baseline = resolution.provisional_threshold
            updates.append(threshold_update(baseline, marked=True))
            outcome.threshold_uuid = baseline.uuid
            outcome.threshold_advanced = True
            outcome.message = resolution.message
            outcome.transition(EvaluationState.INSUFFICIENT_DATA)
            logger.warning(resolution.message, target=target, result_uuid=baseline.uuid)
            return outcome, updates

        if resolution.status is not ResolutionStatus.READY:
            outcome.message = resolution.message
            outcome.transition(EvaluationState.FAILED)
            logger.error(resolution.message, target=target)
            return outcome, updates

        outcome.transition(EvaluationState.COMPARING)
        logger.debug(
            "Evaluating results",
            target=target,
            threshold_uuid=threshold.uuid,
            latest_uuid=latest.uuid,
        )
        try:
            comparison = evaluate_results(
                threshold, latest, split_removed=self._settings.split_removed_findings
            )
        except EvaluationError as exc:
            outcome.message = exc.message
            outcome.transition(EvaluationState.FAILED)
            logger.error("Evaluation could not compare results", target=target, error=exc.message)
            return outcome, updates

        outcome.comparison = comparison

        if not comparison.passed:
            updates.append(threshold_update(threshold, marked=True))
            updates.append(threshold_update(latest, marked=False))
            outcome.message = "failed to meet established threshold"
            outcome.transition(EvaluationState.FAILED)
            logger.error(
                "Evaluation failed against threshold",
                target=target,
                threshold_uuid=threshold.uuid,
                latest_uuid=latest.uuid,
            )
            return outcome, updates

        improved = bool(comparison.buckets[NEW_PASSING_FINDINGS])
        if self._settings.advance_on_improvement_only and not improved:
            updates.append(threshold_update(threshold, marked=True))
            outcome.message = "threshold retained"
        else:
            updates.append(threshold_update(latest, marked=True))
            updates.append(threshold_update(threshold, marked=False))
            outcome.threshold_uuid = latest.uuid
            outcome.threshold_advanced = True
            outcome.message = f"threshold advanced to result {latest.uuid}"
            logger.info("Threshold advanced", target=target, result_uuid=latest.uuid)
        outcome.transition(EvaluationState.PASSED)
        return outcome, updates

    async def persist(
        self,
        report: EvaluationReport,
        artifacts: dict[str, Artifact],
        store: IArtifactStore,
    ) -> EvaluationReport:
        """Write every touched artifact back, each independently.

        Args:
            report: The report from evaluate(); updated in place.
            artifacts: The artifacts that were evaluated.
            store: Where to write them.

        Returns:
            The same report with written locations and per-location failures.
        """
        for outcome in report.outcomes.values():
            outcome.transition(EvaluationState.PERSISTING)

        async def _write(location: str) -> PersistenceFailure | None:
            try:
                await store.write(artifacts[location])
            except PersistenceError as exc:
                logger.error("Artifact write-back failed", location=location, reason=exc.reason)
                return PersistenceFailure(location=location, reason=exc.reason)
            return None

        failures = await asyncio.gather(*(_write(location) for location in report.touched))
        report.persistence_failures = [failure for failure in failures if failure is not None]
        failed = {failure.location for failure in report.persistence_failures}
        report.written = [location for location in report.touched if location not in failed]

        for outcome in report.outcomes.values():
            outcome.transition(EvaluationState.DONE)
        return report


async def evaluate_locations(
    locations: list[str],
    store: IArtifactStore,
    engine: EvaluationEngine | None = None,
) -> EvaluationReport:
    """Read, evaluate, and write back a set of artifacts.

    Args:
        locations: Paths or URLs of the artifacts to evaluate together.
        store: Artifact store used for reading and writing.
        engine: Engine to use. Defaults to one built from get_settings().

    Returns:
        The EvaluationReport, including persistence failures.

    Raises:
        EvaluatorError: If no locations were given.
        MalformedArtifactError: If any artifact is unusable. Nothing is
            written in that case.
    """
    if not locations:
        raise EvaluatorError("no files provided for evaluation")

    engine = engine or EvaluationEngine()
    artifacts = await store.read_many(locations)
    report = engine.evaluate(artifacts)
    return await engine.persist(report, artifacts, store)
