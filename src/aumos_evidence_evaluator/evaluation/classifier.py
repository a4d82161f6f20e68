"""Regression classifier: compare a threshold Result with the latest one.

Findings on both sides are keyed by target-id (a later duplicate replaces
an earlier one). For every target-id in the threshold:

- missing from latest          -> no-longer-satisfied (or a removed-* bucket
                                  when removed findings are split out);
                                  always a failure, whatever its prior state
- satisfied -> not-satisfied   -> no-longer-satisfied, failure
- not-satisfied -> satisfied   -> new-passing-findings
- unchanged                    -> not reported

Target-ids only present in latest are new: new-failing-findings when
not-satisfied, new-passing-findings otherwise.

Each target-id lands in at most one bucket. The comparison passes unless a
threshold target-id regressed or disappeared.
"""

from dataclasses import dataclass, field
from typing import Any

from aumos_evidence_evaluator.core.models import (
    FINDING_NOT_SATISFIED,
    FINDING_SATISFIED,
    Finding,
    Result,
)
from aumos_evidence_evaluator.errors import EvaluationError

NO_LONGER_SATISFIED = "no-longer-satisfied"
NEW_PASSING_FINDINGS = "new-passing-findings"
NEW_FAILING_FINDINGS = "new-failing-findings"
REMOVED_SATISFIED = "removed-satisfied"
REMOVED_NOT_SATISFIED = "removed-not-satisfied"

BUCKETS: tuple[str, ...] = (
    NO_LONGER_SATISFIED,
    NEW_PASSING_FINDINGS,
    NEW_FAILING_FINDINGS,
    REMOVED_SATISFIED,
    REMOVED_NOT_SATISFIED,
)

# Buckets whose presence fails the comparison.
FAILING_BUCKETS: tuple[str, ...] = (NO_LONGER_SATISFIED, REMOVED_SATISFIED, REMOVED_NOT_SATISFIED)


def _empty_buckets() -> dict[str, list[Finding]]:
    return {name: [] for name in BUCKETS}


@dataclass
class ComparisonResult:
    """Outcome of comparing two Results.

    Attributes:
        passed: False when any threshold target-id regressed or disappeared.
        buckets: All five bucket names mapped to their findings. Findings
            that changed state are taken from the latest Result; findings
            that disappeared are taken from the threshold.
    """

    passed: bool
    buckets: dict[str, list[Finding]] = field(default_factory=_empty_buckets)

    def target_ids(self, bucket: str) -> list[str]:
        """Return the target-ids in one bucket, in classification order."""
        return [finding.target_id for finding in self.buckets.get(bucket, [])]

    def is_empty(self) -> bool:
        """Return True when no bucket holds a finding."""
        return not any(self.buckets.values())

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready summary keyed by bucket name."""
        return {
            "passed": self.passed,
            "buckets": {
                name: [
                    {"target-id": finding.target_id, "state": finding.state, "title": finding.title}
                    for finding in findings
                ]
                for name, findings in self.buckets.items()
            },
        }


def generate_findings_map(findings: list[Finding]) -> dict[str, Finding]:
    """Key findings by target-id. A later duplicate replaces an earlier one.

    Args:
        findings: Findings of one Result.

    Returns:
        Mapping of target-id -> Finding, in first-seen order.
    """
    findings_map: dict[str, Finding] = {}
    for finding in findings:
        findings_map[finding.target_id] = finding
    return findings_map


def evaluate_results(
    threshold: Result,
    latest: Result,
    split_removed: bool = False,
) -> ComparisonResult:
    """Classify how the latest Result differs from the threshold.

    Args:
        threshold: The accepted baseline Result.
        latest: The most recent Result.
        split_removed: Report disappeared target-ids in removed-satisfied /
            removed-not-satisfied by prior state instead of
            no-longer-satisfied.

    Returns:
        The ComparisonResult with all five buckets present.

    Raises:
        EvaluationError: If either Result has no findings.
    """
    if not threshold.findings or not latest.findings:
        raise EvaluationError("results must contain findings to evaluate")

    comparison = ComparisonResult(passed=True)
    buckets = comparison.buckets

    threshold_map = generate_findings_map(threshold.findings)
    latest_map = generate_findings_map(latest.findings)

    for target_id, finding in threshold_map.items():
        current = latest_map.pop(target_id, None)

        if current is None:
            comparison.passed = False
            if not split_removed:
                buckets[NO_LONGER_SATISFIED].append(finding)
            elif finding.state == FINDING_SATISFIED:
                buckets[REMOVED_SATISFIED].append(finding)
            else:
                buckets[REMOVED_NOT_SATISFIED].append(finding)
            continue

        if finding.state == FINDING_SATISFIED and current.state == FINDING_NOT_SATISFIED:
            comparison.passed = False
            buckets[NO_LONGER_SATISFIED].append(current)
        elif finding.state == FINDING_NOT_SATISFIED and current.state == FINDING_SATISFIED:
            buckets[NEW_PASSING_FINDINGS].append(current)

    # Whatever is left only exists in the latest result.
    for finding in latest_map.values():
        if finding.state == FINDING_NOT_SATISFIED:
            buckets[NEW_FAILING_FINDINGS].append(finding)
        else:
            buckets[NEW_PASSING_FINDINGS].append(finding)

    return comparison
