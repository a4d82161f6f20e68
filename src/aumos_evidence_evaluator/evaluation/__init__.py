"""Threshold evaluation.

Groups Results by target, resolves the threshold and latest Result for each
target, classifies how findings moved between them, and decides which
Result is the baseline for the next run.
"""

from __future__ import annotations

from aumos_evidence_evaluator.evaluation.grouper import EvalResult, group_results
from aumos_evidence_evaluator.evaluation.resolver import (
    Resolution,
    ResolutionStatus,
    resolve_results,
    resolve_target,
)
from aumos_evidence_evaluator.evaluation.classifier import (
    BUCKETS,
    ComparisonResult,
    evaluate_results,
    generate_findings_map,
)
from aumos_evidence_evaluator.evaluation.engine import (
    EvaluationEngine,
    EvaluationReport,
    EvaluationState,
    PersistenceFailure,
    TargetOutcome,
    evaluate_locations,
)

__all__ = [
    "EvalResult",
    "group_results",
    "Resolution",
    "ResolutionStatus",
    "resolve_results",
    "resolve_target",
    "BUCKETS",
    "ComparisonResult",
    "evaluate_results",
    "generate_findings_map",
    "EvaluationEngine",
    "EvaluationReport",
    "EvaluationState",
    "PersistenceFailure",
    "TargetOutcome",
    "evaluate_locations",
]
