"""Tests for the evaluation engine and the read-evaluate-write cycle.

Covers: per-target outcomes, threshold marker policy, touched-artifact
detection, persistence failure isolation, and malformed input handling.

Run with: pytest tests/test_engine.py -v
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from aumos_evidence_evaluator.artifacts.codec import Artifact
from aumos_evidence_evaluator.artifacts.store import ArtifactStore
from aumos_evidence_evaluator.core.properties import EVALUATOR_NAMESPACE, is_threshold
from aumos_evidence_evaluator.errors import EvaluatorError, MalformedArtifactError, PersistenceError
from aumos_evidence_evaluator.evaluation.classifier import (
    NEW_PASSING_FINDINGS,
    NO_LONGER_SATISFIED,
    REMOVED_SATISFIED,
)
from aumos_evidence_evaluator.evaluation.engine import (
    EvaluationEngine,
    EvaluationState,
    evaluate_locations,
)
from aumos_evidence_evaluator.evaluation.grouper import EvalResult
from aumos_evidence_evaluator.evaluation.resolver import MSG_LATEST_IS_THRESHOLD, MSG_NO_DATA
from aumos_evidence_evaluator.settings import Settings

from factories import OSCAL_ORDER_YAML, make_artifact, make_result, result_doc, ts, write_artifact


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FailingStore(ArtifactStore):
    """ArtifactStore whose writes fail for selected locations."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = failing

    async def write(self, artifact: Artifact) -> None:
        if artifact.location in self.failing:
            raise PersistenceError(artifact.location, "disk full")
        await super().write(artifact)


def markers(path: Path) -> dict[str, str | None]:
    """Return result uuid -> threshold prop value as stored on disk."""
    body = json.loads(path.read_text(encoding="utf-8"))["assessment-results"]
    values: dict[str, str | None] = {}
    for result in body["results"]:
        values[result["uuid"]] = next(
            (prop["value"] for prop in result.get("props", []) if prop["name"] == "threshold"),
            None,
        )
    return values


# ---------------------------------------------------------------------------
# In-memory outcomes
# ---------------------------------------------------------------------------

class TestEvaluate:
    """EvaluationEngine.evaluate over in-memory artifacts."""

    def test_single_result_records_provisional_threshold(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact([result_doc({"ID-1": "satisfied"}, ts(1), threshold=False)])
        report = engine.evaluate({"a.json": artifact})

        outcome = report.outcomes["default"]
        assert outcome.state is EvaluationState.INSUFFICIENT_DATA
        assert outcome.passed is True
        assert outcome.threshold_advanced is True
        assert is_threshold(artifact.results[0])
        assert report.touched == ["a.json"]
        assert report.passed is True

    def test_single_marked_result_touches_nothing(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact([result_doc({"ID-1": "satisfied"}, ts(1), threshold=True)])
        report = engine.evaluate({"a.json": artifact})
        assert report.outcomes["default"].state is EvaluationState.INSUFFICIENT_DATA
        assert report.touched == []

    def test_passing_comparison_advances_threshold(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False),
            ]
        )
        report = engine.evaluate({"a.json": artifact})

        outcome = report.outcomes["default"]
        assert outcome.state is EvaluationState.PASSED
        assert outcome.threshold_advanced is True
        assert outcome.threshold_uuid == artifact.results[1].uuid
        assert [is_threshold(result) for result in artifact.results] == [False, True]
        assert report.touched == ["a.json"]

    def test_improvement_only_retains_threshold_without_new_passing(self) -> None:
        engine = EvaluationEngine(Settings(advance_on_improvement_only=True))
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False),
            ]
        )
        report = engine.evaluate({"a.json": artifact})

        outcome = report.outcomes["default"]
        assert outcome.state is EvaluationState.PASSED
        assert outcome.threshold_advanced is False
        assert [is_threshold(result) for result in artifact.results] == [True, False]
        assert report.touched == []

    def test_improvement_only_advances_on_new_passing(self) -> None:
        engine = EvaluationEngine(Settings(advance_on_improvement_only=True))
        artifact = make_artifact(
            [
                result_doc({"ID-1": "not-satisfied"}, ts(1), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False),
            ]
        )
        report = engine.evaluate({"a.json": artifact})

        outcome = report.outcomes["default"]
        assert outcome.comparison.target_ids(NEW_PASSING_FINDINGS) == ["ID-1"]
        assert outcome.threshold_advanced is True
        assert [is_threshold(result) for result in artifact.results] == [False, True]

    def test_regression_keeps_threshold(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1)),
                result_doc({"ID-1": "not-satisfied"}, ts(2)),
            ]
        )
        report = engine.evaluate({"a.json": artifact})

        outcome = report.outcomes["default"]
        assert outcome.state is EvaluationState.FAILED
        assert outcome.threshold_advanced is False
        assert outcome.comparison.target_ids(NO_LONGER_SATISFIED) == ["ID-1"]
        assert [is_threshold(result) for result in artifact.results] == [True, False]
        assert report.passed is False
        assert report.touched == ["a.json"]

    def test_latest_already_threshold_fails(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=False),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=True),
            ]
        )
        report = engine.evaluate({"a.json": artifact})

        outcome = report.outcomes["default"]
        assert outcome.state is EvaluationState.FAILED
        assert outcome.message == MSG_LATEST_IS_THRESHOLD
        assert outcome.comparison is None
        assert report.touched == []

    def test_no_results_fails_the_report(self, engine: EvaluationEngine) -> None:
        report = engine.evaluate({"a.json": make_artifact([result_doc(None, ts(1))])})
        assert report.outcomes == {}
        assert report.passed is False
        assert report.message == MSG_NO_DATA

    def test_result_without_findings_is_a_failed_outcome(self, engine: EvaluationEngine) -> None:
        threshold = make_result(None, ts(1), threshold=True)
        latest = make_result({"ID-1": "satisfied"}, ts(2))
        outcome, updates = engine._evaluate_target(EvalResult(target="default", results=[threshold, latest]))

        assert outcome.state is EvaluationState.FAILED
        assert "must contain findings" in outcome.message
        assert updates == []

    def test_displaced_threshold_is_unmarked(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(3), threshold=False),
            ]
        )
        report = engine.evaluate({"a.json": artifact})

        assert report.outcomes["default"].state is EvaluationState.PASSED
        assert [is_threshold(result) for result in artifact.results] == [False, False, True]

    def test_targets_are_evaluated_independently(self, engine: EvaluationEngine) -> None:
        web = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True, target="web"),
                result_doc({"ID-1": "not-satisfied"}, ts(2), threshold=False, target="web"),
            ],
            location="web.json",
        )
        db = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True, target="db"),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False, target="db"),
            ],
            location="db.json",
        )
        report = engine.evaluate({"web.json": web, "db.json": db})

        assert list(report.outcomes) == ["db", "web"]
        assert report.outcomes["db"].state is EvaluationState.PASSED
        assert report.outcomes["web"].state is EvaluationState.FAILED
        assert report.touched == ["db.json"]
        assert report.passed is False

    def test_split_mode_reports_removed_findings(self, split_settings: Settings) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied", "ID-2": "satisfied"}, ts(1), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False),
            ]
        )
        report = EvaluationEngine(split_settings).evaluate({"a.json": artifact})

        comparison = report.outcomes["default"].comparison
        assert comparison.target_ids(REMOVED_SATISFIED) == ["ID-2"]
        assert comparison.target_ids(NO_LONGER_SATISFIED) == []
        assert report.passed is False

    def test_legacy_namespace_is_migrated_when_touched(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True, legacy_ns=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False, legacy_ns=True),
            ]
        )
        engine.evaluate({"a.json": artifact})
        assert all(result.props[0].ns == EVALUATOR_NAMESPACE for result in artifact.results)

    def test_report_to_dict_is_json_ready(self, engine: EvaluationEngine) -> None:
        artifact = make_artifact(
            [
                result_doc({"ID-1": "satisfied"}, ts(1)),
                result_doc({"ID-1": "satisfied", "ID-2": "not-satisfied"}, ts(2)),
            ]
        )
        data = engine.evaluate({"a.json": artifact}).to_dict()

        json.dumps(data)
        assert data["passed"] is True
        target = data["targets"]["default"]
        assert target["state"] == "passed"
        assert target["comparison"]["buckets"]["new-failing-findings"][0]["target-id"] == "ID-2"


# ---------------------------------------------------------------------------
# Read, evaluate, write back
# ---------------------------------------------------------------------------

class TestEvaluateLocations:
    """evaluate_locations against files on disk."""

    @pytest.mark.asyncio()
    async def test_states_walk_through_persisting(self, tmp_path: Path, store: ArtifactStore, engine) -> None:
        location = write_artifact(tmp_path / "a.json", [result_doc({"ID-1": "satisfied"}, ts(1))])
        report = await evaluate_locations([location], store, engine)

        assert report.outcomes["default"].states == [
            EvaluationState.COLLECTING,
            EvaluationState.RESOLVING,
            EvaluationState.INSUFFICIENT_DATA,
            EvaluationState.PERSISTING,
            EvaluationState.DONE,
        ]
        assert report.written == [location]

    @pytest.mark.asyncio()
    async def test_regression_is_written_back(self, tmp_path: Path, store: ArtifactStore, engine) -> None:
        path = tmp_path / "a.json"
        location = write_artifact(
            path,
            [
                result_doc({"ID-1": "satisfied"}, ts(1), uuid="r1"),
                result_doc({"ID-1": "not-satisfied"}, ts(2), uuid="r2"),
            ],
        )
        report = await evaluate_locations([location], store, engine)

        assert report.outcomes["default"].states[-3:] == [
            EvaluationState.FAILED,
            EvaluationState.PERSISTING,
            EvaluationState.DONE,
        ]
        assert markers(path) == {"r1": "true", "r2": "false"}

    @pytest.mark.asyncio()
    async def test_untouched_artifact_is_byte_identical(self, tmp_path: Path, store: ArtifactStore, engine) -> None:
        touched = tmp_path / "web.json"
        untouched = tmp_path / "db.json"
        write_artifact(touched, [result_doc({"ID-1": "satisfied"}, ts(1), target="web")])
        write_artifact(untouched, [result_doc({"ID-1": "satisfied"}, ts(1), threshold=True, target="db")])
        before = untouched.read_bytes()

        report = await evaluate_locations([str(touched), str(untouched)], store, engine)

        assert report.touched == [str(touched)]
        assert untouched.read_bytes() == before

    @pytest.mark.asyncio()
    async def test_round_trip_only_changes_props(self, tmp_path: Path, store: ArtifactStore, engine) -> None:
        path = tmp_path / "a.json"
        location = write_artifact(
            path,
            [
                result_doc({"ID-1": "satisfied"}, ts(1), threshold=True),
                result_doc({"ID-1": "satisfied"}, ts(2), threshold=False),
            ],
        )
        before = json.loads(path.read_text(encoding="utf-8"))

        await evaluate_locations([location], store, engine)

        after = json.loads(path.read_text(encoding="utf-8"))
        for result in before["assessment-results"]["results"] + after["assessment-results"]["results"]:
            result.pop("props")
        assert after == before

    @pytest.mark.asyncio()
    async def test_yaml_rewrite_only_changes_threshold_values(self, tmp_path: Path, store: ArtifactStore, engine) -> None:
        path = tmp_path / "results.yaml"
        path.write_text(OSCAL_ORDER_YAML.format(first="true", second="false"), encoding="utf-8")

        report = await evaluate_locations([str(path)], store, engine)

        assert report.passed
        assert report.written == [str(path)]
        assert path.read_text(encoding="utf-8") == OSCAL_ORDER_YAML.format(first="false", second="true")

    @pytest.mark.asyncio()
    async def test_same_file_under_two_spellings_is_evaluated_once(
        self, tmp_path: Path, store: ArtifactStore, engine, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        write_artifact(tmp_path / "a.yaml", [result_doc({"ID-1": "satisfied"}, ts(1), threshold=True)])

        report = await evaluate_locations(["a.yaml", "./a.yaml"], store, engine)

        assert EvaluationState.INSUFFICIENT_DATA in report.outcomes["default"].states
        assert report.persistence_failures == []

    @pytest.mark.asyncio()
    async def test_persistence_failure_does_not_block_other_writes(self, tmp_path: Path, engine) -> None:
        web = tmp_path / "web.json"
        db = tmp_path / "db.json"
        write_artifact(web, [result_doc({"ID-1": "satisfied"}, ts(1), target="web", uuid="w1")])
        write_artifact(db, [result_doc({"ID-1": "satisfied"}, ts(1), target="db", uuid="d1")])
        store = FailingStore(failing={str(web)})

        report = await evaluate_locations([str(web), str(db)], store, engine)

        assert report.passed is True
        assert [(failure.location, failure.reason) for failure in report.persistence_failures] == [
            (str(web), "disk full")
        ]
        assert report.written == [str(db)]
        assert markers(db) == {"d1": "true"}
        assert markers(web) == {"w1": None}

    @pytest.mark.asyncio()
    async def test_malformed_input_aborts_before_writing(self, tmp_path: Path, store: ArtifactStore, engine) -> None:
        good = tmp_path / "a.json"
        write_artifact(good, [result_doc({"ID-1": "satisfied"}, ts(1))])
        before = good.read_bytes()
        bad = tmp_path / "b.yaml"
        bad.write_text("results: []\n", encoding="utf-8")

        with pytest.raises(MalformedArtifactError):
            await evaluate_locations([str(good), str(bad)], store, engine)
        assert good.read_bytes() == before

    @pytest.mark.asyncio()
    async def test_no_locations_raises(self, store: ArtifactStore, engine) -> None:
        with pytest.raises(EvaluatorError, match="no files"):
            await evaluate_locations([], store, engine)
