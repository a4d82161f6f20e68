"""Evidence recorder: turn producer output into a new Result on disk.

A validation run produces findings and observations. The recorder wraps
them in a Result stamped with the current time, a fresh UUID, and
threshold=false, then merges that Result into the artifact at the
destination. A missing destination is bootstrapped as a new artifact.

FileEvidenceProducer is the built-in producer. It reads a mapping of
target-id to state from a JSON or YAML file:

    ID-1: satisfied
    ID-2:
      state: not-satisfied
      description: "MFA disabled for two accounts"
"""

import asyncio
import json
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from aumos_evidence_evaluator.artifacts.codec import (
    ROOT_KEY,
    Artifact,
    detect_format,
)
from aumos_evidence_evaluator.artifacts.merger import generate_assessment_results
from aumos_evidence_evaluator.core.interfaces import IArtifactStore, IEvidenceProducer, ProducedEvidence
from aumos_evidence_evaluator.core.models import (
    FINDING_NOT_SATISFIED,
    FINDING_SATISFIED,
    AssessmentResults,
    Finding,
    FindingStatus,
    FindingTarget,
    Observation,
    Property,
    Result,
    format_timestamp,
)
from aumos_evidence_evaluator.core.properties import (
    EVALUATOR_NAMESPACE,
    PROP_TARGET,
    PROP_THRESHOLD,
)
from aumos_evidence_evaluator.errors import EvaluatorError, MalformedArtifactError
from aumos_evidence_evaluator.observability import get_logger
from aumos_evidence_evaluator.settings import Settings, get_settings

logger = get_logger(__name__)

RESULT_TITLE = "Evidence Evaluator Validation Result"
RESULT_DESCRIPTION = "Assessment results for performing validations with aumos-evidence-evaluator"

_VALID_STATES = (FINDING_SATISFIED, FINDING_NOT_SATISFIED)


def create_finding(
    target_id: str,
    state: str,
    title: str = "",
    description: str = "",
    reason: str | None = None,
) -> Finding:
    """Build a Finding for one target-id.

    Args:
        target_id: The assessed target-id.
        state: "satisfied" or "not-satisfied".
        title: Optional finding title. Defaults to "Validation Result - <id>".
        description: Optional free text.
        reason: Optional status reason.

    Returns:
        A Finding with a fresh UUID.
    """
    status = FindingStatus(state=state) if reason is None else FindingStatus(state=state, reason=reason)
    return Finding(
        uuid=str(uuid.uuid4()),
        title=title or f"Validation Result - {target_id}",
        description=description,
        target=FindingTarget(type="objective-id", target_id=target_id, status=status),
    )


def create_result(
    findings: list[Finding],
    observations: list[Observation] | None = None,
    target: str | None = None,
    now: datetime | None = None,
) -> Result:
    """Wrap findings in a new, unmarked Result.

    Args:
        findings: Findings for the run.
        observations: Supporting observations, carried verbatim.
        target: Target name to stamp. Omitted when None.
        now: Start timestamp. Defaults to the current time.

    Returns:
        A Result with a fresh UUID and threshold=false.
    """
    props = [Property(name=PROP_THRESHOLD, ns=EVALUATOR_NAMESPACE, value="false")]
    if target:
        props.append(Property(name=PROP_TARGET, ns=EVALUATOR_NAMESPACE, value=target))

    result = Result(
        uuid=str(uuid.uuid4()),
        title=RESULT_TITLE,
        description=RESULT_DESCRIPTION,
        start=format_timestamp(now or datetime.now(UTC)),
        props=props,
        findings=list(findings),
    )
    if observations:
        result.observations = list(observations)
    return result


def generate_artifact(
    results: list[Result],
    settings: Settings | None = None,
    now: datetime | None = None,
) -> AssessmentResults:
    """Wrap Results in a new artifact body using the configured metadata."""
    settings = settings or get_settings()
    return generate_assessment_results(
        results,
        title=settings.artifact_title,
        version=settings.artifact_version,
        now=now,
    )


class FileEvidenceProducer:
    """Reads target-id states from a JSON or YAML file.

    Args:
        path: Path of the findings file.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize FileEvidenceProducer.

        Args:
            path: Path of the findings file (.json, .yaml, or .yml).
        """
        self._path = Path(path)

    def _load(self) -> dict[str, Any]:
        location = str(self._path)
        if not self._path.is_file():
            raise MalformedArtifactError(location, "findings file does not exist")
        text = self._path.read_text(encoding="utf-8")
        try:
            if self._path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise MalformedArtifactError(location, f"unable to parse findings: {exc}") from exc
        if not isinstance(data, dict) or not data:
            raise MalformedArtifactError(location, "findings must be a non-empty mapping of target-id to state")
        return data

    def _to_finding(self, target_id: Any, entry: Any) -> Finding:
        if isinstance(entry, str):
            entry = {"state": entry}
        if not isinstance(entry, dict):
            raise MalformedArtifactError(str(self._path), f"invalid entry for {target_id}")
        state = entry.get("state")
        if state not in _VALID_STATES:
            raise MalformedArtifactError(
                str(self._path),
                f"invalid state {state!r} for {target_id}, requires satisfied or not-satisfied",
            )
        return create_finding(
            str(target_id),
            state,
            title=entry.get("title", ""),
            description=entry.get("description", ""),
            reason=entry.get("reason"),
        )

    async def produce(self) -> ProducedEvidence:
        """Read the file and build one Finding per entry.

        Returns:
            ProducedEvidence with findings in file order and no observations.

        Raises:
            MalformedArtifactError: If the file is missing, unparsable, or
                holds an unknown state.
        """
        data = await asyncio.to_thread(self._load)
        findings = [self._to_finding(target_id, entry) for target_id, entry in data.items()]
        return ProducedEvidence(findings=findings)


async def record_evidence(
    store: IArtifactStore,
    location: str,
    producer: IEvidenceProducer,
    target: str | None = None,
    settings: Settings | None = None,
) -> Artifact:
    """Run a producer and merge its output into the artifact at location.

    Args:
        store: Artifact store used for the write.
        location: Destination path of the artifact.
        producer: The evidence producer to run.
        target: Target name stamped on the new Result.
        settings: Metadata source for a newly generated artifact.

    Returns:
        The artifact as written.

    Raises:
        EvaluatorError: If the producer returned no findings.
        MalformedArtifactError: If the destination has an unsupported extension.
        PersistenceError: If the write fails.
    """
    fmt = detect_format(location)
    evidence = await producer.produce()
    if not evidence.findings:
        raise EvaluatorError("evidence producer returned no findings")

    result = create_result(evidence.findings, evidence.observations, target=target)
    body = generate_artifact([result], settings)
    artifact = Artifact(location=location, format=fmt, assessment_results=body, document={ROOT_KEY: {}})
    await store.write(artifact)

    logger.info(
        "Evidence recorded",
        location=location,
        result_uuid=result.uuid,
        target=target,
        finding_count=len(evidence.findings),
    )
    return artifact
