"""Artifact I/O for assessment-results documents.

Reads JSON and YAML artifacts from local paths or http(s) URLs, merges
incoming bodies with what is already stored, and writes them back
atomically. New Results are recorded from evidence producers.
"""

from __future__ import annotations

from aumos_evidence_evaluator.artifacts.codec import (
    Artifact,
    detect_format,
    dump_artifact,
    load_artifact,
)
from aumos_evidence_evaluator.artifacts.merger import (
    generate_assessment_results,
    merge_assessment_results,
)
from aumos_evidence_evaluator.artifacts.store import ArtifactStore
from aumos_evidence_evaluator.artifacts.recorder import (
    FileEvidenceProducer,
    create_result,
    generate_artifact,
    record_evidence,
)

__all__ = [
    "Artifact",
    "detect_format",
    "dump_artifact",
    "load_artifact",
    "generate_assessment_results",
    "merge_assessment_results",
    "ArtifactStore",
    "FileEvidenceProducer",
    "create_result",
    "generate_artifact",
    "record_evidence",
]
