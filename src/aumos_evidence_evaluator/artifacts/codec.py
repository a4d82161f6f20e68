"""Artifact codec: parse and serialize assessment-results documents.

One file is one artifact. The serialization format follows the file
extension (.json, .yaml, .yml) and is kept for the write-back, so a YAML
artifact is always rewritten as YAML and a JSON artifact as JSON.

The YAML loader does not resolve implicit timestamps: `start:
2024-05-01T12:00:00Z` stays a string, so timestamp text that the evaluator
never touches is written back exactly as it was read. The dumper mirrors
this, so timestamp strings are written unquoted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import ValidationError

from aumos_evidence_evaluator.core.models import AssessmentResults, Result
from aumos_evidence_evaluator.errors import MalformedArtifactError

ROOT_KEY = "assessment-results"

FORMAT_JSON = "json"
FORMAT_YAML = "yaml"

_EXTENSION_FORMATS = {
    ".json": FORMAT_JSON,
    ".yaml": FORMAT_YAML,
    ".yml": FORMAT_YAML,
}

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _VerbatimTimestampLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as strings."""


_VerbatimTimestampLoader.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first_char, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class _VerbatimTimestampDumper(yaml.SafeDumper):
    """SafeDumper that writes timestamp-looking strings without quotes."""


_VerbatimTimestampDumper.yaml_implicit_resolvers = {
    first_char: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first_char, resolvers in yaml.SafeDumper.yaml_implicit_resolvers.items()
}


@dataclass
class Artifact:
    """A persisted assessment-results document.

    Attributes:
        location: Path or URL the artifact was read from and is written to.
        format: Serialization format, "json" or "yaml".
        assessment_results: The validated artifact body.
        document: The full top-level mapping as read. Keys other than
            assessment-results are written back untouched.
    """

    location: str
    format: str
    assessment_results: AssessmentResults
    document: dict[str, Any]

    @property
    def uuid(self) -> str:
        """Return the artifact UUID."""
        return self.assessment_results.uuid

    @property
    def results(self) -> list[Result]:
        """Return the artifact's Results in document order."""
        return self.assessment_results.results

    def to_document(self) -> dict[str, Any]:
        """Build the top-level mapping for serialization.

        Returns:
            The original top-level mapping with assessment-results replaced by
            the current model state, key order preserved.
        """
        document = dict(self.document)
        document[ROOT_KEY] = self.assessment_results.to_document()
        return document


def detect_format(location: str) -> str:
    """Determine the serialization format from a path or URL.

    Args:
        location: Local path or http(s) URL.

    Returns:
        "json" or "yaml".

    Raises:
        MalformedArtifactError: If the extension is not .json, .yaml, or .yml.
    """
    path = urlparse(location).path if is_remote(location) else location
    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lower()
    try:
        return _EXTENSION_FORMATS[suffix]
    except KeyError:
        raise MalformedArtifactError(
            location, "invalid file extension, requires .json or .yaml"
        ) from None


def is_remote(location: str) -> bool:
    """Return True for http(s) locations."""
    return location.startswith(("http://", "https://"))


def _parse_text(location: str, text: str, fmt: str) -> Any:
    try:
        if fmt == FORMAT_JSON:
            return json.loads(text)
        return yaml.load(text, Loader=_VerbatimTimestampLoader)  # noqa: S506 - SafeLoader subclass
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise MalformedArtifactError(location, f"unable to parse {fmt}: {exc}") from exc


def _summarize_validation_error(exc: ValidationError) -> str:
    """Render the first few pydantic errors as a single line."""
    parts = []
    for error in exc.errors()[:3]:
        loc = ".".join(str(item) for item in error["loc"])
        parts.append(f"{loc}: {error['msg']}")
    remaining = exc.error_count() - len(parts)
    if remaining > 0:
        parts.append(f"and {remaining} more")
    return "; ".join(parts)


def load_artifact(location: str, text: str, fmt: str | None = None) -> Artifact:
    """Parse and validate artifact text.

    Args:
        location: Where the text came from (used for errors and write-back).
        text: Raw JSON or YAML text.
        fmt: Serialization format. Detected from location when None.

    Returns:
        The validated Artifact.

    Raises:
        MalformedArtifactError: If the text does not parse, has no
            assessment-results mapping, no results list, or a Result or
            Finding fails validation.
    """
    fmt = fmt or detect_format(location)
    document = _parse_text(location, text, fmt)

    if not isinstance(document, dict):
        raise MalformedArtifactError(location, "top level must be a mapping")
    body = document.get(ROOT_KEY)
    if not isinstance(body, dict):
        raise MalformedArtifactError(location, f"missing '{ROOT_KEY}' object")
    if not isinstance(body.get("results"), list):
        raise MalformedArtifactError(location, "assessment-results must contain a list of results")

    try:
        assessment_results = AssessmentResults.model_validate(body)
    except ValidationError as exc:
        raise MalformedArtifactError(location, _summarize_validation_error(exc)) from exc

    return Artifact(
        location=location,
        format=fmt,
        assessment_results=assessment_results,
        document=document,
    )


def dump_document(document: dict[str, Any], fmt: str) -> str:
    """Serialize a top-level mapping.

    Args:
        document: The mapping to write.
        fmt: "json" or "yaml".

    Returns:
        Serialized text ending with a newline.
    """
    if fmt == FORMAT_JSON:
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    return yaml.dump(
        document,
        Dumper=_VerbatimTimestampDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        indent=2,
        width=4096,
    )


def dump_artifact(artifact: Artifact) -> str:
    """Serialize an artifact in its own format."""
    return dump_document(artifact.to_document(), artifact.format)
