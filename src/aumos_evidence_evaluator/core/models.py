"""Pydantic models for OSCAL assessment-results documents.

The evaluator consumes and re-serializes an external schema it does not own,
so every model keeps unknown keys (extra="allow") and is dumped with
exclude_unset=True: whatever was read is written back, nothing is added.

Field names are snake_case with kebab-case aliases matching the wire format.
Keys are dumped in the order they were read; keys the model adds go last.
Timestamps stay as their original text; parsed values are exposed through
read-only helpers used for ordering only.

Models:
- Property: namespaced name/value annotation on a Result
- FindingStatus: satisfied | not-satisfied state of a finding target
- FindingTarget: the control-implementation unit a finding assesses
- Finding: one target's verdict within a Result
- Observation: supporting evidence, never compared
- Result: one timestamped evaluation run
- Metadata: artifact-level metadata
- AssessmentResults: the artifact body holding Results
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    SerializerFunctionWrapHandler,
    ValidatorFunctionWrapHandler,
    field_validator,
    model_serializer,
    model_validator,
)

FINDING_SATISFIED = "satisfied"
FINDING_NOT_SATISFIED = "not-satisfied"

FindingState = Literal["satisfied", "not-satisfied"]


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Naive timestamps are treated as UTC.

    Args:
        value: Timestamp text, e.g. "2024-05-01T12:00:00Z".

    Returns:
        A timezone-aware datetime.

    Raises:
        ValueError: If the text is not an ISO 8601 timestamp.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(moment: datetime) -> str:
    """Render a datetime in the RFC 3339 form used for generated fields.

    Args:
        moment: The datetime to render. Naive values are treated as UTC.

    Returns:
        Timestamp text with a trailing Z for UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


class _OscalModel(BaseModel):
    """Base for all document models: keep unknown keys, accept both spellings."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    _key_order: tuple[str, ...] = PrivateAttr(default=())

    @model_validator(mode="wrap")
    @classmethod
    def _remember_key_order(cls, data: Any, handler: ValidatorFunctionWrapHandler) -> Any:
        """Record the key order of the mapping the model was read from."""
        model = handler(data)
        if isinstance(data, dict) and isinstance(model, _OscalModel):
            model._key_order = tuple(data)
        return model

    @model_serializer(mode="wrap")
    def _dump_in_read_order(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        dumped = handler(self)
        if not self._key_order:
            return dumped
        ordered = {key: dumped[key] for key in self._key_order if key in dumped}
        ordered.update((key, value) for key, value in dumped.items() if key not in ordered)
        return ordered

    def to_document(self) -> dict[str, Any]:
        """Dump back to the wire representation.

        Returns:
            A JSON-compatible dict using kebab-case keys, containing only the
            fields that were read or explicitly set, in their original order.
        """
        return self.model_dump(by_alias=True, exclude_unset=True, mode="json")


class Property(_OscalModel):
    """A (namespace, name, value) annotation on a Result."""

    name: str
    ns: str | None = None
    value: str

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        """Accept unquoted YAML scalars such as `value: true`."""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        return value


class FindingStatus(_OscalModel):
    """Status of a finding target."""

    state: FindingState
    reason: str | None = None


class FindingTarget(_OscalModel):
    """The control-implementation unit a finding assesses.

    target_id may be a raw control ID or a synthetic ID spanning several
    controls.
    """

    type: str = "objective-id"
    target_id: str = Field(alias="target-id")
    status: FindingStatus


class Finding(_OscalModel):
    """One target's satisfied / not-satisfied verdict within a Result."""

    uuid: str
    title: str = ""
    description: str = ""
    target: FindingTarget

    @property
    def target_id(self) -> str:
        """Return the assessed target-id."""
        return self.target.target_id

    @property
    def state(self) -> str:
        """Return the finding state (satisfied | not-satisfied)."""
        return self.target.status.state


class Observation(_OscalModel):
    """Supporting evidence attached to a Result. Informational only."""

    uuid: str
    description: str = ""
    methods: list[str] = Field(default_factory=list)
    collected: str | None = None
    relevant_evidence: list[dict[str, Any]] | None = Field(default=None, alias="relevant-evidence")


class Result(_OscalModel):
    """One evaluation run at a point in time.

    Results are immutable once created except for their props.
    """

    uuid: str
    title: str = ""
    description: str = ""
    start: str
    end: str | None = None
    props: list[Property] | None = None
    findings: list[Finding] | None = None
    observations: list[Observation] | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _check_timestamp(cls, value: Any) -> Any:
        """Reject timestamps that cannot be ordered."""
        if isinstance(value, datetime):
            return format_timestamp(value)
        if isinstance(value, str):
            parse_timestamp(value)
        return value

    @property
    def started_at(self) -> datetime:
        """Return the parsed start time used for ordering."""
        return parse_timestamp(self.start)

    def ensure_props(self) -> list[Property]:
        """Return the props list, creating an empty one when absent.

        Returns:
            The Result's live props list.
        """
        if self.props is None:
            self.props = []
        return self.props


class Metadata(_OscalModel):
    """Artifact-level metadata."""

    title: str = ""
    last_modified: str | None = Field(default=None, alias="last-modified")
    version: str = ""
    oscal_version: str = Field(default="1.1.2", alias="oscal-version")
    published: str | None = None
    remarks: str | None = None


class AssessmentResults(_OscalModel):
    """An artifact body: zero or more Results identified by a UUID."""

    uuid: str
    metadata: Metadata | None = None
    results: list[Result]
