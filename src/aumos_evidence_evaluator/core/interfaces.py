"""Abstract interfaces (Protocol classes) for the evidence evaluator.

The evaluator never inspects how evidence was generated. Policy engines,
live-resource probes, and rule runners are all reduced to IEvidenceProducer:
something that yields findings and observations for one new Result.

Protocols defined:
- IEvidenceProducer
- IArtifactStore
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from aumos_evidence_evaluator.core.models import Finding, Observation

if TYPE_CHECKING:
    from aumos_evidence_evaluator.artifacts.codec import Artifact


@dataclass
class ProducedEvidence:
    """Findings and observations produced by one validation run.

    Attributes:
        findings: One finding per assessed target-id.
        observations: Supporting evidence, carried along verbatim.
    """

    findings: list[Finding]
    observations: list[Observation] = field(default_factory=list)


class IEvidenceProducer(Protocol):
    """Contract for anything that yields the evidence for a new Result."""

    async def produce(self) -> ProducedEvidence:
        """Run the producer once.

        Returns:
            The findings and observations for a single Result.
        """
        ...


class IArtifactStore(Protocol):
    """Contract for reading and writing artifacts by location."""

    async def read(self, location: str) -> Artifact:
        """Read and validate the artifact at a location.

        Args:
            location: Local path or http(s) URL.

        Returns:
            The parsed Artifact.

        Raises:
            MalformedArtifactError: If the artifact is unusable.
        """
        ...

    async def read_many(self, locations: list[str]) -> dict[str, Artifact]:
        """Read several artifacts concurrently.

        Args:
            locations: Paths or URLs, each read once.

        Returns:
            Mapping of location -> Artifact in input order.
        """
        ...

    async def write(self, artifact: Artifact) -> None:
        """Write an artifact back to its location, merging with what is there.

        Args:
            artifact: The artifact to persist.

        Raises:
            PersistenceError: If the write fails.
        """
        ...

