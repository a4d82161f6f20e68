"""Artifact store: read artifacts from paths or URLs, write them back.

Reads:
- Local paths are read from disk.
- http(s) locations are fetched with httpx. They can be evaluated but never
  written back.
- read_many() reads independent artifacts concurrently.

Writes:
- Serialized per location with an asyncio lock, so two writers of the same
  artifact never interleave.
- Merge-on-write: when the location already holds an artifact, the stored
  body and the incoming body are merged first (same UUID overwrites,
  different UUIDs union their Results).
- Atomic: the new text goes to a temporary file in the same directory and
  replaces the target in one step.
"""

import asyncio
import os
import tempfile
from pathlib import Path

import httpx

from aumos_evidence_evaluator.artifacts.codec import (
    Artifact,
    dump_artifact,
    is_remote,
    load_artifact,
)
from aumos_evidence_evaluator.artifacts.merger import merge_assessment_results
from aumos_evidence_evaluator.errors import MalformedArtifactError, PersistenceError
from aumos_evidence_evaluator.observability import get_logger

logger = get_logger(__name__)

_DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0


def _write_atomically(path: Path, text: str) -> None:
    """Replace path with text via a temporary sibling file."""
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _identity(location: str) -> str:
    """Return the key under which two spellings of one location compare equal."""
    if is_remote(location):
        return location
    return str(Path(location).resolve())


class ArtifactStore:
    """Reads and writes assessment-results artifacts by location.

    Args:
        http_client: Optional shared httpx.AsyncClient for remote reads. When
            omitted a short-lived client is created per fetch.
        fetch_timeout_seconds: Timeout applied to remote fetches.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        fetch_timeout_seconds: float = _DEFAULT_FETCH_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize ArtifactStore.

        Args:
            http_client: Shared client for remote reads, or None.
            fetch_timeout_seconds: Timeout for remote fetches in seconds.
        """
        self._http_client = http_client
        self._fetch_timeout_seconds = fetch_timeout_seconds
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, location: str) -> asyncio.Lock:
        if location not in self._locks:
            self._locks[location] = asyncio.Lock()
        return self._locks[location]

    async def _fetch(self, url: str) -> str:
        """Fetch remote artifact text.

        Args:
            url: The http(s) URL.

        Returns:
            The response body as text.

        Raises:
            MalformedArtifactError: If the request fails or returns an error status.
        """
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=self._fetch_timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self._fetch_timeout_seconds) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise MalformedArtifactError(url, f"unable to fetch artifact: {exc}") from exc
        return response.text

    async def _read_text(self, location: str) -> str:
        if is_remote(location):
            return await self._fetch(location)

        path = Path(location)
        if not path.is_file():
            raise MalformedArtifactError(location, "path does not exist - unable to digest document")
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedArtifactError(location, f"unable to read artifact: {exc}") from exc

    async def read(self, location: str) -> Artifact:
        """Read and validate the artifact at a location.

        Args:
            location: Local path or http(s) URL ending in .json, .yaml, or .yml.

        Returns:
            The parsed Artifact.

        Raises:
            MalformedArtifactError: If the artifact cannot be read, parsed, or
                validated.
        """
        text = await self._read_text(location)
        artifact = load_artifact(location, text)
        logger.debug(
            "Artifact read",
            location=location,
            artifact_uuid=artifact.uuid,
            result_count=len(artifact.results),
        )
        return artifact

    async def read_many(self, locations: list[str]) -> dict[str, Artifact]:
        """Read several artifacts concurrently.

        Locations naming the same file (for example `a.yaml` and `./a.yaml`)
        are read once, under the first spelling given.

        Args:
            locations: Paths or URLs.

        Returns:
            Mapping of location -> Artifact in input order.

        Raises:
            MalformedArtifactError: If any artifact is unusable.
        """
        by_identity: dict[str, str] = {}
        for location in locations:
            by_identity.setdefault(_identity(location), location)
        unique = list(by_identity.values())
        artifacts = await asyncio.gather(*(self.read(location) for location in unique))
        return dict(zip(unique, artifacts))

    async def write(self, artifact: Artifact) -> None:
        """Write an artifact back to its location, merging with what is there.

        On success artifact.assessment_results reflects what was written
        (a union merge gives it a new UUID and Result list).

        Args:
            artifact: The artifact to persist.

        Raises:
            PersistenceError: If the location is remote, the stored artifact
                cannot be parsed for merging, or the filesystem write fails.
        """
        location = artifact.location
        if is_remote(location):
            raise PersistenceError(location, "remote artifacts are read-only")

        async with self._lock_for(location):
            path = Path(location)
            if path.is_file():
                try:
                    existing_text = await asyncio.to_thread(path.read_text, encoding="utf-8")
                    existing = load_artifact(location, existing_text, artifact.format)
                except MalformedArtifactError as exc:
                    raise PersistenceError(location, f"existing artifact cannot be merged: {exc.message}") from exc
                except (OSError, UnicodeDecodeError) as exc:
                    raise PersistenceError(location, str(exc)) from exc
                artifact.assessment_results = merge_assessment_results(
                    existing.assessment_results, artifact.assessment_results
                )
                artifact.document = {**existing.document, **artifact.document}

            text = dump_artifact(artifact)
            try:
                await asyncio.to_thread(_write_atomically, path, text)
            except OSError as exc:
                raise PersistenceError(location, str(exc)) from exc

        logger.info(
            "Artifact written",
            location=location,
            artifact_uuid=artifact.uuid,
            result_count=len(artifact.results),
        )
