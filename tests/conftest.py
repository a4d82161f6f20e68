"""Test fixtures for aumos-evidence-evaluator.

Provides:
- settings: Default Settings, independent of the environment cache
- split_settings: Settings reporting disappeared findings in removed-* buckets
- store: A fresh ArtifactStore
- engine: An EvaluationEngine built from the default settings
- reset_logging: Restores structlog defaults after every test
"""

import pytest
import structlog

from aumos_evidence_evaluator.artifacts.store import ArtifactStore
from aumos_evidence_evaluator.evaluation.engine import EvaluationEngine
from aumos_evidence_evaluator.settings import Settings


@pytest.fixture()
def settings() -> Settings:
    """Return default evaluator settings.

    Returns:
        A Settings instance with every field at its default.
    """
    return Settings()


@pytest.fixture()
def split_settings() -> Settings:
    """Return settings that split disappeared findings by prior state."""
    return Settings(split_removed_findings=True)


@pytest.fixture()
def store() -> ArtifactStore:
    """Return an ArtifactStore with no shared HTTP client."""
    return ArtifactStore()


@pytest.fixture()
def engine(settings: Settings) -> EvaluationEngine:
    """Return an EvaluationEngine using the default settings.

    Args:
        settings: Injected default settings fixture.
    """
    return EvaluationEngine(settings)


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any configure_logging() call made by a CLI test."""
    yield
    structlog.reset_defaults()
