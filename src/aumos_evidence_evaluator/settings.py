"""Service-specific settings for aumos-evidence-evaluator.

Evaluator settings use the AUMOS_EVALUATOR_ prefix and cover:
- Target grouping defaults
- Threshold advancement and bucket policies
- Remote artifact fetching
- Logging output
- Generated artifact metadata
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for aumos-evidence-evaluator.

    Environment variable prefix: AUMOS_EVALUATOR_
    """

    service_name: str = "aumos-evidence-evaluator"

    # -------------------------------------------------------------------------
    # Grouping and threshold policy
    # -------------------------------------------------------------------------

    default_target: str = Field(
        default="default",
        description="Target name assigned to results that carry no target property. "
        "Keeps artifacts written before multi-target support comparable.",
    )
    advance_on_improvement_only: bool = Field(
        default=False,
        description="When true, a passing evaluation only moves the threshold to the latest "
        "result if at least one new passing finding was found. Otherwise the existing "
        "threshold is re-asserted.",
    )
    split_removed_findings: bool = Field(
        default=False,
        description="When true, findings that disappear from the latest result are reported in "
        "removed-satisfied / removed-not-satisfied instead of no-longer-satisfied. "
        "Either way the evaluation fails.",
    )

    # -------------------------------------------------------------------------
    # Remote artifacts
    # -------------------------------------------------------------------------

    remote_fetch_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout in seconds for fetching http(s) artifacts.",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(default="INFO", description="Minimum log level emitted to stderr.")
    log_json: bool = Field(default=False, description="Render log lines as JSON objects.")

    # -------------------------------------------------------------------------
    # Generated artifact metadata
    # -------------------------------------------------------------------------

    artifact_title: str = Field(
        default="[System Name] Security Assessment Results (SAR)",
        description="Metadata title stamped on newly generated artifacts.",
    )
    artifact_version: str = Field(
        default="0.0.1",
        description="Metadata version stamped on newly generated artifacts.",
    )

    model_config = SettingsConfigDict(env_prefix="AUMOS_EVALUATOR_")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance.

    Returns:
        Settings loaded from the environment on first call.
    """
    return Settings()
