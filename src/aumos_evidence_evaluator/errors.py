"""Exception taxonomy for the evidence evaluator.

Only two evaluation problems are exceptional:
- MalformedArtifactError: an input artifact cannot be used at all. Raised
  before any write-back happens.
- PersistenceError: an artifact could not be written back. Collected per
  location by the caller and never merged into a single error.

EvaluationError guards the classifier's preconditions. Insufficient evidence
and regressions are evaluation outcomes, not exceptions.
"""


class EvaluatorError(Exception):
    """Base error for evaluator failures.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        """Initialize EvaluatorError.

        Args:
            message: Error description.
        """
        super().__init__(message)
        self.message = message


class MalformedArtifactError(EvaluatorError):
    """Raised when an artifact does not parse or lacks the result structure.

    Attributes:
        location: Path or URL of the offending artifact.
    """

    def __init__(self, location: str, message: str) -> None:
        """Initialize MalformedArtifactError.

        Args:
            location: Path or URL of the artifact.
            message: What is wrong with it.
        """
        super().__init__(f"{location}: {message}")
        self.location = location


class EvaluationError(EvaluatorError):
    """Raised when two results cannot be compared."""


class PersistenceError(EvaluatorError):
    """Raised when an artifact cannot be written back to its location.

    Attributes:
        location: Path or URL the write targeted.
        reason: The underlying failure description.
    """

    def __init__(self, location: str, reason: str) -> None:
        """Initialize PersistenceError.

        Args:
            location: Path or URL the write targeted.
            reason: The underlying failure description.
        """
        super().__init__(f"failed to write {location}: {reason}")
        self.location = location
        self.reason = reason
