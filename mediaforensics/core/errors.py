"""
Engine error taxonomy.

DecodeError and ExtractionTimeout are fatal to one modality only;
CatalogUnavailable degrades novelty tracking to "unknown";
AnalysisUnavailable is raised when every modality of a case failed.
"""


class ForensicsError(Exception):
    """Base class for engine errors."""


class DecodeError(ForensicsError):
    """Unsupported or corrupt media."""


class ExtractionError(ForensicsError):
    """A modality extractor could not produce a result."""


class ExtractionTimeout(ExtractionError):
    """A modality exceeded its time budget."""


class CatalogUnavailable(ForensicsError):
    """The pattern catalog could not be reached in time."""


class AnalysisUnavailable(ForensicsError):
    """All modalities failed."""

    def __init__(self, failures: dict[str, str]):
        self.failures = failures
        detail = ", ".join(f"{name}: {reason}" for name, reason in failures.items())
        super().__init__(f"All modalities failed ({detail})")


class AnalysisCancelled(ForensicsError):
    """The caller aborted the analysis."""


class InvalidTransition(ForensicsError):
    """A job was moved to a state its current state cannot reach."""
