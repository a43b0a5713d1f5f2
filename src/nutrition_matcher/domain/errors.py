"""Error taxonomy for the matching engine."""

from dataclasses import dataclass


class MatcherError(Exception):
    """Base class for matching engine errors."""


class ConfigurationError(MatcherError):
    """Weight or cap policy is missing or invalid."""


class InvalidInput(MatcherError):
    """Request arguments were rejected before any side effect."""


class CandidateSourceError(MatcherError):
    """Candidate source failed for a single tier."""


class CandidateSourceTimeout(CandidateSourceError):
    """Candidate source did not answer within the tier timeout."""


class CacheUnavailable(MatcherError):
    """Cache backend could not be reached."""


class ProfileStoreError(MatcherError):
    """Profile store lookup failed."""


class SubjectNotFound(MatcherError):
    """Subject is unknown to the tenant or no longer active."""


class MalformedCandidateData(MatcherError):
    """A safety-relevant candidate field could not be read."""

    def __init__(self, field_name: str, value: object) -> None:
        super().__init__(f"Unreadable {field_name}: {value!r}")
        self.field_name = field_name


@dataclass(frozen=True)
class MatchError:
    """Per-subject failure marker returned by batch matching."""

    subject_id: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, subject_id: str, exc: Exception) -> "MatchError":
        """Build a marker from a raised exception."""
        return cls(
            subject_id=subject_id,
            error_type=type(exc).__name__,
            message=str(exc),
        )
