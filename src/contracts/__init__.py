"""Attack Contract — canonical data structures shared by all modules."""

from src.contracts.attack import Attack, MitigationAttempt
from src.contracts.enums import SEVERITY_MAX, SEVERITY_MIN, RecordKey, Vocabulary
from src.contracts.errors import (
    DataInconsistencyError,
    DuplicateTagError,
    NoActiveEventError,
    TrackerError,
    ValidationError,
)

__all__ = [
    "Attack",
    "DataInconsistencyError",
    "DuplicateTagError",
    "MitigationAttempt",
    "NoActiveEventError",
    "RecordKey",
    "SEVERITY_MAX",
    "SEVERITY_MIN",
    "TrackerError",
    "ValidationError",
    "Vocabulary",
]
