"""Typed failures raised by the tracker core."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for every failure the tracker surfaces to a caller."""


class ValidationError(TrackerError):
    """Out-of-range severity, empty tag selection, bad timestamp, end before start."""


class NoActiveEventError(TrackerError):
    """A mitigation or end was requested while no attack is in progress."""


class DuplicateTagError(TrackerError):
    """The tag is already present in its vocabulary."""

    def __init__(self, vocabulary: str, tag: str) -> None:
        super().__init__(f"Tag {tag!r} already exists in {vocabulary}")
        self.vocabulary = vocabulary
        self.tag = tag


class DataInconsistencyError(TrackerError):
    """Persisted data violates a store invariant (reported on load, not raised)."""
