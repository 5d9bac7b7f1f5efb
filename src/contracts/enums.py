"""Canonical enumerations and bounds for the attack contract."""

from __future__ import annotations

from enum import Enum

SEVERITY_MIN = 1
SEVERITY_MAX = 10


class Vocabulary(str, Enum):
    TRIGGERS = "triggers"
    MITIGATIONS = "mitigations"


# Persisted record names (one key/value record each)
class RecordKey(str, Enum):
    ATTACKS = "attacks"
    TRIGGERS = "locationTriggers"
    MITIGATIONS = "mitigations"
