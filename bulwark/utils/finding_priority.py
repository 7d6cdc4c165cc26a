"""Severity scale and finding prioritization."""

from enum import Enum


class Severity(Enum):
    """Ordered severity levels (low < medium < high < critical)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more severe."""
        return SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

# Report ordering: 0 sorts first
PRIORITY_ORDER = {
    "critical": 0,
    "high": 1,
    "medium": 2,
    "low": 3,
}

SEVERITY_MAPPINGS = {
    4: "critical",
    3: "high",
    2: "medium",
    1: "low",
    "fatal": "critical",
    "blocker": "critical",
    "error": "high",
    "major": "high",
    "warning": "medium",
    "warn": "medium",
    "moderate": "medium",
    "minor": "low",
    "info": "low",
    "note": "low",
    "informational": "low",
    "critical": "critical",
    "high": "high",
    "medium": "medium",
    "low": "low",
}


def normalize_severity(severity_value) -> Severity:
    """Normalize severity from the formats knowledge bases use to a Severity.

    Raises:
        ValueError: the value cannot be mapped onto the four-level scale.
    """
    if isinstance(severity_value, Severity):
        return severity_value

    if severity_value is None:
        raise ValueError("severity is required")

    if isinstance(severity_value, bool):
        raise ValueError(f"invalid severity: {severity_value!r}")

    if isinstance(severity_value, (int, float)):
        if isinstance(severity_value, float) and 0.0 <= severity_value <= 1.0:
            if severity_value >= 0.9:
                return Severity.CRITICAL
            elif severity_value >= 0.7:
                return Severity.HIGH
            elif severity_value >= 0.4:
                return Severity.MEDIUM
            else:
                return Severity.LOW
        mapped = SEVERITY_MAPPINGS.get(int(severity_value))
    else:
        mapped = SEVERITY_MAPPINGS.get(str(severity_value).lower().strip())

    if mapped is None:
        raise ValueError(f"invalid severity: {severity_value!r}")
    return Severity(mapped)


def priority(severity: Severity) -> int:
    """Sort position for a severity (critical first)."""
    return PRIORITY_ORDER[severity.value]
