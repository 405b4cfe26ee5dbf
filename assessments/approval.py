from __future__ import annotations

from dataclasses import dataclass

from .constants import APPROVAL_THRESHOLDS, DEFAULT_APPROVAL_THRESHOLD


@dataclass(frozen=True)
class Approval:
    approved: bool
    threshold: float


def threshold_for(level) -> float:
    # Unknown levels use the mid-level bar instead of failing.
    return APPROVAL_THRESHOLDS.get(level, DEFAULT_APPROVAL_THRESHOLD)


def evaluate(level, score: float) -> Approval:
    """Map a seniority level and a 0-50 score to a pass/fail verdict."""
    threshold = threshold_for(level)
    return Approval(approved=score >= threshold, threshold=threshold)
