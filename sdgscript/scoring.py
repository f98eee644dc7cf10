"""
scoring.py — SDG compliance score (0-100)
==========================================

    score = 100
          - 20 per error violation
          - 10 per warning violation
          + 10 if energy < 0.1 kWh,  - 15 if energy > 10 kWh
          +  5 per annotation

clamped to [0, 100].
"""

from __future__ import annotations

from typing import Sequence

from sdgscript.types import Annotation, ResourceMetrics, Severity, Violation

__all__ = [
    "ERROR_PENALTY",
    "WARNING_PENALTY",
    "ANNOTATION_BONUS",
    "energy_adjustment",
    "calculate_score",
]

ERROR_PENALTY: float = 20.0
WARNING_PENALTY: float = 10.0
ANNOTATION_BONUS: float = 5.0

LOW_ENERGY_THRESHOLD: float = 0.1
HIGH_ENERGY_THRESHOLD: float = 10.0
LOW_ENERGY_BONUS: float = 10.0
HIGH_ENERGY_PENALTY: float = 15.0


def _clamp(val: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, val))


def energy_adjustment(energy: float) -> float:
    if energy < LOW_ENERGY_THRESHOLD:
        return LOW_ENERGY_BONUS
    if energy > HIGH_ENERGY_THRESHOLD:
        return -HIGH_ENERGY_PENALTY
    return 0.0


def calculate_score(
    metrics: ResourceMetrics,
    violations: Sequence[Violation],
    annotations: Sequence[Annotation],
) -> float:
    score = 100.0
    for v in violations:
        score -= ERROR_PENALTY if v.severity is Severity.ERROR else WARNING_PENALTY
    score += energy_adjustment(metrics.energy)
    score += ANNOTATION_BONUS * len(annotations)
    return _clamp(score)
