"""
violations.py — Budget and efficiency violation detection
==========================================================

Rules, evaluated independently and emitted in this order:

  1. carbon_budget_exceeded     (error)   one per annotation whose budget
                                          is below the estimated energy
  2. inefficient_algorithm      (warning) compute_complexity > 1000
  3. high_impact_no_annotation  (warning) energy > 10 kWh, no annotation

Strict-mode rules (opt-in, appended after the three above):

  4. carbon_budget_exceeded     (error)   unannotated function above the
                                          project-wide default budget
  5. missing_context            (warning) budgeted function whose body
                                          never opens a tracking scope
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from sdgscript.types import (
    Annotation,
    ResourceMetrics,
    Severity,
    Violation,
    ViolationKind,
)

__all__ = [
    "COMPLEXITY_THRESHOLD",
    "HIGH_ENERGY_THRESHOLD",
    "detect_violations",
    "detect_strict_violations",
]

COMPLEXITY_THRESHOLD: float = 1000.0
HIGH_ENERGY_THRESHOLD: float = 10.0

_BUDGET_SUGGESTION = "Consider optimizing algorithms or reducing network calls"


def _budget_violation(energy: float, budget: float) -> Violation:
    return Violation(
        kind=ViolationKind.CARBON_BUDGET_EXCEEDED,
        severity=Severity.ERROR,
        message=(
            f"Energy usage ({energy:.3f}kWh) exceeds carbon budget "
            f"({budget:.3f}kWh)"
        ),
        suggestion=_BUDGET_SUGGESTION,
    )


def detect_violations(
    metrics: ResourceMetrics, annotations: Sequence[Annotation],
) -> List[Violation]:
    """Compare *metrics* against the budgets declared in *annotations*."""
    violations: List[Violation] = []

    for ann in annotations:
        if ann.carbon_budget is not None and metrics.energy > ann.carbon_budget:
            violations.append(_budget_violation(metrics.energy, ann.carbon_budget))

    if metrics.compute_complexity > COMPLEXITY_THRESHOLD:
        violations.append(Violation(
            kind=ViolationKind.INEFFICIENT_ALGORITHM,
            severity=Severity.WARNING,
            message="High computational complexity detected",
            suggestion="Consider using more efficient algorithms or caching",
        ))

    if metrics.energy > HIGH_ENERGY_THRESHOLD and not annotations:
        violations.append(Violation(
            kind=ViolationKind.HIGH_IMPACT_NO_ANNOTATION,
            severity=Severity.WARNING,
            message="High energy consumption function lacks SDG annotations",
            suggestion="Add @sdg annotation to document sustainability impact",
        ))

    return violations


def detect_strict_violations(
    metrics: ResourceMetrics,
    annotations: Sequence[Annotation],
    *,
    enters_context: bool,
    default_budget: Optional[float] = None,
) -> List[Violation]:
    """Extra checks applied only when the analyzer runs in strict mode."""
    violations: List[Violation] = []

    if not annotations and default_budget is not None and metrics.energy > default_budget:
        violations.append(_budget_violation(metrics.energy, default_budget))

    budgeted = any(a.carbon_budget is not None for a in annotations)
    if budgeted and not enters_context:
        violations.append(Violation(
            kind=ViolationKind.MISSING_CONTEXT,
            severity=Severity.WARNING,
            message="Function declares a carbon budget but never opens a tracking context",
            suggestion="Wrap the work in ContextRegistry.tracking() to measure actual usage",
        ))

    return violations
