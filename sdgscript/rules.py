"""
rules.py — Lint-style decisions for editor / CI integrations
=============================================================

Each rule answers one yes/no question about a declaration.  Message text,
diagnostic placement and auto-fixes belong to the integrating tool; the
stub below is offered as a default fix text.

    requires_annotation      high-impact function without @sdg/@carbonBudget
    has_inefficient_loops    nested iteration (depth > 1)
    has_iteration_in_loop    map/filter/sorted/... or a comprehension inside a loop
    exceeds_network_calls    more network calls than allowed
"""

from __future__ import annotations

from typing import Optional

from sdgscript.analyzer import Declaration
from sdgscript.annotations import mentions_sdg
from sdgscript.estimator import MetricEstimator

__all__ = [
    "ANNOTATION_STUB",
    "requires_annotation",
    "has_inefficient_loops",
    "has_iteration_in_loop",
    "exceeds_network_calls",
]

ANNOTATION_STUB = (
    "@sdg Goal13 ClimateAction\n"
    "@carbonBudget 1.0kWh\n"
    "@impact environment medium\n"
)

_ESTIMATOR = MetricEstimator()


def requires_annotation(
    decl: Declaration,
    energy_threshold: float = 1.0,
    network_call_threshold: int = 5,
    estimator: Optional[MetricEstimator] = None,
) -> bool:
    """
    True when *decl* carries no ``@sdg`` / ``@carbonBudget`` tag yet looks
    high-impact: estimated energy at or above *energy_threshold*, at least
    *network_call_threshold* network calls, any heavy-inference call, or
    nested loops.
    """
    if mentions_sdg(decl.doc_blocks):
        return False
    profile = (estimator or _ESTIMATOR).profile(decl.body)
    metrics = profile.to_metrics()
    return (
        metrics.energy >= energy_threshold
        or profile.network_calls >= network_call_threshold
        or profile.inference_calls > 0
        or profile.loop_depth > 1
    )


def has_inefficient_loops(
    decl: Declaration, estimator: Optional[MetricEstimator] = None,
) -> bool:
    return (estimator or _ESTIMATOR).loop_depth(decl.body) > 1


def has_iteration_in_loop(
    decl: Declaration, estimator: Optional[MetricEstimator] = None,
) -> bool:
    """True when a loop body builds a comprehension or calls an iteration helper."""
    return (estimator or _ESTIMATOR).profile(decl.body).iterates_in_loop


def exceeds_network_calls(
    decl: Declaration,
    max_calls: int = 3,
    estimator: Optional[MetricEstimator] = None,
) -> bool:
    return (estimator or _ESTIMATOR).classify_calls(decl.body)["network"] > max_calls
