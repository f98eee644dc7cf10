"""
sdgscript/types.py
══════════════════

Shared data model for the static analysis engine and the runtime
context tracker.

    Annotation ──┐
                 ├──► detect_violations ──► Violation[] ──┐
    ResourceMetrics ─────────────────────────────────────┴──► calculate_score
                                                               │
                                                   AnalysisResult ◄┘

Every ``ResourceMetrics`` instance produced by this package satisfies
``emissions == energy * GRID_EMISSION_FACTOR``.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

__all__ = [
    "GRID_EMISSION_FACTOR",
    "SdgGoal",
    "ImpactCategory",
    "ImpactLevel",
    "Impact",
    "Annotation",
    "ResourceMetrics",
    "ViolationKind",
    "Severity",
    "Violation",
    "SourceLocation",
    "AnalysisResult",
    "METRIC_FIELDS",
]

# Grid emission factor, gCO2 per kWh.
GRID_EMISSION_FACTOR: float = 500.0


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — ANNOTATION MODEL
# ═════════════════════════════════════════════════════════════════════════

class SdgGoal(enum.Enum):
    """The 17 UN Sustainable Development Goals."""
    GOAL1 = "Goal1_NoPoverty"
    GOAL2 = "Goal2_ZeroHunger"
    GOAL3 = "Goal3_GoodHealth"
    GOAL4 = "Goal4_QualityEducation"
    GOAL5 = "Goal5_GenderEquality"
    GOAL6 = "Goal6_CleanWater"
    GOAL7 = "Goal7_AffordableEnergy"
    GOAL8 = "Goal8_DecentWork"
    GOAL9 = "Goal9_Innovation"
    GOAL10 = "Goal10_ReducedInequalities"
    GOAL11 = "Goal11_SustainableCities"
    GOAL12 = "Goal12_ResponsibleConsumption"
    GOAL13 = "Goal13_ClimateAction"
    GOAL14 = "Goal14_LifeBelowWater"
    GOAL15 = "Goal15_LifeOnLand"
    GOAL16 = "Goal16_Peace"
    GOAL17 = "Goal17_Partnerships"

    @classmethod
    def from_tag(cls, tag: str) -> Optional["SdgGoal"]:
        """Resolve ``"Goal13"`` to ``SdgGoal.GOAL13``; ``None`` if unknown."""
        m = re.fullmatch(r"Goal(\d+)", tag)
        if not m:
            return None
        return cls.__members__.get(f"GOAL{m.group(1)}")

    @classmethod
    def coerce(cls, value: Any) -> Optional["SdgGoal"]:
        """Accept a member, its value (``Goal13_ClimateAction``) or its tag."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        for goal in cls:
            if goal.value == value:
                return goal
        return cls.from_tag(value.split("_", 1)[0])


class ImpactCategory(enum.Enum):
    ENVIRONMENT = "environment"
    SOCIAL = "social"
    ECONOMIC = "economic"
    GOVERNANCE = "governance"


class ImpactLevel(enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Impact:
    category: ImpactCategory
    level: ImpactLevel

    def to_dict(self) -> Dict[str, str]:
        return {"category": self.category.value, "level": self.level.value}


@dataclass(frozen=True)
class Annotation:
    """
    Declared sustainability intent of one function, extracted from one
    documentation block.

    Attributes
    ----------
    goal          : SDG the function contributes to
    carbon_budget : energy ceiling in kWh (None = no budget)
    impact        : (category, level) pair
    description   : free text
    tags          : ordered tag list
    """
    goal: SdgGoal
    carbon_budget: Optional[float] = None
    impact: Optional[Impact] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "goal": self.goal.value,
            "carbon_budget": self.carbon_budget,
            "impact": self.impact.to_dict() if self.impact else None,
            "description": self.description,
            "tags": list(self.tags),
        }


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — RESOURCE METRICS
# ═════════════════════════════════════════════════════════════════════════

METRIC_FIELDS: Tuple[str, ...] = (
    "energy",
    "emissions",
    "memory",
    "network_calls",
    "io_operations",
    "compute_complexity",
)


@dataclass(frozen=True)
class ResourceMetrics:
    """
    Resource-use estimate (static) or accumulation (runtime).

    Units: energy in kWh, emissions in gCO2, memory in MB (peak).
    ``compute_complexity`` is a unitless multiplier, at least 1.

    Build instances through :meth:`zero`, :meth:`from_energy` or
    :meth:`merged` so that emissions stay derived from energy.
    """
    energy: float = 0.0
    emissions: float = 0.0
    memory: float = 0.0
    network_calls: int = 0
    io_operations: int = 0
    compute_complexity: float = 1.0

    @classmethod
    def zero(cls) -> "ResourceMetrics":
        return cls()

    @classmethod
    def from_energy(
        cls,
        energy: float,
        *,
        memory: float = 0.0,
        network_calls: int = 0,
        io_operations: int = 0,
        compute_complexity: float = 1.0,
    ) -> "ResourceMetrics":
        return cls(
            energy=energy,
            emissions=energy * GRID_EMISSION_FACTOR,
            memory=memory,
            network_calls=network_calls,
            io_operations=io_operations,
            compute_complexity=compute_complexity,
        )

    def merged(self, usage: Mapping[str, float]) -> "ResourceMetrics":
        """
        Fold a partial usage record into this total.

        ``energy``, ``network_calls`` and ``io_operations`` add up;
        ``memory`` keeps the peak.  ``emissions`` is re-derived from the
        new energy total; ``compute_complexity`` is not accumulated.
        """
        energy = self.energy + float(usage.get("energy", 0.0) or 0.0)
        return replace(
            self,
            energy=energy,
            emissions=energy * GRID_EMISSION_FACTOR,
            memory=max(self.memory, float(usage.get("memory", 0.0) or 0.0)),
            network_calls=self.network_calls + int(usage.get("network_calls", 0) or 0),
            io_operations=self.io_operations + int(usage.get("io_operations", 0) or 0),
        )

    def to_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in METRIC_FIELDS}


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — VIOLATIONS & RESULTS
# ═════════════════════════════════════════════════════════════════════════

class ViolationKind(enum.Enum):
    CARBON_BUDGET_EXCEEDED = "carbon_budget_exceeded"
    INEFFICIENT_ALGORITHM = "inefficient_algorithm"
    HIGH_IMPACT_NO_ANNOTATION = "high_impact_no_annotation"
    MISSING_CONTEXT = "missing_context"


class Severity(enum.Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    severity: Severity
    message: str
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "severity": self.severity.value,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code."""
    file: str = ""
    line: int = 0

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of analysing one function declaration.  Read-only."""
    function_id: str
    location: SourceLocation
    annotations: Tuple[Annotation, ...] = ()
    metrics: ResourceMetrics = field(default_factory=ResourceMetrics)
    violations: Tuple[Violation, ...] = ()
    score: float = 100.0

    @property
    def errors(self) -> Tuple[Violation, ...]:
        return tuple(v for v in self.violations if v.severity is Severity.ERROR)

    @property
    def warnings(self) -> Tuple[Violation, ...]:
        return tuple(v for v in self.violations if v.severity is Severity.WARNING)

    def to_dict(self) -> Dict[str, Any]:
        """Dictionary suitable for ``json.dumps``."""
        return {
            "function": self.function_id,
            "file": self.location.file,
            "line": self.location.line,
            "annotations": [a.to_dict() for a in self.annotations],
            "metrics": self.metrics.to_dict(),
            "violations": [v.to_dict() for v in self.violations],
            "score": self.score,
        }
