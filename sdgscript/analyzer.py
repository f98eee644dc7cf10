"""
sdgscript/analyzer.py
═════════════════════

Static analysis engine: runs the annotation extractor and the metric
estimator on every function declaration, then folds their outputs
through violation detection and scoring.

    declaration ─┬─► extract_annotations ──┐
                 │                         ├─► detect_violations ─► calculate_score
                 └─► MetricEstimator ──────┘
                                             ▼
                                       AnalysisResult

Declarations come from any source loader that satisfies the
:class:`Declaration` protocol; :mod:`sdgscript.source` provides one for
Python code.
"""

from __future__ import annotations

import ast
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Union,
)

from sdgscript.annotations import AnnotationExtractor
from sdgscript.estimator import MetricEstimator
from sdgscript.errors import SourceLoadError
from sdgscript.keywords import DEFAULT_KEYWORDS, KeywordTable
from sdgscript.scoring import calculate_score
from sdgscript.source import iter_source_files, load_declarations, load_file
from sdgscript.types import AnalysisResult, Severity, SourceLocation
from sdgscript.violations import detect_strict_violations, detect_violations

__all__ = [
    "Declaration",
    "AnalyzerOptions",
    "AnalysisSummary",
    "SustainabilityAnalyzer",
    "summarize",
]

_log = logging.getLogger(__name__)


class Declaration(Protocol):
    """What the engine needs from a source loader."""
    function_id: str
    doc_blocks: Sequence[str]
    body: Sequence[ast.AST]
    location: SourceLocation


@dataclass
class AnalyzerOptions:
    """
    Engine configuration.

    Attributes
    ----------
    keywords              : call classification table
    strict_mode           : enable the strict-mode violation rules
    default_carbon_budget : budget (kWh) applied to unannotated functions
                            in strict mode
    """
    keywords: KeywordTable = DEFAULT_KEYWORDS
    strict_mode: bool = False
    default_carbon_budget: float = 1.0


class SustainabilityAnalyzer:
    """Produces one :class:`AnalysisResult` per function declaration."""

    def __init__(self, options: Optional[AnalyzerOptions] = None):
        self.options = options or AnalyzerOptions()
        self.extractor = AnnotationExtractor()
        self.estimator = MetricEstimator(self.options.keywords)

    def analyze_declaration(self, decl: Declaration) -> AnalysisResult:
        annotations = self.extractor.extract(decl.doc_blocks)
        profile = self.estimator.profile(decl.body)
        metrics = profile.to_metrics()

        violations = detect_violations(metrics, annotations)
        if self.options.strict_mode:
            violations += detect_strict_violations(
                metrics,
                annotations,
                enters_context=profile.enters_context,
                default_budget=self.options.default_carbon_budget,
            )

        return AnalysisResult(
            function_id=decl.function_id,
            location=decl.location,
            annotations=tuple(annotations),
            metrics=metrics,
            violations=tuple(violations),
            score=calculate_score(metrics, violations, annotations),
        )

    def analyze_unit(self, declarations: Iterable[Declaration]) -> List[AnalysisResult]:
        return [self.analyze_declaration(d) for d in declarations]

    def analyze_source(self, source: str, filename: str = "<string>") -> List[AnalysisResult]:
        return self.analyze_unit(load_declarations(source, filename))

    def analyze_paths(self, paths: Iterable[Union[str, Path]]) -> List[AnalysisResult]:
        """
        Analyse every Python file under *paths*.

        Files that cannot be read or parsed are logged and skipped.
        """
        results: List[AnalysisResult] = []
        for path in iter_source_files(paths):
            try:
                declarations = load_file(path)
            except SourceLoadError as exc:
                _log.error("Skipping %s", exc)
                continue
            _log.info("Analyzing %s (%d functions)", path, len(declarations))
            results.extend(self.analyze_unit(declarations))
        return results


# ═════════════════════════════════════════════════════════════════════════
#  SUMMARY
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisSummary:
    """Project-level aggregation of analysis results."""
    total_functions: int = 0
    annotated_functions: int = 0
    violation_count: int = 0
    average_score: float = 0.0
    goal_coverage: Dict[str, int] = field(default_factory=dict)
    critical_issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_functions": self.total_functions,
            "annotated_functions": self.annotated_functions,
            "violation_count": self.violation_count,
            "average_score": round(self.average_score, 2),
            "goal_coverage": dict(self.goal_coverage),
            "critical_issues": list(self.critical_issues),
        }

    def generate_report(self) -> str:
        """Return a multi-line human-readable summary."""
        sep = "─" * 50
        lines = [
            "SDGs Analysis Summary",
            sep,
            f"Total functions analyzed:        {self.total_functions}",
            f"Functions with SDG annotations:  {self.annotated_functions}",
            f"Total violations:                {self.violation_count}",
            f"Average SDG score:               {self.average_score:.1f}/100",
        ]
        if self.goal_coverage:
            lines += ["", "SDGs Goals Coverage:"]
            lines += [f"  {goal}: {n} functions" for goal, n in self.goal_coverage.items()]
        if self.critical_issues:
            lines += ["", "Critical Issues:"]
            lines += [f"  * {msg}" for msg in self.critical_issues]
        return "\n".join(lines)


def summarize(results: Sequence[AnalysisResult], max_critical: int = 3) -> AnalysisSummary:
    """Aggregate *results*; an empty input gives an all-zero summary."""
    if not results:
        return AnalysisSummary()
    goals: Counter = Counter(
        ann.goal.value for r in results for ann in r.annotations
    )
    critical: List[str] = [
        v.message
        for r in results
        for v in r.violations
        if v.severity is Severity.ERROR
    ]
    return AnalysisSummary(
        total_functions=len(results),
        annotated_functions=sum(1 for r in results if r.annotations),
        violation_count=sum(len(r.violations) for r in results),
        average_score=sum(r.score for r in results) / len(results),
        goal_coverage=dict(goals),
        critical_issues=critical[:max_critical],
    )
