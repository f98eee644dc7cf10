"""sdgscript — sustainability annotations and resource-cost analysis for Python.

Functions declare their intended sustainability impact in docstrings or
leading comments (``@sdg``, ``@carbonBudget``, ``@impact``, ...).  The
static engine estimates each function's resource cost from its syntax
tree, checks it against the declared budgets and scores the result; the
runtime tracker accumulates actual usage of execution scopes and flags
budget overruns as they close.

Submodules
----------
types
    Shared data model: ``SdgGoal``, ``Annotation``, ``ResourceMetrics``,
    ``Violation``, ``AnalysisResult``.

annotations
    Parsimonious grammar for documentation blocks and the
    ``AnnotationExtractor``.

keywords
    Call classification tables (network / io / inference / context),
    loadable from S-expression files.

estimator
    Static metric estimation from function bodies.

violations, scoring
    Budget / efficiency checks and the 0-100 compliance score.

source
    Python source front-end: function declarations with their
    documentation blocks.

analyzer
    ``SustainabilityAnalyzer`` pipeline and project summaries.

rules
    Lint-style yes/no checks for editor and CI integrations.

runtime
    ``ContextRegistry`` runtime tracker and ``tracked_network_call``.

cli
    Command-line entry point (``sdgscript analyze ...``).

Usage
-----
Command-line::

    python -m sdgscript analyze src/ --format summary

Programmatic::

    from sdgscript import SustainabilityAnalyzer

    results = SustainabilityAnalyzer().analyze_source(code, "app.py")
    for r in results:
        print(r.function_id, r.score, [v.message for v in r.violations])
"""

from __future__ import annotations

import logging

__version__: str = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from sdgscript.errors import (  # noqa: E402
    ContextCollisionError,
    KeywordTableError,
    SdgScriptError,
    SourceLoadError,
)
from sdgscript.types import (  # noqa: E402
    AnalysisResult,
    Annotation,
    Impact,
    ImpactCategory,
    ImpactLevel,
    ResourceMetrics,
    SdgGoal,
    Severity,
    SourceLocation,
    Violation,
    ViolationKind,
)
from sdgscript.annotations import extract_annotations  # noqa: E402
from sdgscript.keywords import DEFAULT_KEYWORDS, KeywordTable, load_keyword_table  # noqa: E402
from sdgscript.estimator import MetricEstimator, estimate_metrics  # noqa: E402
from sdgscript.violations import detect_violations  # noqa: E402
from sdgscript.scoring import calculate_score  # noqa: E402
from sdgscript.analyzer import (  # noqa: E402
    AnalysisSummary,
    AnalyzerOptions,
    SustainabilityAnalyzer,
    summarize,
)
from sdgscript.runtime import (  # noqa: E402
    CollisionPolicy,
    Context,
    ContextRegistry,
    EventType,
    TrackingEvent,
    tracked_network_call,
)

__all__: list[str] = [
    "__version__",
    # errors
    "SdgScriptError",
    "KeywordTableError",
    "SourceLoadError",
    "ContextCollisionError",
    # data model
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
    # static analysis
    "extract_annotations",
    "KeywordTable",
    "DEFAULT_KEYWORDS",
    "load_keyword_table",
    "MetricEstimator",
    "estimate_metrics",
    "detect_violations",
    "calculate_score",
    "AnalyzerOptions",
    "SustainabilityAnalyzer",
    "AnalysisSummary",
    "summarize",
    # runtime
    "Context",
    "ContextRegistry",
    "CollisionPolicy",
    "EventType",
    "TrackingEvent",
    "tracked_network_call",
]
