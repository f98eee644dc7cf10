"""
estimator.py — Static resource-metric estimation
=================================================

Heuristic estimate of the resource cost of a function body from its
syntax tree.  Nothing is executed and no hardware is measured; the figures
are structural proxies.

Theory
──────
Four signals are read from the body:

    n   network calls        (keyword table, category ``network``)
    io  I/O operations       (keyword table, category ``io``)
    k   heavy-inference calls (keyword table, category ``inference``)
    D   maximum lexical nesting depth of iteration constructs

and folded into

    compute_complexity = 10**D · 1000**k
    energy             = 0.01 + 0.001·n + 0.0005·io
                         + 0.01·log10(compute_complexity) + 50·k      [kWh]
    emissions          = 500 · energy                                 [gCO2]

Every call expression in the body counts, however deeply nested
(including nested functions, lambdas and comprehensions).  A call is
counted at most once per category.

Iteration constructs are ``for``, ``async for``, ``while`` and each
``for`` clause of a comprehension or generator expression.  The loop
iterable is evaluated outside the loop and does not add depth; the loop
body, a ``while`` condition and comprehension elements do.

A body also *iterates in a loop* when, inside a loop, it builds a
comprehension or calls one of :data:`ITERATION_HELPERS` (``map``,
``sorted``, ...).  That signal feeds the lint rules, not the energy model.

``compute_complexity`` saturates to ``inf`` past the float range; the
energy term uses the exact logarithm and stays finite.

The estimate is a pure function of the tree: identical structure always
yields identical metrics.
"""

from __future__ import annotations

import ast
import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Sequence, Tuple, Union

from sdgscript.keywords import CATEGORIES, DEFAULT_KEYWORDS, KeywordTable
from sdgscript.types import ResourceMetrics

__all__ = [
    "BASE_ENERGY",
    "NETWORK_CALL_ENERGY",
    "IO_OPERATION_ENERGY",
    "COMPLEXITY_ENERGY",
    "INFERENCE_ENERGY",
    "INFERENCE_COMPLEXITY",
    "LOOP_COMPLEXITY",
    "ITERATION_HELPERS",
    "BodyProfile",
    "MetricEstimator",
    "callee_segments",
    "estimate_metrics",
]

_log = logging.getLogger(__name__)

# Energy weights, kWh.
BASE_ENERGY: float = 0.01
NETWORK_CALL_ENERGY: float = 0.001
IO_OPERATION_ENERGY: float = 0.0005
COMPLEXITY_ENERGY: float = 0.01
INFERENCE_ENERGY: float = 50.0

# Complexity multipliers.
LOOP_COMPLEXITY: int = 10
INFERENCE_COMPLEXITY: int = 1000

# Callees that iterate their argument; calling one inside a loop body
# nests a hidden loop.
ITERATION_HELPERS = frozenset({
    "map",
    "filter",
    "sorted",
    "reduce",
    "any",
    "all",
    "sum",
})

Body = Union[ast.AST, Sequence[ast.AST]]


# ═════════════════════════════════════════════════════════════════════
# §1  CALLEE NAMES
# ═════════════════════════════════════════════════════════════════════

def callee_segments(func: ast.expr) -> Tuple[str, ...]:
    """
    Dotted name of a call's callee, as segments.

    ``requests.get`` → ``("requests", "get")``;
    ``client().send`` → ``("client", "()", "send")``;
    ``handlers[0]()`` → ``("handlers", "[]")``.
    Callee roots that are not names render as ``"<expr>"``.
    """
    parts: List[str] = []
    node: ast.AST = func
    while True:
        if isinstance(node, ast.Attribute):
            parts.append(node.attr)
            node = node.value
        elif isinstance(node, ast.Name):
            parts.append(node.id)
            break
        elif isinstance(node, ast.Call):
            parts.append("()")
            node = node.func
        elif isinstance(node, ast.Subscript):
            parts.append("[]")
            node = node.value
        else:
            parts.append("<expr>")
            break
    return tuple(reversed(parts))


# ═════════════════════════════════════════════════════════════════════
# §2  BODY SCANNER
# ═════════════════════════════════════════════════════════════════════

class _BodyScanner(ast.NodeVisitor):
    """Collects callee names and the deepest loop nesting of a body."""

    def __init__(self) -> None:
        self.callees: List[Tuple[str, ...]] = []
        self.depth = 0
        self.max_depth = 0
        self.iterates_in_loop = False

    @contextmanager
    def _nested(self, levels: int = 1) -> Iterator[None]:
        self.depth += levels
        self.max_depth = max(self.max_depth, self.depth)
        try:
            yield
        finally:
            self.depth -= levels

    def _visit_all(self, nodes: Sequence[ast.AST]) -> None:
        for n in nodes:
            self.visit(n)

    def visit_Call(self, node: ast.Call) -> None:
        callee = callee_segments(node.func)
        self.callees.append(callee)
        if self.depth and callee[-1] in ITERATION_HELPERS:
            self.iterates_in_loop = True
        self.generic_visit(node)

    def _visit_for(self, node: Union[ast.For, ast.AsyncFor]) -> None:
        self.visit(node.iter)
        with self._nested():
            self.visit(node.target)
            self._visit_all(node.body)
        self._visit_all(node.orelse)

    visit_For = _visit_for
    visit_AsyncFor = _visit_for

    def visit_While(self, node: ast.While) -> None:
        with self._nested():
            self.visit(node.test)
            self._visit_all(node.body)
        self._visit_all(node.orelse)

    def _visit_comprehension(self, node: ast.AST) -> None:
        generators: List[ast.comprehension] = node.generators  # type: ignore[attr-defined]
        if self.depth:
            self.iterates_in_loop = True
        first = generators[0]
        self.visit(first.iter)
        with self._nested(len(generators)):
            self.visit(first.target)
            self._visit_all(first.ifs)
            for gen in generators[1:]:
                self.visit(gen)
            if isinstance(node, ast.DictComp):
                self.visit(node.key)
                self.visit(node.value)
            else:
                self.visit(node.elt)  # type: ignore[attr-defined]

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension


# ═════════════════════════════════════════════════════════════════════
# §3  ESTIMATION
# ═════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BodyProfile:
    """Raw structural signals of one body, before the energy model."""
    network_calls: int = 0
    io_operations: int = 0
    inference_calls: int = 0
    loop_depth: int = 0
    enters_context: bool = False
    iterates_in_loop: bool = False
    callees: Tuple[Tuple[str, ...], ...] = field(default=(), repr=False)

    def _complexity(self) -> int:
        return (
            LOOP_COMPLEXITY ** self.loop_depth
            * INFERENCE_COMPLEXITY ** self.inference_calls
        )

    @property
    def compute_complexity(self) -> float:
        """``10**D · 1000**k``; ``inf`` once it leaves the float range."""
        try:
            return float(self._complexity())
        except OverflowError:
            return math.inf

    def to_metrics(self) -> ResourceMetrics:
        complexity = self.compute_complexity
        energy = BASE_ENERGY
        energy += self.network_calls * NETWORK_CALL_ENERGY
        energy += self.io_operations * IO_OPERATION_ENERGY
        # log10 of the exact integer stays finite where the float is inf
        energy += math.log10(self._complexity()) * COMPLEXITY_ENERGY
        energy += self.inference_calls * INFERENCE_ENERGY
        return ResourceMetrics.from_energy(
            energy,
            network_calls=self.network_calls,
            io_operations=self.io_operations,
            compute_complexity=complexity,
        )


def _body_nodes(body: Body) -> Sequence[ast.AST]:
    if isinstance(body, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return body.body
    if isinstance(body, ast.Lambda):
        return [body.body]
    if isinstance(body, ast.AST):
        return [body]
    return list(body)


class MetricEstimator:
    """
    Static estimator bound to one keyword table.

    Parameters
    ----------
    keywords : KeywordTable
        Call classification table (defaults to :data:`DEFAULT_KEYWORDS`).
    """

    def __init__(self, keywords: KeywordTable = DEFAULT_KEYWORDS):
        self.keywords = keywords

    @staticmethod
    def _scan(body: Body) -> _BodyScanner:
        scanner = _BodyScanner()
        for node in _body_nodes(body):
            scanner.visit(node)
        return scanner

    def _count(self, callees: Sequence[Tuple[str, ...]]) -> Dict[str, int]:
        counts = dict.fromkeys(CATEGORIES, 0)
        for callee in callees:
            for cat in self.keywords.categories_of(callee):
                counts[cat] += 1
        return counts

    def profile(self, body: Body) -> BodyProfile:
        """Scan *body* (statements, an expression, or a function node)."""
        scanner = self._scan(body)
        counts = self._count(scanner.callees)
        return BodyProfile(
            network_calls=counts["network"],
            io_operations=counts["io"],
            inference_calls=counts["inference"],
            loop_depth=scanner.max_depth,
            enters_context=counts["context"] > 0,
            iterates_in_loop=scanner.iterates_in_loop,
            callees=tuple(scanner.callees),
        )

    def loop_depth(self, body: Body) -> int:
        """Maximum lexical nesting depth of iteration constructs in *body*."""
        return self._scan(body).max_depth

    def classify_calls(self, body: Body) -> Dict[str, int]:
        """Number of calls in *body* per keyword category."""
        return self._count(self._scan(body).callees)

    def estimate(self, body: Body) -> ResourceMetrics:
        profile = self.profile(body)
        metrics = profile.to_metrics()
        _log.debug(
            "Estimated %d calls, depth %d → %.4f kWh",
            len(profile.callees), profile.loop_depth, metrics.energy,
        )
        return metrics

    def estimate_source(self, source: str) -> ResourceMetrics:
        """Estimate a code snippet as if it were one function body."""
        return self.estimate(ast.parse(source).body)


_DEFAULT_ESTIMATOR = MetricEstimator()


def estimate_metrics(
    body: Body, keywords: KeywordTable = DEFAULT_KEYWORDS,
) -> ResourceMetrics:
    """Estimate the resource metrics of one function body."""
    if keywords is DEFAULT_KEYWORDS:
        return _DEFAULT_ESTIMATOR.estimate(body)
    return MetricEstimator(keywords).estimate(body)
