# tests/test_rules.py
"""
Tests for the lint-style rule helpers.
"""

import pytest

from sdgscript.annotations import extract_annotations
from sdgscript.estimator import MetricEstimator
from sdgscript.keywords import KeywordTable
from sdgscript.rules import (
    ANNOTATION_STUB,
    exceeds_network_calls,
    has_inefficient_loops,
    has_iteration_in_loop,
    requires_annotation,
)
from sdgscript.source import load_declarations


def _decl(src: str):
    (decl,) = load_declarations(src)
    return decl


def _calls(n: int) -> str:
    body = "".join(f"    fetch(u{i})\n" for i in range(n))
    return "def f():\n" + body


class TestRequiresAnnotation:

    def test_inference_needs_annotation(self):
        assert requires_annotation(_decl("def f(x):\n    return model.predict(x)\n"))

    def test_annotated_function_is_exempt(self):
        src = "# @carbonBudget 100kWh\ndef f(x):\n    return model.predict(x)\n"
        assert not requires_annotation(_decl(src))

    def test_docstring_annotation_counts(self):
        src = 'def f(x):\n    """@sdg Goal9"""\n    return model.predict(x)\n'
        assert not requires_annotation(_decl(src))

    def test_plain_function(self):
        assert not requires_annotation(_decl("def f(x):\n    return x + 1\n"))

    def test_nested_loops(self):
        src = "def f(m):\n    for r in m:\n        for c in r:\n            pass\n"
        assert requires_annotation(_decl(src))

    @pytest.mark.parametrize("n,expected", [(4, False), (5, True)])
    def test_network_threshold(self, n, expected):
        assert requires_annotation(_decl(_calls(n))) is expected

    def test_energy_threshold(self):
        decl = _decl("def f(x):\n    return x + 1\n")
        assert requires_annotation(decl, energy_threshold=0.01)

    def test_custom_estimator(self):
        decl = _decl("def f(x):\n    return engine.run(x)\n")
        estimator = MetricEstimator(KeywordTable(inference=("engine.run",)))
        assert not requires_annotation(decl)
        assert requires_annotation(decl, estimator=estimator)

    def test_stub_is_a_valid_annotation(self):
        (ann,) = extract_annotations([ANNOTATION_STUB])
        assert ann.carbon_budget == 1.0
        assert ann.impact is not None


class TestLoopAndNetworkRules:

    def test_has_inefficient_loops(self):
        single = _decl("def f(xs):\n    for x in xs:\n        pass\n")
        nested = _decl("def f(m):\n    return [c for r in m for c in r]\n")
        assert not has_inefficient_loops(single)
        assert has_inefficient_loops(nested)

    @pytest.mark.parametrize("n,expected", [(3, False), (4, True)])
    def test_exceeds_network_calls(self, n, expected):
        assert exceeds_network_calls(_decl(_calls(n))) is expected

    def test_custom_network_limit(self):
        assert exceeds_network_calls(_decl(_calls(2)), max_calls=1)

    def test_custom_estimator_for_network_rule(self):
        decl = _decl("def f():\n    stub.Call(a)\n    stub.Call(b)\n")
        estimator = MetricEstimator(KeywordTable(network=("stub.Call",)))
        assert not exceeds_network_calls(decl, max_calls=1)
        assert exceeds_network_calls(decl, max_calls=1, estimator=estimator)


class TestIterationInLoop:

    @pytest.mark.parametrize("src", [
        "def f(rows):\n    for r in rows:\n        total += sum(r)\n",
        "def f(rows):\n    for r in rows:\n        keep = list(filter(None, r))\n",
        "def f(rows):\n    while rows:\n        rows = sorted(rows.pop())\n",
        "def f(rows):\n    for r in rows:\n        sq = [x * x for x in r]\n",
        "def f(rows):\n    for r in rows:\n        ok = any(x > 0 for x in r)\n",
    ])
    def test_flagged(self, src):
        assert has_iteration_in_loop(_decl(src))

    @pytest.mark.parametrize("src", [
        "def f(xs):\n    for x in sorted(xs):\n        pass\n",
        "def f(xs):\n    for x in xs:\n        print(x)\n",
        "def f(xs):\n    return list(map(str, xs))\n",
        "def f(m):\n    return [c for r in m for c in r]\n",
    ])
    def test_not_flagged(self, src):
        assert not has_iteration_in_loop(_decl(src))
