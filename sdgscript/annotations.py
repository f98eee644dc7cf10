"""
annotations.py — SDG annotation extraction from documentation blocks
=====================================================================

A documentation block is the text of one docstring or one comment run
attached to a function.  Recognised tags::

    @sdg           Goal<N> [Name]         N in 1..17
    @carbonBudget  <number> kWh           e.g. 2.0kWh, 0.5 kWh
    @impact        <category> <level>     e.g. environment high
    @description   free text              may continue on following lines
    @tags          a, b, c

Usage::

    from sdgscript.annotations import extract_annotations

    anns = extract_annotations(['''
        @sdg Goal13 ClimateAction
        @carbonBudget 2.0kWh
        @impact environment high
    '''])
    assert anns[0].carbon_budget == 2.0

A block yields an :class:`~sdgscript.types.Annotation` only when it names a
recognised goal.  Malformed tag text leaves the field unset; extraction
never raises.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import NodeVisitor

from sdgscript.types import Annotation, Impact, ImpactCategory, ImpactLevel, SdgGoal

__all__ = [
    "BLOCK_GRAMMAR",
    "AnnotationExtractor",
    "extract_annotations",
    "parse_block_tags",
    "mentions_sdg",
]

_log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — BLOCK GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

# Every line ends with a newline (normalisation guarantees it), so the
# grammar accepts any normalised block.
BLOCK_GRAMMAR = Grammar(r'''
    block       = line*
    line        = tag_line / text_line
    tag_line    = tag_start tag_name inline_ws tag_text newline
    text_line   = ~r"[^\n]*" newline

    tag_start   = ~r"[ \t]*@"
    tag_name    = ~r"[A-Za-z][A-Za-z0-9_]*"
    inline_ws   = ~r"[ \t]*"
    tag_text    = ~r"[^\n]*"
    newline     = "\n"
''')

# Leading comment decoration: "#", "*", "/**", "*/" and indentation.
_DECORATION_RE = re.compile(r"^\s*(?:/\*\*+|\*+/|\*+|#+)?[ \t]?")
_TRAILING_CLOSE_RE = re.compile(r"\s*\*+/\s*$")

_GOAL_RE = re.compile(r"(Goal\d+)")
_BUDGET_RE = re.compile(r"(\d+(?:\.\d+)?)\s*kWh")
_IMPACT_RE = re.compile(r"(\w+)\s+(\w+)")


def _normalise_block(block: str) -> str:
    lines = []
    for raw in block.splitlines():
        line = _TRAILING_CLOSE_RE.sub("", raw)
        lines.append(_DECORATION_RE.sub("", line, count=1).rstrip())
    return "\n".join(lines) + "\n"


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — PARSE TREE VISITOR
# ═══════════════════════════════════════════════════════════════════

class _BlockVisitor(NodeVisitor):
    """Turns the parse tree into an ordered ``[(tag, text), ...]`` list."""

    def visit_block(self, node, visited_children):
        tags: List[Tuple[str, str]] = []
        open_tag = False
        for kind, name, text in visited_children:
            if kind == "tag":
                tags.append((name, text))
                open_tag = True
            elif not text:
                open_tag = False
            elif open_tag:
                # continuation of the previous tag's text
                prev_name, prev_text = tags[-1]
                tags[-1] = (prev_name, f"{prev_text} {text}" if prev_text else text)
        return tags

    def visit_line(self, node, visited_children):
        return visited_children[0]

    def visit_tag_line(self, node, visited_children):
        _, name, _, text, _ = visited_children
        return ("tag", name, text)

    def visit_text_line(self, node, visited_children):
        return ("text", None, node.text.strip())

    def visit_tag_name(self, node, visited_children):
        return node.text

    def visit_tag_text(self, node, visited_children):
        return node.text.strip()

    def generic_visit(self, node, visited_children):
        return visited_children or node


def parse_block_tags(block: str) -> List[Tuple[str, str]]:
    """
    Return the ``(tag_name, text)`` pairs of *block* in source order.

    Unparseable input is logged and yields an empty list.
    """
    if not block or not block.strip():
        return []
    text = _normalise_block(block)
    try:
        tree = BLOCK_GRAMMAR.parse(text)
        return _BlockVisitor().visit(tree)
    except (ParseError, VisitationError) as exc:
        _log.debug("Unparseable documentation block skipped: %s", exc)
        return []


def mentions_sdg(blocks: Iterable[str]) -> bool:
    """True if any block carries an ``@sdg`` or ``@carbonBudget`` tag."""
    return any(
        name in ("sdg", "carbonBudget")
        for block in blocks
        for name, _ in parse_block_tags(block)
    )


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — TAG INTERPRETATION
# ═══════════════════════════════════════════════════════════════════

def _parse_goal(text: str) -> Optional[SdgGoal]:
    m = _GOAL_RE.search(text)
    return SdgGoal.from_tag(m.group(1)) if m else None


def _parse_budget(text: str) -> Optional[float]:
    m = _BUDGET_RE.search(text)
    return float(m.group(1)) if m else None


def _parse_impact(text: str) -> Optional[Impact]:
    m = _IMPACT_RE.search(text)
    if not m:
        return None
    try:
        return Impact(
            category=ImpactCategory(m.group(1).lower()),
            level=ImpactLevel(m.group(2).lower()),
        )
    except ValueError:
        return None


def _parse_tags(text: str) -> Tuple[str, ...]:
    return tuple(t.strip() for t in text.split(",") if t.strip())


class AnnotationExtractor:
    """
    Builds :class:`Annotation` records from documentation blocks.

    Each block is interpreted on its own; within a block a repeated tag
    overrides the earlier occurrence.
    """

    def extract(self, blocks: Sequence[str]) -> List[Annotation]:
        annotations: List[Annotation] = []
        for block in blocks:
            ann = self.extract_block(block)
            if ann is not None:
                annotations.append(ann)
        return annotations

    def extract_block(self, block: str) -> Optional[Annotation]:
        fields: Dict[str, object] = {}
        for name, text in parse_block_tags(block):
            if name == "sdg":
                goal = _parse_goal(text)
                if goal is not None:
                    fields["goal"] = goal
            elif name == "carbonBudget":
                budget = _parse_budget(text)
                if budget is not None:
                    fields["carbon_budget"] = budget
            elif name == "impact":
                impact = _parse_impact(text)
                if impact is not None:
                    fields["impact"] = impact
            elif name == "description":
                fields["description"] = text
            elif name == "tags":
                fields["tags"] = _parse_tags(text)
        if "goal" not in fields:
            return None
        return Annotation(**fields)  # type: ignore[arg-type]


_DEFAULT_EXTRACTOR = AnnotationExtractor()


def extract_annotations(blocks: Sequence[str]) -> List[Annotation]:
    """Extract annotations from the ordered documentation blocks of one function."""
    return _DEFAULT_EXTRACTOR.extract(blocks)
