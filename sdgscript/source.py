"""
source.py — Python source front-end
====================================

Turns a Python compilation unit into the function declarations the
analysis engine consumes.

Declarations and their identifiers:

    def fetch(...)                    → "fetch"
    async def fetch(...)              → "fetch"
    class Client: def get(...)        → "Client.get"
    class A: class B: def f(...)      → "A.B.f"
    scale = lambda x: ...             → "scale"

Only module-level functions, class members and lambdas bound by a plain
assignment are collected; functions nested inside other functions are
analysed as part of their enclosing body.

Documentation blocks, in order:

    # @sdg Goal13               ← contiguous comment run directly above
    # @carbonBudget 2.0kWh        the declaration (above its decorators)
    @cached
    def f():
        '''@impact environment high'''   ← docstring
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from sdgscript.errors import SourceLoadError
from sdgscript.types import SourceLocation

__all__ = [
    "FunctionDeclaration",
    "load_declarations",
    "load_file",
    "iter_source_files",
]

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionDeclaration:
    """One function-like declaration of a compilation unit."""
    name: Optional[str]
    function_id: str
    doc_blocks: Tuple[str, ...]
    body: Tuple[ast.AST, ...]
    location: SourceLocation
    kind: str = "function"          # "function" | "method" | "lambda"


class _DeclarationCollector(ast.NodeVisitor):
    """
    AST visitor collecting function declarations of one module.
    """

    def __init__(self, source: str, filename: str):
        self.source_lines = source.splitlines()
        self.filename = filename
        self.declarations: List[FunctionDeclaration] = []
        self._class_stack: List[str] = []

    def collect(self, tree: ast.Module) -> List[FunctionDeclaration]:
        for stmt in tree.body:
            self.visit(stmt)
        return self.declarations

    # ── helpers ────────────────────────────────────────────────────

    def _qualify(self, name: str) -> str:
        return ".".join(self._class_stack + [name])

    def _leading_comment(self, first_line: int) -> Optional[str]:
        """Contiguous ``#`` run ending on the line above *first_line* (1-based)."""
        i = first_line - 2
        run: List[str] = []
        while i >= 0 and self.source_lines[i].lstrip().startswith("#"):
            run.append(self.source_lines[i].strip())
            i -= 1
        if not run:
            return None
        return "\n".join(reversed(run))

    def _add(
        self,
        name: str,
        first_line: int,
        line: int,
        docstring: Optional[str],
        body: Sequence[ast.AST],
        kind: str,
    ) -> None:
        blocks: List[str] = []
        comment = self._leading_comment(first_line)
        if comment:
            blocks.append(comment)
        if docstring:
            blocks.append(docstring)
        self.declarations.append(FunctionDeclaration(
            name=name,
            function_id=self._qualify(name),
            doc_blocks=tuple(blocks),
            body=tuple(body),
            location=SourceLocation(self.filename, line),
            kind=kind,
        ))

    # ── visitors ───────────────────────────────────────────────────

    def visit_FunctionDef(self, node: Union[ast.FunctionDef, ast.AsyncFunctionDef]) -> None:
        first_line = min([node.lineno] + [d.lineno for d in node.decorator_list])
        self._add(
            node.name,
            first_line,
            node.lineno,
            ast.get_docstring(node),
            node.body,
            "method" if self._class_stack else "function",
        )

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._class_stack.append(node.name)
        try:
            for stmt in node.body:
                self.visit(stmt)
        finally:
            self._class_stack.pop()

    def _visit_binding(self, target: ast.expr, value: Optional[ast.expr], node: ast.stmt) -> None:
        if isinstance(target, ast.Name) and isinstance(value, ast.Lambda):
            self._add(target.id, node.lineno, node.lineno, None, [value.body], "lambda")

    def visit_Assign(self, node: ast.Assign) -> None:
        if len(node.targets) == 1:
            self._visit_binding(node.targets[0], node.value, node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self._visit_binding(node.target, node.value, node)


def load_declarations(source: str, filename: str = "<string>") -> List[FunctionDeclaration]:
    """
    Parse *source* and return its function declarations in source order.

    Raises
    ------
    SourceLoadError
        If *source* is not valid Python.
    """
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as exc:
        raise SourceLoadError(filename, exc.msg or "invalid syntax", exc.lineno or 0) from exc
    declarations = _DeclarationCollector(source, filename).collect(tree)
    _log.debug("%s: %d declarations", filename, len(declarations))
    return declarations


def load_file(path: Union[str, Path]) -> List[FunctionDeclaration]:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceLoadError(str(p), str(exc)) from exc
    return load_declarations(text, str(p))


def iter_source_files(paths: Iterable[Union[str, Path]]) -> Iterator[Path]:
    """Yield ``.py`` files; directories are searched recursively, sorted."""
    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            yield from sorted(f for f in p.rglob("*.py") if f.is_file())
        else:
            yield p
