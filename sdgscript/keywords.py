"""
keywords.py — Call-site classification tables
==============================================

The metric estimator classifies every call by its callee's dotted name
(``requests.get``, ``self.model.predict``).  Which names count as network,
I/O, heavy-inference or runtime-context calls is data, held in a
:class:`KeywordTable`.

Matching
--------
A keyword is a dotted pattern whose segments are ``fnmatch`` patterns
(case-sensitive).  It matches a callee when its segments match a
contiguous run of the callee's segments::

    "fetch"          matches  fetch, window.fetch, self.fetch
    "requests"       matches  requests.get, requests.Session
    "readFile*"      matches  fs.readFileSync
    "http.request"   matches  http.request, node.http.request

Custom tables are S-expressions, loaded with ``sexpdata``::

    (keywords
      (network "fetch" "requests" grpc.*)
      (io "open" "shutil")
      (inference "torch" "predict*")
      (context "tracking"))

Categories left out of a file keep the built-in defaults.

Depends on:
    - sexpdata          (S-expression parsing)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple, Union

import sexpdata

from sdgscript.errors import KeywordTableError

__all__ = [
    "CATEGORIES",
    "KeywordTable",
    "DEFAULT_KEYWORDS",
    "parse_keyword_table",
    "load_keyword_table",
]

_log = logging.getLogger(__name__)

CATEGORIES: Tuple[str, ...] = ("network", "io", "inference", "context")


def _split(pattern: str) -> Tuple[str, ...]:
    return tuple(seg for seg in pattern.split(".") if seg)


def _matches(pattern: Tuple[str, ...], callee: Sequence[str]) -> bool:
    n = len(pattern)
    if n == 0 or n > len(callee):
        return False
    for start in range(len(callee) - n + 1):
        if all(fnmatchcase(callee[start + i], pattern[i]) for i in range(n)):
            return True
    return False


@dataclass(frozen=True)
class KeywordTable:
    """Immutable call classification table."""

    network: Tuple[str, ...] = ()
    io: Tuple[str, ...] = ()
    inference: Tuple[str, ...] = ()
    context: Tuple[str, ...] = ()
    _compiled: Dict[str, Tuple[Tuple[str, ...], ...]] = field(
        default_factory=dict, init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        for cat in CATEGORIES:
            self._compiled[cat] = tuple(
                _split(p) for p in getattr(self, cat) if _split(p)
            )

    def matches(self, category: str, callee: Sequence[str]) -> bool:
        """True if any keyword of *category* matches the callee segments."""
        return any(_matches(p, callee) for p in self._compiled[category])

    def categories_of(self, callee: Sequence[str]) -> Tuple[str, ...]:
        return tuple(cat for cat in CATEGORIES if self.matches(cat, callee))

    def extended(self, **extra: Iterable[str]) -> "KeywordTable":
        """Return a copy with *extra* keywords appended per category."""
        unknown = set(extra) - set(CATEGORIES)
        if unknown:
            raise KeywordTableError(f"Unknown categories: {sorted(unknown)}")
        merged = {
            cat: tuple(dict.fromkeys(getattr(self, cat) + tuple(extra.get(cat, ()))))
            for cat in CATEGORIES
        }
        return KeywordTable(**merged)

    def to_dict(self) -> Dict[str, List[str]]:
        return {cat: list(getattr(self, cat)) for cat in CATEGORIES}


DEFAULT_KEYWORDS = KeywordTable(
    network=(
        "fetch",
        "axios",
        "ajax",
        "http.request",
        "urlopen",
        "requests",
        "httpx",
        "aiohttp",
    ),
    io=(
        "open",
        "readFile*",
        "writeFile*",
        "fs",
        "localStorage",
        "sessionStorage",
        "read_text",
        "write_text",
        "read_bytes",
        "write_bytes",
        "shutil",
        "os.remove",
        "os.rename",
        "os.replace",
        "os.listdir",
        "os.makedirs",
        "os.walk",
        "json.dump",
        "json.load",
        "pickle.dump",
        "pickle.load",
    ),
    inference=(
        "tensorflow",
        "tf",
        "torch",
        "openai",
        "huggingface",
        "transformers",
        "predict*",
        "*inference*",
    ),
    context=(
        "tracking",
        "tracking_async",
        "withSDGContext",
    ),
)


# ═══════════════════════════════════════════════════════════════════
#  S-EXPRESSION LOADING
# ═══════════════════════════════════════════════════════════════════

def _atom_text(obj: Any) -> str:
    """Symbol or string atom → ``str``."""
    if isinstance(obj, sexpdata.Symbol):
        value = getattr(obj, "value", None)
        return str(value()) if callable(value) else str(obj)
    if isinstance(obj, str):
        return str(obj)
    raise KeywordTableError(f"Expected a keyword, got {obj!r}")


def parse_keyword_table(
    text: str,
    base: KeywordTable = DEFAULT_KEYWORDS,
    *,
    extend: bool = False,
    path: Union[str, None] = None,
) -> KeywordTable:
    """
    Parse an S-expression keyword table.

    Parameters
    ----------
    text : str
        ``(keywords (category kw ...) ...)``
    base : KeywordTable
        Table supplying categories the text leaves out.
    extend : bool
        Append to *base* instead of replacing the listed categories.

    Raises
    ------
    KeywordTableError
        On malformed input.
    """
    try:
        form = sexpdata.loads(text)
    except Exception as exc:
        raise KeywordTableError(f"Failed to parse S-expression: {exc}", path) from exc

    if not isinstance(form, list) or not form or _atom_text(form[0]) != "keywords":
        raise KeywordTableError("Expected a (keywords ...) form", path)

    parsed: Dict[str, List[str]] = {}
    for entry in form[1:]:
        if not isinstance(entry, list) or not entry:
            raise KeywordTableError(f"Expected (category keyword ...), got {entry!r}", path)
        cat = _atom_text(entry[0])
        if cat not in CATEGORIES:
            raise KeywordTableError(f"Unknown category {cat!r}", path)
        parsed.setdefault(cat, []).extend(_atom_text(kw) for kw in entry[1:])

    if extend:
        return base.extended(**parsed)
    fields: Mapping[str, Tuple[str, ...]] = {
        cat: tuple(parsed[cat]) if cat in parsed else getattr(base, cat)
        for cat in CATEGORIES
    }
    _log.debug("Keyword table loaded: %s", {c: len(v) for c, v in fields.items()})
    return KeywordTable(**fields)


def load_keyword_table(
    path: Union[str, Path],
    base: KeywordTable = DEFAULT_KEYWORDS,
    *,
    extend: bool = False,
) -> KeywordTable:
    """Read and parse a keyword table file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise KeywordTableError(f"Cannot read keyword table: {exc}", str(p)) from exc
    return parse_keyword_table(text, base, extend=extend, path=str(p))
