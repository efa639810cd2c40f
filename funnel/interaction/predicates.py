"""
Typed predicate language for live document state.

Predicates are small frozen dataclasses (label-match, attribute-match,
count-range, existence) combined with Not / AllOf / AnyOf. They serialize
to a plain dict tree which a single injected evaluator walks inside the
page, so conditions are declared once, compared and hashed in Python, and
unit-tested without a browser.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional, Union

# Injected into the page; evaluates one serialized predicate tree, read-only.
PREDICATE_EVAL_JS = """
(tree) => {
  const visible = (el) => {
    const r = el.getBoundingClientRect();
    const s = window.getComputedStyle(el);
    return r.width > 0 && r.height > 0 && s.visibility !== 'hidden' && s.display !== 'none';
  };
  const roots = (scope) => scope ? Array.from(document.querySelectorAll(scope)) : [document];
  const query = (scope, sel) => {
    // Nested scope matches (dialog inside .modal) must not count an element twice.
    const out = new Set();
    for (const root of roots(scope)) {
      root.querySelectorAll(sel).forEach(el => out.add(el));
    }
    return Array.from(out);
  };
  const textOf = (el) => (el && (el.innerText || el.textContent)) || '';
  const ev = (node) => {
    switch (node.kind) {
      case 'exists':
        return query(node.scope, node.selector).some(el => !node.visible || visible(el));
      case 'text': {
        const re = new RegExp(node.pattern, node.flags);
        if (node.selector) {
          return query(node.scope, node.selector).some(el => re.test(textOf(el)));
        }
        const scopes = node.scope ? Array.from(document.querySelectorAll(node.scope)) : [document.body];
        return scopes.some(el => re.test(textOf(el)));
      }
      case 'attribute': {
        const re = new RegExp(node.pattern, node.flags);
        return query(node.scope, node.selector).some(el => re.test(el.getAttribute(node.attribute) || ''));
      }
      case 'count': {
        const n = query(node.scope, node.selector).length;
        return n >= node.min && (node.max === null || n <= node.max);
      }
      case 'not':
        return !ev(node.operand);
      case 'all':
        return node.operands.every(ev);
      case 'any':
        return node.operands.some(ev);
    }
    return false;
  };
  return ev(tree);
}
"""


def _js_flags(ignore_case: bool) -> str:
    return "i" if ignore_case else ""


def _check_pattern(pattern: str) -> None:
    # Python and JS regex dialects overlap for the patterns used here;
    # compiling catches typos before they reach the page.
    try:
        re.compile(pattern)
    except re.error as e:
        raise ValueError(f"Invalid predicate pattern {pattern!r}: {e}") from e


@dataclass(frozen=True)
class Exists:
    """At least one element matches selector (optionally inside scope, optionally visible)."""

    selector: str
    scope: Optional[str] = None
    visible: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "exists", "selector": self.selector, "scope": self.scope, "visible": self.visible}


@dataclass(frozen=True)
class TextMatch:
    """
    Label match.

    Without selector: the scope's (or body's) text matches pattern.
    With selector: any matching element's own text matches pattern.
    """

    pattern: str
    scope: Optional[str] = None
    selector: Optional[str] = None
    ignore_case: bool = True

    def __post_init__(self) -> None:
        _check_pattern(self.pattern)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "text",
            "pattern": self.pattern,
            "flags": _js_flags(self.ignore_case),
            "scope": self.scope,
            "selector": self.selector,
        }


@dataclass(frozen=True)
class AttributeMatch:
    """Any element matching selector has attribute whose value matches pattern."""

    selector: str
    attribute: str
    pattern: str
    scope: Optional[str] = None
    ignore_case: bool = True

    def __post_init__(self) -> None:
        _check_pattern(self.pattern)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "attribute",
            "selector": self.selector,
            "attribute": self.attribute,
            "pattern": self.pattern,
            "flags": _js_flags(self.ignore_case),
            "scope": self.scope,
        }


@dataclass(frozen=True)
class CountRange:
    """Number of elements matching selector lies in [minimum, maximum] (maximum None = unbounded)."""

    selector: str
    minimum: int = 1
    maximum: Optional[int] = None
    scope: Optional[str] = None

    def __post_init__(self) -> None:
        if self.minimum < 0:
            raise ValueError("minimum must be >= 0")
        if self.maximum is not None and self.maximum < self.minimum:
            raise ValueError(f"maximum {self.maximum} < minimum {self.minimum}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "count",
            "selector": self.selector,
            "min": self.minimum,
            "max": self.maximum,
            "scope": self.scope,
        }


@dataclass(frozen=True)
class Not:
    operand: "Predicate"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "not", "operand": self.operand.to_dict()}


@dataclass(frozen=True)
class AllOf:
    operands: tuple["Predicate", ...]

    def __post_init__(self) -> None:
        if not self.operands:
            raise ValueError("AllOf needs at least one operand")

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "all", "operands": [op.to_dict() for op in self.operands]}


@dataclass(frozen=True)
class AnyOf:
    operands: tuple["Predicate", ...]

    def __post_init__(self) -> None:
        if not self.operands:
            raise ValueError("AnyOf needs at least one operand")

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "any", "operands": [op.to_dict() for op in self.operands]}


Predicate = Union[Exists, TextMatch, AttributeMatch, CountRange, Not, AllOf, AnyOf]

PREDICATE_TYPES = (Exists, TextMatch, AttributeMatch, CountRange, Not, AllOf, AnyOf)


def all_of(*operands: Predicate) -> AllOf:
    return AllOf(tuple(operands))


def any_of(*operands: Predicate) -> AnyOf:
    return AnyOf(tuple(operands))


def exists_any(selectors: tuple[str, ...], *, scope: Optional[str] = None, visible: bool = True) -> Predicate:
    """Existence of any selector of an ElementQuery."""
    if not selectors:
        raise ValueError("exists_any needs at least one selector")
    if len(selectors) == 1:
        return Exists(selectors[0], scope=scope, visible=visible)
    return AnyOf(tuple(Exists(s, scope=scope, visible=visible) for s in selectors))


def is_predicate(value: object) -> bool:
    return isinstance(value, PREDICATE_TYPES)
