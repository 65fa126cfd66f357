"""Qualifier spaces and template-based qualifier generators.

A qualifier space is the finite menu of candidate predicates from which the
valuation of one unknown is assembled (by conjoining a subset). Qualifier
generators build such spaces from the expressions in scope at a program
point:

  - the TYPE generator receives the value variable _v followed by every
    scalar in scope and produces refinements for a type position;
  - the CONDITIONAL generator receives only the scalars in scope and
    produces candidate guards for an ``if``.

Templates are instantiated over all ordered tuples of distinct in-scope
expressions; a template rejects ill-sorted instantiations by returning None.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from liquidsyn.logic import (
    Formula, SortKind, VALUE_VAR,
    F_INT, F_NOT, F_MEASURE,
    F_EQ, F_NEQ, F_LT, F_LE, F_GE,
    sort_of, free_vars,
)


@dataclass(frozen=True)
class QSpace:
    qualifiers: Tuple[Formula, ...] = ()

    def __len__(self) -> int:
        return len(self.qualifiers)

    def __str__(self) -> str:
        return "{" + ", ".join(str(q) for q in self.qualifiers) + "}"


QMap = Dict[str, QSpace]
QualsGen = Callable[[List[Formula]], QSpace]


def empty_gen(_exprs: List[Formula]) -> QSpace:
    return QSpace()


@dataclass(frozen=True)
class QualifierTemplate:
    """A predicate template with ``arity`` holes for in-scope expressions.

    Example templates:
      x >= 0
      x <= y
      len x < len y
    """
    name: str
    arity: int
    make_predicate: Any           # callable(*exprs) -> Optional[Formula]

    def __str__(self) -> str:
        return f"Q[{self.name}/{self.arity}]"


def _is_int(e: Formula) -> bool:
    s = sort_of(e)
    return s is not None and s.kind == SortKind.INT

def _is_bool(e: Formula) -> bool:
    s = sort_of(e)
    return s is not None and s.kind == SortKind.BOOL

def _same_sort(x: Formula, y: Formula) -> bool:
    return sort_of(x) == sort_of(y)

def _is_sort(e: Formula, sort_name: str) -> bool:
    s = sort_of(e)
    return s is not None and s.kind == SortKind.DATA and s.name == sort_name


def _int_cmp(op_fn) -> Callable[[Formula, Formula], Optional[Formula]]:
    return lambda x, y: op_fn(x, y) if _is_int(x) and _is_int(y) else None


def standard_templates() -> List[QualifierTemplate]:
    """Integer and boolean templates that work for any program."""
    templates = [
        QualifierTemplate("x>=0", 1, lambda x: F_GE(x, F_INT(0)) if _is_int(x) else None),
        QualifierTemplate("x<0", 1, lambda x: F_LT(x, F_INT(0)) if _is_int(x) else None),
        QualifierTemplate("x", 1, lambda x: x if _is_bool(x) else None),
        QualifierTemplate("!x", 1, lambda x: F_NOT(x) if _is_bool(x) else None),
        QualifierTemplate("x<=y", 2, _int_cmp(F_LE)),
        QualifierTemplate("x<y", 2, _int_cmp(F_LT)),
        QualifierTemplate("x==y", 2, lambda x, y: F_EQ(x, y) if _same_sort(x, y) else None),
        QualifierTemplate("x!=y", 2, lambda x, y: F_NEQ(x, y) if _same_sort(x, y) else None),
    ]
    return templates


def measure_templates(measure: str, datatype: str) -> List[QualifierTemplate]:
    """Templates relating an integer measure of ``datatype`` values."""
    def m(x: Formula) -> Formula:
        return F_MEASURE(measure, x)

    def unary(fn):
        return lambda x: fn(m(x)) if _is_sort(x, datatype) else None

    def binary(fn):
        return lambda x, y: fn(m(x), m(y)) if _is_sort(x, datatype) and _is_sort(y, datatype) else None

    return [
        QualifierTemplate(f"{measure} x==0", 1, unary(lambda mx: F_EQ(mx, F_INT(0)))),
        QualifierTemplate(f"{measure} x>=0", 1, unary(lambda mx: F_GE(mx, F_INT(0)))),
        QualifierTemplate(f"{measure} x==y", 2, binary(F_EQ)),
        QualifierTemplate(f"{measure} x<y", 2, binary(F_LT)),
        QualifierTemplate(
            f"{measure} x==int y", 2,
            lambda x, y: F_EQ(m(x), y) if _is_sort(x, datatype) and _is_int(y) else None,
        ),
    ]


def make_quals_gen(templates: Sequence[QualifierTemplate],
                   require_value_var: bool = False) -> QualsGen:
    """Build a qualifier generator from templates.

    With ``require_value_var`` only qualifiers mentioning _v are kept, which
    is what a type generator wants.
    """
    def generate(exprs: List[Formula]) -> QSpace:
        seen: Dict[Formula, None] = {}
        for template in templates:
            for args in itertools.permutations(exprs, template.arity):
                q = template.make_predicate(*args)
                if q is None:
                    continue
                if require_value_var and VALUE_VAR not in free_vars(q):
                    continue
                seen.setdefault(q, None)
        return QSpace(tuple(seen))

    return generate
