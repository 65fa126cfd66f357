"""Z3 encoding of refinement formulas.

Integers and booleans map to the corresponding Z3 theories. Datatype values
and values of type variables live in uninterpreted sorts (one per datatype
or type-variable name); measures become uninterpreted integer-valued
functions over those sorts.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple

import z3

from liquidsyn.logic import Formula, FormulaKind, Sort, SortKind, sort_of

logger = logging.getLogger(__name__)


class Z3Encoder:
    """Translates formulas to Z3 terms, sharing declarations across calls."""

    def __init__(self) -> None:
        self._sorts: Dict[Sort, Any] = {}
        self._vars: Dict[Tuple[str, Sort], Any] = {}
        self._measures: Dict[Tuple[str, Sort], Any] = {}

    def z3_sort(self, sort: Sort) -> Any:
        if sort.kind == SortKind.INT:
            return z3.IntSort()
        if sort.kind == SortKind.BOOL:
            return z3.BoolSort()
        if sort not in self._sorts:
            prefix = "D" if sort.kind == SortKind.DATA else "T"
            self._sorts[sort] = z3.DeclareSort(f"{prefix}_{sort.name}")
        return self._sorts[sort]

    def _var(self, name: str, sort: Sort) -> Any:
        key = (name, sort)
        if key not in self._vars:
            self._vars[key] = z3.Const(f"{name}:{sort}", self.z3_sort(sort))
        return self._vars[key]

    def _measure(self, name: str, arg: Formula) -> Any:
        arg_sort = sort_of(arg)
        key = (name, arg_sort)
        if key not in self._measures:
            self._measures[key] = z3.Function(name, self.z3_sort(arg_sort), z3.IntSort())
        return self._measures[key](self.encode(arg))

    def encode(self, f: Formula) -> Any:
        if f.kind == FormulaKind.BOOL_CONST:
            return z3.BoolVal(f.bool_val)
        if f.kind == FormulaKind.INT_CONST:
            return z3.IntVal(f.int_val)
        if f.kind == FormulaKind.VAR:
            return self._var(f.name, f.sort)
        if f.kind == FormulaKind.MEASURE:
            return self._measure(f.name, f.children[0])
        if f.kind == FormulaKind.UNOP:
            return -self.encode(f.children[0])
        if f.kind == FormulaKind.BINOP:
            left = self.encode(f.children[0])
            right = self.encode(f.children[1])
            ops = {
                "+": lambda l, r: l + r,
                "-": lambda l, r: l - r,
                "*": lambda l, r: l * r,
                "==": lambda l, r: l == r,
                "!=": lambda l, r: l != r,
                "<": lambda l, r: l < r,
                "<=": lambda l, r: l <= r,
                ">": lambda l, r: l > r,
                ">=": lambda l, r: l >= r,
            }
            return ops[f.op](left, right)
        if f.kind == FormulaKind.AND:
            return z3.And(*[self.encode(c) for c in f.children])
        if f.kind == FormulaKind.OR:
            return z3.Or(*[self.encode(c) for c in f.children])
        if f.kind == FormulaKind.NOT:
            return z3.Not(self.encode(f.children[0]))
        if f.kind == FormulaKind.IMPLIES:
            return z3.Implies(self.encode(f.children[0]), self.encode(f.children[1]))
        raise ValueError(f"Cannot encode unsolved unknown {f}")

    def is_valid(self, f: Formula, timeout_ms: int = 5000) -> bool:
        """Check validity by asking Z3 whether the negation is UNSAT.

        Encoding failures and timeouts count as "not valid".
        """
        try:
            solver = z3.Solver()
            solver.set("timeout", timeout_ms)
            solver.add(z3.Not(self.encode(f)))
            return solver.check() == z3.unsat
        except (z3.Z3Exception, ValueError, KeyError) as exc:
            logger.warning("SMT check failed for %s: %s", f, exc)
            return False

    def is_satisfiable(self, f: Formula, timeout_ms: int = 5000) -> bool:
        try:
            solver = z3.Solver()
            solver.set("timeout", timeout_ms)
            solver.add(self.encode(f))
            return solver.check() == z3.sat
        except (z3.Z3Exception, ValueError, KeyError) as exc:
            logger.warning("SMT check failed for %s: %s", f, exc)
            return False
