"""Refinement logic — sorts, formulas, unknowns and substitution.

Refinements are quantifier-free formulas over an implicit value variable
``_v``. Besides the usual integer/boolean connectives the logic has:

  - MEASURE applications  len(xs)       -- integer-valued functions over
                                           datatype values (well-founded
                                           metrics, structural facts)
  - UNKNOWNs              U3[x := y]    -- second-order placeholders for a
                                           liquid predicate not yet solved;
                                           each carries the substitution
                                           that must be applied to whatever
                                           predicate it is eventually
                                           assigned

Formulas are immutable frozen dataclass trees; new formulas are built by
substitution, never by mutation. An unknown is identified by its name only:
two unknowns are the same placeholder iff their names are equal.

References:
  Rondon, Kawaguchi, Jhala (2008) "Liquid Types"
  PLDI '08, https://doi.org/10.1145/1375581.1375602
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple


VALUE_VAR = "_v"


# ---------------------------------------------------------------------------
# Sorts
# ---------------------------------------------------------------------------

class SortKind(Enum):
    BOOL = auto()
    INT = auto()
    DATA = auto()       # datatype values (uninterpreted)
    VAR = auto()        # values of a type variable (uninterpreted)


@dataclass(frozen=True)
class Sort:
    kind: SortKind
    name: str = ""

    def __str__(self) -> str:
        if self.kind == SortKind.BOOL:
            return "Bool"
        if self.kind == SortKind.INT:
            return "Int"
        return self.name


BOOL_SORT = Sort(SortKind.BOOL)
INT_SORT = Sort(SortKind.INT)


def data_sort(name: str) -> Sort:
    return Sort(SortKind.DATA, name)


def var_sort(name: str) -> Sort:
    return Sort(SortKind.VAR, name)


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------

class FormulaKind(Enum):
    BOOL_CONST = auto()
    INT_CONST = auto()
    VAR = auto()
    UNKNOWN = auto()
    UNOP = auto()        # unary minus
    BINOP = auto()       # + - * == != < <= > >=
    MEASURE = auto()     # m(e)
    AND = auto()
    OR = auto()
    NOT = auto()
    IMPLIES = auto()


ARITH_OPS = ("+", "-", "*")
COMPARE_OPS = ("==", "!=", "<", "<=", ">", ">=")


@dataclass(frozen=True)
class Formula:
    kind: FormulaKind
    name: str = ""                                  # VAR, UNKNOWN, MEASURE
    sort: Optional[Sort] = None                     # VAR
    int_val: int = 0                                # INT_CONST
    bool_val: bool = True                           # BOOL_CONST
    op: str = ""                                    # UNOP, BINOP
    children: Tuple[Formula, ...] = ()
    subst: Tuple[Tuple[str, Formula], ...] = ()     # UNKNOWN pending substitution

    def __str__(self) -> str:
        if self.kind == FormulaKind.BOOL_CONST:
            return "True" if self.bool_val else "False"
        if self.kind == FormulaKind.INT_CONST:
            return str(self.int_val)
        if self.kind == FormulaKind.VAR:
            return self.name
        if self.kind == FormulaKind.UNKNOWN:
            if not self.subst:
                return self.name
            pending = ", ".join(f"{x} := {e}" for x, e in self.subst)
            return f"{self.name}[{pending}]"
        if self.kind == FormulaKind.UNOP:
            return f"({self.op}{self.children[0]})"
        if self.kind == FormulaKind.BINOP:
            return f"({self.children[0]} {self.op} {self.children[1]})"
        if self.kind == FormulaKind.MEASURE:
            return f"{self.name} {self.children[0]}"
        if self.kind == FormulaKind.AND:
            return "(" + " && ".join(str(c) for c in self.children) + ")"
        if self.kind == FormulaKind.OR:
            return "(" + " || ".join(str(c) for c in self.children) + ")"
        if self.kind == FormulaKind.NOT:
            return f"!{self.children[0]}"
        if self.kind == FormulaKind.IMPLIES:
            return f"({self.children[0]} ==> {self.children[1]})"
        return "<?>"


# ---------------------------------------------------------------------------
# Formula constructors
# ---------------------------------------------------------------------------

def F_TRUE() -> Formula:
    return Formula(kind=FormulaKind.BOOL_CONST, bool_val=True)

def F_FALSE() -> Formula:
    return Formula(kind=FormulaKind.BOOL_CONST, bool_val=False)

def F_BOOL(val: bool) -> Formula:
    return Formula(kind=FormulaKind.BOOL_CONST, bool_val=val)

def F_INT(val: int) -> Formula:
    return Formula(kind=FormulaKind.INT_CONST, int_val=val)

def F_VAR(name: str, sort: Sort = INT_SORT) -> Formula:
    return Formula(kind=FormulaKind.VAR, name=name, sort=sort)

def F_VALUE(sort: Sort = INT_SORT) -> Formula:
    """The value variable of a refinement over ``sort``."""
    return F_VAR(VALUE_VAR, sort)

def F_UNKNOWN(name: str, subst: Optional[Mapping[str, Formula]] = None) -> Formula:
    pending = tuple(sorted((subst or {}).items()))
    return Formula(kind=FormulaKind.UNKNOWN, name=name, subst=pending)

def F_MEASURE(name: str, arg: Formula) -> Formula:
    return Formula(kind=FormulaKind.MEASURE, name=name, children=(arg,))

def F_NEG(operand: Formula) -> Formula:
    return Formula(kind=FormulaKind.UNOP, op="-", children=(operand,))

def F_BINOP(op: str, left: Formula, right: Formula) -> Formula:
    return Formula(kind=FormulaKind.BINOP, op=op, children=(left, right))

def F_EQ(left: Formula, right: Formula) -> Formula:
    return F_BINOP("==", left, right)

def F_NEQ(left: Formula, right: Formula) -> Formula:
    return F_BINOP("!=", left, right)

def F_LT(left: Formula, right: Formula) -> Formula:
    return F_BINOP("<", left, right)

def F_LE(left: Formula, right: Formula) -> Formula:
    return F_BINOP("<=", left, right)

def F_GT(left: Formula, right: Formula) -> Formula:
    return F_BINOP(">", left, right)

def F_GE(left: Formula, right: Formula) -> Formula:
    return F_BINOP(">=", left, right)

def F_PLUS(left: Formula, right: Formula) -> Formula:
    return F_BINOP("+", left, right)

def F_MINUS(left: Formula, right: Formula) -> Formula:
    return F_BINOP("-", left, right)

def F_AND(*children: Formula) -> Formula:
    flat: List[Formula] = []
    for c in children:
        if is_true(c):
            continue
        if is_false(c):
            return F_FALSE()
        if c.kind == FormulaKind.AND:
            flat.extend(c.children)
        else:
            flat.append(c)
    if not flat:
        return F_TRUE()
    if len(flat) == 1:
        return flat[0]
    return Formula(kind=FormulaKind.AND, children=tuple(flat))

def F_OR(*children: Formula) -> Formula:
    flat: List[Formula] = []
    for c in children:
        if is_false(c):
            continue
        if is_true(c):
            return F_TRUE()
        if c.kind == FormulaKind.OR:
            flat.extend(c.children)
        else:
            flat.append(c)
    if not flat:
        return F_FALSE()
    if len(flat) == 1:
        return flat[0]
    return Formula(kind=FormulaKind.OR, children=tuple(flat))

def F_NOT(f: Formula) -> Formula:
    if is_true(f):
        return F_FALSE()
    if is_false(f):
        return F_TRUE()
    if f.kind == FormulaKind.NOT:
        return f.children[0]
    return Formula(kind=FormulaKind.NOT, children=(f,))

def F_IMPLIES(lhs: Formula, rhs: Formula) -> Formula:
    if is_true(lhs):
        return rhs
    if is_false(lhs) or is_true(rhs):
        return F_TRUE()
    return Formula(kind=FormulaKind.IMPLIES, children=(lhs, rhs))

def F_HORN(lhs: Formula, rhs: Formula) -> Formula:
    """Implication kept in clause form (no simplification of either side)."""
    return Formula(kind=FormulaKind.IMPLIES, children=(lhs, rhs))


def is_true(f: Formula) -> bool:
    return f.kind == FormulaKind.BOOL_CONST and f.bool_val

def is_false(f: Formula) -> bool:
    return f.kind == FormulaKind.BOOL_CONST and not f.bool_val


def conjunction(fmls: Iterable[Formula]) -> Formula:
    """Conjunction of a set of formulas, in a deterministic order."""
    return F_AND(*sorted(set(fmls), key=str))

def disjunction(fmls: Iterable[Formula]) -> Formula:
    return F_OR(*sorted(set(fmls), key=str))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def sort_of(f: Formula) -> Optional[Sort]:
    if f.kind == FormulaKind.VAR:
        return f.sort
    if f.kind in (FormulaKind.INT_CONST, FormulaKind.MEASURE, FormulaKind.UNOP):
        return INT_SORT
    if f.kind == FormulaKind.BINOP:
        return INT_SORT if f.op in ARITH_OPS else BOOL_SORT
    return BOOL_SORT


def free_vars(f: Formula) -> Set[str]:
    if f.kind == FormulaKind.VAR:
        return {f.name}
    result: Set[str] = set()
    if f.kind == FormulaKind.UNKNOWN:
        for _, e in f.subst:
            result |= free_vars(e)
        return result
    for child in f.children:
        result |= free_vars(child)
    return result


def unknowns_of(f: Formula) -> Set[str]:
    if f.kind == FormulaKind.UNKNOWN:
        return {f.name}
    result: Set[str] = set()
    for child in f.children:
        result |= unknowns_of(child)
    return result


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------

def _rebuild(f: Formula, children: Tuple[Formula, ...]) -> Formula:
    if f.kind == FormulaKind.AND:
        return F_AND(*children)
    if f.kind == FormulaKind.OR:
        return F_OR(*children)
    if f.kind == FormulaKind.NOT:
        return F_NOT(children[0])
    if f.kind == FormulaKind.IMPLIES:
        return Formula(kind=FormulaKind.IMPLIES, children=children)
    return replace(f, children=children)


def substitute(f: Formula, mapping: Mapping[str, Formula]) -> Formula:
    """Simultaneously replace free variables according to ``mapping``.

    An unknown records the substitution instead: its pending substitution is
    composed with ``mapping`` (existing entries are rewritten, new variables
    are appended), so that the predicate eventually assigned to it sees the
    same renaming.
    """
    if not mapping:
        return f
    if f.kind == FormulaKind.VAR:
        return mapping.get(f.name, f)
    if f.kind in (FormulaKind.BOOL_CONST, FormulaKind.INT_CONST):
        return f
    if f.kind == FormulaKind.UNKNOWN:
        composed: Dict[str, Formula] = {x: substitute(e, mapping) for x, e in f.subst}
        for x, e in mapping.items():
            composed.setdefault(x, e)
        return F_UNKNOWN(f.name, composed)
    return _rebuild(f, tuple(substitute(c, mapping) for c in f.children))


def substitute_sorts(f: Formula, sorts: Mapping[str, Sort]) -> Formula:
    """Resolve type-variable sorts of variables according to ``sorts``."""
    if not sorts:
        return f
    if f.kind == FormulaKind.VAR:
        if f.sort is not None and f.sort.kind == SortKind.VAR and f.sort.name in sorts:
            return replace(f, sort=sorts[f.sort.name])
        return f
    if f.kind in (FormulaKind.BOOL_CONST, FormulaKind.INT_CONST):
        return f
    if f.kind == FormulaKind.UNKNOWN:
        return replace(f, subst=tuple((x, substitute_sorts(e, sorts)) for x, e in f.subst))
    return _rebuild(f, tuple(substitute_sorts(c, sorts) for c in f.children))


def apply_solution(solution: Mapping[str, Iterable[Formula]], f: Formula) -> Formula:
    """Replace every solved unknown with the conjunction of its qualifiers."""
    if f.kind == FormulaKind.UNKNOWN:
        if f.name not in solution:
            return f
        return substitute(conjunction(solution[f.name]), dict(f.subst))
    if not f.children:
        return f
    return _rebuild(f, tuple(apply_solution(solution, c) for c in f.children))
