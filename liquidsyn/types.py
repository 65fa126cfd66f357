"""Refinement types, type schemas and shapes.

A refinement type is either

  - a SCALAR type  {_v: B t1 .. tn | p}  -- base type B (Int, Bool, a type
    variable or a datatype) applied to type arguments, refined by a formula
    p over the value variable _v; or
  - a dependent FUNCTION type  x: T1 -> T2  where T2 may mention x.

A schema wraps a type in universal quantifiers over type variables. A shape
is a type whose refinements are all erased to ``True``; shapes drive purely
structural matching during bottom-up enumeration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Dict, Mapping, Optional, Set, Tuple, Union

from liquidsyn.logic import (
    Formula, Sort, SortKind, BOOL_SORT, INT_SORT, data_sort, var_sort,
    F_TRUE, F_FALSE, F_AND, F_VAR,
    substitute, substitute_sorts, unknowns_of,
)


class BaseKind(Enum):
    BOOL = auto()
    INT = auto()
    TYPE_VAR = auto()
    DATATYPE = auto()


@dataclass(frozen=True)
class BaseType:
    kind: BaseKind
    name: str = ""

    def __str__(self) -> str:
        if self.kind == BaseKind.BOOL:
            return "Bool"
        if self.kind == BaseKind.INT:
            return "Int"
        return self.name


BOOL_BASE = BaseType(BaseKind.BOOL)
INT_BASE = BaseType(BaseKind.INT)


def type_var_base(name: str) -> BaseType:
    return BaseType(BaseKind.TYPE_VAR, name)


def datatype_base(name: str) -> BaseType:
    return BaseType(BaseKind.DATATYPE, name)


class RType:
    pass


@dataclass(frozen=True)
class ScalarT(RType):
    base: BaseType
    args: Tuple[RType, ...] = ()
    refinement: Formula = field(default_factory=F_TRUE)

    def __str__(self) -> str:
        head = " ".join([str(self.base)] + [_arg_str(a) for a in self.args])
        if self.refinement == F_TRUE():
            return head
        return f"{{{head} | {self.refinement}}}"


@dataclass(frozen=True)
class FunctionT(RType):
    arg_name: str
    arg_type: RType
    result: RType

    def __str__(self) -> str:
        arg = f"({self.arg_type})" if isinstance(self.arg_type, FunctionT) else str(self.arg_type)
        return f"{self.arg_name}: {arg} -> {self.result}"


def _arg_str(t: RType) -> str:
    if isinstance(t, ScalarT) and not t.args and t.refinement == F_TRUE():
        return str(t)
    return f"({t})"


@dataclass(frozen=True)
class Monotype:
    type: RType

    def __str__(self) -> str:
        return str(self.type)


@dataclass(frozen=True)
class Forall:
    type_var: str
    schema: RSchema

    def __str__(self) -> str:
        return f"<{self.type_var}> . {self.schema}"


RSchema = Union[Monotype, Forall]
TypeSubstitution = Dict[str, RType]


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def int_type(refinement: Optional[Formula] = None) -> ScalarT:
    return ScalarT(INT_BASE, (), refinement if refinement is not None else F_TRUE())

def bool_type(refinement: Optional[Formula] = None) -> ScalarT:
    return ScalarT(BOOL_BASE, (), refinement if refinement is not None else F_TRUE())

def vart(name: str, refinement: Optional[Formula] = None) -> ScalarT:
    return ScalarT(type_var_base(name), (), refinement if refinement is not None else F_TRUE())

def datatype(name: str, args: Tuple[RType, ...] = (), refinement: Optional[Formula] = None) -> ScalarT:
    return ScalarT(datatype_base(name), tuple(args), refinement if refinement is not None else F_TRUE())

def forall(type_vars, t: RType) -> RSchema:
    """Quantify ``t`` over ``type_vars``, outermost first."""
    sch: RSchema = Monotype(t)
    for a in reversed(list(type_vars)):
        sch = Forall(a, sch)
    return sch


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def to_sort(base: BaseType) -> Sort:
    if base.kind == BaseKind.BOOL:
        return BOOL_SORT
    if base.kind == BaseKind.INT:
        return INT_SORT
    if base.kind == BaseKind.DATATYPE:
        return data_sort(base.name)
    return var_sort(base.name)


def to_monotype(sch: RSchema) -> RType:
    while isinstance(sch, Forall):
        sch = sch.schema
    return sch.type


def is_function_type(t: RType) -> bool:
    return isinstance(t, FunctionT)


def free_type_var(t: RType) -> str:
    """Name of the type variable if ``t`` is a bare type variable, else ''."""
    if isinstance(t, ScalarT) and t.base.kind == BaseKind.TYPE_VAR and not t.args:
        return t.base.name
    return ""


def arity(t: RType) -> int:
    n = 0
    while isinstance(t, FunctionT):
        n += 1
        t = t.result
    return n


def last_type(t: RType) -> RType:
    while isinstance(t, FunctionT):
        t = t.result
    return t


def type_vars_of(t: RType) -> Set[str]:
    if isinstance(t, FunctionT):
        return type_vars_of(t.arg_type) | type_vars_of(t.result)
    result: Set[str] = set()
    if t.base.kind == BaseKind.TYPE_VAR:
        result.add(t.base.name)
    for a in t.args:
        result |= type_vars_of(a)
    return result


def unknowns_of_type(t: RType) -> Set[str]:
    if isinstance(t, FunctionT):
        return unknowns_of_type(t.arg_type) | unknowns_of_type(t.result)
    result = unknowns_of(t.refinement)
    for a in t.args:
        result |= unknowns_of_type(a)
    return result


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------

def shape(t: RType) -> RType:
    """Erase every refinement in ``t``."""
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name, shape(t.arg_type), shape(t.result))
    return ScalarT(t.base, tuple(shape(a) for a in t.args), F_TRUE())


def refine_top(t: RType) -> RType:
    """Weakest refinement of a shape."""
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name, refine_bot(t.arg_type), refine_top(t.result))
    return ScalarT(t.base, tuple(refine_top(a) for a in t.args), F_TRUE())


def refine_bot(t: RType) -> RType:
    """Strongest refinement of a shape."""
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name, refine_top(t.arg_type), refine_bot(t.result))
    return ScalarT(t.base, tuple(refine_bot(a) for a in t.args), F_FALSE())


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------

def add_refinement(t: RType, fml: Formula) -> RType:
    if isinstance(t, ScalarT):
        return replace(t, refinement=F_AND(t.refinement, fml))
    return t


def _map_refinements(t: RType, fn) -> RType:
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name, _map_refinements(t.arg_type, fn), _map_refinements(t.result, fn))
    return ScalarT(t.base, tuple(_map_refinements(a, fn) for a in t.args), fn(t.refinement))


def formula_substitute_type(mapping: Mapping[str, Formula], t: RType) -> RType:
    """Substitute term variables inside every refinement of ``t``.

    A function argument with the same name as a substituted variable shadows
    it in the result type.
    """
    if not mapping:
        return t
    if isinstance(t, FunctionT):
        arg = formula_substitute_type(mapping, t.arg_type)
        if t.arg_name in mapping:
            inner = {x: e for x, e in mapping.items() if x != t.arg_name}
            return FunctionT(t.arg_name, arg, formula_substitute_type(inner, t.result))
        return FunctionT(t.arg_name, arg, formula_substitute_type(mapping, t.result))
    return ScalarT(t.base, tuple(formula_substitute_type(mapping, a) for a in t.args),
                   substitute(t.refinement, mapping))


def rename_var(old: str, new: str, t_arg: RType, t: RType) -> RType:
    """Rename term variable ``old`` of type ``t_arg`` to ``new`` inside ``t``.

    Only scalar variables can occur in refinements, so a function-typed
    ``t_arg`` leaves ``t`` unchanged.
    """
    if not isinstance(t_arg, ScalarT) or old == new:
        return t
    return formula_substitute_type({old: F_VAR(new, to_sort(t_arg.base))}, t)


def sort_assignment(tass: Mapping[str, RType]) -> Dict[str, Sort]:
    """Sorts induced by assigning type variables to scalar types."""
    sorts: Dict[str, Sort] = {}
    for a, t in tass.items():
        if isinstance(t, ScalarT):
            sorts[a] = to_sort(t.base)
    # Chase chains a -> b -> Int
    changed = True
    while changed:
        changed = False
        for a, s in list(sorts.items()):
            if s.kind == SortKind.VAR and s.name in sorts and sorts[s.name] != s:
                sorts[a] = sorts[s.name]
                changed = True
    return sorts


def type_substitute(tass: Mapping[str, RType], t: RType) -> RType:
    """Apply a type substitution to ``t``.

    An assigned type variable is replaced by its assignment strengthened
    with the variable's own refinement; the sorts of variables ranging over
    assigned type variables are resolved along the way.
    """
    if not tass:
        return t
    return _map_refinements(_type_substitute(tass, t),
                            lambda f: substitute_sorts(f, sort_assignment(tass)))


def _type_substitute(tass: Mapping[str, RType], t: RType) -> RType:
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name, _type_substitute(tass, t.arg_type), _type_substitute(tass, t.result))
    a = free_type_var(t)
    if a and a in tass:
        return _type_substitute(tass, add_refinement(tass[a], t.refinement))
    return ScalarT(t.base, tuple(_type_substitute(tass, arg) for arg in t.args), t.refinement)


def schema_substitute(tass: Mapping[str, RType], sch: RSchema) -> RSchema:
    if isinstance(sch, Forall):
        inner = {a: t for a, t in tass.items() if a != sch.type_var}
        return Forall(sch.type_var, schema_substitute(inner, sch.schema))
    return Monotype(type_substitute(tass, sch.type))
