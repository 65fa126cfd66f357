"""Type-annotated program terms produced by the explorer.

Every node carries the refinement type it was generated at. Terms are
immutable; type substitutions and liquid solutions are applied by building
a new tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Tuple, Union

from liquidsyn.logic import Formula, apply_solution
from liquidsyn.types import (
    RType, ScalarT, FunctionT, type_substitute,
)


@dataclass(frozen=True)
class PSymbol:
    name: str


@dataclass(frozen=True)
class PApp:
    fun: Program
    arg: Program


@dataclass(frozen=True)
class PFun:
    arg_name: str
    body: Program


@dataclass(frozen=True)
class PFix:
    names: Tuple[str, ...]
    body: Program


@dataclass(frozen=True)
class Case:
    constructor: str
    arg_names: Tuple[str, ...]
    expr: Program


@dataclass(frozen=True)
class PMatch:
    scrutinee: Program
    cases: Tuple[Case, ...]


@dataclass(frozen=True)
class PIf:
    cond: Formula
    then_branch: Program
    else_branch: Program


ProgramContent = Union[PSymbol, PApp, PFun, PFix, PMatch, PIf]


@dataclass(frozen=True)
class Program:
    content: ProgramContent
    type: RType

    def __str__(self) -> str:
        return render(self)


def symbol(name: str, t: RType) -> Program:
    return Program(PSymbol(name), t)


def is_symbol(p: Program) -> bool:
    return isinstance(p.content, PSymbol)


# ---------------------------------------------------------------------------
# Traversals
# ---------------------------------------------------------------------------

def _map_program(p: Program, on_type, on_cond) -> Program:
    c = p.content
    if isinstance(c, PSymbol):
        content: ProgramContent = c
    elif isinstance(c, PApp):
        content = PApp(_map_program(c.fun, on_type, on_cond), _map_program(c.arg, on_type, on_cond))
    elif isinstance(c, PFun):
        content = PFun(c.arg_name, _map_program(c.body, on_type, on_cond))
    elif isinstance(c, PFix):
        content = PFix(c.names, _map_program(c.body, on_type, on_cond))
    elif isinstance(c, PMatch):
        content = PMatch(
            _map_program(c.scrutinee, on_type, on_cond),
            tuple(Case(k.constructor, k.arg_names, _map_program(k.expr, on_type, on_cond))
                  for k in c.cases),
        )
    else:
        content = PIf(on_cond(c.cond),
                      _map_program(c.then_branch, on_type, on_cond),
                      _map_program(c.else_branch, on_type, on_cond))
    return Program(content, on_type(p.type))


def program_substitute_types(tass: Mapping[str, RType], p: Program) -> Program:
    """Apply a type substitution to every type annotation in ``p``."""
    if not tass:
        return p
    return _map_program(p, lambda t: type_substitute(tass, t), lambda f: f)


def _type_apply_solution(solution: Mapping[str, Iterable[Formula]], t: RType) -> RType:
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name,
                         _type_apply_solution(solution, t.arg_type),
                         _type_apply_solution(solution, t.result))
    return ScalarT(t.base,
                   tuple(_type_apply_solution(solution, a) for a in t.args),
                   apply_solution(solution, t.refinement))


def program_apply_solution(solution: Mapping[str, Iterable[Formula]], p: Program) -> Program:
    """Replace solved unknowns in types and conditional guards of ``p``."""
    return _map_program(p,
                        lambda t: _type_apply_solution(solution, t),
                        lambda f: apply_solution(solution, f))


def render(p: Program, indent: int = 0) -> str:
    pad = "  " * indent
    c = p.content
    if isinstance(c, PSymbol):
        return c.name
    if isinstance(c, PApp):
        arg = render(c.arg, indent)
        if not isinstance(c.arg.content, PSymbol):
            arg = f"({arg})"
        return f"{render(c.fun, indent)} {arg}"
    if isinstance(c, PFun):
        return f"\\{c.arg_name} . {render(c.body, indent)}"
    if isinstance(c, PFix):
        return f"fix {', '.join(c.names)} . {render(c.body, indent)}"
    if isinstance(c, PMatch):
        lines = [f"match {render(c.scrutinee, indent)} with"]
        for case in c.cases:
            head = " ".join((case.constructor,) + case.arg_names)
            lines.append(f"{pad}  {head} -> {render(case.expr, indent + 1)}")
        return "\n".join(lines)
    return (f"if {c.cond}\n{pad}  then {render(c.then_branch, indent + 1)}"
            f"\n{pad}  else {render(c.else_branch, indent + 1)}")
