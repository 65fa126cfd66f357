"""Typing environments.

An environment records everything in scope at one program point: term
symbols grouped by arity, bound type variables, datatype declarations, the
path condition (positive and negative assumptions), constant symbols and
ghost bindings. Environments are extended functionally: every ``add_*``
method returns a new environment and never mutates the receiver, so a
search branch can never change what an ancestor sees.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from liquidsyn.logic import (
    Formula, VALUE_VAR, F_VAR, F_MEASURE, substitute,
)
from liquidsyn.types import (
    RType, RSchema, ScalarT, Monotype,
    arity, to_monotype, to_sort, type_substitute,
)


@dataclass(frozen=True)
class DatatypeDef:
    """A user datatype: type-argument count, constructors in declaration
    order and an optional well-founded metric (a measure name)."""
    type_arg_count: int
    constructors: Tuple[str, ...]
    wf_metric: Optional[str] = None

    def metric(self, arg: Formula) -> Formula:
        return F_MEASURE(self.wf_metric, arg)


@dataclass(frozen=True)
class Environment:
    symbols: Dict[int, Dict[str, RSchema]] = field(default_factory=dict)
    bound_type_vars: Tuple[str, ...] = ()
    datatypes: Dict[str, DatatypeDef] = field(default_factory=dict)
    assumptions: FrozenSet[Formula] = frozenset()
    neg_assumptions: FrozenSet[Formula] = frozenset()
    constants: FrozenSet[str] = frozenset()
    ghosts: Dict[str, RType] = field(default_factory=dict)

    def __str__(self) -> str:
        scope = ", ".join(f"{name}: {sch}" for name, sch in sorted(self.all_symbols().items()))
        return f"[{scope}]"

    # -- extension ----------------------------------------------------------

    def add_poly_variable(self, name: str, sch: RSchema) -> Environment:
        n = arity(to_monotype(sch))
        symbols = {k: dict(v) for k, v in self.symbols.items()}
        symbols.setdefault(n, {})[name] = sch
        return replace(self, symbols=symbols)

    def add_variable(self, name: str, t: RType) -> Environment:
        return self.add_poly_variable(name, Monotype(t))

    def add_constant(self, name: str, sch: RSchema) -> Environment:
        env = self.add_poly_variable(name, sch)
        return replace(env, constants=env.constants | {name})

    def add_type_var(self, a: str) -> Environment:
        return replace(self, bound_type_vars=(a,) + self.bound_type_vars)

    def add_assumption(self, fml: Formula) -> Environment:
        return replace(self, assumptions=self.assumptions | {fml})

    def add_neg_assumption(self, fml: Formula) -> Environment:
        return replace(self, neg_assumptions=self.neg_assumptions | {fml})

    def add_ghost(self, name: str, t: RType) -> Environment:
        ghosts = dict(self.ghosts)
        ghosts[name] = t
        return replace(self, ghosts=ghosts)

    def add_datatype(self, name: str, dt: DatatypeDef) -> Environment:
        datatypes = dict(self.datatypes)
        datatypes[name] = dt
        return replace(self, datatypes=datatypes)

    # -- queries ------------------------------------------------------------

    def is_bound(self, a: str) -> bool:
        return a in self.bound_type_vars

    def symbols_of_arity(self, n: int) -> Dict[str, RSchema]:
        return dict(self.symbols.get(n, {}))

    def all_symbols(self) -> Dict[str, RSchema]:
        result: Dict[str, RSchema] = {}
        for n in sorted(self.symbols):
            result.update(self.symbols[n])
        return result

    def max_arity(self) -> int:
        populated = [n for n, syms in self.symbols.items() if syms]
        return max(populated) if populated else 0

    def _scalar_bindings(self, tass: Mapping[str, RType]) -> List[Tuple[str, ScalarT]]:
        bindings: List[Tuple[str, RType]] = [
            (name, to_monotype(sch)) for name, sch in sorted(self.symbols_of_arity(0).items())
        ]
        bindings.extend(sorted(self.ghosts.items()))
        result: List[Tuple[str, ScalarT]] = []
        for name, t in bindings:
            t = type_substitute(tass, t)
            if isinstance(t, ScalarT):
                result.append((name, t))
        return result

    def embedding(self, tass: Mapping[str, RType]) -> Tuple[FrozenSet[Formula], FrozenSet[Formula]]:
        """Path condition under type assignment ``tass``.

        Returns ``(positives, negatives)``: facts known to hold (assumptions
        and the refinement of every scalar binding instantiated on its name)
        and facts known to be false (negative assumptions).
        """
        positives = set(self.assumptions)
        for name, t in self._scalar_bindings(tass):
            fml = substitute(t.refinement, {VALUE_VAR: F_VAR(name, to_sort(t.base))})
            positives.add(fml)
        return frozenset(positives), frozenset(self.neg_assumptions)

    def all_scalars(self, tass: Mapping[str, RType]) -> List[Formula]:
        """Every scalar in scope as a sorted variable, for qualifier generation."""
        return [F_VAR(name, to_sort(t.base)) for name, t in self._scalar_bindings(tass)]
