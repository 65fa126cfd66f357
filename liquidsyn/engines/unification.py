"""Freshening and unification of refinement types.

Unification here is Robinson-style on shapes, with one twist: a free type
variable is never assigned the concrete type it is compared with, but a
structurally FRESH copy of it whose every scalar position carries a brand
new refinement unknown. The liquid solver later decides how strong those
refinements must be; a WellFormed constraint on the copy makes sure each
new unknown receives a qualifier space.

  unify(a, T) = FAIL               if a occurs in T
              = [a -> fresh(T)]    otherwise

References:
  Robinson (1965) "A Machine-Oriented Logic Based on the Resolution Principle"
  JACM 12(1), https://doi.org/10.1145/321250.321253

  Polikarpova, Kuraj, Solar-Lezama (2016) "Program Synthesis from
  Polymorphic Refinement Types"
  PLDI '16, https://doi.org/10.1145/2908080.2908093
"""

from __future__ import annotations

import logging
from typing import Dict

from liquidsyn.constraints import WellFormed
from liquidsyn.engines.state import ExplorerState
from liquidsyn.environment import Environment
from liquidsyn.errors import Backtrack, occurs_check
from liquidsyn.logic import F_TRUE, F_UNKNOWN
from liquidsyn.types import (
    RType, RSchema, ScalarT, FunctionT, Forall,
    free_type_var, type_vars_of, type_substitute, vart,
)

logger = logging.getLogger(__name__)


def fresh_type_vars(state: ExplorerState, sch: RSchema) -> RType:
    """Instantiate every quantified type variable of ``sch`` with a fresh one."""
    subst: Dict[str, RType] = {}
    while isinstance(sch, Forall):
        subst[sch.type_var] = vart(state.fresh_id("a"), F_TRUE())
        sch = sch.schema
    return type_substitute(subst, sch.type)


def fresh(state: ExplorerState, env: Environment, t: RType) -> RType:
    """A type of the same shape as ``t`` with fresh type variables in place
    of its free ones and fresh unknowns as refinements."""
    if isinstance(t, FunctionT):
        return FunctionT(t.arg_name, fresh(state, env, t.arg_type), fresh(state, env, t.result))
    a = free_type_var(t)
    if a and not env.is_bound(a):
        return vart(state.fresh_id("a"), F_TRUE())
    k = state.fresh_id("u")
    args = tuple(fresh(state, env, arg) for arg in t.args)
    return ScalarT(t.base, args, F_UNKNOWN(k))


def unify(state: ExplorerState, env: Environment, a: str, t: RType) -> None:
    """Assign free type variable ``a`` a fresh copy of ``t``.

    Raises Backtrack if ``a`` occurs in ``t``; the type assignment is left
    untouched in that case.
    """
    if a in type_vars_of(t):
        logger.debug("FAIL: type variable %s occurs in %s", a, t)
        raise Backtrack(occurs_check(a, t))
    t_fresh = fresh(state, env, t)
    logger.debug("UNIFY %s WITH %s PRODUCING %s", a, t, t_fresh)
    state.add_constraint(WellFormed(env, t_fresh))
    state.add_type_assignment(a, t_fresh)
