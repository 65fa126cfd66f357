"""Constraint simplification — decomposition and type-variable resolution.

Rewrites the pending typing constraints until only atomic ones remain:

  1. a <: T, T <: a with a assigned      -> substitute and retry
  2. a <: b, both free and unassigned    -> defer (discharged when a == b)
  3. a <: T, T <: a with a free          -> unify, then retry
  4. B t1..tn {p} <: B t1'..tn' {p'}     -> t1 <: t1', then the rest
  5. x:S1 -> T1 <: y:S2 -> T2            -> S2 <: S1 and T1[x := y] <: T2
                                            under y:S2
  6. WellFormed on compound types        -> decompose the same way
  7. atomic scalar/scalar, WF, WFCond    -> keep for lowering
  8. anything else                       -> shape mismatch, branch fails

A pass that assigns a new type variable may unlock deferred constraints, so
passes repeat until the type assignment stops growing. Each non-final pass
assigns at least one of the finitely many free type variables, which
bounds the number of passes.
"""

from __future__ import annotations

import logging

from liquidsyn.constraints import Constraint, Subtype, WellFormed, WellFormedCond
from liquidsyn.engines.state import ExplorerState
from liquidsyn.engines.unification import unify
from liquidsyn.errors import Backtrack, shape_mismatch
from liquidsyn.types import (
    ScalarT, FunctionT, free_type_var, rename_var, type_substitute,
)

logger = logging.getLogger(__name__)


def simplify_all_constraints(state: ExplorerState) -> int:
    """Simplify pending constraints to a fixpoint; returns the number of passes."""
    passes = 0
    while True:
        passes += 1
        cs = state.typing_constraints
        before = len(state.type_assignment)
        logger.debug("Typing constraints:\n%s", "\n".join(str(c) for c in cs))
        state.typing_constraints = []
        for c in cs:
            simplify_constraint(state, c)
        logger.debug("Type assignment: %s",
                     {a: str(t) for a, t in state.type_assignment.items()})
        if len(state.type_assignment) <= before:
            return passes


def simplify_constraint(state: ExplorerState, c: Constraint) -> None:
    tass = state.type_assignment

    if isinstance(c, Subtype):
        env, sub, sup = c.env, c.sub, c.sup
        a = free_type_var(sub)
        b = free_type_var(sup)

        # Type variable with known assignment: substitute
        if a and a in tass:
            simplify_constraint(state, Subtype(env, type_substitute(tass, sub), sup))
            return
        if b and b in tass:
            simplify_constraint(state, Subtype(env, sub, type_substitute(tass, sup)))
            return

        # Two unknown free variables: nothing can be done for now
        if a and b and not env.is_bound(a) and not env.is_bound(b):
            if a == b:
                logger.debug("simplify: equal type variables on both sides")
            else:
                state.add_constraint(c)
            return

        # Unknown free variable and a type: extend type assignment
        if a and not env.is_bound(a):
            unify(state, env, a, sup)
            simplify_constraint(state, c)
            return
        if b and not env.is_bound(b):
            unify(state, env, b, sub)
            simplify_constraint(state, c)
            return

        # Compound types: decompose
        if isinstance(sub, ScalarT) and isinstance(sup, ScalarT) and sub.args and sup.args:
            simplify_constraint(state, Subtype(env, sub.args[0], sup.args[0]))
            simplify_constraint(state, Subtype(
                env,
                ScalarT(sub.base, sub.args[1:], sub.refinement),
                ScalarT(sup.base, sup.args[1:], sup.refinement),
            ))
            return
        if isinstance(sub, FunctionT) and isinstance(sup, FunctionT):
            simplify_constraint(state, Subtype(env, sup.arg_type, sub.arg_type))
            simplify_constraint(state, Subtype(
                env.add_variable(sup.arg_name, sup.arg_type),
                rename_var(sub.arg_name, sup.arg_name, sup.arg_type, sub.result),
                sup.result,
            ))
            return

        # Simple constraint: keep for lowering
        if (isinstance(sub, ScalarT) and isinstance(sup, ScalarT)
                and not sub.args and not sup.args and sub.base == sup.base):
            state.add_constraint(c)
            return

    elif isinstance(c, WellFormed):
        t = c.type
        if isinstance(t, ScalarT) and t.args:
            simplify_constraint(state, WellFormed(c.env, t.args[0]))
            simplify_constraint(state, WellFormed(c.env, ScalarT(t.base, t.args[1:], t.refinement)))
            return
        if isinstance(t, FunctionT):
            simplify_constraint(state, WellFormed(c.env, t.arg_type))
            simplify_constraint(state, WellFormed(c.env.add_variable(t.arg_name, t.arg_type), t.result))
            return
        state.add_constraint(c)
        return

    elif isinstance(c, WellFormedCond):
        state.add_constraint(c)
        return

    # Otherwise (shape mismatch): fail
    logger.debug("FAIL: shape mismatch in %s", c)
    raise Backtrack(shape_mismatch(c))
