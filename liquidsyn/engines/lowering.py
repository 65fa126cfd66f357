"""Lowering of simple constraints to Horn clauses and qualifier requests.

After simplification every pending constraint is one of

  env |- {B | p} <: {B | q}    -> Horn clause   [[env]] && p ==> q || negs
  env |- {B | u}               -> qualifier space for unknown u
  env |- c  (guard unknown)    -> qualifier space for guard c

where [[env]] is the embedding of the environment (assumptions plus the
refinements of all scalars in scope) and negs are the negative assumptions
of the path, moved to the consequent. Anything else reaching this stage is
a bug in the simplifier and is reported as fatal.
"""

from __future__ import annotations

import logging

from liquidsyn.constraints import Constraint, Subtype, WellFormed, WellFormedCond
from liquidsyn.engines.state import ExplorerState
from liquidsyn.config import ExplorerParams
from liquidsyn.errors import InternalExplorerError, not_simple_constraint
from liquidsyn.logic import (
    FormulaKind, VALUE_VAR, F_VAR, F_OR,
    conjunction, is_true, substitute_sorts,
)
from liquidsyn.qualifiers import QSpace
from liquidsyn.solver import ConstraintSolver
from liquidsyn.types import ScalarT, free_type_var, sort_assignment, to_sort

logger = logging.getLogger(__name__)


def process_all_constraints(state: ExplorerState, params: ExplorerParams,
                            solver: ConstraintSolver) -> None:
    """Lower every pending simple constraint; unresolved ones stay pending."""
    cs = state.typing_constraints
    state.typing_constraints = []
    for c in cs:
        process_constraint(state, params, solver, c)


def process_constraint(state: ExplorerState, params: ExplorerParams,
                       solver: ConstraintSolver, c: Constraint) -> None:
    tass = state.type_assignment

    if isinstance(c, Subtype) and isinstance(c.sub, ScalarT) and isinstance(c.sup, ScalarT):
        a = free_type_var(c.sub)
        b = free_type_var(c.sup)
        if a and b and not c.env.is_bound(a) and not c.env.is_bound(b):
            # Both sides still unknown; wait for a later solve step
            state.add_constraint(c)
            return
        if c.sub.base == c.sup.base and not c.sub.args and not c.sup.args:
            rhs = c.sup.refinement
            if is_true(rhs):
                return
            poss, negs = c.env.embedding(tass)
            lhs = conjunction(poss | {c.sub.refinement})
            sorts = sort_assignment(tass)
            state.add_horn_clause(
                substitute_sorts(lhs, sorts),
                substitute_sorts(F_OR(rhs, *sorted(negs, key=str)), sorts),
            )
            return

    elif isinstance(c, WellFormed) and isinstance(c.type, ScalarT):
        fml = c.type.refinement
        if fml.kind == FormulaKind.UNKNOWN:
            value_var = substitute_sorts(F_VAR(VALUE_VAR, to_sort(c.type.base)), sort_assignment(tass))
            exprs = [value_var] + c.env.all_scalars(tass)
            add_quals(state, solver, fml.name, params.type_quals_gen(exprs))
        return

    elif isinstance(c, WellFormedCond):
        if c.cond.kind == FormulaKind.UNKNOWN:
            add_quals(state, solver, c.cond.name, params.cond_quals_gen(c.env.all_scalars(tass)))
        return

    raise InternalExplorerError(not_simple_constraint(c))


def add_quals(state: ExplorerState, solver: ConstraintSolver, name: str, quals: QSpace) -> None:
    pruned = solver.prune_qualifiers(quals)
    logger.debug("Qualifiers for %s: %s", name, pruned)
    state.qualifier_map[name] = pruned
