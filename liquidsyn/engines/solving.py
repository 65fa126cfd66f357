"""One solve step: simplify, lower, refine.

Runs the whole constraint pipeline on the pending typing constraints of the
current branch and asks the liquid solver to refine the current candidate
solutions with the Horn clauses produced. Raises Backtrack if no candidate
survives.
"""

from __future__ import annotations

import logging

from liquidsyn.config import ExplorerParams
from liquidsyn.engines.lowering import process_all_constraints
from liquidsyn.engines.simplifier import simplify_all_constraints
from liquidsyn.engines.state import ExplorerState
from liquidsyn.errors import Backtrack, no_candidates
from liquidsyn.program import Program, program_substitute_types
from liquidsyn.solver import ConstraintSolver

logger = logging.getLogger(__name__)


def solve_constraints(state: ExplorerState, params: ExplorerParams,
                      solver: ConstraintSolver, program: Program) -> None:
    passes = simplify_all_constraints(state)
    logger.debug("Simplification finished after %d pass(es)", passes)
    process_all_constraints(state, params, solver)

    clauses = list(state.horn_clauses)
    logger.debug("Horn clauses:\n%s", "\n".join(str(c) for c in clauses))
    candidates = solver.refine(
        clauses,
        dict(state.qualifier_map),
        program_substitute_types(state.type_assignment, program),
        list(state.candidates),
    )
    if not candidates:
        logger.debug("FAIL: no candidate solution for %s", program)
        raise Backtrack(no_candidates(program))
    logger.debug("Candidates:\n%s", "\n".join(str(c) for c in candidates))
    state.candidates = candidates
    state.horn_clauses = []
