"""Z3-backed incremental liquid solver (greatest fixpoint).

Implements the predicate-abstraction fixpoint from:
  Rondon, Kawaguchi, Jhala (2008) "Liquid Types"
  PLDI '08, https://doi.org/10.1145/1375581.1375602

  Flanagan, Leino (2001) "Houdini, an Annotation Assistant for ESC/Java"
  FME '01, https://doi.org/10.1007/3-540-45251-6_9

Algorithm, per candidate:
  1. Every unknown that enters the qualifier map starts at the conjunction
     of its WHOLE qualifier space (the strongest valuation).
  2. Every Horn clause  lhs ==> d1 || ... || dn  the candidate has ever seen
     is checked under the current valuation.
  3. An invalid clause whose consequent contains an unknown u weakens u:
     only qualifiers q with  lhs && !(other disjuncts) ==> q  survive.
     An invalid clause with no unknown in its consequent cannot be repaired
     (weakening only makes antecedents weaker) and the candidate is dropped.
  4. Repeat until no valuation changes. The lattice of qualifier subsets is
     finite and every step removes at least one qualifier, so this
     terminates in at most |Q| * |unknowns| + 1 rounds.

The result is the greatest solution consistent with all clauses, or none.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from liquidsyn.logic import (
    Formula, FormulaKind,
    F_TRUE, F_AND, F_OR, F_NOT, F_IMPLIES,
    apply_solution, substitute, unknowns_of,
)
from liquidsyn.program import Program
from liquidsyn.qualifiers import QMap, QSpace
from liquidsyn.smt import Z3Encoder
from liquidsyn.solver import Candidate, Solution

logger = logging.getLogger(__name__)


def split_clause(clause: Formula) -> Tuple[Formula, List[Formula]]:
    """Antecedent and consequent disjuncts of a Horn clause."""
    if clause.kind == FormulaKind.IMPLIES:
        lhs, rhs = clause.children
    else:
        lhs, rhs = F_TRUE(), clause
    disjuncts = list(rhs.children) if rhs.kind == FormulaKind.OR else [rhs]
    return lhs, disjuncts


class LiquidSolver:
    """Greatest-fixpoint implementation of the constraint-solver interface."""

    def __init__(self, timeout_ms: int = 5000):
        self.timeout_ms = timeout_ms
        self.encoder = Z3Encoder()

    def init(self) -> Candidate:
        return Candidate()

    def refine(self, clauses: Sequence[Formula], qmap: QMap, program: Program,
               candidates: List[Candidate]) -> List[Candidate]:
        logger.debug("Refining %d candidate(s) with %d new clause(s) for %s",
                     len(candidates), len(clauses), program)
        result: List[Candidate] = []
        for cand in candidates:
            refined = self._refine_candidate(cand, clauses, qmap)
            if refined is not None:
                result.append(refined)
        return result

    def prune_qualifiers(self, space: QSpace) -> QSpace:
        """Drop qualifiers that are trivially true, unsatisfiable or duplicate."""
        kept: List[Formula] = []
        for q in space.qualifiers:
            if self.encoder.is_valid(q, self.timeout_ms):
                continue
            if not self.encoder.is_satisfiable(q, self.timeout_ms):
                continue
            if any(self._equivalent(q, k) for k in kept):
                continue
            kept.append(q)
        return QSpace(tuple(kept))

    # -- internals ----------------------------------------------------------

    def _equivalent(self, p: Formula, q: Formula) -> bool:
        return self.encoder.is_valid(F_AND(F_IMPLIES(p, q), F_IMPLIES(q, p)), self.timeout_ms)

    def _refine_candidate(self, cand: Candidate, clauses: Sequence[Formula],
                          qmap: QMap) -> Optional[Candidate]:
        solution: Solution = dict(cand.solution)
        for u, space in qmap.items():
            if u not in solution:
                solution[u] = frozenset(space.qualifiers)

        all_clauses = list(cand.constraints) + [c for c in clauses if c not in cand.constraints]
        for clause in all_clauses:
            for u in unknowns_of(clause):
                solution.setdefault(u, frozenset())

        max_rounds = sum(len(s) for s in solution.values()) + 1
        for _ in range(max_rounds):
            changed = False
            for clause in all_clauses:
                status = self._check_clause(clause, solution)
                if status is None:
                    logger.debug("Clause cannot be repaired: %s", clause)
                    return None
                changed = changed or status
            if not changed:
                break

        return Candidate(solution=solution, constraints=tuple(all_clauses), label=cand.label)

    def _check_clause(self, clause: Formula,
                      solution: Solution) -> Optional[bool]:
        """Make ``clause`` valid under ``solution``.

        Returns False if it already holds, True if an unknown was weakened,
        None if it cannot be satisfied.
        """
        if self.encoder.is_valid(apply_solution(solution, clause), self.timeout_ms):
            return False

        lhs, disjuncts = split_clause(clause)
        for i, d in enumerate(disjuncts):
            if d.kind != FormulaKind.UNKNOWN:
                continue
            others = [apply_solution(solution, o) for j, o in enumerate(disjuncts) if j != i]
            antecedent = F_AND(apply_solution(solution, lhs), F_NOT(F_OR(*others)))
            pending = dict(d.subst)
            kept = frozenset(
                q for q in solution[d.name]
                if self.encoder.is_valid(F_IMPLIES(antecedent, substitute(q, pending)), self.timeout_ms)
            )
            if kept == solution[d.name]:
                return None
            logger.debug("Weakening %s: %d -> %d qualifier(s)", d.name, len(solution[d.name]), len(kept))
            solution[d.name] = kept
            return True
        return None
