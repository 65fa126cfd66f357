"""Incremental second-order constraint solver interface.

The explorer never decides validity itself; it hands Horn clauses to a
solver through three operations:

  init()                                      -> Candidate
  refine(clauses, qmap, program, candidates)  -> [Candidate]
  prune_qualifiers(space)                     -> QSpace

An empty result from ``refine`` means the clauses seen so far have no
liquid solution and the current search branch must be abandoned. A
candidate carries every clause it has been checked against, so ``refine``
is a pure function of its arguments and abandoned branches cannot leak
into later calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Protocol, Sequence, Tuple

from liquidsyn.logic import Formula
from liquidsyn.program import Program
from liquidsyn.qualifiers import QMap, QSpace


Solution = Dict[str, FrozenSet[Formula]]


@dataclass(frozen=True)
class Candidate:
    """One complete guess at the liquid solution."""
    solution: Solution = field(default_factory=dict)
    constraints: Tuple[Formula, ...] = ()
    label: str = "0"

    def __str__(self) -> str:
        parts = []
        for u in sorted(self.solution):
            quals = " && ".join(sorted(str(q) for q in self.solution[u])) or "True"
            parts.append(f"{u} -> {quals}")
        return f"{self.label}: {{{'; '.join(parts)}}}"


class ConstraintSolver(Protocol):
    def init(self) -> Candidate: ...

    def refine(self, clauses: Sequence[Formula], qmap: QMap, program: Program,
               candidates: List[Candidate]) -> List[Candidate]: ...

    def prune_qualifiers(self, space: QSpace) -> QSpace: ...
