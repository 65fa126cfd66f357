"""Per-branch exploration state.

The state of one search branch is everything the constraint pipeline
accumulates while a program is being built. Choice points take a snapshot
before trying an alternative and restore it before the next one, so a
failed alternative leaves no trace. The identifier counter is the one
exception: it only ever advances, so a fresh name is never reused and can
never be captured by a sibling branch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from liquidsyn.constraints import Constraint
from liquidsyn.errors import InternalExplorerError, conflicting_assignment
from liquidsyn.logic import Formula, F_HORN
from liquidsyn.qualifiers import QMap, QSpace
from liquidsyn.solver import Candidate
from liquidsyn.types import RType


@dataclass(frozen=True)
class BranchSnapshot:
    typing_constraints: Tuple[Constraint, ...]
    qualifier_map: Tuple[Tuple[str, QSpace], ...]
    horn_clauses: Tuple[Formula, ...]
    type_assignment: Tuple[Tuple[str, RType], ...]
    candidates: Tuple[Candidate, ...]


@dataclass
class ExplorerState:
    id_count: int = 0
    typing_constraints: List[Constraint] = field(default_factory=list)
    qualifier_map: QMap = field(default_factory=dict)
    horn_clauses: List[Formula] = field(default_factory=list)
    type_assignment: Dict[str, RType] = field(default_factory=dict)
    candidates: List[Candidate] = field(default_factory=list)

    def fresh_id(self, prefix: str) -> str:
        i = self.id_count
        self.id_count = i + 1
        return f"{prefix}{i}"

    def add_constraint(self, c: Constraint) -> None:
        self.typing_constraints.append(c)

    def add_type_assignment(self, a: str, t: RType) -> None:
        old = self.type_assignment.get(a)
        if old is not None and old != t:
            raise InternalExplorerError(conflicting_assignment(a, old, t))
        self.type_assignment[a] = t

    def add_horn_clause(self, lhs: Formula, rhs: Formula) -> None:
        self.horn_clauses.append(F_HORN(lhs, rhs))

    def snapshot(self) -> BranchSnapshot:
        return BranchSnapshot(
            typing_constraints=tuple(self.typing_constraints),
            qualifier_map=tuple(self.qualifier_map.items()),
            horn_clauses=tuple(self.horn_clauses),
            type_assignment=tuple(self.type_assignment.items()),
            candidates=tuple(self.candidates),
        )

    def restore(self, snap: BranchSnapshot) -> None:
        self.typing_constraints = list(snap.typing_constraints)
        self.qualifier_map = dict(snap.qualifier_map)
        self.horn_clauses = list(snap.horn_clauses)
        self.type_assignment = dict(snap.type_assignment)
        self.candidates = list(snap.candidates)
