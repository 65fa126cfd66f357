"""liquidsyn Constraint Lowering and Solving Tests — LOWER-001 through LOWER-004."""

import pytest

from liquidsyn.config import ExplorerParams
from liquidsyn.constraints import Subtype, WellFormed, WellFormedCond
from liquidsyn.engines.lowering import process_all_constraints, process_constraint
from liquidsyn.engines.solving import solve_constraints
from liquidsyn.engines.state import ExplorerState
from liquidsyn.environment import Environment
from liquidsyn.errors import Backtrack, ErrorKind, InternalExplorerError
from liquidsyn.logic import (
    VALUE_VAR, BOOL_SORT, INT_SORT,
    F_EQ, F_GE, F_HORN, F_INT, F_NOT, F_OR, F_UNKNOWN, F_VALUE, F_VAR,
    conjunction,
)
from liquidsyn.program import symbol
from liquidsyn.qualifiers import QSpace
from liquidsyn.solver import Candidate
from liquidsyn.types import FunctionT, bool_type, int_type, vart


class RecordingSolver:
    """Accepts (or rejects) everything and records what it was given."""

    def __init__(self, accept=True):
        self.accept = accept
        self.refine_calls = []
        self.pruned = []

    def init(self):
        return Candidate()

    def refine(self, clauses, qmap, program, candidates):
        self.refine_calls.append((list(clauses), dict(qmap), program))
        return list(candidates) if self.accept else []

    def prune_qualifiers(self, space):
        self.pruned.append(space)
        return QSpace(space.qualifiers[:1])


def recording_gen(log):
    def gen(exprs):
        log.append(list(exprs))
        return QSpace(tuple(F_EQ(e, e) for e in exprs))
    return gen


class TestLOWER001:
    """LOWER-001: Subtyping between atomic scalars becomes a Horn clause."""

    def test_trivial_leaf_clause(self):
        state = ExplorerState()
        c = Subtype(Environment(), int_type(F_EQ(F_VALUE(), F_INT(1))), int_type(F_GE(F_VALUE(), F_INT(0))))
        process_constraint(state, ExplorerParams(), RecordingSolver(), c)
        assert state.horn_clauses == [
            F_HORN(F_EQ(F_VALUE(), F_INT(1)), F_GE(F_VALUE(), F_INT(0))),
        ]

    def test_true_consequent_dropped(self):
        state = ExplorerState()
        c = Subtype(Environment(), int_type(F_EQ(F_VALUE(), F_INT(1))), int_type())
        process_constraint(state, ExplorerParams(), RecordingSolver(), c)
        assert state.horn_clauses == []

    def test_embedding_and_negative_assumptions(self):
        x_pos = F_GE(F_VAR("x"), F_INT(0))
        neg = F_NOT(F_EQ(F_VAR("x"), F_INT(5)))
        env = (Environment()
               .add_variable("x", int_type(F_GE(F_VALUE(), F_INT(0))))
               .add_neg_assumption(neg))
        sub = int_type(F_EQ(F_VALUE(), F_VAR("x")))
        sup = int_type(F_UNKNOWN("u"))
        state = ExplorerState()
        process_constraint(state, ExplorerParams(), RecordingSolver(), Subtype(env, sub, sup))
        [clause] = state.horn_clauses
        lhs, rhs = clause.children
        assert lhs == conjunction([x_pos, sub.refinement])
        assert rhs == F_OR(F_UNKNOWN("u"), neg)

    def test_free_variables_pass_through(self):
        state = ExplorerState()
        c = Subtype(Environment(), vart("a"), vart("b"))
        state.add_constraint(c)
        process_all_constraints(state, ExplorerParams(), RecordingSolver())
        assert state.typing_constraints == [c]
        assert state.horn_clauses == []


class TestLOWER002:
    """LOWER-002: Well-formedness requests qualifier spaces."""

    def test_type_qualifiers(self):
        log = []
        params = ExplorerParams(type_quals_gen=recording_gen(log))
        solver = RecordingSolver()
        env = Environment().add_variable("n", int_type()).add_variable("b", bool_type())
        state = ExplorerState()
        process_constraint(state, params, solver, WellFormed(env, int_type(F_UNKNOWN("u0"))))
        [exprs] = log
        assert exprs[0] == F_VAR(VALUE_VAR, INT_SORT)
        assert set(exprs[1:]) == {F_VAR("n", INT_SORT), F_VAR("b", BOOL_SORT)}
        # stored after pruning
        assert len(solver.pruned) == 1
        assert state.qualifier_map["u0"] == QSpace(solver.pruned[0].qualifiers[:1])

    def test_cond_qualifiers(self):
        log = []
        params = ExplorerParams(cond_quals_gen=recording_gen(log))
        env = Environment().add_variable("n", int_type())
        state = ExplorerState()
        process_constraint(state, params, RecordingSolver(), WellFormedCond(env, F_UNKNOWN("c0")))
        assert log == [[F_VAR("n", INT_SORT)]]
        assert "c0" in state.qualifier_map

    def test_known_refinement_needs_no_space(self):
        state = ExplorerState()
        solver = RecordingSolver()
        process_constraint(state, ExplorerParams(), solver,
                           WellFormed(Environment(), int_type(F_GE(F_VALUE(), F_INT(0)))))
        assert state.qualifier_map == {}
        assert solver.pruned == []


class TestLOWER003:
    """LOWER-003: Non-simple constraints reaching lowering are fatal."""

    @pytest.mark.parametrize("c", [
        Subtype(Environment(), int_type(), bool_type()),
        Subtype(Environment(), FunctionT("x", int_type(), int_type()), FunctionT("y", int_type(), int_type())),
        WellFormed(Environment(), FunctionT("x", int_type(), int_type())),
    ])
    def test_fatal(self, c):
        with pytest.raises(InternalExplorerError) as exc:
            process_constraint(ExplorerState(), ExplorerParams(), RecordingSolver(), c)
        assert exc.value.errors[0].kind == ErrorKind.NOT_SIMPLE_CONSTRAINT


class TestLOWER004:
    """LOWER-004: One solve step."""

    def test_accepting_solver(self):
        solver = RecordingSolver()
        state = ExplorerState(candidates=[Candidate(label="start")])
        env = Environment()
        state.add_constraint(Subtype(env, int_type(F_EQ(F_VALUE(), F_INT(1))), int_type(F_GE(F_VALUE(), F_INT(0)))))
        solve_constraints(state, ExplorerParams(), solver, symbol("one", int_type()))
        [(clauses, qmap, program)] = solver.refine_calls
        assert len(clauses) == 1
        assert state.horn_clauses == []
        assert state.typing_constraints == []
        assert [c.label for c in state.candidates] == ["start"]

    def test_program_types_substituted(self):
        solver = RecordingSolver()
        state = ExplorerState(candidates=[Candidate()], type_assignment={"a": int_type()})
        solve_constraints(state, ExplorerParams(), solver, symbol("x", vart("a")))
        assert solver.refine_calls[0][2].type == int_type()

    def test_rejecting_solver_backtracks(self):
        state = ExplorerState(candidates=[Candidate()])
        state.add_constraint(Subtype(Environment(), int_type(), int_type(F_UNKNOWN("u"))))
        with pytest.raises(Backtrack) as exc:
            solve_constraints(state, ExplorerParams(), RecordingSolver(accept=False), symbol("x", int_type()))
        assert exc.value.error.kind == ErrorKind.NO_CANDIDATES

    def test_shape_mismatch_backtracks(self):
        state = ExplorerState(candidates=[Candidate()])
        state.add_constraint(Subtype(Environment(), int_type(), bool_type()))
        with pytest.raises(Backtrack):
            solve_constraints(state, ExplorerParams(), RecordingSolver(), symbol("x", int_type()))
