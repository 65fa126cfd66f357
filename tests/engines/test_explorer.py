"""liquidsyn Explorer Tests — EXPL-001 through EXPL-012.

Search-structure tests run against a solver that accepts every clause, so
only the shape checks of the simplifier prune the search.
"""

from itertools import islice

import pytest

from liquidsyn.config import ExplorerParams, FixpointStrategy
from liquidsyn.engines.explorer import Explorer
from liquidsyn.environment import DatatypeDef, Environment
from liquidsyn.errors import (
    Backtrack, ErrorKind, InternalExplorerError, NoSolutionError, shape_mismatch,
)
from liquidsyn.logic import (
    F_AND, F_EQ, F_GE, F_INT, F_LT, F_MEASURE, F_NOT, F_PLUS, F_VALUE, F_VAR,
    data_sort,
)
from liquidsyn.program import PApp, PFix, PFun, PIf, PMatch, PSymbol, Program
from liquidsyn.qualifiers import QSpace
from liquidsyn.solver import Candidate
from liquidsyn.types import (
    Forall, FunctionT, Monotype, bool_type, datatype, forall, int_type, vart,
)


class AcceptingSolver:
    def __init__(self):
        self.refine_count = 0

    def init(self):
        return Candidate()

    def refine(self, clauses, qmap, program, candidates):
        self.refine_count += 1
        return list(candidates)

    def prune_qualifiers(self, space):
        return space


def params(**kwargs):
    defaults = dict(e_guess_depth=1, scrutinee_depth=0, match_depth=0, cond_depth=0)
    defaults.update(kwargs)
    return ExplorerParams(**defaults)


def int_env():
    return (Environment()
            .add_variable("x", int_type())
            .add_variable("y", int_type())
            .add_constant("inc", Monotype(FunctionT("n", int_type(), int_type()))))


def list_env():
    """Monomorphic integer lists with a length metric."""
    ilist = datatype("IList")
    return (Environment()
            .add_datatype("IList", DatatypeDef(0, ("Nil", "Cons"), "len"))
            .add_constant("Nil", Monotype(ilist))
            .add_constant("Cons", Monotype(FunctionT("h", int_type(), FunctionT("t", ilist, ilist))))
            .add_variable("x", int_type())
            .add_variable("xs", ilist))


def nodes(p):
    """Every node of program ``p``."""
    yield p
    c = p.content
    if isinstance(c, PApp):
        yield from nodes(c.fun)
        yield from nodes(c.arg)
    elif isinstance(c, (PFun, PFix)):
        yield from nodes(c.body)
    elif isinstance(c, PMatch):
        yield from nodes(c.scrutinee)
        for case in c.cases:
            yield from nodes(case.expr)
    elif isinstance(c, PIf):
        yield from nodes(c.then_branch)
        yield from nodes(c.else_branch)


class TestEXPL001:
    """EXPL-001: Guess-and-check enumerates variables, then applications."""

    def test_enumeration_order(self):
        explorer = Explorer(params(), AcceptingSolver())
        programs = [str(p) for p in explorer.explore(int_env(), Monotype(int_type()))]
        assert programs == ["x", "y", "inc x", "inc y"]

    def test_guessed_leaf_has_goal_type(self):
        goal = int_type(F_GE(F_VALUE(), F_INT(0)))
        explorer = Explorer(params(), AcceptingSolver())
        p = explorer.synthesize(int_env(), Monotype(goal))
        assert p.content == PSymbol("x")
        assert p.type == goal

    def test_lambda_for_function_goal(self):
        explorer = Explorer(params(fix_strategy=FixpointStrategy.DISABLE_FIXPOINT), AcceptingSolver())
        p = explorer.synthesize(Environment(), Monotype(FunctionT("n", int_type(), int_type())))
        assert isinstance(p.content, PFun) and p.content.arg_name == "n"
        assert p.content.body.content == PSymbol("n")

    def test_polymorphic_identity(self):
        explorer = Explorer(params(), AcceptingSolver())
        sch = forall(["a"], FunctionT("z", vart("a"), vart("a")))
        p = explorer.synthesize(Environment(), sch)
        assert str(p) == "\\z . z"


class TestEXPL002:
    """EXPL-002: Depth budgets exclude strategies."""

    def test_no_applications_at_depth_zero(self):
        explorer = Explorer(params(e_guess_depth=0), AcceptingSolver())
        programs = list(explorer.explore(int_env(), Monotype(int_type())))
        assert [str(p) for p in programs] == ["x", "y"]
        assert not any(isinstance(n.content, PApp) for p in programs for n in nodes(p))

    def test_no_conditionals_at_depth_zero(self):
        explorer = Explorer(params(cond_depth=0), AcceptingSolver())
        programs = list(islice(explorer.explore(int_env(), Monotype(int_type())), 50))
        assert not any(isinstance(n.content, PIf) for p in programs for n in nodes(p))

    def test_conditionals_with_budget(self):
        explorer = Explorer(params(e_guess_depth=0, cond_depth=1), AcceptingSolver())
        programs = list(explorer.explore(int_env(), Monotype(int_type())))
        conds = [p for p in programs if isinstance(p.content, PIf)]
        assert len(conds) == 4
        # nested conditionals need a larger budget
        for p in conds:
            assert not isinstance(p.content.then_branch.content, PIf)

    def test_no_matches_at_depth_zero(self):
        explorer = Explorer(params(match_depth=0), AcceptingSolver())
        programs = list(islice(explorer.explore(list_env(), Monotype(int_type())), 50))
        assert programs
        assert not any(isinstance(n.content, PMatch) for p in programs for n in nodes(p))

    def test_matches_with_budget(self):
        explorer = Explorer(params(e_guess_depth=0, match_depth=1), AcceptingSolver())
        programs = list(islice(explorer.explore(list_env(), Monotype(int_type())), 50))
        matches = [p for p in programs if isinstance(p.content, PMatch)]
        assert matches
        for p in matches:
            assert [case.constructor for case in p.content.cases] == ["Nil", "Cons"]
            assert len(p.content.cases[1].arg_names) == 2


class TestEXPL003:
    """EXPL-003: Applications need room to apply."""

    def test_nullary_environment(self):
        env = Environment().add_constant("one", Monotype(int_type()))
        explorer = Explorer(params(e_guess_depth=3), AcceptingSolver())
        assert list(explorer.generate_app(env, int_type(), explorer.params)) == []
        assert explorer.state.id_count == 0
        assert [str(p) for p in explorer.explore(env, Monotype(int_type()))] == ["one"]


class TestEXPL004:
    """EXPL-004: Branch isolation at choice points."""

    def test_failed_alternative_leaves_no_trace(self):
        explorer = Explorer(params(), AcceptingSolver())
        explorer.state.add_type_assignment("b", bool_type())
        seen = []

        def failing():
            explorer.state.add_type_assignment("a", int_type())
            explorer.state.qualifier_map["u"] = QSpace()
            explorer.state.fresh_id("x")
            raise Backtrack(shape_mismatch("test"))
            yield

        def observing():
            seen.append((dict(explorer.state.type_assignment), dict(explorer.state.qualifier_map)))
            yield "ok"

        assert list(explorer._choose([failing, observing])) == ["ok"]
        assert seen == [({"b": bool_type()}, {})]
        assert explorer.state.id_count == 1

    def test_state_restored_after_exhaustion(self):
        explorer = Explorer(params(), AcceptingSolver())

        def mutating():
            explorer.state.add_type_assignment("a", int_type())
            yield 1

        assert list(explorer._choose([mutating])) == [1]
        assert explorer.state.type_assignment == {}

    def test_sibling_after_shape_mismatch(self):
        env = (Environment()
               .add_constant("flag", Monotype(bool_type()))
               .add_constant("one", Monotype(int_type())))
        explorer = Explorer(params(), AcceptingSolver())
        p = explorer.synthesize(env, Monotype(int_type()))
        assert p.content == PSymbol("one")
        assert explorer.state.type_assignment == {}


class TestEXPL005:
    """EXPL-005: Recursive-call signatures per fixpoint strategy."""

    GOAL = FunctionT("b", bool_type(),
                     FunctionT("n", int_type(),
                               FunctionT("m", int_type(), int_type())))

    @pytest.mark.parametrize("strategy, count", [
        (FixpointStrategy.DISABLE_FIXPOINT, 0),
        (FixpointStrategy.FIRST_ARGUMENT, 1),
        (FixpointStrategy.ALL_ARGUMENTS, 2),
    ])
    def test_cardinality(self, strategy, count):
        explorer = Explorer(params(fix_strategy=strategy), AcceptingSolver())
        calls = explorer._recursive_calls(Environment(), self.GOAL, explorer.params)
        assert len(calls) == count

    def test_first_argument_decreases(self):
        explorer = Explorer(params(fix_strategy=FixpointStrategy.FIRST_ARGUMENT), AcceptingSolver())
        [(name, t)] = explorer._recursive_calls(Environment(), self.GOAL, explorer.params)
        assert name.startswith("f")
        assert t.arg_type == bool_type()
        assert t.result.arg_type.refinement == F_AND(F_GE(F_VALUE(), F_INT(0)), F_LT(F_VALUE(), F_VAR("n")))
        assert t.result.result.arg_type == int_type()

    def test_all_arguments_lexicographic(self):
        explorer = Explorer(params(fix_strategy=FixpointStrategy.ALL_ARGUMENTS), AcceptingSolver())
        first, second = explorer._recursive_calls(Environment(), self.GOAL, explorer.params)
        n_eq = second[1].result.arg_type.refinement
        m_lt = second[1].result.result.arg_type.refinement
        assert str(n_eq) == "(_v == n)"
        assert "_v < m" in str(m_lt)
        assert first[1].result.result.arg_type == int_type()

    def test_datatype_metric(self):
        env = list_env()
        explorer = Explorer(params(), AcceptingSolver())
        goal = FunctionT("l", datatype("IList"), int_type())
        [(_, t)] = explorer._recursive_calls(env, goal, explorer.params)
        assert str(t.arg_type.refinement) == "(len _v < len l)"

    def test_fix_wraps_body(self):
        explorer = Explorer(params(), AcceptingSolver())
        env = Environment().add_constant("zero", Monotype(int_type()))
        p = explorer.synthesize(env, Monotype(FunctionT("n", int_type(), int_type())))
        assert isinstance(p.content, PFix)
        assert len(p.content.names) == 1


class TestEXPL006:
    """EXPL-006: Fatal errors are not backtracked over."""

    def test_missing_constructor(self):
        env = (Environment()
               .add_datatype("T", DatatypeDef(0, ("Mk",)))
               .add_variable("t", datatype("T")))
        explorer = Explorer(params(match_depth=1), AcceptingSolver())
        with pytest.raises(InternalExplorerError) as exc:
            explorer.synthesize(env, Monotype(int_type()))
        assert exc.value.errors[0].kind == ErrorKind.MISSING_CONSTRUCTOR


class TestEXPL007:
    """EXPL-007: Exhausted search space."""

    def test_no_solution(self):
        explorer = Explorer(params(), AcceptingSolver())
        with pytest.raises(NoSolutionError) as exc:
            explorer.synthesize(Environment().add_variable("b", bool_type()), Monotype(int_type()))
        err = exc.value.errors[0]
        assert err.kind == ErrorKind.NO_SOLUTION
        assert err.details["bounds"]["match_depth"] == 0

    def test_no_solution_is_not_internal(self):
        assert not issubclass(NoSolutionError, InternalExplorerError)


class TestEXPL008:
    """EXPL-008: Non-incremental solving checks only complete programs."""

    def test_single_solve_per_program(self):
        solver = AcceptingSolver()
        explorer = Explorer(params(incremental_solving=False), solver)
        p = explorer.synthesize(int_env(), Monotype(int_type()))
        assert str(p) == "x"
        assert solver.refine_count == 1

    def test_incremental_solves_eagerly(self):
        solver = AcceptingSolver()
        explorer = Explorer(params(), solver)
        explorer.synthesize(int_env(), Monotype(int_type()))
        assert solver.refine_count == 2


def poly_list_env():
    """A polymorphic list type with a single nullary constructor."""
    nil = forall(["a"], datatype("List", (vart("a"),)))
    return (Environment()
            .add_datatype("List", DatatypeDef(1, ("Nil",)))
            .add_constant("Nil", nil)
            .add_constant("one", Monotype(int_type())))


class TestEXPL009:
    """EXPL-009: Scrutinees must have fully determined types."""

    def test_polymorphic_constructor_not_scrutinized(self):
        explorer = Explorer(params(e_guess_depth=0, match_depth=1), AcceptingSolver())
        programs = list(explorer.explore(poly_list_env(), Monotype(int_type())))
        assert [p.content for p in programs] == [PSymbol("one")]

    def test_monomorphic_variable_scrutinized(self):
        env = poly_list_env().add_variable("xs", datatype("List", (int_type(),)))
        explorer = Explorer(params(e_guess_depth=0, match_depth=1), AcceptingSolver())
        programs = list(explorer.explore(env, Monotype(int_type())))
        matches = [p.content for p in programs if isinstance(p.content, PMatch)]
        assert programs[0].content == PSymbol("one")
        assert [m.scrutinee.content for m in matches] == [PSymbol("xs")]
        [case] = matches[0].cases
        assert case.constructor == "Nil" and case.expr.content == PSymbol("one")


class TestEXPL010:
    """EXPL-010: Recursive bindings are generalized under poly_recursion."""

    GOAL = forall(["a"], FunctionT("n", int_type(), vart("a")))

    def _recursive_binding(self, poly):
        explorer = Explorer(params(poly_recursion=poly), AcceptingSolver())
        seen = []

        def recording(env, t, params):
            seen.append(env)
            return iter(())

        explorer.generate_i = recording
        assert list(explorer.generate_top_level(Environment(), self.GOAL)) == []
        [env] = seen
        assert env.bound_type_vars == ("a",)
        [(name, sch)] = env.symbols_of_arity(1).items()
        assert name.startswith("f")
        return sch

    def test_poly_recursion(self):
        sch = self._recursive_binding(True)
        assert isinstance(sch, Forall) and sch.type_var == "a"
        assert isinstance(sch.schema, Monotype)
        assert sch.schema.type.result == vart("a")

    def test_monomorphic_recursion(self):
        sch = self._recursive_binding(False)
        assert isinstance(sch, Monotype)
        assert sch.type.result == vart("a")


class TestEXPL011:
    """EXPL-011: Application results depend on the actual argument."""

    def test_argument_names_in_result_type(self):
        succ = FunctionT("n", int_type(), int_type(F_EQ(F_VALUE(), F_PLUS(F_VAR("n"), F_INT(1)))))
        env = (Environment()
               .add_constant("inc", Monotype(succ))
               .add_constant("one", Monotype(int_type(F_EQ(F_VALUE(), F_INT(1)))))
               .add_variable("x", int_type()))
        explorer = Explorer(params(), AcceptingSolver())
        (env_one, app_one), (env_x, app_x) = explorer.generate_app(env, int_type(), explorer.params)

        assert app_one.content == PApp(Program(PSymbol("inc"), succ), app_one.content.arg)
        assert app_one.content.arg.content == PSymbol("one")
        [(g, t_g)] = env_one.ghosts.items()
        assert g.startswith("g")
        assert t_g == int_type(F_EQ(F_VALUE(), F_INT(1)))
        assert app_one.type.refinement == F_EQ(F_VALUE(), F_PLUS(F_VAR(g), F_INT(1)))

        assert app_x.content.arg.content == PSymbol("x")
        assert env_x.ghosts == {}
        assert app_x.type.refinement == F_EQ(F_VALUE(), F_PLUS(F_VAR("x"), F_INT(1)))

    def test_ghost_for_variable_is_its_name(self):
        explorer = Explorer(params(), AcceptingSolver())
        env = Environment().add_variable("x", int_type())
        assert explorer.add_ghost(env, Program(PSymbol("x"), int_type())) == (env, "x")
        assert explorer.state.id_count == 0


class TestEXPL012:
    """EXPL-012: Case environments assume the constructor refinement negatively."""

    def test_case_environment(self):
        ilist = datatype("IList")
        ds = data_sort("IList")
        v_len = F_MEASURE("len", F_VALUE(ds))
        cons = FunctionT("h", int_type(), FunctionT(
            "t", ilist,
            datatype("IList", (), F_EQ(v_len, F_PLUS(F_MEASURE("len", F_VAR("t", ds)), F_INT(1))))))
        env = (Environment()
               .add_datatype("IList", DatatypeDef(0, ("Nil", "Cons"), "len"))
               .add_constant("Nil", Monotype(datatype("IList", (), F_EQ(v_len, F_INT(0)))))
               .add_constant("Cons", Monotype(cons))
               .add_variable("xs", ilist))
        explorer = Explorer(params(match_depth=1), AcceptingSolver())
        seen = []

        def recording(case_env, t, params):
            seen.append(case_env)
            yield Program(PSymbol("xs"), t)

        explorer.generate_i = recording
        xs_len = F_MEASURE("len", F_VAR("xs", ds))

        [nil_case] = explorer.generate_case(env, "xs", ilist, int_type(), "Nil", explorer.params)
        [cons_case] = explorer.generate_case(env, "xs", ilist, int_type(), "Cons", explorer.params)
        nil_env, cons_env = seen

        assert nil_case.arg_names == ()
        assert nil_env.neg_assumptions == frozenset({F_NOT(F_EQ(xs_len, F_INT(0)))})
        assert nil_env.assumptions == frozenset()

        h, tl = cons_case.arg_names
        tl_len = F_MEASURE("len", F_VAR(tl, ds))
        assert cons_env.neg_assumptions == frozenset({F_NOT(F_EQ(xs_len, F_PLUS(tl_len, F_INT(1))))})
        assert cons_env.assumptions == frozenset()
        assert h in cons_env.symbols_of_arity(0) and tl in cons_env.symbols_of_arity(0)
