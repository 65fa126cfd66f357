"""Bidirectional, refinement-type-directed program exploration.

Implements the synthesis procedure from:
  Polikarpova, Kuraj, Solar-Lezama (2016) "Program Synthesis from
  Polymorphic Refinement Types"
  PLDI '16, https://doi.org/10.1145/2908080.2908093

with liquid type inference as the checking back end:
  Rondon, Kawaguchi, Jhala (2008) "Liquid Types"
  PLDI '08, https://doi.org/10.1145/1375581.1375602

Search structure:

  generate_top_level   strip quantifiers; for a function goal, bind the
                       recursive calls allowed by the termination metric
  generate_i (top-down)
    function goal  ->  lambda
    scalar goal    ->  guess-and-check | match | conditional
  generate_e (bottom-up)
    variable | application

Every generator is a Python generator that lazily yields every program it
can build. Choice points (``_choose``) snapshot the branch state before
each alternative and restore it afterwards, so an alternative that fails
(raises Backtrack, or simply yields nothing) leaves no trace in the state
its siblings see. The identifier counter is not part of the snapshot.

Depth budgets travel with each call as an ExplorerParams value and are
decreased with ``dataclasses.replace``; a budget of zero disables the
corresponding strategy for the rest of the branch.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from functools import partial
from typing import Callable, Iterable, Iterator, List, Optional, Tuple, TypeVar

from liquidsyn.config import ExplorerParams, FixpointStrategy
from liquidsyn.constraints import Subtype, WellFormedCond
from liquidsyn.engines.solving import solve_constraints
from liquidsyn.engines.state import ExplorerState
from liquidsyn.engines.unification import fresh_type_vars
from liquidsyn.environment import Environment
from liquidsyn.errors import (
    Backtrack, InternalExplorerError, NoSolutionError,
    existential_scrutinee, malformed_constructor, missing_constructor, no_solution,
)
from liquidsyn.logic import (
    Formula, VALUE_VAR, F_AND, F_EQ, F_GE, F_INT, F_LT, F_NOT, F_UNKNOWN, F_VAR,
    data_sort, is_true, substitute,
)
from liquidsyn.program import (
    Case, PApp, PFix, PFun, PIf, PMatch, PSymbol, Program, is_symbol,
    program_apply_solution, program_substitute_types,
)
from liquidsyn.solver import ConstraintSolver
from liquidsyn.types import (
    BaseKind, Forall, FunctionT, RSchema, RType, ScalarT,
    add_refinement, arity, datatype, forall, free_type_var, is_function_type,
    last_type, refine_bot, refine_top, rename_var, shape, to_sort,
    type_substitute, type_vars_of, vart,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Explorer:
    """Enumerates programs of a refinement type schema.

    One explorer runs one exploration at a time: the branch state belongs
    to the most recent call to ``explore``.
    """

    def __init__(self, params: ExplorerParams, solver: ConstraintSolver):
        self.params = params
        self.solver = solver
        self.state = ExplorerState()

    # -- entry points -------------------------------------------------------

    def explore(self, env: Environment, schema: RSchema) -> Iterator[Program]:
        """Lazily yield every program of type ``schema`` in ``env``.

        Each program has its type substitution and the best candidate
        solution applied.
        """
        self.state = ExplorerState(candidates=[self.solver.init()])
        for p in self.generate_top_level(env, schema):
            if not self.params.incremental_solving and not self._solve_step(p):
                continue
            tass = self.state.type_assignment
            solution = self.state.candidates[0].solution
            yield program_apply_solution(solution, program_substitute_types(tass, p))

    def synthesize(self, env: Environment, schema: RSchema) -> Program:
        """First program of type ``schema``; raises NoSolutionError if the
        search space is exhausted within the configured bounds."""
        logger.info("Synthesizing %s with bounds %s", schema, self.params.bounds())
        program = next(self.explore(env, schema), None)
        if program is None:
            logger.info("No solution for %s", schema)
            raise NoSolutionError(no_solution(schema, self.params.bounds()))
        logger.info("Solution:\n%s", program)
        return program

    # -- backtracking -------------------------------------------------------

    def _choose(self, alternatives: Iterable[Callable[[], Iterator[T]]]) -> Iterator[T]:
        """Yield the results of each alternative in turn, starting every
        alternative from the same branch state."""
        snap = self.state.snapshot()
        for alternative in alternatives:
            self.state.restore(snap)
            try:
                yield from alternative()
            except Backtrack as exc:
                logger.debug("Backtrack: %s", exc.error)
        self.state.restore(snap)

    def _solve_step(self, program: Program) -> bool:
        try:
            solve_constraints(self.state, self.params, self.solver, program)
        except Backtrack as exc:
            logger.debug("Backtrack: %s", exc.error)
            return False
        return True

    # -- top level ----------------------------------------------------------

    def generate_top_level(self, env: Environment, schema: RSchema,
                           params: Optional[ExplorerParams] = None) -> Iterator[Program]:
        params = params or self.params
        while isinstance(schema, Forall):
            env = env.add_type_var(schema.type_var)
            schema = schema.schema
        t = schema.type
        if not isinstance(t, FunctionT):
            yield from self.generate_i(env, t, params)
            return

        rec_calls = self._recursive_calls(env, t, params)
        for f, t_rec in rec_calls:
            if params.poly_recursion:
                env = env.add_poly_variable(f, forall(env.bound_type_vars, t_rec))
            else:
                env = env.add_variable(f, t_rec)
        for body in self.generate_i(env, t, params):
            if rec_calls:
                yield Program(PFix(tuple(f for f, _ in rec_calls), body), t)
            else:
                yield body

    def _recursive_calls(self, env: Environment, t: RType,
                         params: ExplorerParams) -> List[Tuple[str, RType]]:
        """Names and types of the recursive calls available in the body of
        a function of type ``t``, in argument order."""
        if not isinstance(t, FunctionT):
            return []
        x, t_arg, t_res = t.arg_name, t.arg_type, t.result
        y = self.state.fresh_id("x")
        calls = self._recursive_calls(env, t_res, params)
        decreasing = _recursive_arg_types(env, x, t_arg)
        if decreasing is None:
            return [(f, FunctionT(y, t_arg, rename_var(x, y, t_arg, t_f))) for f, t_f in calls]

        t_lt, t_eq = decreasing
        f = self.state.fresh_id("f")
        strategy = params.fix_strategy
        if strategy == FixpointStrategy.ALL_ARGUMENTS:
            return [(f, FunctionT(y, t_lt, rename_var(x, y, t_arg, t_res)))] + \
                [(g, FunctionT(y, t_eq, rename_var(x, y, t_arg, t_g))) for g, t_g in calls]
        if strategy == FixpointStrategy.FIRST_ARGUMENT:
            return [(f, FunctionT(y, t_lt, rename_var(x, y, t_arg, t_res)))]
        return []

    # -- top-down phase -----------------------------------------------------

    def generate_i(self, env: Environment, t: RType, params: ExplorerParams) -> Iterator[Program]:
        """Programs that check against type ``t``."""
        if isinstance(t, FunctionT):
            for body in self.generate_i(env.add_variable(t.arg_name, t.arg_type), t.result, params):
                yield Program(PFun(t.arg_name, body), t)
            return
        yield from self._choose([
            partial(self._guess_e, env, t, params),
            partial(self.generate_match, env, t, params),
            partial(self.generate_if, env, t, params),
        ])

    def _guess_e(self, env: Environment, t: RType, params: ExplorerParams) -> Iterator[Program]:
        for env1, res in self.generate_e(env, shape(t), params):
            self.state.add_constraint(Subtype(env1, res.type, t))
            if self.params.incremental_solving and not self._solve_step(res):
                continue
            yield Program(res.content, t)

    def generate_match(self, env: Environment, t: RType, params: ExplorerParams) -> Iterator[Program]:
        if params.match_depth == 0:
            logger.debug("Match depth exhausted")
            return
        yield from self._choose(
            partial(self._generate_match_on, env, t, name, params)
            for name in sorted(env.datatypes)
        )

    def _generate_match_on(self, env: Environment, t: RType, dt_name: str,
                           params: ExplorerParams) -> Iterator[Program]:
        dt = env.datatypes[dt_name]
        t_args = tuple(vart(self.state.fresh_id("_a")) for _ in range(dt.type_arg_count))
        scr_params = replace(params, e_guess_depth=params.scrutinee_depth)
        for env1, scrutinee in self.generate_e(env, datatype(dt_name, t_args), scr_params):
            scr_type = type_substitute(self.state.type_assignment, scrutinee.type)
            free = sorted(type_vars_of(scr_type) - set(env.bound_type_vars))
            if free:
                logger.debug("FAIL: %s", existential_scrutinee(scrutinee, free))
                continue
            env2, x = self.add_ghost(env1, scrutinee)
            for cases in self._generate_cases(env2, x, scr_type, t, dt.constructors, params):
                yield Program(PMatch(scrutinee, cases), t)

    def _generate_cases(self, env: Environment, x: str, scr_type: RType, t: RType,
                        constructors: Tuple[str, ...],
                        params: ExplorerParams) -> Iterator[Tuple[Case, ...]]:
        if not constructors:
            yield ()
            return
        for case in self.generate_case(env, x, scr_type, t, constructors[0], params):
            for rest in self._generate_cases(env, x, scr_type, t, constructors[1:], params):
                yield (case,) + rest

    def generate_case(self, env: Environment, x: str, scr_type: RType, t: RType,
                      cons_name: str, params: ExplorerParams) -> Iterator[Case]:
        """The ``cons_name`` case of a match on variable ``x``."""
        cons_sch = env.all_symbols().get(cons_name)
        if cons_sch is None:
            raise InternalExplorerError(missing_constructor(cons_name, env))
        cons_t = fresh_type_vars(self.state, cons_sch)
        self._match_cons_type(cons_name, last_type(cons_t), scr_type)
        scr_var = F_VAR(x, to_sort(scr_type.base))
        args, case_env = self._add_case_symbols(env, scr_var, cons_t)
        case_params = replace(params, match_depth=params.match_depth - 1)
        for p in self.generate_i(case_env, t, case_params):
            yield Case(cons_name, args, p)

    def _match_cons_type(self, cons_name: str, cons_res: RType, scr_type: RType) -> None:
        if not (isinstance(cons_res, ScalarT) and cons_res.base.kind == BaseKind.DATATYPE):
            raise InternalExplorerError(malformed_constructor(cons_name, cons_res))
        for var, arg in zip(cons_res.args, scr_type.args):
            a = free_type_var(var)
            if not a or not is_true(var.refinement):
                raise InternalExplorerError(malformed_constructor(cons_name, cons_res))
            self.state.add_type_assignment(a, arg)

    def _add_case_symbols(self, env: Environment, x: Formula,
                          t: RType) -> Tuple[Tuple[str, ...], Environment]:
        """Bind the constructor arguments and assume the constructor's result
        refinement of scrutinee ``x``.

        The refinement goes in as a negative assumption (``not`` of the
        negation), so a case that the scrutinee can never reach still
        type-checks.
        """
        args: List[str] = []
        while isinstance(t, FunctionT):
            y = self.state.fresh_id("y")
            env = env.add_variable(y, t.arg_type)
            t = rename_var(t.arg_name, y, t.arg_type, t.result)
            args.append(y)
        fml = substitute(t.refinement, {VALUE_VAR: x})
        return tuple(args), env.add_neg_assumption(F_NOT(fml))

    def generate_if(self, env: Environment, t: RType, params: ExplorerParams) -> Iterator[Program]:
        if params.cond_depth == 0:
            logger.debug("Conditional depth exhausted")
            return
        cond = F_UNKNOWN(self.state.fresh_id("c"))
        self.state.add_constraint(WellFormedCond(env, cond))
        branch_params = replace(params, cond_depth=params.cond_depth - 1)
        for p_then in self.generate_i(env.add_assumption(cond), t, branch_params):
            for p_else in self.generate_i(env.add_neg_assumption(cond), t, branch_params):
                yield Program(PIf(cond, p_then, p_else), t)

    # -- bottom-up phase ----------------------------------------------------

    def generate_e(self, env: Environment, s: RType,
                   params: ExplorerParams) -> Iterator[Tuple[Environment, Program]]:
        """Elimination terms of shape ``s``, each with the environment
        extended by the ghosts it introduced."""
        yield from self._choose([
            partial(self.generate_var, env, s, params),
            partial(self.generate_app, env, s, params),
        ])

    def generate_var(self, env: Environment, s: RType,
                     params: ExplorerParams) -> Iterator[Tuple[Environment, Program]]:
        symbols = [
            (name, fresh_type_vars(self.state, sch))
            for name, sch in sorted(env.symbols_of_arity(arity(s)).items())
        ]
        yield from self._choose(
            partial(self._pick_symbol, env, s, name, t) for name, t in symbols
        )

    def _pick_symbol(self, env: Environment, s: RType, name: str,
                     t: RType) -> Iterator[Tuple[Environment, Program]]:
        p = Program(PSymbol(name), _symbol_type(env, name, t))
        self.state.add_constraint(Subtype(env, refine_bot(shape(last_type(t))), refine_top(last_type(s))))
        if self.params.incremental_solving and not self._solve_step(p):
            return
        yield env, p

    def generate_app(self, env: Environment, s: RType,
                     params: ExplorerParams) -> Iterator[Tuple[Environment, Program]]:
        d = params.e_guess_depth
        if d == 0 or arity(s) >= env.max_arity():
            logger.debug("No room for an application of shape %s", s)
            return
        a = self.state.fresh_id("_a")
        y = self.state.fresh_id("x")
        arg_params = replace(params, e_guess_depth=d - 1)
        for env1, fun in self.generate_e(env, FunctionT(y, vart(a), s), params):
            t_fun = fun.type
            for env2, arg in self.generate_e(env1, shape(t_fun.arg_type), arg_params):
                self.state.add_constraint(Subtype(env2, arg.type, t_fun.arg_type))
                if self.params.incremental_solving and not self._solve_step(arg):
                    continue
                if is_function_type(arg.type):
                    yield env2, Program(PApp(fun, arg), t_fun.result)
                else:
                    env3, g = self.add_ghost(env2, arg)
                    t_res = rename_var(t_fun.arg_name, g, t_fun.arg_type, t_fun.result)
                    yield env3, Program(PApp(fun, arg), t_res)

    def add_ghost(self, env: Environment, p: Program) -> Tuple[Environment, str]:
        """A name for the value of ``p``: the variable itself, or a fresh ghost."""
        if is_symbol(p) and p.content.name not in env.constants:
            return env, p.content.name
        g = self.state.fresh_id("g")
        return env.add_ghost(g, p.type), g


def _symbol_type(env: Environment, name: str, t: RType) -> RType:
    """Type of a use of symbol ``name``: constants keep their declared type,
    scalar variables are equal to themselves."""
    if isinstance(t, ScalarT) and name not in env.constants:
        sort = to_sort(t.base)
        return ScalarT(t.base, t.args, F_EQ(F_VAR(VALUE_VAR, sort), F_VAR(name, sort)))
    return t


def _recursive_arg_types(env: Environment, arg_name: str,
                         t: RType) -> Optional[Tuple[RType, RType]]:
    """Argument types of a recursive call that decreases / preserves the
    current argument ``arg_name`` of type ``t``, or None if ``t`` has no
    well-founded order."""
    if not isinstance(t, ScalarT):
        return None
    if t.base.kind == BaseKind.INT:
        v = F_VAR(VALUE_VAR)
        arg = F_VAR(arg_name)
        return (
            add_refinement(t, F_AND(F_GE(v, F_INT(0)), F_LT(v, arg))),
            add_refinement(t, F_EQ(v, arg)),
        )
    if t.base.kind == BaseKind.DATATYPE:
        dt = env.datatypes.get(t.base.name)
        if dt is None or dt.wf_metric is None:
            return None
        ds = data_sort(t.base.name)
        v_metric = dt.metric(F_VAR(VALUE_VAR, ds))
        arg_metric = dt.metric(F_VAR(arg_name, ds))
        return (
            add_refinement(t, F_LT(v_metric, arg_metric)),
            add_refinement(t, F_EQ(v_metric, arg_metric)),
        )
    return None
