"""Typing constraints emitted during exploration.

  Subtype(env, T1, T2)      -- env |- T1 <: T2
  WellFormed(env, T)        -- every unknown refinement in T needs a
                               qualifier space
  WellFormedCond(env, c)    -- the guard unknown c needs a qualifier space

Constraints are transient: the solving orchestrator simplifies and lowers
every pending constraint within one solve step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from liquidsyn.environment import Environment
from liquidsyn.logic import Formula
from liquidsyn.types import RType


@dataclass(frozen=True)
class Subtype:
    env: Environment
    sub: RType
    sup: RType

    def __str__(self) -> str:
        return f"{self.sub} <: {self.sup}"


@dataclass(frozen=True)
class WellFormed:
    env: Environment
    type: RType

    def __str__(self) -> str:
        return f"|- {self.type}"


@dataclass(frozen=True)
class WellFormedCond:
    env: Environment
    cond: Formula

    def __str__(self) -> str:
        return f"|- {self.cond}"


Constraint = Union[Subtype, WellFormed, WellFormedCond]
