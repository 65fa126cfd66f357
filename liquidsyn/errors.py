"""Structured error objects for the synthesis core.

Every failure is machine-readable. Recoverable failures abort one search
branch (``Backtrack``) and are caught by the nearest choice point. Fatal
failures (``InternalExplorerError``) indicate a broken invariant in an
upstream collaborator or in the constraint pipeline itself and stop the
whole synthesis attempt.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    SHAPE_MISMATCH = "shape_mismatch"
    OCCURS_CHECK = "occurs_check"
    NO_CANDIDATES = "no_candidates"
    EXISTENTIAL_SCRUTINEE = "existential_scrutinee"
    NO_SOLUTION = "no_solution"
    MISSING_CONSTRUCTOR = "missing_constructor"
    MALFORMED_CONSTRUCTOR = "malformed_constructor"
    NOT_SIMPLE_CONSTRAINT = "not_simple_constraint"
    CONFLICTING_ASSIGNMENT = "conflicting_assignment"
    CONFIG_ERROR = "config_error"


@dataclass
class SynthesisError:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        return f"[{self.kind.value}]: {self.message}"


def shape_mismatch(constraint: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.SHAPE_MISMATCH,
        message=f"Shape mismatch in {constraint}",
        details={"constraint": str(constraint)},
    )


def occurs_check(type_var: str, rtype: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.OCCURS_CHECK,
        message=f"Type variable '{type_var}' occurs in {rtype}",
        details={"type_var": type_var, "type": str(rtype)},
    )


def no_candidates(program: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.NO_CANDIDATES,
        message="Horn clauses have no solutions",
        details={"program": str(program)},
    )


def existential_scrutinee(program: Any, free_vars: list[str]) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.EXISTENTIAL_SCRUTINEE,
        message=f"Scrutinee {program} mentions unbound type variables {free_vars}",
        details={"program": str(program), "type_vars": free_vars},
    )


def no_solution(schema: Any, bounds: dict[str, Any]) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.NO_SOLUTION,
        message=f"No program of type {schema} found under these bounds",
        details={"schema": str(schema), "bounds": bounds},
    )


def missing_constructor(name: str, env: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.MISSING_CONSTRUCTOR,
        message=f"Datatype constructor '{name}' not found in the environment",
        details={"constructor": name, "environment": str(env)},
    )


def malformed_constructor(name: str, result_type: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.MALFORMED_CONSTRUCTOR,
        message=f"Constructor '{name}' must return its datatype applied to plain type variables, got {result_type}",
        details={"constructor": name, "result_type": str(result_type)},
    )


def not_simple_constraint(constraint: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.NOT_SIMPLE_CONSTRAINT,
        message=f"Not a simple constraint: {constraint}",
        details={"constraint": str(constraint)},
    )


def conflicting_assignment(type_var: str, old: Any, new: Any) -> SynthesisError:
    return SynthesisError(
        kind=ErrorKind.CONFLICTING_ASSIGNMENT,
        message=f"Type variable '{type_var}' already assigned {old}, cannot reassign {new}",
        details={"type_var": type_var, "old": str(old), "new": str(new)},
    )


def config_error(message: str, path: str = "") -> SynthesisError:
    details = {"path": path} if path else {}
    return SynthesisError(kind=ErrorKind.CONFIG_ERROR, message=message, details=details)


class Backtrack(Exception):
    """Recoverable failure of the current search branch."""

    def __init__(self, error: SynthesisError):
        self.error = error
        super().__init__(str(error))


class SynthesisException(Exception):
    """Exception wrapping one or more SynthesisErrors."""

    def __init__(self, errors: list[SynthesisError] | SynthesisError):
        if isinstance(errors, SynthesisError):
            errors = [errors]
        self.errors = errors
        super().__init__(self._format())

    def _format(self) -> str:
        return "\n".join(str(e) for e in self.errors)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps([e.to_dict() for e in self.errors], indent=indent)


class NoSolutionError(SynthesisException):
    """The search space was exhausted under the given depth bounds."""


class InternalExplorerError(SynthesisException):
    """A programming invariant was violated; not recoverable by backtracking."""


class ExplorerConfigError(SynthesisException):
    """Malformed explorer configuration."""
