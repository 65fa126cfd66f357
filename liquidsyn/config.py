"""Explorer configuration — search bounds and strategies.

Parameters can be given in code or loaded from a project-level
``.liquidsynrc.yml`` (or ``.liquidsynrc.yaml`` / ``.liquidsynrc.json``).

Example .liquidsynrc.yml:
    e_guess_depth: 3        # maximum depth of application trees
    scrutinee_depth: 1      # application depth inside match scrutinees
    match_depth: 2          # maximum nesting of matches
    cond_depth: 1           # maximum nesting of conditionals
    fix_strategy: first     # disable | first | all
    poly_recursion: true
    incremental_solving: true

Qualifier generators are code and can only be set programmatically.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import yaml

from liquidsyn.errors import ExplorerConfigError, config_error
from liquidsyn.qualifiers import QualsGen, empty_gen


class FixpointStrategy(Enum):
    DISABLE_FIXPOINT = "disable"    # no recursive bindings
    FIRST_ARGUMENT = "first"        # decrease the first well-founded argument
    ALL_ARGUMENTS = "all"           # lexicographic decrease over all of them


_DEPTH_FIELDS = ("e_guess_depth", "scrutinee_depth", "match_depth", "cond_depth")
_FLAG_FIELDS = ("poly_recursion", "incremental_solving")


@dataclass(frozen=True)
class ExplorerParams:
    """Parameters of program exploration."""
    e_guess_depth: int = 3
    scrutinee_depth: int = 1
    match_depth: int = 2
    cond_depth: int = 1
    fix_strategy: FixpointStrategy = FixpointStrategy.FIRST_ARGUMENT
    poly_recursion: bool = True
    incremental_solving: bool = True
    cond_quals_gen: QualsGen = field(default=empty_gen, compare=False)
    type_quals_gen: QualsGen = field(default=empty_gen, compare=False)

    def __post_init__(self) -> None:
        for name in _DEPTH_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ExplorerConfigError(config_error(
                    f"'{name}' must be a non-negative integer, got {value!r}"))

    def bounds(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {name: getattr(self, name) for name in _DEPTH_FIELDS}
        d["fix_strategy"] = self.fix_strategy.value
        return d


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".liquidsynrc.yml",
    ".liquidsynrc.yaml",
    ".liquidsynrc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".",
                **overrides: Any) -> ExplorerParams:
    """Load explorer parameters from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, returns defaults. Keyword ``overrides`` (for
    example the qualifier generators) take precedence over file values.
    """
    if path is None:
        path = find_config(start_dir)

    data: Dict[str, Any] = {}
    if path is not None:
        with open(path, "r") as f:
            content = f.read()
        try:
            if path.endswith(".json"):
                data = json.loads(content) or {}
            else:
                data = yaml.safe_load(content) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ExplorerConfigError(config_error(f"Cannot parse config: {exc}", path)) from exc
        if not isinstance(data, dict):
            raise ExplorerConfigError(config_error("Config must be a mapping", path))

    kwargs = _dict_to_kwargs(data, path or "")
    kwargs.update(overrides)
    return ExplorerParams(**kwargs)


def _dict_to_kwargs(data: Dict[str, Any], path: str) -> Dict[str, Any]:
    """Convert a parsed dict to ExplorerParams keyword arguments."""
    kwargs: Dict[str, Any] = {}

    for name in _DEPTH_FIELDS:
        if name in data:
            kwargs[name] = data[name]
    for name in _FLAG_FIELDS:
        if name in data:
            if not isinstance(data[name], bool):
                raise ExplorerConfigError(config_error(f"'{name}' must be a boolean", path))
            kwargs[name] = data[name]
    if "fix_strategy" in data:
        try:
            kwargs["fix_strategy"] = FixpointStrategy(str(data["fix_strategy"]))
        except ValueError as exc:
            raise ExplorerConfigError(config_error(
                f"Unknown fix_strategy {data['fix_strategy']!r}", path)) from exc

    return kwargs
