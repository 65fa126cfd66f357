"""liquidsyn — Refinement-type-directed program synthesis core"""

__version__ = "0.1.0"

from liquidsyn.config import ExplorerParams, FixpointStrategy, load_config
from liquidsyn.engines.explorer import Explorer
from liquidsyn.errors import NoSolutionError, InternalExplorerError
