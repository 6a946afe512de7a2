"""repodiff CLI: compare a local directory with a branch of a git repository."""

from ._helpers import main  # noqa: F401  entry point

# Import command modules to register Click commands with the main group.
from . import _compare, _diff, _hash  # noqa: F401
