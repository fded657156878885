"""shcov - line coverage for bash scripts, collected from xtrace output"""

__version__ = "0.1.0"

from .xtrace import (
    ShcovError,
    ExecutableNotFound,
    DelimiterCollision,
    TraceRecord,
    FieldParser,
    make_delimiter,
    make_ps4,
)
from .resolver import DirectoryHistory, PathResolver
from .core import CoverageMap
from .runner import Runner, RunOutcome, run
from .report import ReportHandoff, ResultSet, ResultSetError

__all__ = [
    "ShcovError",
    "ExecutableNotFound",
    "DelimiterCollision",
    "TraceRecord",
    "FieldParser",
    "make_delimiter",
    "make_ps4",
    "DirectoryHistory",
    "PathResolver",
    "CoverageMap",
    "Runner",
    "RunOutcome",
    "run",
    "ReportHandoff",
    "ResultSet",
    "ResultSetError",
]
