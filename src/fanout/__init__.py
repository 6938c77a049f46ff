"""fanout: Run one command on many SSH hosts in parallel, with ordered output."""

from .config import Config, Defaults, load_config
from .exceptions import ConnectionFailed, ExpressionError, FanoutError, PatternError
from .executor import CommandResult, Executor, SSHTransport
from .expansion import dedup, expand, expand_all, match, match_all
from .models import ExecutionOutcome, ExpandedHost, IndexedHost, NodeStatus, ResolvedHost
from .presenter import BlockPresenter, Summary, shorten_names
from .resolver import Resolver

__all__ = [
    "Config",
    "Defaults",
    "load_config",
    "ConnectionFailed",
    "ExpressionError",
    "FanoutError",
    "PatternError",
    "CommandResult",
    "Executor",
    "SSHTransport",
    "dedup",
    "expand",
    "expand_all",
    "match",
    "match_all",
    "ExecutionOutcome",
    "ExpandedHost",
    "IndexedHost",
    "NodeStatus",
    "ResolvedHost",
    "BlockPresenter",
    "Summary",
    "shorten_names",
    "Resolver",
]
