"""Exception types for fanout."""

from __future__ import annotations


class FanoutError(Exception):
    """Base class for fanout errors."""


class ExpressionError(FanoutError, ValueError):
    """A host expression could not be expanded."""


class PatternError(FanoutError, ValueError):
    """A host regex pattern is invalid."""


class ConnectionFailed(FanoutError):
    """A host could not be reached, authenticated or kept connected."""
