"""
Engine error taxonomy.
ValidationError and IllegalTransitionError are recoverable and reported to the caller;
NotFoundError points at an integration bug (unknown team or session id).
"""


class GameError(Exception):
    """Base class for all engine errors."""


class ValidationError(GameError, ValueError):
    """A submitted bet or target breaks an invariant (negative amount, over budget, bad target)."""


class IllegalTransitionError(GameError, ValueError):
    """An action is not allowed in the current status, or its precondition does not hold yet."""


class NotFoundError(GameError, LookupError):
    """Unknown team or session id."""
