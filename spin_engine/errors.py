"""Exception taxonomy for the spin engine."""


class ReelForgeError(Exception):
    """Base class for every engine error."""


class ConfigError(ReelForgeError, ValueError):
    """Malformed or self-inconsistent ruleset / simulation config.

    Raised once, before any board is drawn. Never retried.
    """


class EvaluationError(ReelForgeError):
    """Board and line geometry disagree (generator or config bug)."""
