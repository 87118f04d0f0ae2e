"""
Exception hierarchy for ebshrink.

Every error subclasses the built-in exception that the estimation code would
otherwise raise, so ``except ValueError`` keeps working for callers that do
not import this module.
"""

from typing import Optional


class EBShrinkError(Exception):
    """Base class for all ebshrink errors."""


class InvalidInput(EBShrinkError, ValueError):
    """Malformed observation, interval level or configuration value."""


class EmptyDataset(EBShrinkError, ValueError):
    """No observations were supplied."""


class DegenerateInput(EBShrinkError, ValueError):
    """
    Data that cannot identify a beta prior.

    Raised for zero variance of observed rates, rates that all sit on the
    0 or 1 boundary, and all-Bernoulli data (every ``trials == 1``).
    """


class NumericalDivergence(EBShrinkError, RuntimeError):
    """
    The likelihood optimizer did not converge.

    Parameters
    ----------
    message : str
        Description of the failure
    n_iterations : int, optional
        Iterations used before giving up
    """

    def __init__(self, message: str, n_iterations: Optional[int] = None):
        super().__init__(message)
        self.n_iterations = n_iterations
