"""
errors.py

Failure types raised by stimulus synthesis and the staircases. All of them
are validation-time errors: the caller has to fix the parameters and retry.
A missing response is not an error, see utils.Outcome.NO_RESPONSE.
"""


class SFGError(ValueError):
    """Base class for every stimulus / staircase validation failure."""


class InvalidRangeError(SFGError):
    """A numeric range is empty or out of the supported bounds."""


class InvalidOnsetError(SFGError):
    """The requested figure onset lies outside the allowed chord window."""


class ParameterConsistencyError(SFGError):
    """Stimulus or staircase parameters contradict each other."""


class DegenerateLikelihoodError(SFGError):
    """The Weibull psychometric function cannot support a Quest estimate."""
