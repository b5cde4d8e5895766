"""
Exception types raised by the trio model and the EM estimator.

Every failure is local and synchronous; callers decide how to report it.
"""


class TrioModelError(Exception):
    """Base exception for DMtrio errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}


class PreconditionViolation(TrioModelError, ValueError):
    """Raised when an input or parameter is outside its valid domain."""
    pass


class NumericalInstabilityError(TrioModelError, ArithmeticError):
    """Raised when a computed probability breaks a model invariant."""
    pass


class ConvergenceError(TrioModelError, RuntimeError):
    """Raised when EM exhausts its iterations and the caller asked to fail."""

    def __init__(self, message: str, result=None, details: dict = None):
        super().__init__(message, details)
        self.result = result
