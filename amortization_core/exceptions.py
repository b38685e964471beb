"""
Exception hierarchy for the amortization core.

Each error also derives from the closest builtin so callers that only know
about ValueError / RuntimeError / ZeroDivisionError keep working.
"""


class AmortizationError(Exception):
    """Base exception for all amortization errors."""


class InvalidArgumentError(AmortizationError, ValueError):
    """A caller-supplied value violates a precondition."""


class LogicError(AmortizationError):
    """The requested operation does not apply to the current state."""


class MalformedScheduleError(AmortizationError, RuntimeError):
    """An internal invariant could not be satisfied from the available schedule data."""


class DivisionByZeroError(AmortizationError, ZeroDivisionError):
    """Division by an exact zero."""


class LoanNotFoundError(AmortizationError, LookupError):
    """Raised when a repository has no loan for the requested id."""
