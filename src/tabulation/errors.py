class TabulationError(Exception):
    """Base class for every error raised by the tabulation engine."""


class InputValidationError(TabulationError, ValueError):
    """
    Raised when a tabulation is requested with unusable input.

    Always raised before the first round is counted.
    """


class AlgorithmInvariantViolation(TabulationError, RuntimeError):
    """
    Raised when a count cannot reach a resolved outcome.

    This indicates a defect rather than bad input: the round loop hit its
    safety cap, or a multi-winner count finished without filling every seat.
    """
