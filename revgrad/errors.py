class RevGradError(Exception):
    """Base class for every error raised by the engine."""


class ShapeMismatchError(RevGradError, ValueError):
    """
    Raised when tensor shapes are incompatible with an operation.

    Covers illegal broadcasts, wrong ranks for ``matmul``/``softmax``, a
    ``matmul`` inner dimension mismatch, out of range slices or axes, and
    element counts that disagree with a requested shape.
    """


class DomainError(RevGradError, ValueError):
    """Raised when an input lies outside an operation's domain (e.g. ``log`` of 0)."""


class FormatError(RevGradError, ValueError):
    """Raised for malformed parameter files and CSV tables."""
