"""
Exception hierarchy for the particle localization core.

Three failure families are distinguished:

- PreconditionViolation: malformed statistical input (too few samples,
  zero total weight, mismatched sample and weight counts)
- ConfigurationError: sensor model parameters outside their valid ranges
- OutOfBoundsError: particle container indexing beyond the current size

Each class also derives from the matching builtin (ValueError or IndexError)
so callers that already guard against those keep working.

Map queries that fall outside the grid and cancelling rotations are not
errors: the former degrade to max range, the latter yield an infinite
orientation variance.
"""


class LocalizationError(Exception):
    """Base class for all errors raised by this package."""


class PreconditionViolation(LocalizationError, ValueError):
    """Statistical input does not satisfy the estimator preconditions."""


class ConfigurationError(LocalizationError, ValueError):
    """Model parameters are outside their valid ranges."""


class OutOfBoundsError(LocalizationError, IndexError):
    """Container index is outside [-size, size)."""

    def __init__(self, index: int, size: int):
        super().__init__(f"Particle index {index} out of range for container of size {size}")
        self.index = index
        self.size = size
