"""Exception and warning types raised by tweezpy.

Fatal conditions raise immediately at the point of detection. Non-fatal
accuracy problems are emitted as :class:`AccuracyWarning` through the
:mod:`warnings` machinery and logged, and the computation proceeds.
"""


class TweezpyError(Exception):
    """Base class for all tweezpy errors."""


class ShapeMismatchError(TweezpyError, ValueError):
    """The ``a`` and ``b`` coefficients (or an operator) have incompatible shapes."""


class InvalidOrderError(TweezpyError, ValueError):
    """A coefficient length or mode index is not a valid multipole order."""


class TruncationError(TweezpyError):
    """Reducing ``nmax`` would drop more power than the tolerance allows."""


class BasisError(TweezpyError):
    """The operation is not defined for the beam's wave basis."""


class UnsupportedMultiOutputError(TweezpyError):
    """Transformation matrices were requested for several offsets at once."""


class AccuracyWarning(UserWarning):
    """Result is approximate, e.g. after lossy truncation or repeated translation."""
