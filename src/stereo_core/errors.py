"""Exception hierarchy for the stereo vision core.

Every error derives from :class:`VisionError` and from the builtin a caller
would naturally catch (``ValueError`` for bad input, ``LookupError`` for
unknown profiles, ``ArithmeticError`` for degenerate geometry).
"""


class VisionError(Exception):
    """Base class for all stereo_core errors."""


class InvalidParameterError(VisionError, ValueError):
    """Malformed numeric input (non-positive focal length, baseline, sigma...)."""


class SizeMismatchError(VisionError, ValueError):
    """Image/patch or descriptor dimensions are incompatible."""


class LengthMismatchError(VisionError, ValueError):
    """Correspondence-ordered lists do not have the same length."""


class UnsupportedFormatError(VisionError, ValueError):
    """Image has an unsupported channel count."""


class UnknownProfileError(VisionError, LookupError):
    """Camera index is not present in the default profile table."""


class EmptyInputError(VisionError, ValueError):
    """Statistic or metric requested over an empty set."""


class DegenerateGeometryError(VisionError, ArithmeticError):
    """No valid depth exists (zero or negative disparity)."""
