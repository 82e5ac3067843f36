"""
Exceptions
==========

Error types raised by the constant-Q transform and its collaborators.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

All precondition failures derive from :class:`ValueError` so callers that
already guard parameter construction with ``except ValueError`` keep working.
They are raised before any heavy computation starts: the transform never
returns partial results.
"""


class CQTParameterError(ValueError):
    """Invalid or inconsistent transform parameters."""


class KernelOverflowError(CQTParameterError):
    """
    A spectral kernel does not fit its FFT window.

    Raised when the kernel length required by a bin exceeds the per-octave
    FFT length (or is too short to carry a Hanning window). The kernel is
    never silently truncated.
    """


class SignalLengthError(ValueError):
    """Input signal is empty, malformed, or too short for frame extraction."""


class AudioDecodeError(ValueError):
    """Audio file could not be decoded into a sample array."""


class TransformCancelledError(RuntimeError):
    """The caller requested cancellation while the transform was running."""
