"""
Constant-Q Geometry
===================

Parameter validation and derived sizes shared by the kernel builder, the
octave downsampler and the per-octave spectrogram engine.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------
    - `validate_cqt_parameters`: Fail-fast checks on user parameters
    - `CQTGeometry`: Frozen record of Q, FFT sizes, octave count and kernel lengths
    - `padded_length`: Zero-padded signal length used by the downsampler
"""

import math
from dataclasses import dataclass
from typing import Tuple

from torch_cqt.common.errors import CQTParameterError, KernelOverflowError


def validate_cqt_parameters(fs: float,
                            n_bins: int,
                            bins_per_octave: int,
                            hop_length: int,
                            f_min: float,
                            q_factor: float) -> None:
    """
    Check transform parameters before any allocation.

    Raises
    ------
    CQTParameterError
        If any parameter is non-positive, not finite, or if ``n_bins`` is
        not a multiple of ``bins_per_octave``, or the highest bin is at or
        above the Nyquist frequency.
    """
    for name, value in (('fs', fs), ('f_min', f_min), ('q_factor', q_factor)):
        if not math.isfinite(value) or value <= 0:
            raise CQTParameterError(f"{name} must be a positive finite number, got {value}")

    for name, value in (('n_bins', n_bins), ('bins_per_octave', bins_per_octave), ('hop_length', hop_length)):
        if int(value) != value or value <= 0:
            raise CQTParameterError(f"{name} must be a positive integer, got {value}")

    if n_bins % bins_per_octave != 0:
        raise CQTParameterError(f"n_bins ({n_bins}) must be a multiple of bins_per_octave ({bins_per_octave})")

    f_max = f_min * 2.0 ** ((n_bins - 1) / bins_per_octave)
    if f_max >= fs / 2:
        raise CQTParameterError(f"Highest bin frequency {f_max:.2f} Hz must be below Nyquist ({fs / 2:.2f} Hz)")


def padded_length(signal_length: int, n_fft: int, n_octave: int) -> int:
    """
    Length of the zero-padded signal fed to the octave downsampler.

    ``signal_length + n_fft`` rounded up to the next multiple of
    ``2 ** (n_octave - 1)`` so that every decimated level has an integral
    length.
    """
    n_adjust = 2 ** (n_octave - 1)
    n_padding = -(signal_length + n_fft) % n_adjust
    return signal_length + n_fft + n_padding


@dataclass(frozen=True)
class CQTGeometry:
    r"""
    Derived sizes of a multirate constant-Q transform.

    Attributes
    ----------
    fs : float
        Sampling rate in Hz.

    n_bins : int
        Total number of frequency bins.

    bins_per_octave : int
        Bins per octave.

    hop_length : int
        Hop between frames, in samples at ``fs``.

    f_min : float
        Center frequency of the lowest bin in Hz.

    q_factor : float
        Bandwidth scaling.

    q : float
        Quality factor :math:`Q = q_{factor} / (2^{1/B} - 1)`.

    n_octave : int
        ``n_bins // bins_per_octave``.

    n_fft : int
        Smallest power of two above the lowest bin's kernel length at ``fs``.

    n_fft_1octave : int
        FFT length used at every octave, ``n_fft / 2 ** (n_octave - 1)``.

    kernel_lengths : tuple of int
        Kernel length :math:`\lceil f_s Q / f_k \rceil` of each bin in the
        highest octave (the rows of the spectral kernel).
    """

    fs: float
    n_bins: int
    bins_per_octave: int
    hop_length: int
    f_min: float
    q_factor: float
    q: float
    n_octave: int
    n_fft: int
    n_fft_1octave: int
    kernel_lengths: Tuple[int, ...]

    @classmethod
    def from_parameters(cls,
                        fs: float,
                        n_bins: int,
                        bins_per_octave: int,
                        hop_length: int,
                        f_min: float,
                        q_factor: float) -> 'CQTGeometry':
        """
        Validate parameters and compute all derived sizes.

        Raises
        ------
        CQTParameterError
            Invalid parameter, or an octave count too large for the FFT size.
        KernelOverflowError
            A highest-octave kernel longer than ``n_fft_1octave`` or shorter
            than two samples.
        """
        validate_cqt_parameters(fs, n_bins, bins_per_octave, hop_length, f_min, q_factor)
        n_bins = int(n_bins)
        bins_per_octave = int(bins_per_octave)
        hop_length = int(hop_length)

        q = q_factor / (2.0 ** (1.0 / bins_per_octave) - 1.0)
        n_octave = n_bins // bins_per_octave

        longest_kernel = math.ceil(fs * q / f_min)
        n_fft_exp = int(math.floor(math.log2(longest_kernel))) + 1
        n_fft = 2 ** n_fft_exp

        one_octave_exp = n_fft_exp - (n_octave - 1)
        if one_octave_exp < 1:
            raise CQTParameterError(f"{n_octave} octaves do not fit an FFT of {n_fft} samples; "
                                    f"reduce n_bins or lower f_min")
        n_fft_1octave = 2 ** one_octave_exp

        kernel_lengths = []
        for k in range(n_bins - bins_per_octave, n_bins):
            freq = f_min * 2.0 ** (k / bins_per_octave)
            n_k = math.ceil(fs * q / freq)
            if n_k > n_fft_1octave:
                raise KernelOverflowError(f"Kernel for bin {k} ({freq:.2f} Hz) needs {n_k} samples, "
                                          f"more than the per-octave FFT length {n_fft_1octave}")
            if n_k < 2:
                raise KernelOverflowError(f"Kernel for bin {k} ({freq:.2f} Hz) is {n_k} sample long; "
                                          f"increase q_factor or lower the bin frequencies")
            kernel_lengths.append(n_k)

        return cls(fs=float(fs),
                   n_bins=n_bins,
                   bins_per_octave=bins_per_octave,
                   hop_length=hop_length,
                   f_min=float(f_min),
                   q_factor=float(q_factor),
                   q=q,
                   n_octave=n_octave,
                   n_fft=n_fft,
                   n_fft_1octave=n_fft_1octave,
                   kernel_lengths=tuple(kernel_lengths))

    def n_frames(self, signal_length: int) -> int:
        """Number of frames for a signal of ``signal_length`` samples."""
        return signal_length // self.hop_length

    def padded_length(self, signal_length: int) -> int:
        return padded_length(signal_length, self.n_fft, self.n_octave)
