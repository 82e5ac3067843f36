"""
Octave Downsampling
===================

Recursive anti-aliased 2:1 decimation producing one resampled signal per
octave of the constant-Q transform.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------
    - `downsample_octaves`: Functional octave bank construction
    - `OctaveDownsampler`: nn.Module wrapper around a `ZeroPhaseFilter`

Level 0 of the bank is the zero-padded input. Level :math:`k` is level
:math:`k-1` zero-phase low-pass filtered over its valid prefix and decimated
by 2. All levels share the padded length; only the first
``padded_length / 2 ** k`` samples of level :math:`k` are meaningful, the
rest stays zero.
"""

from typing import Callable, List, Optional, Tuple

import torch
import torch.nn as nn
import torch.nn.functional as F

from torch_cqt.common.errors import SignalLengthError, TransformCancelledError
from torch_cqt.common.filters import DECIMATION_LOWPASS_A, DECIMATION_LOWPASS_B, ZeroPhaseFilter, zero_phase_filter
from torch_cqt.common.geometry import padded_length


def downsample_octaves(signal: torch.Tensor,
                       n_octave: int,
                       n_fft: int,
                       b: torch.Tensor = None,
                       a: torch.Tensor = None,
                       method: str = 'lfilter',
                       should_stop: Optional[Callable[[], bool]] = None) -> Tuple[torch.Tensor, List[int]]:
    """
    Build the resampled signal bank.

    Parameters
    ----------
    signal : torch.Tensor
        Input signal, shape (time,) or (batch, time).

    n_octave : int
        Number of levels to produce.

    n_fft : int
        Global FFT length; the signal is padded by at least this many zeros.

    b, a : torch.Tensor, optional
        Anti-aliasing filter coefficients. Default: decimation low-pass.

    method : str, optional
        IIR backend (``'lfilter'`` or ``'direct'``).

    should_stop : callable, optional
        Polled before each level; returning True aborts with
        `TransformCancelledError`.

    Returns
    -------
    levels : torch.Tensor
        Shape (n_octave, time_padded) or (n_octave, batch, time_padded).

    lengths : list of int
        Valid length of each level, ``time_padded // 2 ** k``.
    """
    if signal.shape[-1] == 0:
        raise SignalLengthError("Cannot downsample an empty signal")
    if b is None:
        b = DECIMATION_LOWPASS_B
    if a is None:
        a = DECIMATION_LOWPASS_A

    n_total = padded_length(signal.shape[-1], n_fft, n_octave)

    levels = signal.new_zeros((n_octave,) + tuple(signal.shape[:-1]) + (n_total,))
    levels[0] = F.pad(signal, (0, n_total - signal.shape[-1]))
    lengths = [n_total]

    for k in range(1, n_octave):
        if should_stop is not None and should_stop():
            raise TransformCancelledError(f"Cancelled while downsampling level {k}/{n_octave - 1}")

        prev_length = lengths[k - 1]
        filtered = zero_phase_filter(levels[k - 1][..., :prev_length], b, a, method=method)

        length = prev_length // 2
        levels[k][..., :length] = filtered[..., ::2]
        lengths.append(length)

    return levels, lengths


class OctaveDownsampler(nn.Module):
    """
    Octave bank generator for multirate constant-Q analysis.

    Parameters
    ----------
    n_octave : int
        Number of octave levels.

    n_fft : int
        Global FFT length (minimum zero-padding appended to the signal).

    method : str, optional
        IIR backend of the zero-phase low-pass. Default: ``'lfilter'``.

    Shape
    -----
    - Input: :math:`(T,)` or :math:`(B, T)`
    - Output: ``(levels, lengths)`` with levels of shape
      :math:`(K, T_{pad})` or :math:`(K, B, T_{pad})`

    Examples
    --------
    >>> ds = OctaveDownsampler(n_octave=3, n_fft=4096)
    >>> levels, lengths = ds(torch.randn(44100))
    >>> lengths
    [48196, 24098, 12049]
    """

    def __init__(self, n_octave: int, n_fft: int, method: str = 'lfilter'):
        super().__init__()
        if n_octave < 1:
            raise ValueError(f"n_octave must be at least 1, got {n_octave}")

        self.n_octave = n_octave
        self.n_fft = n_fft
        self.method = method
        # Full-precision decimation low-pass, applied on the CPU in float64
        self.lowpass = ZeroPhaseFilter(method=method)

    def forward(self, signal: torch.Tensor,
                should_stop: Optional[Callable[[], bool]] = None) -> Tuple[torch.Tensor, List[int]]:
        return downsample_octaves(signal, self.n_octave, self.n_fft, self.lowpass.b, self.lowpass.a,
                                  method=self.method, should_stop=should_stop)

    def extra_repr(self) -> str:
        return f"n_octave={self.n_octave}, n_fft={self.n_fft}, method='{self.method}'"
