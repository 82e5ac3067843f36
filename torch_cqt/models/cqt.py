"""
Constant-Q Transform
====================

End-to-end multirate Constant-Q Transform (CQT) magnitude spectrogram.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Processing pipeline:

1. **Geometry**: frequency table, quality factor :math:`Q` and FFT sizes
2. **Spectral kernel**: one frequency-domain template bank for the highest
   octave, built once per configuration
3. **Octave downsampling**: zero-phase low-pass and 2:1 decimation, once per octave
4. **Per-octave engine**: framing, frame FFTs, complex correlation with the kernel
5. **Assembly**: octave blocks stacked from lowest to highest frequency

The input is a mono waveform (optionally a batch of independent mono
waveforms) and the output a non-negative magnitude matrix. Normalization and
rasterization are left to the caller (see `torch_cqt.common.audio_io`).

References
----------
.. [1] J. C. Brown, "Calculation of a constant Q spectral transform,"
       *J. Acoust. Soc. Am.*, vol. 89, no. 1, pp. 425-434, 1991.
.. [2] J. C. Brown and M. S. Puckette, "An efficient algorithm for the
       calculation of a constant Q transform," *J. Acoust. Soc. Am.*,
       vol. 92, no. 5, pp. 2698-2701, 1992.
.. [3] C. Schörkhuber and A. Klapuri, "Constant-Q transform toolbox for music
       processing," in *Proc. 7th Sound and Music Computing Conf.*, 2010.
"""

import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch
import torch.nn as nn

from torch_cqt.common.errors import SignalLengthError, TransformCancelledError
from torch_cqt.common.geometry import CQTGeometry
from torch_cqt.common.kernels import cqt_frequencies, spectral_kernel
from torch_cqt.common.resampling import OctaveDownsampler
from torch_cqt.common.spectrogram import assemble_octaves, octave_rows, octave_spectrogram

PRESETS = {
    # 9 octaves from A0 at 1/3 semitone resolution
    'piano': dict(n_bins=324, bins_per_octave=36, hop_length=256, f_min=27.5, q_factor=0.5),
    # 7 octaves from C1 at semitone resolution
    'semitone': dict(n_bins=84, bins_per_octave=12, hop_length=512, f_min=32.70319566257483, q_factor=1.0),
}


class ConstantQTransform(nn.Module):
    r"""
    Multirate Constant-Q Transform.

    Computes a magnitude spectrogram whose bins are geometrically spaced,
    :math:`f_k = f_{min} 2^{k/B}`, with constant ratio of center frequency to
    bandwidth. Instead of one long kernel per bin, a single kernel bank for
    the highest octave is correlated against progressively decimated copies
    of the signal [2]_.

    Parameters
    ----------
    fs : float
        Sampling rate in Hz.

    n_bins : int, optional
        Total number of bins, a multiple of ``bins_per_octave``. Default: 324.

    bins_per_octave : int, optional
        Bins per octave :math:`B`. Default: 36.

    hop_length : int, optional
        Samples between successive frames at ``fs``. Best chosen divisible
        by :math:`2^{n_{octave}-1}`. Default: 256.

    f_min : float, optional
        Center frequency of the lowest bin in Hz. Default: 27.5 (A0).

    q_factor : float, optional
        Bandwidth scaling; :math:`Q = q_{factor} / (2^{1/B} - 1)`. Default: 0.5.

    preset : str, optional
        Named configuration overriding the five parameters above:
        ``'piano'`` or ``'semitone'``. Default: ``None``.

    n_workers : int, optional
        Threads used for the per-octave engine once the octave bank exists.
        Default: 1 (serial).

    filter_method : str, optional
        IIR backend of the anti-aliasing filter, ``'lfilter'`` or ``'direct'``.
        Default: ``'lfilter'``.

    dtype : torch.dtype, optional
        Real dtype of the computation. Default: ``torch.float32``.

    Attributes
    ----------
    geometry : CQTGeometry
        Derived sizes (``q``, ``n_octave``, ``n_fft``, ``n_fft_1octave``, ...).

    frequencies : torch.Tensor
        Bin center frequencies in Hz, shape (n_bins,). Registered buffer.

    kernel : torch.Tensor
        Complex spectral kernel, shape (bins_per_octave, n_fft_1octave).
        Registered buffer, read-only.

    downsampler : OctaveDownsampler
        Octave bank generator.

    Shape
    -----
    - Input: :math:`(T,)` or :math:`(B, T)`
    - Output: :math:`(K, N)` or :math:`(B, K, N)` where

        * :math:`K` = ``n_bins``
        * :math:`N = \lfloor T / hop \rfloor`

    Examples
    --------
    >>> import torch
    >>> from torch_cqt import ConstantQTransform
    >>>
    >>> cqt = ConstantQTransform(fs=44100, n_bins=36, bins_per_octave=12,
    ...                          hop_length=512, f_min=27.5, q_factor=0.5)
    >>> spec = cqt(torch.zeros(88200))
    >>> spec.shape
    torch.Size([36, 172])

    Raises
    ------
    CQTParameterError
        Invalid or inconsistent parameters (raised by the constructor).
    KernelOverflowError
        A kernel does not fit the per-octave FFT length.
    """

    def __init__(self,
                 fs: float,
                 n_bins: int = 324,
                 bins_per_octave: int = 36,
                 hop_length: int = 256,
                 f_min: float = 27.5,
                 q_factor: float = 0.5,
                 preset: Optional[str] = None,
                 n_workers: int = 1,
                 filter_method: str = 'lfilter',
                 dtype: torch.dtype = torch.float32):
        super().__init__()

        if preset is not None:
            if preset not in PRESETS:
                raise ValueError(f"Unknown preset '{preset}'. Choose from: {', '.join(repr(p) for p in PRESETS)}")
            config = PRESETS[preset]
            n_bins = config['n_bins']
            bins_per_octave = config['bins_per_octave']
            hop_length = config['hop_length']
            f_min = config['f_min']
            q_factor = config['q_factor']

        if n_workers < 1:
            raise ValueError(f"n_workers must be at least 1, got {n_workers}")

        self.fs = fs
        self.preset = preset
        self.n_workers = n_workers
        self.dtype = dtype
        self.geometry = CQTGeometry.from_parameters(fs, n_bins, bins_per_octave, hop_length, f_min, q_factor)

        geo = self.geometry
        if geo.hop_length % 2 ** (geo.n_octave - 1) != 0:
            warnings.warn(f"hop_length={geo.hop_length} is not divisible by 2**{geo.n_octave - 1}; "
                          f"frame positions of the lower octaves are floored to the nearest sample")

        freqs = cqt_frequencies(geo.n_bins, geo.f_min, geo.bins_per_octave, dtype=torch.float64)
        kernel = spectral_kernel(geo.fs, geo.n_bins, geo.bins_per_octave, geo.q, geo.n_fft_1octave,
                                 freqs, n_fft=geo.n_fft, dtype=torch.float64)
        complex_dtype = torch.complex128 if dtype == torch.float64 else torch.complex64

        self.register_buffer('frequencies', freqs.to(dtype))
        self.register_buffer('kernel', kernel.to(complex_dtype))

        self.downsampler = OctaveDownsampler(geo.n_octave, geo.n_fft, method=filter_method)

    @property
    def n_bins(self) -> int:
        return self.geometry.n_bins

    @property
    def bins_per_octave(self) -> int:
        return self.geometry.bins_per_octave

    @property
    def hop_length(self) -> int:
        return self.geometry.hop_length

    @property
    def n_octave(self) -> int:
        return self.geometry.n_octave

    def _prepare_signal(self, signal: Union[torch.Tensor, np.ndarray, Sequence[float]]) -> torch.Tensor:
        if not isinstance(signal, torch.Tensor):
            signal = torch.as_tensor(np.asarray(signal, dtype=np.float64))
        if signal.is_complex():
            raise SignalLengthError("Expected a real-valued signal, got a complex tensor")
        if signal.ndim not in (1, 2):
            raise SignalLengthError(f"Expected signal of shape (time,) or (batch, time), got {tuple(signal.shape)}")
        if signal.shape[-1] == 0 or signal.numel() == 0:
            raise SignalLengthError("Signal must contain at least one sample")

        signal = signal.to(device=self.kernel.device, dtype=self.dtype)
        if not torch.isfinite(signal).all():
            raise SignalLengthError("Signal contains NaN or infinite samples")

        return signal

    def get_octave_bank(self, signal: torch.Tensor,
                        should_stop: Optional[Callable[[], bool]] = None) -> Tuple[torch.Tensor, List[int]]:
        """
        Resampled signal bank used by `forward`.

        Returns
        -------
        levels : torch.Tensor
            Shape (n_octave, ..., time_padded).

        lengths : list of int
            Valid length of each level.
        """
        signal = self._prepare_signal(signal)
        return self.downsampler(signal, should_stop=should_stop)

    def get_octave_frequencies(self, octave: int) -> torch.Tensor:
        """Center frequencies covered by octave level ``octave`` (0 = highest octave)."""
        start, stop = octave_rows(octave, self.n_octave, self.bins_per_octave)
        return self.frequencies[start:stop]

    def forward(self, signal: torch.Tensor,
                should_stop: Optional[Callable[[], bool]] = None) -> torch.Tensor:
        """
        Compute the CQT magnitude spectrogram.

        Parameters
        ----------
        signal : torch.Tensor
            Mono waveform at ``fs``, shape (time,) or (batch, time). Numpy
            arrays and float sequences are converted.

        should_stop : callable, optional
            Zero-argument callable polled between downsampling levels and
            between octaves. Returning True raises `TransformCancelledError`.

        Returns
        -------
        torch.Tensor
            Non-negative magnitudes, shape (n_bins, n_frame) or
            (batch, n_bins, n_frame), rows ordered from lowest to highest
            frequency.
        """
        signal = self._prepare_signal(signal)
        geo = self.geometry
        n_frame = geo.n_frames(signal.shape[-1])

        if n_frame == 0:
            return signal.new_zeros(signal.shape[:-1] + (geo.n_bins, 0))

        if should_stop is not None and should_stop():
            raise TransformCancelledError("Cancelled before downsampling")
        levels, lengths = self.downsampler(signal, should_stop=should_stop)

        def run_octave(k: int) -> torch.Tensor:
            if should_stop is not None and should_stop():
                raise TransformCancelledError(f"Cancelled before octave {k}/{geo.n_octave - 1}")
            return octave_spectrogram(levels[k], self.kernel, k, n_frame, geo.hop_length, geo.n_fft,
                                      valid_length=lengths[k])

        if self.n_workers > 1 and geo.n_octave > 1:
            with ThreadPoolExecutor(max_workers=min(self.n_workers, geo.n_octave)) as executor:
                blocks = list(executor.map(run_octave, range(geo.n_octave)))
        else:
            blocks = [run_octave(k) for k in range(geo.n_octave)]

        return assemble_octaves(blocks).to(self.dtype)

    def extra_repr(self) -> str:
        geo = self.geometry
        return (f"fs={geo.fs}, n_bins={geo.n_bins}, bins_per_octave={geo.bins_per_octave}, "
                f"hop_length={geo.hop_length}, f_min={geo.f_min}, q_factor={geo.q_factor}, "
                f"n_octave={geo.n_octave}, n_fft={geo.n_fft}, n_fft_1octave={geo.n_fft_1octave}")


def cqt(signal: Union[torch.Tensor, np.ndarray, Sequence[float]],
        fs: float,
        n_bins: int,
        bins_per_octave: int,
        hop_length: int,
        f_min: float,
        q_factor: float,
        **kwargs) -> torch.Tensor:
    """
    Functional Constant-Q Transform.

    Builds a `ConstantQTransform` (and therefore its spectral kernel) for the
    given parameters and applies it once.

    Parameters
    ----------
    signal : torch.Tensor, np.ndarray or sequence of float
        Mono waveform, shape (time,) or (batch, time).

    fs : float
        Sampling rate in Hz.

    n_bins, bins_per_octave, hop_length, f_min, q_factor
        See `ConstantQTransform`.

    **kwargs
        Forwarded to `ConstantQTransform` (``n_workers``, ``filter_method``,
        ``dtype``), except ``should_stop`` which is forwarded to the call.

    Returns
    -------
    torch.Tensor
        Magnitude spectrogram, shape (n_bins, n_frame) or (batch, n_bins, n_frame).
    """
    should_stop = kwargs.pop('should_stop', None)
    transform = ConstantQTransform(fs, n_bins=n_bins, bins_per_octave=bins_per_octave, hop_length=hop_length,
                                   f_min=f_min, q_factor=q_factor, **kwargs)
    with torch.no_grad():
        return transform(signal, should_stop=should_stop)
