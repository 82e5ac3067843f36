"""
Spectral Kernels and Complex Algebra
====================================

Window and frequency-table generators, the frequency-domain spectral kernel
of the constant-Q transform, and the complex tensor helpers used to
correlate it against frame spectra.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------

**Generators:**
    - `hanning_window`: Symmetric Hanning window
    - `cqt_frequencies`: Geometric bin center frequencies
    - `q_value`: Quality factor from bins per octave and bandwidth scaling

**Complex Algebra:**
    - `conjugate`: Complex conjugate built from real and imaginary parts
    - `div_complex`: Division of a complex tensor by a real scalar
    - `matmul_complex`: Complex matrix product with four real matmuls

**Kernel:**
    - `spectral_kernel`: Conjugated, normalized FFT of windowed complex exponentials

Notes
-----
The kernel holds one row per bin of the *highest* octave only. Lower octaves
reuse it against progressively decimated signals: halving the sampling rate
maps every kernel row one octave down.
"""

import math
from typing import Optional, Sequence

import torch

from torch_cqt.common.errors import KernelOverflowError

# -------------------------------------------------- Generators ---------------------------------------------

def hanning_window(M: int, dtype: torch.dtype = torch.float64, device: Optional[torch.device] = None) -> torch.Tensor:
    r"""
    Symmetric Hanning window.

    .. math::
        w[i] = 0.5 - 0.5 \cos\left(\frac{2 \pi i}{M - 1}\right), \quad i \in [0, M)

    Parameters
    ----------
    M : int
        Window length, at least 2.

    Returns
    -------
    torch.Tensor
        Window of shape (M,). Equal to ``torch.hann_window(M, periodic=False)``.
    """
    if M < 2:
        raise ValueError(f"Hanning window length must be at least 2, got {M}")

    i = torch.arange(M, dtype=dtype, device=device)
    return 0.5 - 0.5 * torch.cos(2.0 * math.pi * i / (M - 1))


def cqt_frequencies(n_bins: int,
                    f_min: float,
                    bins_per_octave: int,
                    dtype: torch.dtype = torch.float64,
                    device: Optional[torch.device] = None) -> torch.Tensor:
    r"""
    Center frequencies of constant-Q bins.

    .. math::
        f_i = f_{min} \cdot 2^{i / B}

    Parameters
    ----------
    n_bins : int
        Number of bins.

    f_min : float
        Lowest center frequency in Hz.

    bins_per_octave : int
        Bins per octave :math:`B`.

    Returns
    -------
    torch.Tensor
        Strictly increasing frequencies in Hz, shape (n_bins,).

    Examples
    --------
    >>> freqs = cqt_frequencies(24, 27.5, 12)
    >>> torch.allclose(freqs[12:], 2 * freqs[:12])
    True
    """
    i = torch.arange(n_bins, dtype=dtype, device=device)
    return f_min * torch.pow(torch.tensor(2.0, dtype=dtype, device=device), i / bins_per_octave)


def q_value(bins_per_octave: int, q_factor: float = 1.0) -> float:
    """Quality factor ``q_factor / (2 ** (1 / bins_per_octave) - 1)``."""
    return q_factor / (2.0 ** (1.0 / bins_per_octave) - 1.0)

# ------------------------------------------------ Complex Algebra ------------------------------------------

def conjugate(x: torch.Tensor) -> torch.Tensor:
    """Complex conjugate, materialized as a new tensor."""
    return torch.complex(x.real, -x.imag)


def div_complex(x: torch.Tensor, value: float) -> torch.Tensor:
    """Divide real and imaginary parts of ``x`` by a real scalar."""
    return torch.complex(x.real / value, x.imag / value)


def matmul_complex(A: torch.Tensor, B: torch.Tensor) -> torch.Tensor:
    r"""
    Complex matrix product from four real matrix products.

    .. math::
        (A_r + iA_i)(B_r + iB_i) = (A_r B_r - A_i B_i) + i(A_r B_i + A_i B_r)

    Parameters
    ----------
    A : torch.Tensor
        Complex tensor, shape (..., M, K).

    B : torch.Tensor
        Complex tensor, shape (..., K, N). Leading dimensions broadcast.

    Returns
    -------
    torch.Tensor
        Complex tensor, shape (..., M, N).
    """
    Ar, Ai = A.real, A.imag
    Br, Bi = B.real, B.imag

    Cr = torch.matmul(Ar, Br) - torch.matmul(Ai, Bi)
    Ci = torch.matmul(Ar, Bi) + torch.matmul(Ai, Br)

    return torch.complex(Cr, Ci)

# -------------------------------------------------- Kernel -------------------------------------------------

def spectral_kernel(fs: float,
                    n_bins: int,
                    bins_per_octave: int,
                    q: float,
                    n_fft_1octave: int,
                    freqs: Sequence[float],
                    n_fft: Optional[int] = None,
                    dtype: torch.dtype = torch.float64) -> torch.Tensor:
    r"""
    Frequency-domain spectral kernel of the highest octave.

    For each bin :math:`k` in ``n_bins - bins_per_octave .. n_bins - 1``:

    1. Kernel length :math:`N_k = \lceil f_s Q / f_k \rceil`
    2. Centered start offset ``(n_fft_1octave - N_k) // 2``
    3. Samples :math:`e^{2 \pi i f_k t / f_s} \, w[t] / N_k` for
       :math:`t \in [0, N_k)`, with :math:`w` a Hanning window of length :math:`N_k`

    The rows are transformed with an FFT of length ``n_fft_1octave``,
    conjugated and divided by ``n_fft``.

    Parameters
    ----------
    fs : float
        Sampling rate in Hz.

    n_bins : int
        Total number of bins.

    bins_per_octave : int
        Bins per octave, i.e. number of kernel rows.

    q : float
        Quality factor (see `q_value`).

    n_fft_1octave : int
        FFT length of one octave (columns of the kernel).

    freqs : sequence of float or torch.Tensor
        Full frequency table of length ``n_bins``.

    n_fft : int, optional
        Global normalization length. Default: ``n_fft_1octave``.

    dtype : torch.dtype, optional
        Real dtype used for the time-domain templates. Default: ``torch.float64``.

    Returns
    -------
    torch.Tensor
        Complex kernel, shape (bins_per_octave, n_fft_1octave).

    Raises
    ------
    KernelOverflowError
        If a kernel needs more than ``n_fft_1octave`` samples or fewer than 2.
    """
    if n_fft is None:
        n_fft = n_fft_1octave

    kernel = torch.zeros(bins_per_octave, n_fft_1octave, dtype=torch.complex128 if dtype == torch.float64 else torch.complex64)

    for row, k in enumerate(range(n_bins - bins_per_octave, n_bins)):
        freq = float(freqs[k])
        n_k = math.ceil(fs * q / freq)
        if n_k > n_fft_1octave or n_k < 2:
            raise KernelOverflowError(f"Kernel for bin {k} ({freq:.2f} Hz) needs {n_k} samples, "
                                      f"allowed range is [2, {n_fft_1octave}]")
        start = (n_fft_1octave - n_k) // 2

        t = torch.arange(n_k, dtype=dtype)
        window = hanning_window(n_k, dtype=dtype) / n_k
        phase = 2.0 * math.pi * (freq / fs) * t
        kernel[row, start:start + n_k] = torch.complex(torch.cos(phase) * window, torch.sin(phase) * window)

    kernel = torch.fft.fft(kernel, dim=-1)
    kernel = conjugate(kernel)

    return div_complex(kernel, n_fft)
