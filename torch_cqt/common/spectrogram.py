"""
Per-Octave Spectrogram Engine
=============================

Frame extraction, frame FFTs and kernel correlation for one octave of the
resampled signal bank, plus assembly of the octave blocks into the final
constant-Q magnitude spectrogram.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------

**Framing:**
    - `frame_starts`: Start index of every frame at one octave level
    - `extract_frames`: Gather overlapping frames into a matrix

**Correlation:**
    - `octave_spectrogram`: Magnitude block of one octave

**Assembly:**
    - `octave_rows`: Output rows covered by an octave block
    - `assemble_octaves`: Stack blocks from lowest to highest frequency

Notes
-----
Octave level :math:`k` of the bank is decimated by :math:`2^k`. Correlated
against the kernel of the highest octave it yields the bins :math:`k`
octaves below it, so level 0 fills the top rows of the output and level
``n_octave - 1`` the bottom rows.
"""

from typing import Sequence, Tuple

import torch

from torch_cqt.common.errors import SignalLengthError
from torch_cqt.common.kernels import matmul_complex

# -------------------------------------------------- Framing ------------------------------------------------

def frame_starts(octave: int, n_frame: int, hop_length: int, n_fft: int, n_fft_1octave: int,
                 device: torch.device = None) -> torch.Tensor:
    r"""
    Start index of each frame at octave level ``octave``.

    Frame :math:`n` is centered on

    .. math::
        c_n = \frac{N_{fft}}{2^{k+1}} + \left\lfloor \frac{n \cdot hop}{2^k} \right\rfloor

    and starts at :math:`c_n - N_{1oct}/2`. The flooring is applied to each
    frame position rather than to the hop, so a hop that is not divisible by
    :math:`2^k` does not accumulate drift.

    Returns
    -------
    torch.Tensor
        int64 start indices, shape (n_frame,).
    """
    center_init = n_fft // 2 ** (octave + 1)
    n = torch.arange(n_frame, dtype=torch.int64, device=device)
    centers = center_init + torch.div(n * hop_length, 2 ** octave, rounding_mode='floor')
    return centers - n_fft_1octave // 2


def extract_frames(signal: torch.Tensor, starts: torch.Tensor, frame_length: int,
                   valid_length: int = None) -> torch.Tensor:
    """
    Gather overlapping frames.

    Parameters
    ----------
    signal : torch.Tensor
        Resampled signal, shape (..., time).

    starts : torch.Tensor
        Frame start indices, shape (n_frame,).

    frame_length : int
        Samples per frame.

    valid_length : int, optional
        Number of meaningful samples in ``signal``. Default: ``signal.shape[-1]``.

    Returns
    -------
    torch.Tensor
        Frames, shape (..., n_frame, frame_length).

    Raises
    ------
    SignalLengthError
        If a frame would read before the start or past ``valid_length``.
    """
    if valid_length is None:
        valid_length = signal.shape[-1]

    if starts.numel() > 0:
        first = int(starts.min())
        last = int(starts.max()) + frame_length
        if first < 0 or last > valid_length:
            raise SignalLengthError(f"Frames span [{first}, {last}) but only {valid_length} samples are available")

    index = starts.unsqueeze(-1) + torch.arange(frame_length, dtype=starts.dtype, device=starts.device)
    return signal[..., index]

# ------------------------------------------------ Correlation ----------------------------------------------

def octave_spectrogram(signal: torch.Tensor,
                       kernel: torch.Tensor,
                       octave: int,
                       n_frame: int,
                       hop_length: int,
                       n_fft: int,
                       valid_length: int = None) -> torch.Tensor:
    """
    Constant-Q magnitudes of one octave.

    Parameters
    ----------
    signal : torch.Tensor
        Octave level of the resampled bank, shape (..., time).

    kernel : torch.Tensor
        Complex spectral kernel, shape (bins_per_octave, n_fft_1octave).

    octave : int
        Level index :math:`k` (0 = least decimated).

    n_frame : int
        Number of frames, shared by all octaves.

    hop_length : int
        Hop at the original sampling rate.

    n_fft : int
        Global FFT length.

    valid_length : int, optional
        Valid prefix of ``signal``.

    Returns
    -------
    torch.Tensor
        Magnitudes, shape (..., bins_per_octave, n_frame).

    Notes
    -----
    Frames are stacked to (n_frame, n_fft_1octave), transformed row-wise,
    transposed to (n_fft_1octave, n_frame) and multiplied by the kernel with
    `matmul_complex`.
    """
    n_fft_1octave = kernel.shape[-1]

    starts = frame_starts(octave, n_frame, hop_length, n_fft, n_fft_1octave, device=signal.device)
    frames = extract_frames(signal, starts, n_fft_1octave, valid_length)

    real_dtype = kernel.real.dtype
    frames_complex = torch.complex(frames.to(real_dtype), torch.zeros_like(frames, dtype=real_dtype))
    spectra = torch.fft.fft(frames_complex, dim=-1).transpose(-1, -2)

    return matmul_complex(kernel, spectra).abs()

# -------------------------------------------------- Assembly -----------------------------------------------

def octave_rows(octave: int, n_octave: int, bins_per_octave: int) -> Tuple[int, int]:
    """
    Row range ``[start, stop)`` of octave level ``octave`` in the output.

    Examples
    --------
    >>> octave_rows(0, 3, 12)
    (24, 36)
    >>> octave_rows(2, 3, 12)
    (0, 12)
    """
    start = (n_octave - 1 - octave) * bins_per_octave
    return start, start + bins_per_octave


def assemble_octaves(blocks: Sequence[torch.Tensor]) -> torch.Tensor:
    """
    Stack per-octave blocks into one spectrogram ordered low to high frequency.

    Parameters
    ----------
    blocks : sequence of torch.Tensor
        ``blocks[k]`` is the magnitude block of octave level ``k``, shape
        (..., bins_per_octave, n_frame).

    Returns
    -------
    torch.Tensor
        Spectrogram, shape (..., n_octave * bins_per_octave, n_frame).
    """
    n_octave = len(blocks)
    if n_octave == 0:
        raise ValueError("At least one octave block is required")

    first = blocks[0]
    bins_per_octave, n_frame = first.shape[-2], first.shape[-1]
    output = first.new_zeros(first.shape[:-2] + (n_octave * bins_per_octave, n_frame))

    for k, block in enumerate(blocks):
        if block.shape != first.shape:
            raise ValueError(f"Octave block {k} has shape {tuple(block.shape)}, expected {tuple(first.shape)}")
        start, stop = octave_rows(k, n_octave, bins_per_octave)
        output[..., start:stop, :] = block

    return output
