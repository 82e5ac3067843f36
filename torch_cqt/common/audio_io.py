"""
Audio Decoding and Spectrogram Rendering
========================================

Collaborators on both sides of the transform: decoding an audio file into a
mono sample array, and turning the magnitude spectrogram into an image.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------
    - `load_audio`: WAV file to (mono float tensor, sampling rate)
    - `normalize_spectrogram`: Scale magnitudes to [0, 1]
    - `spectrogram_to_image`: 8-bit image with the lowest bin on the bottom row
    - `save_spectrogram_image`: Write the image to disk with matplotlib

Decoding is restricted to what ``scipy.io.wavfile`` reads (PCM and float
WAV). Any decode failure is raised as `AudioDecodeError` before the
transform is invoked.
"""

import warnings
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import torch
from scipy.io import wavfile

from torch_cqt.common.errors import AudioDecodeError

# ------------------------------------------------- Decoding -------------------------------------------------

def load_audio(path: Union[str, Path],
               channel: int = 0,
               dtype: torch.dtype = torch.float32) -> Tuple[torch.Tensor, int]:
    """
    Decode a WAV file into a mono waveform.

    Parameters
    ----------
    path : str or Path
        WAV file.

    channel : int, optional
        Channel kept from multi-channel files. Default: 0 (first channel).

    dtype : torch.dtype, optional
        Output dtype. Default: ``torch.float32``.

    Returns
    -------
    signal : torch.Tensor
        Samples scaled to [-1, 1), shape (time,).

    fs : int
        Sampling rate in Hz.

    Raises
    ------
    AudioDecodeError
        Unreadable file, unsupported sample format, empty data or missing channel.
    """
    path = Path(path)
    try:
        fs, data = wavfile.read(path)
    except (OSError, ValueError) as e:
        raise AudioDecodeError(f"Failed to decode '{path}': {e}") from e

    # scipy returns mono files as 1D arrays
    n_channels = data.shape[1] if data.ndim == 2 else 1
    if not 0 <= channel < n_channels:
        raise AudioDecodeError(f"'{path}' has {n_channels} channel(s), cannot select channel {channel}")

    if data.ndim == 2:
        if n_channels > 1:
            warnings.warn(f"'{path}' has {n_channels} channels; using channel {channel} only")
        data = data[:, channel]

    if data.size == 0:
        raise AudioDecodeError(f"'{path}' contains no samples")

    if data.dtype == np.uint8:
        samples = (data.astype(np.float64) - 128.0) / 128.0
    elif np.issubdtype(data.dtype, np.integer):
        samples = data.astype(np.float64) / float(2 ** (8 * data.dtype.itemsize - 1))
    elif np.issubdtype(data.dtype, np.floating):
        samples = data.astype(np.float64)
    else:
        raise AudioDecodeError(f"Unsupported sample format {data.dtype} in '{path}'")

    return torch.from_numpy(samples).to(dtype), int(fs)

# ------------------------------------------------- Rendering ------------------------------------------------

def normalize_spectrogram(spectrogram: torch.Tensor) -> torch.Tensor:
    """
    Divide by the global maximum.

    An all-zero spectrogram is returned as zeros instead of NaN.
    """
    peak = spectrogram.max() if spectrogram.numel() > 0 else spectrogram.new_tensor(0.0)
    if peak <= 0:
        return torch.zeros_like(spectrogram)
    return spectrogram / peak


def spectrogram_to_image(spectrogram: torch.Tensor, normalize: bool = True) -> np.ndarray:
    """
    Map a (n_bins, n_frame) spectrogram to an 8-bit grayscale image.

    Rows are flipped so the lowest frequency ends up at the bottom of the
    image. Values are scaled by 255 and truncated, as for a canvas bitmap.

    Returns
    -------
    np.ndarray
        uint8 array, shape (n_bins, n_frame).
    """
    if spectrogram.ndim != 2:
        raise ValueError(f"Expected a 2D spectrogram, got shape {tuple(spectrogram.shape)}")

    values = normalize_spectrogram(spectrogram) if normalize else spectrogram
    values = values.detach().cpu().clamp(0.0, 1.0).flip(0)
    return (values * 255).to(torch.int32).numpy().astype(np.uint8)


def save_spectrogram_image(spectrogram: torch.Tensor,
                           path: Union[str, Path],
                           cmap: Optional[str] = 'gray') -> Path:
    """
    Write a spectrogram as an image (format from the file extension).

    Parameters
    ----------
    spectrogram : torch.Tensor
        Magnitudes, shape (n_bins, n_frame).

    path : str or Path
        Output file, e.g. ``spectrogram.png``.

    cmap : str, optional
        Matplotlib colormap name. Default: ``'gray'``.

    Returns
    -------
    Path
        The written file.
    """
    import matplotlib.pyplot as plt

    path = Path(path)
    image = spectrogram_to_image(spectrogram)
    plt.imsave(path, image, cmap=cmap, vmin=0, vmax=255)
    return path
