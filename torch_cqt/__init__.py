"""
torch_cqt: PyTorch Constant-Q Transform
=======================================

A PyTorch implementation of the multirate Constant-Q Transform (CQT): a
time-frequency representation with geometrically spaced bins, computed with
a recursive octave filter bank, per-octave FFT framing and a single
precomputed complex spectral kernel.

**Key Features:**
    - One spectral kernel shared by every octave (multirate filter bank)
    - Zero-phase anti-aliasing before each 2:1 decimation
    - Batched mono input, CPU/CUDA/MPS tensors
    - Fail-fast parameter validation (no silently truncated kernels)
    - WAV decoding and spectrogram image export helpers

**Quick Start:**

    >>> import torch
    >>> import torch_cqt
    >>>
    >>> transform = torch_cqt.ConstantQTransform(fs=44100, preset='piano')
    >>> audio = torch.randn(44100)  # 1 second of audio at 44.1 kHz
    >>> spec = transform(audio)     # (324 bins, 172 frames)
    >>>
    >>> # Or the functional form
    >>> spec = torch_cqt.cqt(audio, 44100, n_bins=36, bins_per_octave=12,
    ...                      hop_length=512, f_min=110.0, q_factor=0.5)

**Package Structure:**

    torch_cqt/
    ├── models/             # End-to-end transform
    │   └── cqt.py                  - ConstantQTransform, cqt()
    │
    └── common/             # Reusable building blocks
        ├── filters.py              - IIR and zero-phase filtering
        ├── geometry.py             - Parameter validation and derived sizes
        ├── kernels.py              - Windows, frequency tables, spectral kernel
        ├── resampling.py           - Octave downsampler
        ├── spectrogram.py          - Per-octave engine and assembly
        ├── audio_io.py             - WAV decoding and image rendering
        └── errors.py               - Exception types

**Author:**
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

**License:**
    GNU General Public License v3.0 or later (GPLv3+)

**Version History:**
    - 0.1.0 (2026-10): Initial release
"""

# ============================================================================
# Package Metadata
# ============================================================================

__version__ = "0.1.0"
__author__ = "Stefano Giacomelli"
__email__ = "stefano.giacomelli@graduate.univaq.it"
__license__ = "GPL-3.0-or-later"
__description__ = "PyTorch Constant-Q Transform - multirate CQT spectrograms"

# ============================================================================
# Public API - End-to-End Transform
# ============================================================================

from torch_cqt.models.cqt import ConstantQTransform, cqt, PRESETS

# ============================================================================
# Public API - Common Building Blocks
# ============================================================================

# --- Filtering ---
from torch_cqt.common.filters import (
    IIRFilterState,                     # Explicit-state sample-by-sample IIR
    IIRFilter,                          # IIR filter module
    ZeroPhaseFilter,                    # Forward-backward IIR module
    apply_iir_pytorch,                  # Apply IIR filter to tensors
    zero_phase_filter,                  # Forward-backward filtering
)

# --- Geometry & Kernels ---
from torch_cqt.common.geometry import (
    CQTGeometry,                        # Derived sizes (Q, FFT lengths, octaves)
    validate_cqt_parameters,            # Fail-fast parameter checks
)
from torch_cqt.common.kernels import (
    hanning_window,                     # Symmetric Hanning window
    cqt_frequencies,                    # Geometric bin frequencies
    q_value,                            # Quality factor
    matmul_complex,                     # Four-matmul complex product
    spectral_kernel,                    # Frequency-domain kernel bank
)

# --- Multirate Analysis ---
from torch_cqt.common.resampling import (
    OctaveDownsampler,                  # Octave bank module
    downsample_octaves,                 # Functional octave bank
)
from torch_cqt.common.spectrogram import (
    octave_spectrogram,                 # Magnitude block of one octave
    assemble_octaves,                   # Stack blocks low to high frequency
)

# --- Input / Output ---
from torch_cqt.common.audio_io import (
    load_audio,                         # WAV to mono tensor
    normalize_spectrogram,              # Divide by maximum
    spectrogram_to_image,               # uint8 image, low frequencies at bottom
    save_spectrogram_image,             # Write image file
)

# --- Errors ---
from torch_cqt.common.errors import (
    CQTParameterError,
    KernelOverflowError,
    SignalLengthError,
    AudioDecodeError,
    TransformCancelledError,
)

# ============================================================================
# Package-Level Exports
# ============================================================================

__all__ = [
    # Transform
    "ConstantQTransform",
    "cqt",
    "PRESETS",

    # Filtering
    "IIRFilterState",
    "IIRFilter",
    "ZeroPhaseFilter",
    "apply_iir_pytorch",
    "zero_phase_filter",

    # Geometry & kernels
    "CQTGeometry",
    "validate_cqt_parameters",
    "hanning_window",
    "cqt_frequencies",
    "q_value",
    "matmul_complex",
    "spectral_kernel",

    # Multirate analysis
    "OctaveDownsampler",
    "downsample_octaves",
    "octave_spectrogram",
    "assemble_octaves",

    # Input / output
    "load_audio",
    "normalize_spectrogram",
    "spectrogram_to_image",
    "save_spectrogram_image",

    # Errors
    "CQTParameterError",
    "KernelOverflowError",
    "SignalLengthError",
    "AudioDecodeError",
    "TransformCancelledError",
]
