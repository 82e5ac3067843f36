"""Reusable building blocks of the constant-Q transform."""

from torch_cqt.common.errors import (CQTParameterError, KernelOverflowError, SignalLengthError,
                                     AudioDecodeError, TransformCancelledError)
from torch_cqt.common.filters import (IIRFilterState, IIRFilter, ZeroPhaseFilter, apply_iir_pytorch,
                                      zero_phase_filter, DECIMATION_LOWPASS_B, DECIMATION_LOWPASS_A)
from torch_cqt.common.geometry import CQTGeometry, validate_cqt_parameters, padded_length
from torch_cqt.common.kernels import (hanning_window, cqt_frequencies, q_value, conjugate, div_complex,
                                      matmul_complex, spectral_kernel)
from torch_cqt.common.resampling import OctaveDownsampler, downsample_octaves
from torch_cqt.common.spectrogram import (frame_starts, extract_frames, octave_spectrogram, octave_rows,
                                          assemble_octaves)
from torch_cqt.common.audio_io import (load_audio, normalize_spectrogram, spectrogram_to_image,
                                       save_spectrogram_image)
