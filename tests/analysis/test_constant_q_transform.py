"""
Constant-Q Transform - Test Suite

Contents:
1. test_silence: Zero input gives an all-zero spectrogram of the expected shape
2. test_pure_tone_440: 440 Hz sine peaks on its own bin
3. test_tone_per_octave: Tones in each octave land on their rows
4. test_frame_count: n_frame == len(signal) // hop_length
5. test_short_signal: Signals shorter than one hop give zero frames
6. test_batch_matches_single: Batched input equals per-signal calls
7. test_parallel_matches_serial: Thread-pool engine equals serial engine
8. test_kernel_built_once: Kernel is computed by the constructor only
9. test_cancellation: should_stop aborts with TransformCancelledError
10. test_presets: Named configurations and unknown names
11. test_invalid_signals: Empty, 3D, complex and non-finite input
12. test_octave_bank_accessor: Resampled bank exposed for inspection

Figures generated:
- cqt_pure_tone_440.png: Spectrogram and mean bin profile of a 440 Hz sine
"""

import importlib
import math
from pathlib import Path

import numpy as np
import pytest
import torch
import matplotlib.pyplot as plt

from torch_cqt import ConstantQTransform, cqt, PRESETS
from torch_cqt.common.errors import CQTParameterError, SignalLengthError, TransformCancelledError

FS = 44100
TONE_CQT = dict(n_bins=36, bins_per_octave=12, hop_length=512, f_min=110.0, q_factor=0.5)
SMALL_FS = 8000
SMALL_CQT = dict(n_bins=24, bins_per_octave=12, hop_length=128, f_min=110.0, q_factor=0.5)


def sine(freq, duration=1.0, fs=FS):
    t = torch.arange(int(duration * fs), dtype=torch.float64) / fs
    return torch.sin(2 * math.pi * freq * t)


def test_silence():
    spec = cqt(torch.zeros(2 * FS), FS, n_bins=36, bins_per_octave=12, hop_length=512, f_min=27.5, q_factor=0.5)

    assert spec.shape == (36, 172)
    assert torch.count_nonzero(spec) == 0


def test_pure_tone_440():
    """440 Hz with f_min=110 Hz and 12 bins/octave sits on row 24."""

    TEST_FIGURES_DIR = Path(__file__).parent.parent.parent / 'test_figures'
    TEST_FIGURES_DIR.mkdir(exist_ok=True)

    print("=" * 80)
    print("CQT PURE TONE TEST (440 Hz)")
    print("=" * 80)

    transform = ConstantQTransform(fs=FS, **TONE_CQT)
    print(f"  {transform}")
    with torch.no_grad():
        spec = transform(sine(440.0))

    assert spec.shape == (36, FS // 512)
    assert (spec >= 0).all()
    assert transform.frequencies[24].item() == pytest.approx(440.0)

    # Interior frames, away from the zero padding
    interior = spec[:, 4:61]
    assert (interior.argmax(dim=0) == 24).all()

    profile = interior.mean(dim=1)
    print(f"  Row 22: {profile[22]:.5f}  Row 24: {profile[24]:.5f}  Row 26: {profile[26]:.5f}")
    assert profile[24] >= 1.5 * profile[22]
    assert profile[24] >= 1.5 * profile[26]

    fig, axes = plt.subplots(1, 2, figsize=(13, 4))
    im = axes[0].imshow(spec.numpy(), origin='lower', aspect='auto', cmap='magma')
    axes[0].set_xlabel('Frame')
    axes[0].set_ylabel('Bin')
    axes[0].set_title('CQT magnitude, 440 Hz sine')
    fig.colorbar(im, ax=axes[0])

    axes[1].semilogx(transform.frequencies.numpy(), profile.numpy(), 'o-')
    axes[1].axvline(440.0, color='r', linestyle='--', linewidth=0.8)
    axes[1].set_xlabel('Bin center frequency (Hz)')
    axes[1].set_ylabel('Mean magnitude')
    axes[1].set_title('Bin profile')
    axes[1].grid(True, which='both', alpha=0.3)

    fig.tight_layout()
    fig.savefig(TEST_FIGURES_DIR / 'cqt_pure_tone_440.png', dpi=120)
    plt.close(fig)
    print(f"\n✓ Figure saved: {TEST_FIGURES_DIR / 'cqt_pure_tone_440.png'}")


@pytest.mark.parametrize("row", [6, 18, 30])
def test_tone_per_octave(row):
    """The same relative bin in each octave level is resolved."""
    freq = TONE_CQT['f_min'] * 2 ** (row / TONE_CQT['bins_per_octave'])
    spec = cqt(sine(freq), FS, **TONE_CQT)

    profile = spec[:, 10:61].mean(dim=1)
    assert int(profile.argmax()) == row


@pytest.mark.parametrize("length, hop", [(2000, 128), (2047, 128), (1000, 100), (8000, 256), (5000, 64)])
def test_frame_count(length, hop):
    params = dict(SMALL_CQT, hop_length=hop)
    spec = cqt(torch.randn(length), SMALL_FS, **params)
    assert spec.shape == (24, length // hop)


def test_frame_count_odd_hop_warns():
    """A hop not divisible by 2**(n_octave - 1) still yields len // hop frames."""
    params = dict(SMALL_CQT, hop_length=101)
    with pytest.warns(UserWarning, match="not divisible"):
        transform = ConstantQTransform(fs=SMALL_FS, **params)

    spec = transform(torch.randn(3000))
    assert spec.shape == (24, 3000 // 101)


def test_short_signal():
    transform = ConstantQTransform(fs=SMALL_FS, **SMALL_CQT)

    spec = transform(torch.randn(50))
    assert spec.shape == (24, 0)

    spec_batch = transform(torch.randn(3, 127))
    assert spec_batch.shape == (3, 24, 0)


def test_batch_matches_single():
    torch.manual_seed(0)
    transform = ConstantQTransform(fs=SMALL_FS, **SMALL_CQT)
    batch = torch.randn(3, 4000)

    with torch.no_grad():
        out_batch = transform(batch)
        for i in range(batch.shape[0]):
            assert torch.allclose(out_batch[i], transform(batch[i]), rtol=1e-4, atol=1e-6)


def test_parallel_matches_serial():
    torch.manual_seed(1)
    x = torch.randn(FS // 2)
    serial = ConstantQTransform(fs=FS, n_workers=1, **TONE_CQT)
    parallel = ConstantQTransform(fs=FS, n_workers=3, **TONE_CQT)

    with torch.no_grad():
        assert torch.allclose(serial(x), parallel(x))

    with pytest.raises(ValueError):
        ConstantQTransform(fs=FS, n_workers=0, **TONE_CQT)


def test_direct_filter_backend_matches():
    torch.manual_seed(2)
    x = torch.randn(2000)
    fast = ConstantQTransform(fs=SMALL_FS, filter_method='lfilter', **SMALL_CQT)
    reference = ConstantQTransform(fs=SMALL_FS, filter_method='direct', **SMALL_CQT)

    with torch.no_grad():
        assert torch.allclose(fast(x), reference(x), rtol=1e-4, atol=1e-6)


def test_kernel_built_once(monkeypatch):
    cqt_module = importlib.import_module('torch_cqt.models.cqt')
    calls = []
    original = cqt_module.spectral_kernel

    def counting_kernel(*args, **kwargs):
        calls.append(1)
        return original(*args, **kwargs)

    monkeypatch.setattr(cqt_module, 'spectral_kernel', counting_kernel)

    transform = ConstantQTransform(fs=SMALL_FS, **SMALL_CQT)
    kernel_before = transform.kernel.clone()
    with torch.no_grad():
        for _ in range(3):
            transform(torch.randn(2000))

    assert len(calls) == 1
    assert torch.equal(transform.kernel, kernel_before)


def test_cancellation():
    transform = ConstantQTransform(fs=FS, **TONE_CQT)
    x = sine(440.0, duration=0.5)

    with pytest.raises(TransformCancelledError):
        transform(x, should_stop=lambda: True)

    # Stop after a few polls, i.e. in the middle of the work
    polls = []

    def stop_later():
        polls.append(1)
        return len(polls) > 2

    with pytest.raises(TransformCancelledError):
        transform(x, should_stop=stop_later)

    with pytest.raises(TransformCancelledError):
        cqt(x, FS, should_stop=lambda: True, **TONE_CQT)

    # A callable that never fires leaves the result unchanged
    with torch.no_grad():
        assert torch.equal(transform(x, should_stop=lambda: False), transform(x))


def test_presets():
    piano = ConstantQTransform(fs=FS, preset='piano')
    assert piano.n_bins == 324 and piano.bins_per_octave == 36 and piano.hop_length == 256
    assert piano.n_octave == 9
    assert piano.geometry.n_fft == 65536
    assert piano.geometry.n_fft_1octave == 256

    semitone = ConstantQTransform(fs=FS, preset='semitone')
    assert semitone.n_bins == PRESETS['semitone']['n_bins']
    assert semitone.geometry.n_fft_1octave == 512

    octave = semitone.get_octave_frequencies(0)
    assert octave.shape == (12,)
    assert torch.allclose(octave, semitone.frequencies[-12:])

    with pytest.raises(ValueError, match="Unknown preset"):
        ConstantQTransform(fs=FS, preset='organ')

    # Piano range does not fit below Nyquist at 16 kHz
    with pytest.raises(CQTParameterError):
        ConstantQTransform(fs=16000, preset='piano')


@pytest.mark.parametrize("signal", [
    torch.zeros(0),
    torch.zeros(2, 0),
    torch.zeros(1, 1, 1000),
    torch.zeros(1000, dtype=torch.complex64),
    torch.tensor([0.0, float('nan')] * 500),
    torch.tensor([0.0, float('inf')] * 500),
])
def test_invalid_signals(signal):
    transform = ConstantQTransform(fs=SMALL_FS, **SMALL_CQT)
    with pytest.raises(SignalLengthError):
        transform(signal)


def test_octave_bank_accessor():
    transform = ConstantQTransform(fs=FS, **TONE_CQT)
    levels, lengths = transform.get_octave_bank(sine(440.0, duration=0.25))

    assert levels.shape[0] == transform.n_octave == 3
    assert lengths == [lengths[0], lengths[0] // 2, lengths[0] // 4]
    assert lengths[0] >= int(0.25 * FS) + transform.geometry.n_fft
    assert "n_fft_1octave=1024" in transform.extra_repr()


def test_accepts_numpy_and_float64():
    transform = ConstantQTransform(fs=SMALL_FS, dtype=torch.float64, **SMALL_CQT)
    assert transform.kernel.dtype == torch.complex128

    x = np.random.default_rng(3).standard_normal(2000)
    spec = transform(x)
    assert spec.dtype == torch.float64
    assert spec.shape == (24, 2000 // 128)
