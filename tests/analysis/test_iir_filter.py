"""
IIR and Zero-Phase Filtering - Test Suite

Contents:
1. test_filter_state_recurrence: Explicit-state recurrence against hand-computed values
2. test_filter_state_is_per_call: Fresh history for every filtering call
3. test_direct_matches_lfilter: Per-sample reference path vs scipy backend
4. test_zero_phase_time_reversal: zero_phase(reverse(x)) == reverse(zero_phase(x))
5. test_zero_phase_filter_analysis: Magnitude/phase of the decimation low-pass

Figures generated:
- zero_phase_filter_analysis.png: Impulse response and frequency response
"""

import numpy as np
import pytest
import torch
import matplotlib.pyplot as plt
from pathlib import Path
from scipy.signal import freqz

from torch_cqt.common.filters import (IIRFilterState, IIRFilter, apply_iir_pytorch, zero_phase_filter,
                                      DECIMATION_LOWPASS_A, DECIMATION_LOWPASS_B)


def test_filter_state_recurrence():
    """y[n] = b0 x[n] + b1 x[n-1] - a1 y[n-1] on an impulse."""
    # y[n] = x[n] + 0.5 x[n-1] + 0.25 y[n-1]
    state = IIRFilterState([1.0, 0.5], [1.0, -0.25])
    out = [state.process(x) for x in (1.0, 0.0, 0.0, 0.0)]

    expected = [1.0, 0.75, 0.1875, 0.046875]
    assert out == pytest.approx(expected)

    # a[0] != 1 is normalized away
    scaled = IIRFilterState([2.0, 1.0], [2.0, -0.5])
    assert [scaled.process(x) for x in (1.0, 0.0, 0.0, 0.0)] == pytest.approx(expected)


def test_filter_state_is_per_call():
    """Two consecutive calls on the same signal give the same output."""
    x = torch.randn(300, dtype=torch.float64)
    filt = IIRFilter(torch.tensor(DECIMATION_LOWPASS_B), torch.tensor(DECIMATION_LOWPASS_A), method='direct')

    first = filt(x)
    second = filt(x)
    assert torch.equal(first, second)

    state = IIRFilterState(DECIMATION_LOWPASS_B, DECIMATION_LOWPASS_A)
    for sample in x.tolist():
        state.process(sample)
    state.reset()
    assert state.input_history == [0.0] * len(DECIMATION_LOWPASS_B)
    assert state.output_history == [0.0] * len(DECIMATION_LOWPASS_A)


@pytest.mark.parametrize("shape", [(512,), (3, 256)])
def test_direct_matches_lfilter(shape):
    """Both IIR backends evaluate the same difference equation."""
    torch.manual_seed(0)
    x = torch.randn(*shape, dtype=torch.float64)

    y_direct = apply_iir_pytorch(x, DECIMATION_LOWPASS_B, DECIMATION_LOWPASS_A, method='direct')
    y_lfilter = apply_iir_pytorch(x, DECIMATION_LOWPASS_B, DECIMATION_LOWPASS_A, method='lfilter')

    assert y_direct.shape == x.shape
    assert torch.allclose(y_direct, y_lfilter, atol=1e-12)

    zp_direct = zero_phase_filter(x, method='direct')
    zp_lfilter = zero_phase_filter(x, method='lfilter')
    assert torch.allclose(zp_direct, zp_lfilter, atol=1e-12)


def test_unknown_method_raises():
    with pytest.raises(ValueError):
        apply_iir_pytorch(torch.zeros(8), [1.0], [1.0], method='fft')
    with pytest.raises(ValueError):
        apply_iir_pytorch(torch.zeros(2, 2, 8), [1.0], [1.0])


def test_zero_phase_time_reversal():
    """Forward-backward filtering commutes with time reversal.

    The signal is surrounded by silence so the filter transients decay
    before reaching the buffer edges.
    """
    torch.manual_seed(1)
    burst = torch.randn(2000, dtype=torch.float64)
    x = torch.cat([torch.zeros(300, dtype=torch.float64), burst, torch.zeros(300, dtype=torch.float64)])

    lhs = zero_phase_filter(torch.flip(x, dims=[-1]))
    rhs = torch.flip(zero_phase_filter(x), dims=[-1])

    assert lhs.shape == x.shape
    assert torch.allclose(lhs, rhs, atol=1e-10)

    # A symmetric input stays symmetric
    sym = torch.cat([burst[:500], torch.flip(burst[:500], dims=[-1])])
    sym = torch.cat([torch.zeros(300, dtype=torch.float64), sym, torch.zeros(300, dtype=torch.float64)])
    out = zero_phase_filter(sym)
    assert torch.allclose(out, torch.flip(out, dims=[-1]), atol=1e-10)


def test_zero_phase_filter_analysis():
    """Decimation low-pass: unit DC gain, stopband above fs/4, zero phase."""

    TEST_FIGURES_DIR = Path(__file__).parent.parent.parent / 'test_figures'
    TEST_FIGURES_DIR.mkdir(exist_ok=True)

    print("=" * 80)
    print("ZERO-PHASE DECIMATION FILTER TEST")
    print("=" * 80)

    # Single-pass response from the coefficients
    w, H = freqz(DECIMATION_LOWPASS_B, DECIMATION_LOWPASS_A, worN=4096)
    f_norm = w / np.pi  # 1.0 = Nyquist
    mag_db = 20 * np.log10(np.abs(H) + 1e-12)

    dc_gain = np.abs(H[0])
    idx_cutoff = np.argmin(np.abs(f_norm - 0.5))
    idx_stop = np.argmin(np.abs(f_norm - 0.75))
    print(f"  DC gain: {dc_gain:.6f}")
    print(f"  Gain at fs/4: {mag_db[idx_cutoff]:.2f} dB")
    print(f"  Gain at 3fs/8: {mag_db[idx_stop]:.2f} dB")

    assert dc_gain == pytest.approx(1.0, abs=1e-3)
    assert -12.0 < mag_db[idx_cutoff] < -8.0
    assert mag_db[idx_stop] < -20.0

    # Zero-phase impulse response is symmetric around the impulse
    n = 401
    impulse = torch.zeros(n, dtype=torch.float64)
    impulse[n // 2] = 1.0
    h = zero_phase_filter(impulse).numpy()
    assert np.allclose(h, h[::-1], atol=1e-10)
    assert np.argmax(h) == n // 2

    # Zero-phase frequency response is real
    h_circ = np.zeros(8192)
    h_circ[:n // 2 + 1] = h[n // 2:]
    h_circ[-(n // 2):] = h[:n // 2]
    H_zp = np.fft.rfft(h_circ)
    assert np.max(np.abs(H_zp.imag)) < 1e-8

    fig, axes = plt.subplots(1, 3, figsize=(15, 4))
    lags = np.arange(n) - n // 2
    axes[0].stem(lags[n // 2 - 20:n // 2 + 21], h[n // 2 - 20:n // 2 + 21])
    axes[0].set_title('Zero-phase impulse response')
    axes[0].set_xlabel('Lag (samples)')

    axes[1].plot(f_norm, mag_db, label='single pass')
    axes[1].plot(f_norm, 2 * mag_db, label='forward-backward')
    axes[1].axvline(0.5, color='k', linestyle='--', linewidth=0.8)
    axes[1].set_ylim(-120, 5)
    axes[1].set_xlabel('Frequency (x Nyquist)')
    axes[1].set_ylabel('Magnitude (dB)')
    axes[1].set_title('Magnitude response')
    axes[1].legend()

    axes[2].plot(np.linspace(0, 1, H_zp.size), np.angle(H_zp))
    axes[2].set_title('Phase (forward-backward)')
    axes[2].set_xlabel('Frequency (x Nyquist)')
    axes[2].set_ylabel('Phase (rad)')

    fig.tight_layout()
    fig.savefig(TEST_FIGURES_DIR / 'zero_phase_filter_analysis.png', dpi=120)
    plt.close(fig)
    print(f"\n✓ Figure saved: {TEST_FIGURES_DIR / 'zero_phase_filter_analysis.png'}")
