"""
IIR and Zero-Phase Filtering Utilities
======================================

Recursive low-pass filtering used as the anti-aliasing stage of the octave
downsampler.

Author:
    Stefano Giacomelli - Ph.D. candidate @ DISIM dpt. - University of L'Aquila

License:
    GNU General Public License v3.0 or later (GPLv3+)

Contents
--------

**IIR Filtering:**
    - `IIRFilterState`: Explicit input/output history for sample-by-sample filtering
    - `apply_iir_pytorch`: IIR filtering of tensors (``'lfilter'`` or ``'direct'`` backend)
    - `IIRFilter`: nn.Module wrapper for fixed IIR coefficients
    - `_apply_iir_single`: Single-channel direct-form helper

**Zero-Phase Filtering:**
    - `zero_phase_filter`: Forward-backward IIR filtering (no edge padding)
    - `ZeroPhaseFilter`: nn.Module wrapper, defaults to the decimation low-pass

**Coefficients:**
    - `DECIMATION_LOWPASS_B`, `DECIMATION_LOWPASS_A`: 6th-order
      low-pass applied before every 2:1 decimation

Design Philosophy
-----------------
- **Explicit State**: Filter history lives in an `IIRFilterState` created per
  call, never on the module, so no state leaks between signals
- **Two Backends**: ``'direct'`` evaluates the recurrence sample by sample
  (reference path), ``'lfilter'`` delegates the same recurrence to
  ``scipy.signal.lfilter`` in float64 for speed
- **Device-Transparent**: Outputs are returned on the input device and dtype

See Also
--------
- `torch_cqt.common.resampling`: Octave downsampler built on `zero_phase_filter`
"""

from typing import Union, List, Sequence

import numpy as np
import torch
import torch.nn as nn
from scipy.signal import lfilter

# 6th-order low-pass (numerator / denominator) applied before decimation by 2
DECIMATION_LOWPASS_B = (0.02321932, 0.13931594, 0.34828986, 0.46438647, 0.34828986, 0.13931594, 0.02321932)
DECIMATION_LOWPASS_A = (1.0, 3.02225963e-2, 4.46204537e-1, -2.76669843e-2, 3.94304556e-2, -2.55561209e-3, 4.01725661e-4)

_METHODS = ('lfilter', 'direct')

# -------------------------------------------------- State --------------------------------------------------

class IIRFilterState:
    r"""
    Sample-by-sample IIR filter with explicit history buffers.

    Evaluates the linear recurrence

    .. math::
        y[n] = \sum_{i=0}^{N_b-1} b_i\,x[n-i] - \sum_{i=1}^{N_a-1} a_i\,y[n-i]

    one sample at a time. Input and output histories are fixed-capacity
    circular buffers of length :math:`N_b` and :math:`N_a`, zero at
    construction.

    Parameters
    ----------
    b : sequence of float
        Numerator coefficients, length :math:`N_b \geq 1`.

    a : sequence of float
        Denominator coefficients, length :math:`N_a \geq 1`. Coefficients are
        normalized by ``a[0]`` when it differs from 1.

    Examples
    --------
    >>> state = IIRFilterState([0.5, 0.5], [1.0])
    >>> [state.process(x) for x in (1.0, 0.0, 0.0)]
    [0.5, 0.5, 0.0]
    """

    def __init__(self, b: Sequence[float], a: Sequence[float]):
        b = [float(v) for v in b]
        a = [float(v) for v in a]
        if len(b) == 0 or len(a) == 0:
            raise ValueError("b and a must contain at least one coefficient")
        if a[0] == 0.0:
            raise ValueError("a[0] must be non-zero")

        a0 = a[0]
        self.b = [v / a0 for v in b]
        self.a = [v / a0 for v in a]
        self.input_history = [0.0] * len(self.b)
        self.output_history = [0.0] * len(self.a)
        # Index of the most recent sample in each ring
        self._in_pos = 0
        self._out_pos = 0

    def process(self, sample: float) -> float:
        """Push one input sample and return the corresponding output sample."""
        n_b = len(self.b)
        n_a = len(self.a)

        self._in_pos = (self._in_pos + 1) % n_b
        self.input_history[self._in_pos] = sample

        output = 0.0
        for i in range(n_b):
            output += self.b[i] * self.input_history[(self._in_pos - i) % n_b]
        # output_history still holds y[n-1], y[n-2], ... at this point
        for i in range(1, n_a):
            output -= self.a[i] * self.output_history[(self._out_pos - i + 1) % n_a]

        self._out_pos = (self._out_pos + 1) % n_a
        self.output_history[self._out_pos] = output

        return output

    def reset(self):
        """Zero both histories."""
        self.input_history = [0.0] * len(self.b)
        self.output_history = [0.0] * len(self.a)
        self._in_pos = 0
        self._out_pos = 0

# -------------------------------------------------- Filters ------------------------------------------------

class IIRFilter(nn.Module):
    """
    Apply IIR filter with ba coefficients.

    Parameters
    ----------
    b : torch.Tensor
        Numerator coefficients, shape (n_b,).

    a : torch.Tensor
        Denominator coefficients, shape (n_a,).
        First coefficient should be 1.0 (normalized).

    method : str, optional
        ``'lfilter'`` (scipy backend) or ``'direct'`` (per-sample recurrence).
        Default: ``'lfilter'``.

    Shape
    -----
    - Input: :math:`(B, T)` or :math:`(T,)`
    - Output: Same shape as input

    Examples
    --------
    >>> import torch
    >>> from torch_cqt.common.filters import IIRFilter, DECIMATION_LOWPASS_B, DECIMATION_LOWPASS_A
    >>>
    >>> filt = IIRFilter(torch.tensor(DECIMATION_LOWPASS_B), torch.tensor(DECIMATION_LOWPASS_A))
    >>> signal = torch.randn(2, 1000)
    >>> output = filt(signal)

    See Also
    --------
    ZeroPhaseFilter : Forward-backward application of the same recurrence
    """

    def __init__(self, b: torch.Tensor, a: torch.Tensor, method: str = 'lfilter'):
        super().__init__()

        if b.ndim != 1 or a.ndim != 1:
            raise ValueError("b and a must be 1D tensors")
        if method not in _METHODS:
            raise ValueError(f"method must be one of {_METHODS}, got '{method}'")

        self.method = method
        self.register_buffer('b', b)
        self.register_buffer('a', a)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Apply IIR filter.

        Parameters
        ----------
        x : torch.Tensor
            Input signal, shape (batch, time) or (time,).

        Returns
        -------
        torch.Tensor
            Filtered signal, same shape as input.
        """
        return apply_iir_pytorch(x, self.b, self.a, method=self.method)

    def extra_repr(self) -> str:
        return f"n_b={len(self.b)}, n_a={len(self.a)}, method='{self.method}'"


class ZeroPhaseFilter(nn.Module):
    """
    Zero-phase (forward-backward) IIR filter.

    Filters the signal, reverses it, filters again and reverses back, which
    cancels the group delay of a single causal pass. No edge padding is
    applied, so the output has exactly the input length.

    Parameters
    ----------
    b, a : torch.Tensor, optional
        Filter coefficients, registered as buffers. Default: the decimation
        low-pass (`DECIMATION_LOWPASS_B`, `DECIMATION_LOWPASS_A`), kept as
        float64 module constants rather than buffers.

    method : str, optional
        IIR backend, see `apply_iir_pytorch`. Default: ``'lfilter'``.

    Shape
    -----
    - Input: :math:`(B, T)` or :math:`(T,)`
    - Output: Same shape as input

    Notes
    -----
    Both backends run in float64 on the CPU, so coefficients never need to
    live on the signal's device. Buffers passed in follow ``.to(device)``
    and are read back in float64; float32 buffers (required on MPS) carry
    their rounding into the recurrence.
    """

    def __init__(self, b: torch.Tensor = None, a: torch.Tensor = None, method: str = 'lfilter'):
        super().__init__()

        if method not in _METHODS:
            raise ValueError(f"method must be one of {_METHODS}, got '{method}'")

        self.method = method
        if b is None and a is None:
            self.b = DECIMATION_LOWPASS_B
            self.a = DECIMATION_LOWPASS_A
        else:
            self.register_buffer('b', torch.as_tensor(b if b is not None else DECIMATION_LOWPASS_B))
            self.register_buffer('a', torch.as_tensor(a if a is not None else DECIMATION_LOWPASS_A))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return zero_phase_filter(x, self.b, self.a, method=self.method)

    def extra_repr(self) -> str:
        return f"n_b={len(self.b)}, n_a={len(self.a)}, method='{self.method}'"

# ------------------------------------------------- Utilities ------------------------------------------------

def _as_coefficients(c: Union[torch.Tensor, Sequence[float]]) -> np.ndarray:
    if isinstance(c, torch.Tensor):
        return c.detach().cpu().to(torch.float64).numpy()
    return np.asarray(c, dtype=np.float64)


def apply_iir_pytorch(x: torch.Tensor,
                      b: Union[torch.Tensor, List[float]],
                      a: Union[torch.Tensor, List[float]],
                      method: str = 'lfilter') -> torch.Tensor:
    """
    Apply IIR filter along the last axis.

    Parameters
    ----------
    x : torch.Tensor
        Input signal, shape (time,) or (batch, time).

    b : torch.Tensor or list of float
        Numerator coefficients.

    a : torch.Tensor or list of float
        Denominator coefficients.

    method : str, optional
        ``'lfilter'``: ``scipy.signal.lfilter`` in float64 with zero initial
        conditions. ``'direct'``: per-sample recurrence through
        `IIRFilterState`. Both evaluate the same difference equation.
        Default: ``'lfilter'``.

    Returns
    -------
    torch.Tensor
        Filtered signal, same shape, device and dtype as input.
    """
    original_shape = x.shape

    if x.ndim == 1:
        x = x.unsqueeze(0)
    elif x.ndim != 2:
        raise ValueError(f"Input must be 1D or 2D, got shape {original_shape}")

    b_np = _as_coefficients(b)
    a_np = _as_coefficients(a)

    if method == 'lfilter':
        x_np = x.detach().cpu().to(torch.float64).numpy()
        y_np = lfilter(b_np, a_np, x_np, axis=-1)
        y = torch.from_numpy(np.ascontiguousarray(y_np))
    elif method == 'direct':
        x_cpu = x.detach().cpu().to(torch.float64)
        y = torch.stack([_apply_iir_single(x_cpu[i], b_np, a_np) for i in range(x_cpu.shape[0])])
    else:
        raise ValueError(f"method must be one of {_METHODS}, got '{method}'")

    y = y.to(device=x.device, dtype=x.dtype)

    return y.reshape(original_shape)


def _apply_iir_single(x: torch.Tensor, b: np.ndarray, a: np.ndarray) -> torch.Tensor:
    """
    Apply IIR filter to single signal, one sample at a time.

    Parameters
    ----------
    x : torch.Tensor
        Input signal, shape (T,).

    b, a : np.ndarray
        Filter coefficients.

    Returns
    -------
    torch.Tensor
        Filtered signal, shape (T,), float64.
    """
    state = IIRFilterState(b, a)
    y_list = [state.process(sample) for sample in x.tolist()]
    return torch.tensor(y_list, dtype=torch.float64)


def zero_phase_filter(x: torch.Tensor,
                      b: Union[torch.Tensor, List[float]] = DECIMATION_LOWPASS_B,
                      a: Union[torch.Tensor, List[float]] = DECIMATION_LOWPASS_A,
                      method: str = 'lfilter') -> torch.Tensor:
    """
    Zero-phase filtering using forward-backward IIR filtering.

    Parameters
    ----------
    x : torch.Tensor
        Input signal, shape (time,) or (batch, time).

    b, a : torch.Tensor or list of float, optional
        Filter coefficients. Default: decimation low-pass.

    method : str, optional
        IIR backend, see `apply_iir_pytorch`.

    Returns
    -------
    torch.Tensor
        Filtered signal, same shape as input.

    Notes
    -----
    Algorithm:
    1. Forward filtering
    2. Reverse signal
    3. Forward filtering again
    4. Reverse back

    Unlike ``scipy.signal.filtfilt`` the signal is not padded at the
    boundaries, so both passes start from zero history. The whole sequence
    must be in memory.
    """
    y_forward = apply_iir_pytorch(x, b, a, method=method)

    y_reversed = torch.flip(y_forward, dims=[-1])
    y_backward = apply_iir_pytorch(y_reversed, b, a, method=method)

    return torch.flip(y_backward, dims=[-1])
