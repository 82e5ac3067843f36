#!/usr/bin/env python3
"""
Command-line front end: WAV file in, constant-Q spectrogram image out.

Usage:
    # Default ('piano' preset parameters)
    python -m torch_cqt recording.wav

    # Custom geometry and colormap
    python -m torch_cqt recording.wav -o cqt.png --n-bins 84 --bins-per-octave 12 --cmap magma

    # Named preset, 4 worker threads
    python -m torch_cqt recording.wav --preset semitone --workers 4 --verbose

Exit codes:
    0  image written
    1  input file could not be decoded
    2  invalid transform parameters or signal (e.g. NaN / inf samples)
"""

import sys
import time
import argparse
from pathlib import Path
from typing import List, Optional

from torch_cqt.common.audio_io import load_audio, save_spectrogram_image
from torch_cqt.common.errors import AudioDecodeError, SignalLengthError
from torch_cqt.models.cqt import ConstantQTransform, PRESETS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="torch_cqt",
                                     description="Compute a Constant-Q Transform spectrogram image from a WAV file.")
    parser.add_argument("input", type=Path, help="Input WAV file")
    parser.add_argument("-o", "--output", type=Path, default=None,
                        help="Output image (default: <input>_cqt.png)")
    parser.add_argument("--preset", choices=sorted(PRESETS), default=None,
                        help="Named parameter set (overrides the geometry options)")
    parser.add_argument("--n-bins", type=int, default=324, help="Total number of bins (default: 324)")
    parser.add_argument("--bins-per-octave", type=int, default=36, help="Bins per octave (default: 36)")
    parser.add_argument("--hop-length", type=int, default=256, help="Hop length in samples (default: 256)")
    parser.add_argument("--f-min", type=float, default=27.5, help="Lowest bin frequency in Hz (default: 27.5)")
    parser.add_argument("--q-factor", type=float, default=0.5, help="Bandwidth scaling (default: 0.5)")
    parser.add_argument("--channel", type=int, default=0, help="Channel of multi-channel files (default: 0)")
    parser.add_argument("--cmap", type=str, default="gray", help="Matplotlib colormap (default: gray)")
    parser.add_argument("--workers", type=int, default=1, help="Threads for per-octave processing (default: 1)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print progress information")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    output = args.output or args.input.with_name(f"{args.input.stem}_cqt.png")

    try:
        signal, fs = load_audio(args.input, channel=args.channel)
    except AudioDecodeError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"Loaded {args.input}: {signal.numel()} samples @ {fs} Hz ({signal.numel() / fs:.2f} s)")

    try:
        transform = ConstantQTransform(fs=fs,
                                       n_bins=args.n_bins,
                                       bins_per_octave=args.bins_per_octave,
                                       hop_length=args.hop_length,
                                       f_min=args.f_min,
                                       q_factor=args.q_factor,
                                       preset=args.preset,
                                       n_workers=args.workers)
    except ValueError as e:
        print(f"✗ Invalid parameters: {e}", file=sys.stderr)
        return 2

    if args.verbose:
        print(f"Transform: {transform}")

    start = time.time()
    try:
        spectrogram = transform(signal)
    except SignalLengthError as e:
        print(f"✗ Invalid signal: {e}", file=sys.stderr)
        return 2
    elapsed = time.time() - start

    if args.verbose:
        print(f"Spectrogram: {tuple(spectrogram.shape)} in {elapsed * 1000:.1f} ms")

    save_spectrogram_image(spectrogram, output, cmap=args.cmap)
    print(f"✓ Saved {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
