"""Constant-Q transform models."""

from torch_cqt.models.cqt import ConstantQTransform, cqt, PRESETS

__all__ = ["ConstantQTransform",
           "cqt",
           "PRESETS"
           ]
