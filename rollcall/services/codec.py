"""String form of face descriptors.

Descriptors are stored as a JSON array with every component rounded to
``DESCRIPTOR_PRECISION`` significant digits, e.g. ``[0.123457, -0.0421, ...]``.
``decode`` also accepts the bare comma-separated form without brackets.
"""
from __future__ import annotations

import json
import math
from typing import Sequence

import numpy as np

from rollcall.core.exceptions import DecodeError

DESCRIPTOR_PRECISION = 6


def _round_component(value: float) -> float:
    return float(f"{value:.{DESCRIPTOR_PRECISION}g}")


def encode(descriptor: Sequence[float] | np.ndarray) -> str:
    vector = np.asarray(descriptor, dtype=np.float64)
    if vector.ndim != 1:
        raise ValueError("Descriptor must be a 1D vector.")
    if not np.all(np.isfinite(vector)):
        raise ValueError("Descriptor contains a non-finite component.")
    return json.dumps([_round_component(float(v)) for v in vector], separators=(",", ":"))


def decode(text: str) -> np.ndarray:
    if not isinstance(text, str):
        raise DecodeError(f"Expected a descriptor string, got {type(text).__name__}.")

    body = text.strip()
    if not body:
        raise DecodeError("Descriptor string is empty.")
    if not body.startswith("["):
        body = f"[{body}]"

    try:
        values = json.loads(body)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Descriptor string is not a number list: {exc.msg}") from exc

    if not isinstance(values, list) or not values:
        raise DecodeError("Descriptor must be a non-empty list of numbers.")

    for value in values:
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DecodeError(f"Descriptor component {value!r} is not a number.")
        if not math.isfinite(value):
            raise DecodeError("Descriptor contains a non-finite component.")

    return np.asarray(values, dtype=np.float64)
