"""
Numba-compiled inner loops for sampling and accumulation.

The scalar chaos-game step and the per-pixel color fold are the hot paths;
everything around them (selection draws, bookkeeping, histogram building)
stays in numpy. Kernels are compiled with ``nogil`` so thread workers run
them concurrently.
"""

import math

import numba
import numpy as np

from chaosflame.core.variations import EPSILON, KIND_CODES, VariationKind

_IDENTITY = KIND_CODES[VariationKind.IDENTITY]
_SINUSOIDAL = KIND_CODES[VariationKind.SINUSOIDAL]
_SPHERICAL = KIND_CODES[VariationKind.SPHERICAL]
_SWIRL = KIND_CODES[VariationKind.SWIRL]
_HORSESHOE = KIND_CODES[VariationKind.HORSESHOE]
_POPCORN = KIND_CODES[VariationKind.POPCORN]
_EXPONENTIAL = KIND_CODES[VariationKind.EXPONENTIAL]
_COSINE = KIND_CODES[VariationKind.COSINE]


@numba.njit(cache=True, nogil=True)
def _warp(code, x, y, scale, c, f):
    """One variation; mirrors ``variations._apply_one``."""
    r = math.sqrt(x * x + y * y)
    if code == _SINUSOIDAL:
        return math.sin(x), math.sin(y)
    if code == _SPHERICAL:
        r2 = max(r, EPSILON) ** 2
        return x / r2, y / r2
    if code == _SWIRL:
        sin_r = math.sin(r)
        cos_r = math.cos(r)
        return x * sin_r - y * cos_r, x * cos_r + y * sin_r
    if code == _HORSESHOE:
        r = max(r, EPSILON)
        return (x - y) / r, (x + y) / r
    if code == _POPCORN:
        return x + c * math.sin(math.tan(3.0 * y)), y + f * math.sin(math.tan(3.0 * x))
    if code == _EXPONENTIAL:
        return math.exp(x) * scale * math.cos(x), math.exp(y) * scale * math.sin(y)
    if code == _COSINE:
        return math.cos(math.pi * x) * scale * x, math.cos(math.pi * y) * scale * x
    return x, y


@numba.njit(cache=True, nogil=True)
def _step(t, x, y, coefficients, codes, scales):
    a = coefficients[t, 0]
    b = coefficients[t, 1]
    c = coefficients[t, 2]
    d = coefficients[t, 3]
    e = coefficients[t, 4]
    f = coefficients[t, 5]
    nx = a * x + b * y + c
    ny = d * x + e * y + f
    for k in range(codes.shape[1]):
        code = codes[t, k]
        if code < 0:
            break
        nx, ny = _warp(code, nx, ny, scales[t, k], c, f)
    return nx, ny


@numba.njit(cache=True, nogil=True)
def orbit_kernel(selection, coefficients, codes, scales, x, y, start, warmup, xs, ys, indices, n):
    """
    Advance the orbit through one block of pre-drawn transform indices.

    A step that leaves the finite plane is dropped and the orbit continues
    from the last good point. Steps at local iteration ``start + i >=
    warmup`` are written to ``xs/ys/indices`` from slot ``n`` on.

    Returns:
        (x, y, n, dropped): the point after the block, the next free slot
        and the number of dropped steps.
    """
    dropped = 0
    for i in range(selection.shape[0]):
        t = selection[i]
        nx, ny = _step(t, x, y, coefficients, codes, scales)
        if not (math.isfinite(nx) and math.isfinite(ny)):
            dropped += 1
            continue
        x = nx
        y = ny
        if start + i >= warmup:
            xs[n] = x
            ys[n] = y
            indices[n] = t
            n += 1
    return x, y, n, dropped


@numba.njit(cache=True, nogil=True)
def accumulate_kernel(slots, tags, palette, reference, legacy, colors, hits):
    """
    Fold tagged points into per-pixel colors and hit counts, in order.

    ``slots[i]`` is the output row for point i and ``tags[i]`` its
    transform index. Legacy mode halves toward each contributor, starting
    from ``reference``; otherwise colors keep a running mean.
    """
    for i in range(slots.shape[0]):
        s = slots[i]
        t = tags[i]
        hits[s] += 1
        h = hits[s]
        for k in range(3):
            incoming = palette[t, k]
            if legacy:
                base = reference[k] if h == 1 else colors[s, k]
                colors[s, k] = (base + incoming) / 2.0
            elif h == 1:
                colors[s, k] = incoming
            else:
                colors[s, k] += (incoming - colors[s, k]) / h


def pixel_slots(px: np.ndarray, py: np.ndarray):
    """
    Group pixel coordinates.

    Returns:
        (xs, ys, slots): the distinct pixels and, for every input point,
        the row of its pixel in ``xs/ys``.
    """
    px = np.asarray(px, dtype=np.int64)
    py = np.asarray(py, dtype=np.int64)
    x0, y0 = px.min(), py.min()
    span = py.max() - y0 + 1
    keys = (px - x0) * span + (py - y0)
    unique, slots = np.unique(keys, return_inverse=True)
    return unique // span + x0, unique % span + y0, slots.reshape(-1)
