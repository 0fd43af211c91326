"""
Histogram to RGB raster.

Density is log-compressed against the histogram's maximum hit count and
used as the alpha of each pixel's color over the background.
"""

from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image

from chaosflame.core.histogram import Histogram

BLACK = (0.0, 0.0, 0.0)
WHITE = (1.0, 1.0, 1.0)


def rasterize(
    histogram: Histogram,
    width: int,
    height: int,
    background: Tuple[float, float, float] = BLACK,
) -> np.ndarray:
    """
    Render a histogram into an image array.

    Args:
        histogram: Global histogram to draw.
        width: Image width.
        height: Image height.
        background: RGB in [0, 1] for pixels with no hits.

    Returns:
        (height, width, 3) uint8 RGB array. Entries on the x == width or
        y == height edge land on the last column or row; entries beyond
        it are skipped.
    """
    bg = np.clip(np.asarray(background, dtype=np.float64), 0.0, 1.0)
    # Truncate toward zero the way 8-bit color conversion does
    bg8 = (bg * 255.0).astype(np.uint8).astype(np.float64)
    image = np.empty((height, width, 3), dtype=np.float64)
    image[:, :] = bg8

    if len(histogram) == 0:
        return image.astype(np.uint8)

    keys = np.array(list(histogram.entries.keys()), dtype=np.int64).reshape(-1, 2)
    values = list(histogram.entries.values())
    colors = np.array([e.color for e in values], dtype=np.float64)
    hits = np.array([e.hits for e in values], dtype=np.float64)

    max_hits = hits.max()
    if max_hits > 0:
        intensity = np.log1p(hits) / np.log1p(max_hits)
    else:
        intensity = np.zeros_like(hits)

    # Pixel keys span [0, width] x [0, height]; the far edge folds onto the
    # last column and row
    inside = (keys[:, 0] >= 0) & (keys[:, 0] <= width) & (keys[:, 1] >= 0) & (keys[:, 1] <= height)
    keys, colors, intensity = keys[inside], colors[inside], intensity[inside]
    cols = np.minimum(keys[:, 0], width - 1)
    rows = np.minimum(keys[:, 1], height - 1)

    # Where two entries share a raster pixel the denser one is written last
    order = np.argsort(intensity, kind="stable")
    cols, rows, colors, intensity = cols[order], rows[order], colors[order], intensity[order]

    fg8 = (np.clip(colors, 0.0, 1.0) * 255.0).astype(np.uint8).astype(np.float64)
    alpha = intensity[:, None]
    image[rows, cols] = fg8 * alpha + image[rows, cols] * (1.0 - alpha)

    return np.clip(np.rint(image), 0, 255).astype(np.uint8)


def save_png(image: np.ndarray, path: Union[str, Path]) -> Path:
    """Write an (H, W, 3) uint8 array to a PNG file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8)).save(path, format="PNG")
    return path
