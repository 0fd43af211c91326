"""
Binary wire format for histograms.

Layout (little-endian): u64 entry count, then one 36-byte record per entry:
i32 x, i32 y, f64 r, f64 g, f64 b, u32 hits. Entries are written in sorted
pixel order so equal histograms encode to equal bytes.
"""

import numpy as np

from chaosflame.core.histogram import Histogram, HistogramEntry
from chaosflame.errors import SerializationError

HEADER_DTYPE = np.dtype("<u8")

RECORD_DTYPE = np.dtype([
    ("x", "<i4"),
    ("y", "<i4"),
    ("r", "<f8"),
    ("g", "<f8"),
    ("b", "<f8"),
    ("hits", "<u4"),
])

HEADER_SIZE = HEADER_DTYPE.itemsize
RECORD_SIZE = RECORD_DTYPE.itemsize  # 36, packed


def encode_histogram(histogram: Histogram) -> bytes:
    """Serialize a histogram to bytes."""
    keys = sorted(histogram)
    records = np.empty(len(keys), dtype=RECORD_DTYPE)
    for i, key in enumerate(keys):
        entry = histogram[key]
        if not 0 <= entry.hits <= 0xFFFFFFFF:
            raise SerializationError(f"hit count {entry.hits} at {key} does not fit in u32")
        r, g, b = entry.color
        records[i] = (key[0], key[1], r, g, b, entry.hits)
    header = np.array([len(keys)], dtype=HEADER_DTYPE)
    return header.tobytes() + records.tobytes()


def decode_histogram(payload: bytes) -> Histogram:
    """
    Deserialize bytes produced by ``encode_histogram``.

    Raises:
        SerializationError: If the payload is truncated, oversized, or
            holds duplicate pixel keys.
    """
    payload = bytes(payload)
    if len(payload) < HEADER_SIZE:
        raise SerializationError(f"payload of {len(payload)} bytes is shorter than the header")

    count = int(np.frombuffer(payload, dtype=HEADER_DTYPE, count=1)[0])
    expected = HEADER_SIZE + count * RECORD_SIZE
    if len(payload) != expected:
        raise SerializationError(
            f"payload declares {count} entries ({expected} bytes) but has {len(payload)} bytes"
        )
    if count == 0:
        return Histogram()

    records = np.frombuffer(payload, dtype=RECORD_DTYPE, count=count, offset=HEADER_SIZE)
    entries = {}
    for x, y, r, g, b, hits in records.tolist():
        key = (x, y)
        if key in entries:
            raise SerializationError(f"duplicate pixel {key} in payload")
        entries[key] = HistogramEntry((r, g, b), hits)
    return Histogram(entries)
