"""
Cross-worker histogram reduction.

Each worker serializes its local histogram, all workers exchange payload
lengths and then the payloads themselves, and every worker independently
decodes and folds the slices in rank order into the same global histogram.
"""

import logging
from enum import Enum
from typing import List, Optional

import numpy as np

from chaosflame.core.histogram import Histogram, MergePolicy, reduce_histograms
from chaosflame.distributed.comm import Communicator
from chaosflame.errors import SerializationError
from chaosflame.io.codec import decode_histogram, encode_histogram

logger = logging.getLogger(__name__)


class MergerState(str, Enum):
    LOCAL_READY = "local_ready"
    SERIALIZED = "serialized"
    EXCHANGED = "exchanged"
    MERGED = "merged"


class DistributedMerger:
    """
    One worker's side of the histogram exchange.

    The default FIRST_WINS policy keeps, for every pixel, the entry from
    the lowest rank that has it; hits are not summed across workers. Use
    WEIGHTED for a reduction that sums hits and averages colors.
    """

    def __init__(self, comm: Communicator, policy: MergePolicy = MergePolicy.FIRST_WINS):
        self.comm = comm
        self.policy = MergePolicy(policy)
        self.state = MergerState.LOCAL_READY
        self.payload: Optional[bytes] = None
        self.sizes: Optional[List[int]] = None
        self.gathered: Optional[bytes] = None

    def _expect(self, state: MergerState, step: str) -> None:
        if self.state is not state:
            raise RuntimeError(f"cannot {step} in state {self.state.value} (expected {state.value})")

    def serialize(self, local: Histogram) -> bytes:
        self._expect(MergerState.LOCAL_READY, "serialize")
        self.payload = encode_histogram(local)
        self.state = MergerState.SERIALIZED
        logger.debug("rank %d serialized %d pixels into %d bytes", self.comm.rank, len(local), len(self.payload))
        return self.payload

    def exchange(self) -> bytes:
        """Run both collectives: payload lengths, then the payloads."""
        self._expect(MergerState.SERIALIZED, "exchange")
        sizes = self.comm.allgather_fixed(np.array([len(self.payload)], dtype=np.int64)).reshape(-1)
        self.sizes = [int(s) for s in sizes]
        if self.comm.rank == 0:
            logger.debug("gathered payload sizes %s", self.sizes)

        self.gathered = self.comm.allgather_variable(self.payload, self.sizes)
        if len(self.gathered) != sum(self.sizes):
            raise SerializationError(
                f"gathered {len(self.gathered)} bytes, expected {sum(self.sizes)}"
            )
        self.state = MergerState.EXCHANGED
        return self.gathered

    def split(self) -> List[Histogram]:
        """Decode every rank's slice using the gathered length vector."""
        self._expect(MergerState.EXCHANGED, "split")
        histograms = []
        offset = 0
        for rank, size in enumerate(self.sizes):
            chunk = self.gathered[offset:offset + size]
            try:
                histograms.append(decode_histogram(chunk))
            except SerializationError as exc:
                raise SerializationError(f"payload from rank {rank}: {exc}") from exc
            offset += size
        return histograms

    def merge(self) -> Histogram:
        # Decode all slices before folding so a bad payload never half-merges
        histograms = self.split()
        result = reduce_histograms(histograms, self.policy)
        self.state = MergerState.MERGED
        return result

    def run(self, local: Histogram) -> Histogram:
        self.serialize(local)
        self.exchange()
        return self.merge()
