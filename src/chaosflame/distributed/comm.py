"""
Collective communication for histogram exchange.

Two primitives are needed: an all-gather of fixed-size values and an
all-gather of variable-length byte buffers. Every collective waits at most
``timeout`` seconds and raises CollectiveStallError instead of hanging when
a peer never arrives or aborts.
"""

import abc
import logging
import threading
import time
from typing import List, Optional, Sequence

import numpy as np

from chaosflame.errors import CollectiveStallError, ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class Communicator(abc.ABC):
    """One worker's handle on a fixed-size group of workers."""

    rank: int
    size: int
    timeout: Optional[float]

    @abc.abstractmethod
    def allgather_fixed(self, value: np.ndarray) -> np.ndarray:
        """
        Gather one fixed-shape array from every worker.

        Returns:
            Array of shape (size, *value.shape), row i from rank i.
        """

    @abc.abstractmethod
    def allgather_variable(self, payload: bytes, sizes: Sequence[int]) -> bytes:
        """
        Gather a byte buffer from every worker.

        Args:
            payload: This worker's buffer; ``len(payload) == sizes[rank]``.
            sizes: Byte length contributed by every rank.

        Returns:
            Concatenation of every rank's buffer in rank order.
        """

    @abc.abstractmethod
    def abort(self) -> None:
        """Signal the group that this worker will not reach further collectives."""


class ThreadGroup:
    """
    Shared state for ``size`` in-process workers, one thread each.

    Slots are written, a barrier is crossed, every worker reads all slots,
    and a second barrier keeps slots stable until everyone has read them.
    """

    def __init__(self, size: int, timeout: Optional[float] = DEFAULT_TIMEOUT):
        if size < 1:
            raise ConfigurationError(f"group size must be >= 1, got {size}")
        self.size = size
        self.timeout = timeout
        self._barrier = threading.Barrier(size)
        self._slots: List[object] = [None] * size

    def communicator(self, rank: int) -> "ThreadCommunicator":
        if not 0 <= rank < self.size:
            raise ConfigurationError(f"rank {rank} outside group of {self.size}")
        return ThreadCommunicator(self, rank)

    def communicators(self) -> List["ThreadCommunicator"]:
        return [self.communicator(rank) for rank in range(self.size)]

    def abort(self) -> None:
        self._barrier.abort()

    @property
    def aborted(self) -> bool:
        return self._barrier.broken

    def _wait(self, rank: int, step: str) -> None:
        try:
            self._barrier.wait(self.timeout)
        except threading.BrokenBarrierError:
            raise CollectiveStallError(
                f"rank {rank}: collective '{step}' broken "
                f"(a peer aborted or did not arrive within {self.timeout}s)"
            ) from None

    def _exchange(self, rank: int, value, step: str) -> list:
        self._slots[rank] = value
        self._wait(rank, step)
        gathered = list(self._slots)
        self._wait(rank, step)
        return gathered


class ThreadCommunicator(Communicator):
    def __init__(self, group: ThreadGroup, rank: int):
        self.group = group
        self.rank = rank
        self.size = group.size
        self.timeout = group.timeout

    def allgather_fixed(self, value: np.ndarray) -> np.ndarray:
        value = np.asarray(value)
        gathered = self.group._exchange(self.rank, value.copy(), "allgather_fixed")
        shapes = {g.shape for g in gathered}
        if len(shapes) != 1:
            raise ConfigurationError(f"rank {self.rank}: mismatched shapes in allgather_fixed: {shapes}")
        return np.stack(gathered)

    def allgather_variable(self, payload: bytes, sizes: Sequence[int]) -> bytes:
        payload = bytes(payload)
        if len(payload) != sizes[self.rank]:
            raise ValueError(
                f"rank {self.rank}: payload is {len(payload)} bytes, sizes says {sizes[self.rank]}"
            )
        gathered = self.group._exchange(self.rank, payload, "allgather_variable")
        return b"".join(gathered)

    def abort(self) -> None:
        logger.debug("rank %d aborting thread group", self.rank)
        self.group.abort()


class MPICommunicator(Communicator):
    """
    Collectives over mpi4py, polled against a deadline.

    Uses the nonblocking ``Iallgather`` / ``Iallgatherv`` so a missing peer
    surfaces as CollectiveStallError after ``timeout`` seconds. Call
    ``abort()`` (MPI_Abort) afterwards to tear the job down.
    """

    POLL_INTERVAL = 0.005

    def __init__(self, comm=None, timeout: Optional[float] = DEFAULT_TIMEOUT):
        from mpi4py import MPI

        self._mpi = MPI
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.rank = self.comm.Get_rank()
        self.size = self.comm.Get_size()
        self.timeout = timeout

    def _wait(self, request, step: str) -> None:
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while not request.Test():
            if deadline is not None and time.monotonic() > deadline:
                raise CollectiveStallError(
                    f"rank {self.rank}: collective '{step}' timed out after {self.timeout}s"
                )
            time.sleep(self.POLL_INTERVAL)

    def allgather_fixed(self, value: np.ndarray) -> np.ndarray:
        value = np.ascontiguousarray(value)
        out = np.empty((self.size,) + value.shape, dtype=value.dtype)
        self._wait(self.comm.Iallgather(value, out), "allgather_fixed")
        return out

    def allgather_variable(self, payload: bytes, sizes: Sequence[int]) -> bytes:
        send = np.frombuffer(bytes(payload), dtype=np.uint8)
        counts = np.asarray(sizes, dtype=np.int64)
        displs = np.concatenate(([0], np.cumsum(counts)[:-1]))
        recv = np.empty(int(counts.sum()), dtype=np.uint8)
        request = self.comm.Iallgatherv(
            send, [recv, (counts.tolist(), displs.tolist()), self._mpi.BYTE]
        )
        self._wait(request, "allgather_variable")
        return recv.tobytes()

    def abort(self) -> None:
        self.comm.Abort(1)
