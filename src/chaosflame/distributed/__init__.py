"""
Distributed histogram merging over a collective-communication substrate.
"""

from chaosflame.distributed.comm import (
    Communicator,
    MPICommunicator,
    ThreadCommunicator,
    ThreadGroup,
)
from chaosflame.distributed.merger import DistributedMerger, MergerState
