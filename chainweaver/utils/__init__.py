"""
Utilities module for ChainWeaver.

This module provides the execution layer of the contraction engine:
- Sequence helpers (reverse complement, overlap joins)
- Bulk-synchronous map/shuffle/reduce runner
- Checkpoint management (chainweaver.utils.checkpoints)
- Round controller (chainweaver.utils.round_controller)

The checkpoint and controller modules depend on the graph and snapshot
packages and are imported from their own modules.
"""

from .sequence_utils import reverse_complement, overlap_concat, concat_chain
from .bsp_runner import (
    BSPRunner,
    StageStats,
    StageTimeout,
    partition_for,
    split_into_partitions,
)

__all__ = [
    # Sequences
    "reverse_complement",
    "overlap_concat",
    "concat_chain",
    # BSP runner
    "BSPRunner",
    "StageStats",
    "StageTimeout",
    "partition_for",
    "split_into_partitions",
]
