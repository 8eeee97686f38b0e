"""
Graph core module for ChainWeaver.

This module provides the chain contraction engine:
- Graph data structures and control messages
- Compressibility detection (unambiguous 1-in/1-out links)
- Symmetry breaking (seeded coin flips, merge proposals)
- Chain merging (neighbour relinking, pair merges)
"""

from .errors import (
    ChainWeaverError,
    DataIntegrityError,
    MissingNeighborError,
    UnknownControlMessage,
    SnapshotFormatError,
    ConvergenceNotReached,
)
from .data_structures import (
    Strand,
    Direction,
    CompressibleStrands,
    Terminal,
    GraphNode,
    NodeRecord,
    UniquePredecessorClaim,
    MergeProposal,
    MergeInstruction,
    EdgeUpdate,
    add_edge,
    find_integrity_violations,
    validate_graph,
)
from .compressible_module import CompressibilityDetector
from .pair_mark_module import (
    CoinFlip,
    coin,
    SeededCoinFlipper,
    FixedCoinFlipper,
    SymmetryBreaker,
)
from .pair_merge_module import (
    merge_nodes,
    EdgeRelinker,
    ChainMerger,
)

__all__ = [
    # Errors
    "ChainWeaverError",
    "DataIntegrityError",
    "MissingNeighborError",
    "UnknownControlMessage",
    "SnapshotFormatError",
    "ConvergenceNotReached",
    # Graph structures
    "Strand",
    "Direction",
    "CompressibleStrands",
    "Terminal",
    "GraphNode",
    "add_edge",
    "find_integrity_violations",
    "validate_graph",
    # Control messages
    "NodeRecord",
    "UniquePredecessorClaim",
    "MergeProposal",
    "MergeInstruction",
    "EdgeUpdate",
    # Stages
    "CompressibilityDetector",
    "CoinFlip",
    "coin",
    "SeededCoinFlipper",
    "FixedCoinFlipper",
    "SymmetryBreaker",
    "merge_nodes",
    "EdgeRelinker",
    "ChainMerger",
]
