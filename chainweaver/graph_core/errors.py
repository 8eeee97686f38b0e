#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Exception hierarchy for the chain contraction engine.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""


class ChainWeaverError(Exception):
    """Base class for all ChainWeaver errors."""
    pass


class DataIntegrityError(ChainWeaverError):
    """
    Raised when a round observes state that violates the graph invariants.

    Typical causes: a node id with zero or several node records in a reduce
    group, several merge instructions for one target, an overlap that does
    not match, or an edge without its complementary mirror.
    """
    pass


class MissingNeighborError(DataIntegrityError):
    """Raised when a control message references a node absent from the round."""

    def __init__(self, node_id: str, message_kind: str, stage: str = ""):
        self.node_id = node_id
        self.message_kind = message_kind
        self.stage = stage
        where = f" during {stage}" if stage else ""
        super().__init__(
            f"{message_kind} references node {node_id!r} which has no record{where}"
        )


class UnknownControlMessage(ChainWeaverError):
    """Raised when a reduce stage receives a message kind it does not handle."""

    def __init__(self, message, stage: str = ""):
        self.message = message
        self.stage = stage
        kind = getattr(message, "kind", type(message).__name__)
        where = f" in {stage}" if stage else ""
        super().__init__(f"Unknown message type {kind!r}{where}")


class SnapshotFormatError(DataIntegrityError):
    """Raised when a snapshot on disk cannot be parsed."""
    pass


class ConvergenceNotReached(ChainWeaverError):
    """
    Raised (or recorded) when the round budget runs out while merges are
    still being produced. The last committed snapshot stays valid.
    """

    def __init__(self, rounds: int, last_merges: int):
        self.rounds = rounds
        self.last_merges = last_merges
        super().__init__(
            f"No fixpoint after {rounds} rounds "
            f"(last round still applied {last_merges} merges)"
        )


__all__ = [
    "ChainWeaverError",
    "DataIntegrityError",
    "MissingNeighborError",
    "UnknownControlMessage",
    "SnapshotFormatError",
    "ConvergenceNotReached",
]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
