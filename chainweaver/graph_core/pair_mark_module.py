#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Symmetry breaking for parallel chain contraction.

Every node flips a coin and becomes UP or DOWN. The flip is a pure function
of (seed, round, node id), so any node can compute the flip of any other
node, and a re-executed partition reaches the same decision.

Consider A -> B where A has a single outgoing edge to B and B has a single
incoming edge from A. An UP node merges into a DOWN buddy; DOWN nodes stay
put and receive. A run of DOWN nodes would never merge, so a DOWN node whose
buddies are all DOWN and whose id is smaller than all of theirs is promoted
to UP for the round.

The map phase sends an UP node's record to the buddy it wants to merge into.
A DOWN node can be reached from each of its two strands, so the reduce phase
keeps a single proposal per target and sends the others back unchanged.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
import hashlib
import logging

import numpy as np

from .data_structures import (
    CompressibleStrands,
    MergeInstruction,
    MergeProposal,
    NodeRecord,
    Strand,
    Terminal,
    expect_single_record,
)
from .errors import UnknownControlMessage

logger = logging.getLogger(__name__)


class CoinFlip(Enum):
    """Orientation assigned to a node for one round."""
    UP = "UP"
    DOWN = "DOWN"


def _node_digest(node_id: str) -> int:
    """Stable 64-bit digest of a node id (``hash()`` is salted per process)."""
    return int.from_bytes(
        hashlib.blake2b(node_id.encode("utf-8"), digest_size=8).digest(), "little"
    )


def coin(seed: int, round_number: int, node_id: str) -> CoinFlip:
    """
    Flip the coin for ``node_id`` in a given round.

    Pure and stateless: the same (seed, round, id) always gives the same
    side, independent of call order or process.

    Args:
        seed: Global non-negative seed of the job
        round_number: Round index, so a node can flip differently per round
        node_id: Node identifier

    Returns:
        CoinFlip.UP or CoinFlip.DOWN
    """
    if seed < 0 or round_number < 0:
        raise ValueError(f"seed and round must be non-negative, got {seed}, {round_number}")
    sequence = np.random.SeedSequence([seed, round_number, _node_digest(node_id)])
    rand = np.random.default_rng(sequence).random()
    return CoinFlip.UP if rand >= 0.5 else CoinFlip.DOWN


class SeededCoinFlipper:
    """Coin flipper bound to one job seed and one round."""

    def __init__(self, seed: int, round_number: int):
        self.seed = seed
        self.round_number = round_number

    def flip(self, node_id: str) -> CoinFlip:
        return coin(self.seed, self.round_number, node_id)

    def __repr__(self) -> str:
        return f"SeededCoinFlipper(seed={self.seed}, round={self.round_number})"


class FixedCoinFlipper:
    """
    Coin flipper with preset sides, used to force specific orientations.

    Args:
        sides: node id -> CoinFlip
        default: Side for ids missing from ``sides``
    """

    def __init__(self, sides: Mapping[str, CoinFlip], default: CoinFlip = CoinFlip.DOWN):
        self.sides = dict(sides)
        self.default = default

    def flip(self, node_id: str) -> CoinFlip:
        return self.sides.get(node_id, self.default)


class SymmetryBreaker:
    """
    Choose a conflict-free set of merges for one round.

    Each node takes part in at most one merge, either as source or as
    target, and each target receives at most one merge instruction.
    """

    stage_name = "pair_mark"

    def __init__(self, flipper):
        self.flipper = flipper

    def buddy(self, record: NodeRecord, strand: Strand) -> Optional[Terminal]:
        """Tail on ``strand`` when that strand is compressible."""
        if record.compressible.allows(strand):
            return record.node.tail(strand)
        return None

    def convert_down_to_up(self, node_id: str, buddies: List[Terminal]) -> bool:
        """
        Promote a DOWN node when it heads a run of DOWN nodes.

        Holds when every buddy is DOWN and the node id is strictly smaller
        than every buddy id. A two node cycle where each node is the
        other's only buddy is covered as well: only the smaller id wins.
        """
        for terminal in buddies:
            if self.flipper.flip(terminal.node_id) is not CoinFlip.DOWN:
                return False
            if not node_id < terminal.node_id:
                return False
        return True

    def process_up_node(self, fbuddy: Optional[Terminal],
                        rbuddy: Optional[Terminal]) -> Optional[Tuple[Strand, Terminal]]:
        """Pick the edge an UP node merges along, preferring the forward strand."""
        if fbuddy is not None and self.flipper.flip(fbuddy.node_id) is CoinFlip.DOWN:
            return Strand.FORWARD, fbuddy
        if rbuddy is not None and self.flipper.flip(rbuddy.node_id) is CoinFlip.DOWN:
            return Strand.REVERSE, rbuddy
        return None

    def map(self, record: NodeRecord) -> Iterator[Tuple[str, object]]:
        node_id = record.node_id
        fbuddy = self.buddy(record, Strand.FORWARD)
        rbuddy = self.buddy(record, Strand.REVERSE)

        if fbuddy is None and rbuddy is None:
            yield node_id, record
            return

        side = self.flipper.flip(node_id)
        if side is CoinFlip.DOWN:
            buddies = [b for b in (fbuddy, rbuddy) if b is not None]
            if self.convert_down_to_up(node_id, buddies):
                logger.debug(f"Promoting {node_id} from DOWN to UP")
                side = CoinFlip.UP

        if side is CoinFlip.DOWN:
            # Passive target; an UP neighbour will be routed here.
            yield node_id, record
            return

        edge = self.process_up_node(fbuddy, rbuddy)
        if edge is None:
            yield node_id, record
            return

        strand, terminal = edge
        yield terminal.node_id, MergeProposal(
            source=record.node,
            target_id=terminal.node_id,
            merge_strand=strand,
            target_strand=terminal.strand,
        )

    def reduce(self, node_id: str, messages: Iterable[object]) -> Iterator[object]:
        records: List[NodeRecord] = []
        proposals: List[MergeProposal] = []

        for msg in messages:
            kind = getattr(msg, "kind", None)
            if kind == NodeRecord.kind:
                records.append(msg)
            elif kind == MergeProposal.kind:
                proposals.append(msg)
            else:
                raise UnknownControlMessage(msg, self.stage_name)

        record = expect_single_record(node_id, records, proposals, self.stage_name)
        yield record

        if not proposals:
            return

        proposals.sort(key=lambda p: (p.source_id, p.merge_strand.value))
        accepted = proposals[0]
        yield MergeInstruction(
            source=accepted.source,
            target_id=node_id,
            merge_strand=accepted.merge_strand,
            target_strand=accepted.target_strand,
        )

        for rejected in proposals[1:]:
            logger.debug(
                f"Target {node_id} already merging with {accepted.source_id}; "
                f"{rejected.source_id} waits for a later round"
            )
            yield NodeRecord(rejected.source, CompressibleStrands.NONE)


def count_orientations(flipper, node_ids: Iterable[str]) -> Dict[CoinFlip, int]:
    """Tally UP/DOWN sides for a set of nodes."""
    counts = {CoinFlip.UP: 0, CoinFlip.DOWN: 0}
    for node_id in node_ids:
        counts[flipper.flip(node_id)] += 1
    return counts


__all__ = [
    "CoinFlip",
    "coin",
    "SeededCoinFlipper",
    "FixedCoinFlipper",
    "SymmetryBreaker",
    "count_orientations",
]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
