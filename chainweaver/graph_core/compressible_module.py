#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Compressibility detection.

A strand of a node is compressible when its single outgoing edge leads to a
terminal whose only incoming edge comes back from this node. Each node can
only see its own edges, so the check runs as one map/reduce stage:

- map: every node with a single successor on a strand sends a
  UniquePredecessorClaim to that successor, and re-emits itself.
- reduce: a node whose single successor (X, x) sent a claim on strand
  flip(x) knows that X_x has no other predecessor, and marks the strand.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from typing import Iterable, Iterator, List, Set, Tuple
import logging

from .data_structures import (
    CompressibleStrands,
    NodeRecord,
    Strand,
    UniquePredecessorClaim,
    expect_single_record,
)
from .errors import UnknownControlMessage

logger = logging.getLogger(__name__)


class CompressibilityDetector:
    """Annotate every node with the strands that can be contracted this round."""

    stage_name = "compressible"

    def map(self, record: NodeRecord) -> Iterator[Tuple[str, object]]:
        node = record.node

        for strand in (Strand.FORWARD, Strand.REVERSE):
            tail = node.tail(strand)
            if tail is None:
                continue
            # Self loops never take part in a contraction.
            if tail.node_id == node.node_id:
                continue
            yield tail.node_id, UniquePredecessorClaim(node.node_id, strand)

        # Annotations from earlier rounds are stale; they are recomputed here.
        yield node.node_id, NodeRecord(node, CompressibleStrands.NONE)

    def reduce(self, node_id: str, messages: Iterable[object]) -> Iterator[NodeRecord]:
        records: List[NodeRecord] = []
        claims: List[UniquePredecessorClaim] = []

        for msg in messages:
            kind = getattr(msg, "kind", None)
            if kind == NodeRecord.kind:
                records.append(msg)
            elif kind == UniquePredecessorClaim.kind:
                claims.append(msg)
            else:
                raise UnknownControlMessage(msg, self.stage_name)

        record = expect_single_record(node_id, records, claims, self.stage_name)
        node = record.node
        unique_predecessors: Set[Tuple[str, Strand]] = {
            (claim.from_id, claim.strand) for claim in claims
        }

        flags = {}
        for strand in (Strand.FORWARD, Strand.REVERSE):
            tail = node.tail(strand)
            flags[strand] = (
                tail is not None
                and tail.node_id != node.node_id
                and (tail.node_id, tail.strand.flip()) in unique_predecessors
            )

        annotation = CompressibleStrands.from_flags(flags[Strand.FORWARD], flags[Strand.REVERSE])
        if annotation is not CompressibleStrands.NONE:
            logger.debug(f"Node {node_id} compressible on {annotation.value}")

        yield NodeRecord(node, annotation)


__all__ = ["CompressibilityDetector"]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
