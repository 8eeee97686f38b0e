#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Chain merging: applies the merge instructions chosen by the symmetry breaker.

Two map/reduce stages run per round:

1. Relink. A consumed source tells each of its external neighbours to point
   at the merge target instead. Updates are delivered while every node still
   lives under its old id, so a neighbour that is itself merging this round
   carries the rewritten edge into its own merge.
2. Merge. Instructions are routed to their target; the target absorbs the
   source and keeps its own id and strand orientation.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import replace
from typing import Iterable, Iterator, List, Tuple
import logging

from .data_structures import (
    CompressibleStrands,
    EdgeUpdate,
    GraphNode,
    MergeInstruction,
    NodeRecord,
    Strand,
    Terminal,
    expect_single_record,
)
from .errors import DataIntegrityError, UnknownControlMessage
from ..utils.sequence_utils import overlap_concat, reverse_complement

logger = logging.getLogger(__name__)


def oriented_sequence(node: GraphNode, strand: Strand) -> str:
    """Sequence of ``node`` read on ``strand``."""
    if strand is Strand.FORWARD:
        return node.sequence
    return reverse_complement(node.sequence)


def merge_nodes(source: GraphNode, target: GraphNode, merge_strand: Strand,
                target_strand: Strand, overlap: int) -> GraphNode:
    """
    Absorb ``source`` into ``target`` across the edge
    ``source:merge_strand -> target:target_strand``.

    The merged node keeps the target id, and the target's strands keep their
    meaning. The internal edge and its mirror disappear; every other edge of
    both endpoints survives, with references to the source redirected to the
    target.

    Args:
        source: Node being consumed
        target: Node receiving the merge
        merge_strand: Strand of the source whose single edge leads to the target
        target_strand: Strand of the target at the end of that edge
        overlap: Bases shared by the two sequences across the edge

    Returns:
        New merged GraphNode

    Raises:
        DataIntegrityError: If the edge is not a clean chain link or the
            overlap does not match
    """
    internal = Terminal(target.node_id, target_strand)
    mirror = Terminal(source.node_id, merge_strand.flip())
    if source.out_edges[merge_strand] != (internal,):
        raise DataIntegrityError(
            f"Cannot merge {source.node_id}:{merge_strand.value} into {target.node_id}: "
            f"source edges are {source.out_edges[merge_strand]}"
        )
    if target.out_edges[target_strand.flip()] != (mirror,):
        raise DataIntegrityError(
            f"Cannot merge {source.node_id} into {target.node_id}:{target_strand.value}: "
            f"target has other predecessors {target.out_edges[target_strand.flip()]}"
        )

    try:
        sequence = overlap_concat(
            oriented_sequence(source, merge_strand),
            oriented_sequence(target, target_strand),
            overlap,
        )
    except ValueError as e:
        raise DataIntegrityError(
            f"Overlap mismatch merging {source.node_id} into {target.node_id}: {e}"
        ) from e
    if target_strand is Strand.REVERSE:
        sequence = reverse_complement(sequence)

    total_length = source.length + target.length
    if total_length > 0:
        coverage = (source.coverage * source.length + target.coverage * target.length) / total_length
    else:
        coverage = 0.0

    def remap(terminal: Terminal) -> Terminal:
        if terminal.node_id == source.node_id:
            return Terminal(target.node_id, terminal.strand.relabel(merge_strand, target_strand))
        return terminal

    out_edges = {
        target_strand: [remap(t) for t in target.out_edges[target_strand]],
        target_strand.flip(): [remap(t) for t in source.out_edges[merge_strand.flip()]],
    }

    return GraphNode(
        node_id=target.node_id,
        sequence=sequence,
        coverage=coverage,
        out_edges={s: tuple(dict.fromkeys(t)) for s, t in out_edges.items()},
    )


class EdgeRelinker:
    """Redirect neighbour edges away from nodes consumed this round."""

    stage_name = "relink"

    def map(self, msg) -> Iterator[Tuple[str, object]]:
        kind = getattr(msg, "kind", None)
        if kind == NodeRecord.kind:
            yield msg.node_id, msg
        elif kind == MergeInstruction.kind:
            yield msg.source_id, msg
            for update in self.updates_for(msg):
                yield update.node_id, update
        else:
            raise UnknownControlMessage(msg, self.stage_name)

    def updates_for(self, instruction: MergeInstruction) -> List[EdgeUpdate]:
        """Edge updates owed to the external neighbours of the consumed source."""
        source_id = instruction.source_id
        old = Terminal(source_id, instruction.merge_strand)
        new = Terminal(instruction.target_id, instruction.target_strand)

        updates = []
        for neighbour in instruction.source.out_edges[instruction.merge_strand.flip()]:
            # Edges inside the merging pair are rewritten by merge_nodes.
            if neighbour.node_id in (source_id, instruction.target_id):
                continue
            # source:flip(s) -> (N, m) mirrors N:flip(m) -> source:s
            updates.append(EdgeUpdate(neighbour.node_id, neighbour.strand.flip(), old, new))
        return updates

    def reduce(self, node_id: str, messages: Iterable[object]) -> Iterator[object]:
        carriers = []
        updates: List[EdgeUpdate] = []

        for msg in messages:
            kind = getattr(msg, "kind", None)
            if kind in (NodeRecord.kind, MergeInstruction.kind):
                carriers.append(msg)
            elif kind == EdgeUpdate.kind:
                updates.append(msg)
            else:
                raise UnknownControlMessage(msg, self.stage_name)

        carrier = expect_single_record(node_id, carriers, updates, self.stage_name)
        if not updates:
            yield carrier
            return

        node = carrier.node if carrier.kind == NodeRecord.kind else carrier.source
        for update in updates:
            node = node.replace_terminal(update.strand, update.old, update.new)

        if carrier.kind == NodeRecord.kind:
            yield replace(carrier, node=node)
        else:
            yield replace(carrier, source=node)


class ChainMerger:
    """Apply at most one merge instruction per target node."""

    stage_name = "pair_merge"

    def __init__(self, overlap: int = 0):
        if overlap < 0:
            raise ValueError(f"overlap must be >= 0, got {overlap}")
        self.overlap = overlap

    def map(self, msg) -> Iterator[Tuple[str, object]]:
        kind = getattr(msg, "kind", None)
        if kind == NodeRecord.kind:
            yield msg.node_id, msg
        elif kind == MergeInstruction.kind:
            yield msg.target_id, msg
        else:
            raise UnknownControlMessage(msg, self.stage_name)

    def reduce(self, node_id: str, messages: Iterable[object]) -> Iterator[NodeRecord]:
        records: List[NodeRecord] = []
        instructions: List[MergeInstruction] = []

        for msg in messages:
            kind = getattr(msg, "kind", None)
            if kind == NodeRecord.kind:
                records.append(msg)
            elif kind == MergeInstruction.kind:
                instructions.append(msg)
            else:
                raise UnknownControlMessage(msg, self.stage_name)

        record = expect_single_record(node_id, records, instructions, self.stage_name)

        if not instructions:
            yield NodeRecord(record.node, CompressibleStrands.NONE)
            return
        if len(instructions) > 1:
            sources = ", ".join(sorted(i.source_id for i in instructions))
            raise DataIntegrityError(
                f"Node {node_id} received {len(instructions)} merge instructions ({sources})"
            )

        instruction = instructions[0]
        merged = merge_nodes(
            instruction.source,
            record.node,
            instruction.merge_strand,
            instruction.target_strand,
            self.overlap,
        )
        logger.debug(
            f"Merged {instruction.source_id}:{instruction.merge_strand.value} into "
            f"{node_id}:{instruction.target_strand.value} ({merged.length} bp)"
        )
        yield NodeRecord(merged, CompressibleStrands.NONE)


__all__ = [
    "oriented_sequence",
    "merge_nodes",
    "EdgeRelinker",
    "ChainMerger",
]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
