#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Core graph data structures: strands, edge terminals, graph nodes and the
control messages exchanged between the map and reduce phases of a round.

The graph is an arena keyed by node id. Edges never hold object references;
they are lists of Terminal values (node id + strand). Only OUTGOING edge
lists are stored. The INCOMING list of a strand is derived from the OUTGOING
list of the complementary strand:

    A_s has an incoming edge from (X, x)  <=>  A_flip(s) -> (X, flip(x))

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import logging

from .errors import DataIntegrityError, MissingNeighborError, SnapshotFormatError

logger = logging.getLogger(__name__)


# ============================================================================
# Enumerations
# ============================================================================

class Strand(Enum):
    """One of the two complementary orientations of a fragment."""
    FORWARD = "FORWARD"
    REVERSE = "REVERSE"

    def flip(self) -> "Strand":
        return Strand.REVERSE if self is Strand.FORWARD else Strand.FORWARD

    def relabel(self, merge_strand: "Strand", target_strand: "Strand") -> "Strand":
        """
        Map a strand of a consumed source onto the merged node.

        The source's merge strand lines up with the target's strand, so the
        mapping is the identity when both agree and a flip otherwise.
        """
        return self if merge_strand is target_strand else self.flip()


class Direction(Enum):
    """Edge direction relative to a node strand."""
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"


class CompressibleStrands(Enum):
    """Which strands of a node lie on an unambiguous chain link."""
    NONE = "NONE"
    FORWARD = "FORWARD"
    REVERSE = "REVERSE"
    BOTH = "BOTH"

    @classmethod
    def from_flags(cls, forward: bool, reverse: bool) -> "CompressibleStrands":
        if forward and reverse:
            return cls.BOTH
        if forward:
            return cls.FORWARD
        if reverse:
            return cls.REVERSE
        return cls.NONE

    def allows(self, strand: Strand) -> bool:
        """Whether the given strand can be compressed."""
        if self is CompressibleStrands.BOTH:
            return True
        return self.value == strand.value

    def strands(self) -> List[Strand]:
        return [s for s in (Strand.FORWARD, Strand.REVERSE) if self.allows(s)]


# ============================================================================
# Graph Structures
# ============================================================================

@dataclass(frozen=True, order=True)
class Terminal:
    """A specific strand of a specific neighbouring node."""
    node_id: str
    strand: Strand

    def flip(self) -> "Terminal":
        return Terminal(self.node_id, self.strand.flip())

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.node_id, "strand": self.strand.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Terminal":
        return cls(str(data["id"]), Strand(data["strand"]))


def _empty_edges() -> Dict[Strand, Tuple[Terminal, ...]]:
    return {Strand.FORWARD: (), Strand.REVERSE: ()}


@dataclass(frozen=True)
class GraphNode:
    """
    Node in the overlap graph.

    Attributes:
        node_id: Unique identifier of the fragment
        sequence: Fragment sequence on the FORWARD strand
        coverage: Average read coverage of the fragment
        out_edges: Strand -> outgoing terminals of that strand
    """
    node_id: str
    sequence: str
    coverage: float = 0.0
    out_edges: Dict[Strand, Tuple[Terminal, ...]] = field(default_factory=_empty_edges)

    def __post_init__(self):
        # Normalise to tuples keyed by both strands so nodes compare by value.
        normalised = {
            strand: tuple(self.out_edges.get(strand, ()))
            for strand in (Strand.FORWARD, Strand.REVERSE)
        }
        object.__setattr__(self, "out_edges", normalised)

    def __hash__(self):
        return hash(self.node_id)

    @property
    def length(self) -> int:
        return len(self.sequence)

    def get_edges(self, strand: Strand, direction: Direction) -> List[Terminal]:
        """Terminals adjacent to ``strand`` in the given direction."""
        if direction is Direction.OUTGOING:
            return list(self.out_edges[strand])
        return [t.flip() for t in self.out_edges[strand.flip()]]

    @property
    def edges(self) -> Dict[Tuple[Strand, Direction], List[Terminal]]:
        return {
            (strand, direction): self.get_edges(strand, direction)
            for strand in (Strand.FORWARD, Strand.REVERSE)
            for direction in (Direction.INCOMING, Direction.OUTGOING)
        }

    def out_degree(self, strand: Strand) -> int:
        return len(self.out_edges[strand])

    def in_degree(self, strand: Strand) -> int:
        return len(self.out_edges[strand.flip()])

    def tail(self, strand: Strand) -> Optional[Terminal]:
        """The single outgoing terminal on ``strand``, if the out-degree is exactly one."""
        terminals = self.out_edges[strand]
        if len(terminals) == 1:
            return terminals[0]
        return None

    def num_edges(self) -> int:
        return sum(len(t) for t in self.out_edges.values())

    def with_edges(self, out_edges: Mapping[Strand, Iterable[Terminal]]) -> "GraphNode":
        return GraphNode(self.node_id, self.sequence, self.coverage,
                         {s: tuple(t) for s, t in out_edges.items()})

    def replace_terminal(self, strand: Strand, old: Terminal, new: Terminal) -> "GraphNode":
        """
        Return a copy where the edge ``strand -> old`` points at ``new`` instead.

        Raises:
            DataIntegrityError: If the node has no such edge
        """
        terminals = self.out_edges[strand]
        if old not in terminals:
            raise DataIntegrityError(
                f"Node {self.node_id}:{strand.value} has no edge to {old.node_id}:{old.strand.value} "
                f"to rewrite into {new.node_id}:{new.strand.value}"
            )
        rewritten = [new if t == old else t for t in terminals]
        updated = dict(self.out_edges)
        updated[strand] = tuple(dict.fromkeys(rewritten))
        return self.with_edges(updated)

    def to_dict(self, compressible: Optional["CompressibleStrands"] = None) -> Dict[str, Any]:
        """Serialise to the snapshot record layout."""
        record = {
            "id": self.node_id,
            "sequence": self.sequence,
            "coverage": self.coverage,
            "edges": [
                {
                    "strand": strand.value,
                    "direction": Direction.OUTGOING.value,
                    "terminals": [t.to_dict() for t in terminals],
                }
                for strand, terminals in self.out_edges.items()
                if terminals
            ],
        }
        if compressible is not None:
            record["compressible"] = compressible.value
        return record

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GraphNode":
        """
        Parse a snapshot record. INCOMING edge lists are folded into the
        OUTGOING list of the complementary strand.
        """
        try:
            out_edges: Dict[Strand, List[Terminal]] = {Strand.FORWARD: [], Strand.REVERSE: []}
            for entry in data.get("edges", []):
                strand = Strand(entry["strand"])
                direction = Direction(entry.get("direction", Direction.OUTGOING.value))
                for raw in entry.get("terminals", []):
                    terminal = Terminal.from_dict(raw)
                    if direction is Direction.INCOMING:
                        strand_key, terminal = strand.flip(), terminal.flip()
                    else:
                        strand_key = strand
                    if terminal not in out_edges[strand_key]:
                        out_edges[strand_key].append(terminal)
            return cls(
                node_id=str(data["id"]),
                sequence=str(data.get("sequence", "")),
                coverage=float(data.get("coverage", 0.0)),
                out_edges={s: tuple(t) for s, t in out_edges.items()},
            )
        except (KeyError, ValueError, TypeError) as e:
            raise SnapshotFormatError(f"Malformed node record {data!r}: {e}") from e


def add_edge(nodes: Dict[str, GraphNode], source: str, source_strand: Strand,
             target: str, target_strand: Strand) -> None:
    """
    Add ``source_strand -> target_strand`` together with its complementary mirror.

    ``nodes`` is updated in place with new node values.
    """
    def _append(node_id: str, strand: Strand, terminal: Terminal):
        node = nodes[node_id]
        edges = {s: list(t) for s, t in node.out_edges.items()}
        if terminal not in edges[strand]:
            edges[strand].append(terminal)
        nodes[node_id] = node.with_edges(edges)

    _append(source, source_strand, Terminal(target, target_strand))
    _append(target, target_strand.flip(), Terminal(source, source_strand.flip()))


def find_integrity_violations(nodes: Iterable[GraphNode]) -> List[str]:
    """
    Check the upstream invariants of a node collection.

    Returns:
        List of violation messages (empty if the graph is consistent)
    """
    errors = []
    index: Dict[str, GraphNode] = {}
    for node in nodes:
        if node.node_id in index:
            errors.append(f"Duplicate node id: {node.node_id}")
        index[node.node_id] = node

    for node in index.values():
        for strand, terminals in node.out_edges.items():
            for terminal in terminals:
                other = index.get(terminal.node_id)
                if other is None:
                    errors.append(
                        f"{node.node_id}:{strand.value} -> missing node {terminal.node_id}"
                    )
                    continue
                mirror = Terminal(node.node_id, strand.flip())
                if mirror not in other.out_edges[terminal.strand.flip()]:
                    errors.append(
                        f"{node.node_id}:{strand.value} -> {terminal.node_id}:"
                        f"{terminal.strand.value} has no complementary edge"
                    )
    return errors


def validate_graph(nodes: Iterable[GraphNode]) -> None:
    """Raise DataIntegrityError if the graph violates the edge invariants."""
    errors = find_integrity_violations(nodes)
    if errors:
        shown = "; ".join(errors[:5])
        more = f" (+{len(errors) - 5} more)" if len(errors) > 5 else ""
        raise DataIntegrityError(f"Graph invariant violations: {shown}{more}")


# ============================================================================
# Control Messages
# ============================================================================
# Every message carries a class-level ``kind`` tag. Reduce handlers dispatch
# on the tag and reject anything they do not expect.

@dataclass(frozen=True)
class NodeRecord:
    """Full node plus its compressibility annotation for this round."""
    node: GraphNode
    compressible: CompressibleStrands = CompressibleStrands.NONE
    kind = "node"

    @property
    def node_id(self) -> str:
        return self.node.node_id


@dataclass(frozen=True)
class UniquePredecessorClaim:
    """``from_id`` has a single successor on ``strand`` and it is the receiver."""
    from_id: str
    strand: Strand
    kind = "claim"


@dataclass(frozen=True)
class MergeProposal:
    """An UP node offering itself to its DOWN buddy ``target_id``."""
    source: GraphNode
    target_id: str
    merge_strand: Strand
    target_strand: Strand
    kind = "proposal"

    @property
    def source_id(self) -> str:
        return self.source.node_id


@dataclass(frozen=True)
class MergeInstruction:
    """
    Approved merge: ``source`` on ``merge_strand`` is followed by the
    target on ``target_strand`` and gets absorbed into it.
    """
    source: GraphNode
    target_id: str
    merge_strand: Strand
    target_strand: Strand
    kind = "merge"

    @property
    def source_id(self) -> str:
        return self.source.node_id


@dataclass(frozen=True)
class EdgeUpdate:
    """Ask ``node_id`` to repoint its edge ``strand -> old`` at ``new``."""
    node_id: str
    strand: Strand
    old: Terminal
    new: Terminal
    kind = "update"


def expect_single_record(node_id: str, records: List[Any], pending: List[Any],
                         stage: str) -> Any:
    """
    Return the one node-bearing message of a reduce group.

    Args:
        node_id: Key of the reduce group
        records: Node-bearing messages seen for the key
        pending: Control messages that need the record to exist
        stage: Stage name for error messages

    Raises:
        MissingNeighborError: No record but control messages reference the id
        DataIntegrityError: Zero or several records
    """
    if len(records) == 1:
        return records[0]
    if not records and pending:
        raise MissingNeighborError(node_id, pending[0].kind, stage)
    raise DataIntegrityError(
        f"Expected exactly 1 node record for {node_id!r} in {stage}, saw {len(records)}"
    )


__all__ = [
    "Strand",
    "Direction",
    "CompressibleStrands",
    "Terminal",
    "GraphNode",
    "add_edge",
    "find_integrity_violations",
    "validate_graph",
    "expect_single_record",
    "NodeRecord",
    "UniquePredecessorClaim",
    "MergeProposal",
    "MergeInstruction",
    "EdgeUpdate",
]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
