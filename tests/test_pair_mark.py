#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Tests for coin flips and symmetry breaking.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest

from chainweaver.graph_core.compressible_module import CompressibilityDetector
from chainweaver.graph_core.data_structures import (
    MergeInstruction,
    MergeProposal,
    NodeRecord,
    Terminal,
)
from chainweaver.graph_core.errors import UnknownControlMessage
from chainweaver.graph_core.pair_mark_module import (
    CoinFlip,
    FixedCoinFlipper,
    SeededCoinFlipper,
    SymmetryBreaker,
    coin,
    count_orientations,
)
from conftest import F, R, as_records, build_graph, run_stage

UP = CoinFlip.UP
DOWN = CoinFlip.DOWN


def mark(nodes, flipper):
    annotated = run_stage(CompressibilityDetector(), as_records(nodes))
    return run_stage(SymmetryBreaker(flipper), annotated)


def split(output):
    records = {m.node_id: m for m in output if m.kind == NodeRecord.kind}
    instructions = [m for m in output if m.kind == MergeInstruction.kind]
    return records, instructions


class TestCoin:
    """Test the stateless coin."""

    def test_deterministic(self):
        """Test that the same key always gives the same side."""
        assert coin(42, 1, "n1") is coin(42, 1, "n1")
        assert SeededCoinFlipper(42, 1).flip("n1") is coin(42, 1, "n1")

    def test_round_changes_flips(self):
        """Test that a node does not keep the same side in every round."""
        ids = [f"n{i}" for i in range(100)]
        first = [coin(7, 1, i) for i in ids]
        second = [coin(7, 2, i) for i in ids]
        assert first != second

    def test_roughly_fair(self):
        """Test that about half of many nodes come up UP."""
        counts = count_orientations(SeededCoinFlipper(3, 1), (f"node_{i}" for i in range(2000)))
        assert counts[UP] + counts[DOWN] == 2000
        assert 850 < counts[UP] < 1150

    def test_negative_seed_rejected(self):
        with pytest.raises(ValueError):
            coin(-1, 0, "n1")


class TestPromotion:
    """Test the DOWN to UP promotion rule."""

    def test_smallest_id_among_down_buddies(self):
        breaker = SymmetryBreaker(FixedCoinFlipper({}))
        assert breaker.convert_down_to_up("A", [Terminal("B", F), Terminal("C", R)])

    def test_not_smallest(self):
        breaker = SymmetryBreaker(FixedCoinFlipper({}))
        assert not breaker.convert_down_to_up("B", [Terminal("A", R), Terminal("C", F)])

    def test_up_buddy_blocks_promotion(self):
        breaker = SymmetryBreaker(FixedCoinFlipper({"B": UP}))
        assert not breaker.convert_down_to_up("A", [Terminal("B", F)])

    def test_process_up_node_prefers_forward(self):
        breaker = SymmetryBreaker(FixedCoinFlipper({}))
        strand, terminal = breaker.process_up_node(Terminal("B", F), Terminal("C", R))
        assert strand is F
        assert terminal == Terminal("B", F)

    def test_process_up_node_falls_back_to_reverse(self):
        breaker = SymmetryBreaker(FixedCoinFlipper({"B": UP}))
        strand, terminal = breaker.process_up_node(Terminal("B", F), Terminal("C", R))
        assert strand is R
        assert terminal.node_id == "C"

    def test_process_up_node_all_up(self):
        breaker = SymmetryBreaker(FixedCoinFlipper({}, default=UP))
        assert breaker.process_up_node(Terminal("B", F), None) is None


class TestSymmetryBreaker:
    """Test merge selection on small graphs."""

    def test_up_source_merges_into_down_target(self, abc_chain):
        """Test A(UP) -> B(DOWN): one instruction, routed to B."""
        records, instructions = split(mark(abc_chain, FixedCoinFlipper({"A": UP})))

        assert len(instructions) == 1
        instruction = instructions[0]
        assert instruction.source_id == "A"
        assert instruction.target_id == "B"
        assert instruction.merge_strand is F
        assert instruction.target_strand is F
        assert set(records) == {"B", "C"}

    def test_all_down_still_progresses(self, abc_chain):
        """Test that the smallest DOWN node is promoted when every coin is DOWN."""
        records, instructions = split(mark(abc_chain, FixedCoinFlipper({}, default=DOWN)))
        assert [(i.source_id, i.target_id) for i in instructions] == [("A", "B")]

    def test_all_up_no_merge(self, abc_chain):
        """Test that UP nodes never merge into UP nodes."""
        records, instructions = split(mark(abc_chain, FixedCoinFlipper({}, default=UP)))
        assert instructions == []
        assert set(records) == {"A", "B", "C"}

    def test_two_proposals_one_target(self, abc_chain):
        """Test that a target reached from both strands accepts only one source."""
        output = mark(abc_chain, FixedCoinFlipper({"A": UP, "C": UP}))
        records, instructions = split(output)

        assert len(instructions) == 1
        assert instructions[0].source_id == "A"
        assert instructions[0].target_id == "B"
        # The rejected source waits for a later round.
        assert set(records) == {"B", "C"}

    def test_every_node_emitted_once(self):
        """Test that each id appears once, as a record or as a merge source."""
        nodes = build_graph(
            {f"n{i}": "ACGT" for i in range(8)},
            [(f"n{i}", F, f"n{i + 1}", F) for i in range(7)],
        )
        output = mark(nodes, SeededCoinFlipper(42, 1))
        records, instructions = split(output)

        ids = list(records) + [i.source_id for i in instructions]
        assert sorted(ids) == sorted(nodes)
        targets = [i.target_id for i in instructions]
        assert len(targets) == len(set(targets))
        # Targets and sources are disjoint
        assert not set(targets) & {i.source_id for i in instructions}

    def test_reverse_strand_proposal(self):
        """Test C(UP) merging into B along its REVERSE strand."""
        nodes = build_graph({"B": "CCCC", "C": "GGGG"}, [("B", F, "C", F)])
        records, instructions = split(mark(nodes, FixedCoinFlipper({"C": UP})))
        assert len(instructions) == 1
        assert instructions[0].source_id == "C"
        assert instructions[0].merge_strand is R
        assert instructions[0].target_strand is R

    def test_unknown_message(self, abc_chain):
        breaker = SymmetryBreaker(FixedCoinFlipper({}))
        with pytest.raises(UnknownControlMessage):
            list(breaker.reduce("A", [NodeRecord(abc_chain["A"]), "junk"]))

    def test_proposal_carries_source(self, abc_chain):
        """Test that the map phase ships the full source node to the target."""
        annotated = {r.node_id: r for r in run_stage(CompressibilityDetector(), as_records(abc_chain))}
        breaker = SymmetryBreaker(FixedCoinFlipper({"A": UP}))
        [(key, proposal)] = list(breaker.map(annotated["A"]))

        assert key == "B"
        assert isinstance(proposal, MergeProposal)
        assert proposal.source == abc_chain["A"]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
