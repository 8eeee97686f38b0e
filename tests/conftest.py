#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Pytest configuration and shared fixtures.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
from pathlib import Path
import tempfile
import shutil

import numpy as np

from chainweaver.graph_core.data_structures import (
    CompressibleStrands,
    GraphNode,
    NodeRecord,
    Strand,
    add_edge,
)
from chainweaver.utils.bsp_runner import BSPRunner
from chainweaver.utils.sequence_utils import reverse_complement

F = Strand.FORWARD
R = Strand.REVERSE


def build_graph(sequences, edges, coverage=10.0):
    """
    Build a node dict from {id: sequence} and (source, strand, target, strand) edges.

    Mirrors are added automatically.
    """
    nodes = {
        node_id: GraphNode(node_id, sequence, coverage)
        for node_id, sequence in sequences.items()
    }
    for source, source_strand, target, target_strand in edges:
        add_edge(nodes, source, source_strand, target, target_strand)
    return nodes


def as_records(nodes, compressible=CompressibleStrands.NONE):
    return [NodeRecord(node, compressible) for node in nodes.values()]


def run_stage(stage, records, num_partitions=1):
    """Run one stage through a serial runner and flatten the output."""
    output, _ = BSPRunner(num_partitions=num_partitions).run_stage(stage, [list(records)])
    return [record for partition in output for record in partition]


def tiled_genome(length=155, fragment=20, step=15, seed=0):
    """Random genome plus overlapping fragments that tile it exactly."""
    rng = np.random.default_rng(seed)
    genome = "".join(rng.choice(list("ACGT"), size=length))
    fragments = [genome[i:i + fragment] for i in range(0, length - fragment + 1, step)]
    return genome, fragments, fragment - step


def chain_graph(fragments, flip_odd=False):
    """
    Linear chain f00 -> f01 -> ... over ``fragments``.

    With ``flip_odd`` every odd fragment is stored reverse complemented and
    linked through its REVERSE strand.
    """
    sequences = {}
    strands = {}
    for i, fragment in enumerate(fragments):
        node_id = f"f{i:02d}"
        if flip_odd and i % 2 == 1:
            sequences[node_id] = reverse_complement(fragment)
            strands[node_id] = R
        else:
            sequences[node_id] = fragment
            strands[node_id] = F

    ids = list(sequences)
    edges = [(a, strands[a], b, strands[b]) for a, b in zip(ids, ids[1:])]
    return build_graph(sequences, edges)


@pytest.fixture
def temp_output_dir():
    """Create temporary output directory for tests."""
    temp_dir = tempfile.mkdtemp(prefix="chainweaver_test_")
    yield Path(temp_dir)
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def abc_chain():
    """A -> B -> C on the forward strand."""
    return build_graph(
        {"A": "AAAA", "B": "CCCC", "C": "GGGG"},
        [("A", F, "B", F), ("B", F, "C", F)],
    )

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
