#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Tests for the bulk-synchronous map/shuffle/reduce runner.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import time
import zlib

import pytest

from chainweaver.graph_core.compressible_module import CompressibilityDetector
from chainweaver.utils.bsp_runner import (
    BSPRunner,
    StageTimeout,
    partition_for,
    split_into_partitions,
)
from conftest import as_records


class WordCount:
    """Minimal stage: count occurrences of each word."""

    stage_name = "word_count"

    def map(self, word):
        yield word, 1

    def reduce(self, key, messages):
        yield (key, sum(messages))


class SlowStage(WordCount):
    stage_name = "slow"

    def map(self, word):
        time.sleep(0.5)
        yield word, 1


def flatten(partitions):
    return sorted(item for partition in partitions for item in partition)


class TestPartitioning:
    """Test key routing."""

    def test_partition_is_crc32(self):
        assert partition_for("node_1", 7) == zlib.crc32(b"node_1") % 7

    def test_split_keeps_every_record(self):
        words = [f"w{i}" for i in range(50)]
        partitions = split_into_partitions(words, 4, key=lambda w: w)
        assert len(partitions) == 4
        assert sorted(w for p in partitions for w in p) == sorted(words)
        for index, partition in enumerate(partitions):
            assert all(partition_for(w, 4) == index for w in partition)


class TestBSPRunner:
    """Test stage execution."""

    def test_word_count(self):
        runner = BSPRunner(num_partitions=3)
        output, stats = runner.run_stage(WordCount(), [["a", "b"], ["a", "c", "a"]])

        assert flatten(output) == [("a", 3), ("b", 1), ("c", 1)]
        assert len(output) == 3
        assert stats.records_in == 5
        assert stats.messages_shuffled == 5
        assert stats.records_out == 3

    def test_keys_grouped_in_one_partition(self):
        runner = BSPRunner(num_partitions=5)
        output, _ = runner.run_stage(WordCount(), [["x"] * 10, ["x"] * 5])
        assert flatten(output) == [("x", 15)]

    def test_message_kinds_counted(self, abc_chain):
        runner = BSPRunner(num_partitions=2)
        output, stats = runner.run_stage(CompressibilityDetector(), [as_records(abc_chain)])

        assert stats.stage_name == "compressible"
        assert stats.emitted == {"claim": 4, "node": 3}
        assert stats.produced == {"node": 3}

    def test_thread_executor_matches_serial(self):
        partitions = [[f"w{i % 7}" for i in range(j, j + 20)] for j in range(4)]
        serial, _ = BSPRunner(num_partitions=3).run_stage(WordCount(), partitions)
        threaded, _ = BSPRunner(num_partitions=3, executor='thread', workers=2).run_stage(
            WordCount(), partitions)
        assert serial == threaded

    def test_process_executor_matches_serial(self, abc_chain):
        records = as_records(abc_chain)
        serial, _ = BSPRunner(num_partitions=2).run_stage(CompressibilityDetector(), [records])
        pooled, _ = BSPRunner(num_partitions=2, executor='process', workers=2).run_stage(
            CompressibilityDetector(), [records])
        assert serial == pooled

    def test_stage_timeout(self):
        runner = BSPRunner(num_partitions=1, executor='thread', workers=1, stage_timeout=0.05)
        with pytest.raises(StageTimeout) as excinfo:
            runner.run_stage(SlowStage(), [["a"], ["b"]])
        assert excinfo.value.stage_name == "slow"

    def test_serial_timeout(self):
        runner = BSPRunner(num_partitions=1, stage_timeout=0.05)
        with pytest.raises(StageTimeout):
            runner.run_stage(SlowStage(), [["a"]])

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            BSPRunner(num_partitions=0)
        with pytest.raises(ValueError):
            BSPRunner(executor='cluster')

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
