#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Bulk-synchronous map/shuffle/reduce runner over partitioned records.

A stage object provides ``map(record) -> iterable of (key, message)`` and
``reduce(key, messages) -> iterable of records``. Map runs per input
partition, messages are routed to output partitions with a stable CRC32
partitioner, and reduce runs per output partition over key groups. Both
phases fan out to a serial, thread or process executor; the stage returns
only after every partition finished, which is the barrier between phases.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from collections import Counter, defaultdict
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from multiprocessing import cpu_count
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging
import time
import zlib

logger = logging.getLogger(__name__)

EXECUTORS = ('serial', 'thread', 'process')


class StageTimeout(Exception):
    """Raised when a stage does not finish within its time budget."""

    def __init__(self, stage_name: str, timeout: float):
        self.stage_name = stage_name
        self.timeout = timeout
        super().__init__(f"Stage {stage_name!r} exceeded its {timeout:.1f}s budget")


def partition_for(key: str, num_partitions: int) -> int:
    """Stable partition index for a key (independent of PYTHONHASHSEED)."""
    return zlib.crc32(key.encode("utf-8")) % num_partitions


def split_into_partitions(records: Sequence[Any], num_partitions: int,
                          key: Callable[[Any], str]) -> List[List[Any]]:
    """Distribute records over ``num_partitions`` lists by key."""
    partitions: List[List[Any]] = [[] for _ in range(num_partitions)]
    for record in records:
        partitions[partition_for(key(record), num_partitions)].append(record)
    return partitions


def _map_partition(stage, records: List[Any], num_partitions: int):
    """Map one partition and bucket the output by destination partition."""
    buckets: List[List[Tuple[str, Any]]] = [[] for _ in range(num_partitions)]
    kinds: Counter = Counter()
    for record in records:
        for key, msg in stage.map(record):
            buckets[partition_for(key, num_partitions)].append((key, msg))
            kinds[getattr(msg, "kind", type(msg).__name__)] += 1
    return buckets, kinds


def _reduce_partition(stage, pairs: List[Tuple[str, Any]]):
    """Group one partition's messages by key and reduce each group."""
    groups: Dict[str, List[Any]] = defaultdict(list)
    for key, msg in pairs:
        groups[key].append(msg)

    output: List[Any] = []
    kinds: Counter = Counter()
    # Sorted keys keep the partition output order reproducible.
    for key in sorted(groups):
        for record in stage.reduce(key, groups[key]):
            output.append(record)
            kinds[getattr(record, "kind", type(record).__name__)] += 1
    return output, kinds


@dataclass
class StageStats:
    """Counters for one map/reduce stage."""
    stage_name: str
    records_in: int = 0
    messages_shuffled: int = 0
    records_out: int = 0
    emitted: Dict[str, int] = field(default_factory=dict)
    produced: Dict[str, int] = field(default_factory=dict)
    elapsed_sec: float = 0.0


class BSPRunner:
    """
    Execute map/reduce stages over partitioned records.

    Args:
        num_partitions: Number of shuffle partitions
        executor: 'serial', 'thread' or 'process'
        workers: Worker count for thread/process executors (default: CPU count)
        stage_timeout: Seconds allowed per stage phase, None for unlimited
    """

    def __init__(self, num_partitions: int = 4, executor: str = 'serial',
                 workers: Optional[int] = None, stage_timeout: Optional[float] = None):
        if num_partitions < 1:
            raise ValueError(f"num_partitions must be >= 1, got {num_partitions}")
        if executor not in EXECUTORS:
            raise ValueError(f"executor must be one of {EXECUTORS}, got {executor!r}")
        self.num_partitions = num_partitions
        self.executor = executor
        self.workers = workers or cpu_count()
        self.stage_timeout = stage_timeout
        self.logger = logging.getLogger(f"{__name__}.BSPRunner")

    def run_stage(self, stage, partitions: List[List[Any]]) -> Tuple[List[List[Any]], StageStats]:
        """
        Run one stage to completion.

        Args:
            stage: Object with ``stage_name``, ``map`` and ``reduce``
            partitions: Input records, one list per partition

        Returns:
            (output partitions, StageStats)
        """
        name = getattr(stage, "stage_name", type(stage).__name__)
        stats = StageStats(stage_name=name, records_in=sum(len(p) for p in partitions))
        start = time.time()

        map_results = self._execute(
            name, _map_partition,
            [(stage, records, self.num_partitions) for records in partitions],
        )

        shuffled: List[List[Tuple[str, Any]]] = [[] for _ in range(self.num_partitions)]
        emitted: Counter = Counter()
        for buckets, kinds in map_results:
            emitted.update(kinds)
            for index, bucket in enumerate(buckets):
                shuffled[index].extend(bucket)
        stats.messages_shuffled = sum(len(p) for p in shuffled)

        reduce_results = self._execute(
            name, _reduce_partition,
            [(stage, pairs) for pairs in shuffled],
        )

        output = []
        produced: Counter = Counter()
        for records, kinds in reduce_results:
            output.append(records)
            produced.update(kinds)

        stats.records_out = sum(len(p) for p in output)
        stats.emitted = dict(emitted)
        stats.produced = dict(produced)
        stats.elapsed_sec = time.time() - start

        self.logger.debug(
            f"Stage {name}: {stats.records_in} records -> {stats.messages_shuffled} messages "
            f"-> {stats.records_out} records in {stats.elapsed_sec:.2f}s"
        )
        return output, stats

    def _execute(self, name: str, func, arg_list: List[tuple]) -> List[Any]:
        """Run ``func(*args)`` for every partition, preserving partition order."""
        if self.executor == 'serial':
            start = time.time()
            results = [func(*args) for args in arg_list]
            if self.stage_timeout is not None and time.time() - start > self.stage_timeout:
                raise StageTimeout(name, self.stage_timeout)
            return results

        pool_cls = ThreadPoolExecutor if self.executor == 'thread' else ProcessPoolExecutor
        results: List[Any] = [None] * len(arg_list)
        pool = pool_cls(max_workers=max(1, self.workers))
        timed_out = False
        try:
            futures = {pool.submit(func, *args): index for index, args in enumerate(arg_list)}
            for future in as_completed(futures, timeout=self.stage_timeout):
                results[futures[future]] = future.result()
        except FuturesTimeoutError:
            timed_out = True
            raise StageTimeout(name, self.stage_timeout)
        finally:
            # A timed out stage is abandoned; its half-done output is never used.
            pool.shutdown(wait=not timed_out, cancel_futures=True)
        return results


__all__ = [
    "BSPRunner",
    "StageStats",
    "StageTimeout",
    "partition_for",
    "split_into_partitions",
]

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
