"""
ChainWeaver round controller.

Drives the chain contraction engine to a fixpoint:

    snapshot(r-1) -> compressible -> pair_mark -> relink -> pair_merge -> snapshot(r)

Each round is a full bulk-synchronous pass. The resulting snapshot is
committed before the next round starts; a round that fails transiently is
recomputed from the last committed input, and a fatal error stops the job.

Key features:
- Fixpoint detection (a round with no compressible node, hence no merge)
- Optional round budget with a configurable failure policy
- Checkpoint per round, resume from the latest checkpoint
- Per-round result structures instead of global counters
"""

from concurrent.futures import BrokenExecutor
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import logging
import time

from ..graph_core.compressible_module import CompressibilityDetector
from ..graph_core.data_structures import CompressibleStrands, NodeRecord, validate_graph
from ..graph_core.errors import ChainWeaverError, ConvergenceNotReached, DataIntegrityError
from ..graph_core.pair_mark_module import SeededCoinFlipper, SymmetryBreaker
from ..graph_core.pair_merge_module import ChainMerger, EdgeRelinker
from ..io.snapshot_io import Snapshot, SnapshotManifest, read_snapshot
from .bsp_runner import BSPRunner, StageTimeout, split_into_partitions
from .checkpoints import CheckpointManager

logger = logging.getLogger(__name__)

# Executor failures that leave the committed input untouched.
TRANSIENT_ERRORS = (BrokenExecutor, OSError)


# ============================================================================
# Data Structures
# ============================================================================

class ControllerState(Enum):
    """Lifecycle of a compression job."""
    RUNNING = "RUNNING"
    CONVERGED = "CONVERGED"
    FAILED = "FAILED"


@dataclass
class CompressionConfig:
    """Parameters of a compression job."""
    seed: int = 0
    max_rounds: Optional[int] = None
    overlap: int = 0
    fail_on_budget: bool = False
    round_retries: int = 1
    num_partitions: int = 4
    executor: str = 'serial'
    workers: Optional[int] = None
    stage_timeout: Optional[float] = None
    keep_last: int = 2
    validate_input: bool = False

    def __post_init__(self):
        if self.seed < 0:
            raise ValueError(f"seed must be >= 0, got {self.seed}")
        if self.max_rounds is not None and self.max_rounds < 1:
            raise ValueError(f"max_rounds must be >= 1, got {self.max_rounds}")
        if self.round_retries < 0:
            raise ValueError(f"round_retries must be >= 0, got {self.round_retries}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CompressionConfig":
        """Build from a loaded configuration dictionary."""
        compression = config.get('compression', {})
        execution = config.get('execution', {})
        snapshots = config.get('snapshots', {})
        return cls(
            seed=int(compression.get('seed', 0)),
            max_rounds=compression.get('max_rounds'),
            overlap=int(compression.get('overlap', 0)),
            fail_on_budget=bool(compression.get('fail_on_budget', False)),
            round_retries=int(compression.get('round_retries', 1)),
            num_partitions=int(execution.get('num_partitions', 4)),
            executor=execution.get('executor', 'serial'),
            workers=execution.get('workers'),
            stage_timeout=execution.get('stage_timeout'),
            keep_last=int(snapshots.get('keep_last', 2)),
            validate_input=bool(snapshots.get('validate_input', False)),
        )


@dataclass
class RoundResult:
    """What one round did."""
    round_number: int
    nodes_in: int
    nodes_out: int
    compressible: int
    proposals: int
    rejected: int
    merges: int
    attempts: int = 1
    elapsed_sec: float = 0.0
    snapshot_path: Optional[str] = None

    def summary(self) -> str:
        return (
            f"Round {self.round_number}: {self.nodes_in} -> {self.nodes_out} nodes, "
            f"{self.compressible} compressible, {self.merges} merges "
            f"({self.rejected} proposals deferred) in {self.elapsed_sec:.2f}s"
        )


@dataclass
class CompressionResult:
    """Outcome of a compression job."""
    state: ControllerState
    rounds: List[RoundResult] = field(default_factory=list)
    snapshot_path: Optional[Path] = None
    start_round: int = 0
    error: Optional[Exception] = None

    @property
    def converged(self) -> bool:
        return self.state is ControllerState.CONVERGED

    @property
    def total_merges(self) -> int:
        return sum(r.merges for r in self.rounds)

    @property
    def final_node_count(self) -> Optional[int]:
        return self.rounds[-1].nodes_out if self.rounds else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'start_round': self.start_round,
            'total_merges': self.total_merges,
            'snapshot_path': str(self.snapshot_path) if self.snapshot_path else None,
            'error': str(self.error) if self.error else None,
            'rounds': [asdict(r) for r in self.rounds],
        }


# ============================================================================
# Controller
# ============================================================================

class RoundController:
    """
    Run compressible -> pair_mark -> relink -> pair_merge rounds to a fixpoint.

    Args:
        config: CompressionConfig
        work_dir: Directory holding the per-round checkpoints
        flipper_factory: (seed, round) -> coin flipper; defaults to SeededCoinFlipper
    """

    def __init__(self, config: CompressionConfig, work_dir: Union[str, Path],
                 flipper_factory: Optional[Callable[[int, int], Any]] = None):
        self.config = config
        self.work_dir = Path(work_dir)
        self.flipper_factory = flipper_factory or SeededCoinFlipper
        self.checkpoints = CheckpointManager(self.work_dir)
        self.runner = BSPRunner(
            num_partitions=config.num_partitions,
            executor=config.executor,
            workers=config.workers,
            stage_timeout=config.stage_timeout,
        )
        self.state = ControllerState.RUNNING
        self.logger = logging.getLogger(f"{__name__}.RoundController")

    # ------------------------------------------------------------------
    # One round
    # ------------------------------------------------------------------

    def run_round(self, partitions: List[List[NodeRecord]],
                  round_number: int) -> Tuple[List[List[NodeRecord]], RoundResult]:
        """
        Execute one full round without persisting anything.

        Args:
            partitions: Node records of the committed input snapshot
            round_number: Round index (part of the coin key)

        Returns:
            (next partitions, RoundResult)
        """
        start = time.time()
        nodes_in = sum(len(p) for p in partitions)

        annotated, _ = self.runner.run_stage(CompressibilityDetector(), partitions)
        compressible = sum(
            1 for part in annotated for record in part
            if record.compressible is not CompressibleStrands.NONE
        )

        breaker = SymmetryBreaker(self.flipper_factory(self.config.seed, round_number))
        marked, mark_stats = self.runner.run_stage(breaker, annotated)
        relinked, _ = self.runner.run_stage(EdgeRelinker(), marked)
        merged, merge_stats = self.runner.run_stage(ChainMerger(self.config.overlap), relinked)

        proposals = mark_stats.emitted.get('proposal', 0)
        merges = merge_stats.emitted.get('merge', 0)
        nodes_out = merge_stats.records_out
        if nodes_out != nodes_in - merges:
            raise DataIntegrityError(
                f"Round {round_number} lost nodes: {nodes_in} in, {merges} merges, {nodes_out} out"
            )

        result = RoundResult(
            round_number=round_number,
            nodes_in=nodes_in,
            nodes_out=nodes_out,
            compressible=compressible,
            proposals=proposals,
            rejected=proposals - merges,
            merges=merges,
            elapsed_sec=time.time() - start,
        )
        return merged, result

    def _run_round_with_retries(self, partitions, round_number):
        attempts = self.config.round_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                merged, result = self.run_round(partitions, round_number)
                result.attempts = attempt
                return merged, result
            except TRANSIENT_ERRORS as e:
                if attempt == attempts:
                    raise
                self.logger.warning(
                    f"Round {round_number} attempt {attempt} failed ({e}); "
                    f"recomputing from the committed snapshot"
                )

    # ------------------------------------------------------------------
    # Whole job
    # ------------------------------------------------------------------

    def load_input(self, source: Union[str, Path, Snapshot], resume: bool = False) -> Snapshot:
        """Pick the starting snapshot: the latest checkpoint when resuming, else ``source``."""
        if resume:
            latest = self.checkpoints.get_latest()
            if latest is not None:
                self.logger.info(f"Resuming from checkpoint {latest['id']} (round {latest['round']})")
                return read_snapshot(latest['path'])
            self.logger.info("No checkpoint to resume from; starting from the input snapshot")

        if isinstance(source, Snapshot):
            return source
        return read_snapshot(source)

    def run(self, source: Union[str, Path, Snapshot], resume: bool = False) -> CompressionResult:
        """
        Contract chains until a fixpoint or until the round budget runs out.

        Args:
            source: Input snapshot (path or loaded Snapshot)
            resume: Continue from the latest checkpoint in ``work_dir`` if any

        Returns:
            CompressionResult

        Raises:
            ChainWeaverError: On any fatal error (state becomes FAILED)
            ConvergenceNotReached: On budget exhaustion when ``fail_on_budget`` is set
        """
        self.state = ControllerState.RUNNING
        snapshot = self.load_input(source, resume=resume)
        result = CompressionResult(
            state=self.state,
            snapshot_path=snapshot.path,
            start_round=snapshot.manifest.round,
        )

        records = list(snapshot.records())
        partitions = split_into_partitions(records, self.config.num_partitions, key=lambda r: r.node_id)

        round_number = snapshot.manifest.round
        self.logger.info(
            f"Starting chain compression at round {round_number} with {len(records)} nodes "
            f"(seed={self.config.seed}, partitions={self.config.num_partitions}, "
            f"executor={self.config.executor})"
        )

        try:
            if self.config.validate_input:
                validate_graph(r.node for r in records)

            while True:
                if self.config.max_rounds is not None and round_number >= self.config.max_rounds:
                    last = result.rounds[-1].merges if result.rounds else 0
                    error = ConvergenceNotReached(round_number, last)
                    self.state = ControllerState.FAILED
                    result.state = self.state
                    result.error = error
                    self.logger.warning(f"{error}; last snapshot is valid but not fully compressed")
                    if self.config.fail_on_budget:
                        raise error
                    return result

                round_number += 1
                partitions, round_result = self._run_round_with_retries(partitions, round_number)

                manifest = SnapshotManifest(
                    round=round_number,
                    seed=self.config.seed,
                    overlap=self.config.overlap,
                    extra={'round_result': asdict(round_result)},
                )
                path = self.checkpoints.create(round_number, partitions, manifest)
                self.checkpoints.prune(self.config.keep_last)

                round_result.snapshot_path = str(path)
                result.rounds.append(round_result)
                result.snapshot_path = path
                self.logger.info(round_result.summary())
                if round_result.merges == 0 and round_result.compressible:
                    self.logger.info(
                        f"Round {round_number} found {round_result.compressible} compressible nodes "
                        f"but no merge; flipping again"
                    )

                if round_result.merges == 0 and round_result.compressible == 0:
                    self.state = ControllerState.CONVERGED
                    result.state = self.state
                    self.logger.info(
                        f"Converged after round {round_number}: {round_result.nodes_out} nodes, "
                        f"{result.total_merges} merges in this run"
                    )
                    return result

        except ConvergenceNotReached:
            raise
        except (ChainWeaverError, StageTimeout, *TRANSIENT_ERRORS) as e:
            self.state = ControllerState.FAILED
            result.state = self.state
            result.error = e
            self.logger.error(f"Chain compression failed in round {round_number}: {e}")
            raise


__all__ = [
    "ControllerState",
    "CompressionConfig",
    "RoundResult",
    "CompressionResult",
    "RoundController",
]
