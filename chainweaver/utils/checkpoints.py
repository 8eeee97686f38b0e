"""
Checkpoint management for ChainWeaver compression runs.

Every committed round leaves a snapshot directory in the checkpoint dir. The
latest one is the restart point of an interrupted job.
"""

import shutil
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

from ..io.snapshot_io import (
    MANIFEST_NAME,
    SnapshotManifest,
    read_manifest,
    write_snapshot,
)


class CheckpointManager:
    """
    Manage per-round snapshots for resumable execution.

    Features:
    - Commit a snapshot after each round
    - List available checkpoints
    - Resume from the latest checkpoint
    - Publish a checkpoint to a final output location
    - Prune old checkpoints
    """

    def __init__(self, checkpoint_dir: Path):
        """
        Initialize checkpoint manager.

        Args:
            checkpoint_dir: Directory to store checkpoints
        """
        self.checkpoint_dir = Path(checkpoint_dir)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(__name__)

    def create(self, round_number: int, partitions: List[List[Any]],
               manifest: SnapshotManifest) -> Path:
        """
        Commit the snapshot produced by a round.

        Args:
            round_number: Round that produced the snapshot
            partitions: Node records, one list per partition
            manifest: Snapshot metadata

        Returns:
            Path of the committed checkpoint
        """
        checkpoint_id = self._generate_checkpoint_id(round_number)
        path = write_snapshot(self.checkpoint_dir / checkpoint_id, partitions, manifest)
        self.logger.info(f"Checkpoint created: {checkpoint_id}")
        return path

    def list_checkpoints(self) -> List[Dict[str, Any]]:
        """
        List all committed checkpoints, oldest first.

        Returns:
            List of checkpoint metadata dictionaries
        """
        checkpoints = []

        for checkpoint_path in sorted(self.checkpoint_dir.glob("*_snapshot")):
            if checkpoint_path.is_dir() and (checkpoint_path / MANIFEST_NAME).exists():
                manifest = read_manifest(checkpoint_path)
                checkpoints.append({
                    'id': checkpoint_path.name,
                    'path': checkpoint_path,
                    **manifest.to_dict()
                })

        return checkpoints

    def get_latest(self) -> Optional[Dict[str, Any]]:
        """
        Get the most recent checkpoint.

        Returns:
            Latest checkpoint metadata, or None if no checkpoints exist
        """
        checkpoints = self.list_checkpoints()
        return checkpoints[-1] if checkpoints else None

    def restore(self, checkpoint_id: str, target_dir: Path) -> Path:
        """
        Copy a checkpoint to ``target_dir`` (replacing it).

        Args:
            checkpoint_id: ID of checkpoint to restore
            target_dir: Destination snapshot directory
        """
        checkpoint_path = self.checkpoint_dir / checkpoint_id

        if not checkpoint_path.exists():
            raise ValueError(f"Checkpoint not found: {checkpoint_id}")

        target_dir = Path(target_dir)
        staging = target_dir.parent / f".{target_dir.name}.restore"
        if staging.exists():
            shutil.rmtree(staging)
        shutil.copytree(checkpoint_path, staging)
        if target_dir.exists():
            shutil.rmtree(target_dir)
        staging.rename(target_dir)

        self.logger.info(f"Checkpoint restored: {checkpoint_id} -> {target_dir}")
        return target_dir

    def remove(self, checkpoint_id: str):
        """
        Remove a checkpoint.

        Args:
            checkpoint_id: ID of checkpoint to remove
        """
        checkpoint_path = self.checkpoint_dir / checkpoint_id

        if checkpoint_path.exists():
            shutil.rmtree(checkpoint_path)
            self.logger.debug(f"Checkpoint removed: {checkpoint_id}")

    def prune(self, keep_last: int):
        """
        Remove all but the newest ``keep_last`` checkpoints.

        Args:
            keep_last: Number of checkpoints to keep (0 keeps everything)
        """
        if keep_last <= 0:
            return
        checkpoints = self.list_checkpoints()
        for checkpoint in checkpoints[:-keep_last]:
            self.remove(checkpoint['id'])

    def _generate_checkpoint_id(self, round_number: int) -> str:
        """
        Generate the checkpoint ID of a round.

        Args:
            round_number: Round that produced the snapshot

        Returns:
            Checkpoint ID (e.g., "0003_snapshot")
        """
        return f"{round_number:04d}_snapshot"
