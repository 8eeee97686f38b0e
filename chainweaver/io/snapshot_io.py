#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Graph snapshot I/O for ChainWeaver.

A snapshot is an immutable, partitioned collection of node records taken at a
round boundary:

    snapshot_dir/
        manifest.json          round, seed, overlap, partition and node counts
        part-00000.jsonl.gz    one JSON node record per line
        part-00001.jsonl.gz
        ...

Snapshots are written to a temporary sibling directory and renamed into
place, so a reader never sees a half-written round.
"""

# =============================================================================
# SECTION 1: IMPORTS AND DEPENDENCIES
# =============================================================================

import gzip
import json
import logging
import os
import shutil
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, TextIO, Union

from ..graph_core.data_structures import CompressibleStrands, GraphNode, NodeRecord
from ..graph_core.errors import SnapshotFormatError

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
MANIFEST_NAME = "manifest.json"


# =============================================================================
# SECTION 2: FILE UTILITIES
# =============================================================================
# Helper functions for file handling with automatic gzip detection

def is_gzipped(filepath: Union[str, Path]) -> bool:
    """
    Check if file is gzip compressed.

    Args:
        filepath: Path to file

    Returns:
        True if file is gzipped
    """
    filepath = Path(filepath)
    return filepath.suffix in ('.gz', '.gzip')


def open_file(filepath: Union[str, Path], mode: str = 'r') -> TextIO:
    """
    Open file with automatic gzip detection.

    Args:
        filepath: Path to file
        mode: File mode ('r' or 'w')

    Returns:
        File handle
    """
    filepath = Path(filepath)

    if is_gzipped(filepath):
        if 'r' in mode:
            return gzip.open(filepath, 'rt')
        else:
            return gzip.open(filepath, 'wt')
    else:
        return open(filepath, mode)


# =============================================================================
# SECTION 3: MANIFEST
# =============================================================================

@dataclass
class SnapshotManifest:
    """Metadata stored next to the partition files of a snapshot."""
    round: int
    seed: Optional[int] = None
    overlap: int = 0
    num_partitions: int = 1
    node_count: int = 0
    format_version: int = FORMAT_VERSION
    created: str = field(default_factory=lambda: datetime.now().isoformat())
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotManifest":
        try:
            return cls(
                round=int(data["round"]),
                seed=data.get("seed"),
                overlap=int(data.get("overlap", 0)),
                num_partitions=int(data.get("num_partitions", 1)),
                node_count=int(data.get("node_count", 0)),
                format_version=int(data.get("format_version", FORMAT_VERSION)),
                created=data.get("created", ""),
                extra=dict(data.get("extra", {})),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SnapshotFormatError(f"Malformed snapshot manifest: {e}") from e


def partition_file_name(index: int) -> str:
    return f"part-{index:05d}.jsonl.gz"


# =============================================================================
# SECTION 4: RECORD I/O
# =============================================================================

def record_to_line(record: NodeRecord) -> str:
    return json.dumps(record.node.to_dict(record.compressible), separators=(",", ":"))


def record_from_line(line: str, source: str = "") -> NodeRecord:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(f"Invalid JSON in {source}: {e}") from e
    node = GraphNode.from_dict(data)
    try:
        compressible = CompressibleStrands(data.get("compressible", CompressibleStrands.NONE.value))
    except ValueError as e:
        raise SnapshotFormatError(f"Bad compressible annotation in {source}: {e}") from e
    return NodeRecord(node, compressible)


def read_records(filepath: Union[str, Path]) -> Iterator[NodeRecord]:
    """Stream node records from one JSON-lines file (optionally gzipped)."""
    filepath = Path(filepath)
    with open_file(filepath, 'r') as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            yield record_from_line(line, f"{filepath}:{line_number}")


def write_records(records: Iterable[NodeRecord], filepath: Union[str, Path]) -> int:
    """Write node records as JSON lines. Returns the number written."""
    count = 0
    with open_file(filepath, 'w') as handle:
        for record in records:
            handle.write(record_to_line(record) + "\n")
            count += 1
    return count


# =============================================================================
# SECTION 5: SNAPSHOT DIRECTORIES
# =============================================================================

def write_snapshot(path: Union[str, Path], partitions: List[List[NodeRecord]],
                   manifest: SnapshotManifest) -> Path:
    """
    Atomically write a partitioned snapshot.

    Args:
        path: Destination directory (replaced if it exists)
        partitions: Node records, one list per partition
        manifest: Metadata; counts are filled in from ``partitions``

    Returns:
        Path of the committed snapshot
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.parent / f".{path.name}.tmp-{os.getpid()}"
    if staging.exists():
        shutil.rmtree(staging)
    staging.mkdir(parents=True)

    try:
        node_count = 0
        for index, records in enumerate(partitions):
            node_count += write_records(records, staging / partition_file_name(index))

        manifest.num_partitions = len(partitions)
        manifest.node_count = node_count
        with open(staging / MANIFEST_NAME, 'w') as f:
            json.dump(manifest.to_dict(), f, indent=2)

        if path.exists():
            shutil.rmtree(path)
        os.replace(staging, path)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    logger.debug(f"Snapshot written: {path} ({node_count} nodes, {len(partitions)} partitions)")
    return path


def read_manifest(path: Union[str, Path]) -> SnapshotManifest:
    manifest_file = Path(path) / MANIFEST_NAME
    if not manifest_file.exists():
        raise SnapshotFormatError(f"No {MANIFEST_NAME} in snapshot {path}")
    try:
        with open(manifest_file, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SnapshotFormatError(f"Invalid manifest {manifest_file}: {e}") from e
    return SnapshotManifest.from_dict(data)


def read_snapshot(path: Union[str, Path]) -> "Snapshot":
    """
    Load a snapshot.

    ``path`` may be a snapshot directory or a single ``.jsonl``/``.jsonl.gz``
    file of node records (as handed over by the graph builder).
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot not found: {path}")

    if path.is_file():
        records = list(read_records(path))
        manifest = SnapshotManifest(round=0, num_partitions=1, node_count=len(records))
        return Snapshot(path=path, manifest=manifest, partitions=[records])

    manifest = read_manifest(path)
    partitions = []
    for index in range(manifest.num_partitions):
        part = path / partition_file_name(index)
        if not part.exists():
            raise SnapshotFormatError(f"Missing partition file {part}")
        partitions.append(list(read_records(part)))

    snapshot = Snapshot(path=path, manifest=manifest, partitions=partitions)
    if snapshot.node_count != manifest.node_count:
        raise SnapshotFormatError(
            f"Snapshot {path} holds {snapshot.node_count} nodes, manifest says {manifest.node_count}"
        )
    return snapshot


@dataclass
class Snapshot:
    """A loaded snapshot: manifest plus node records per partition."""
    path: Optional[Path]
    manifest: SnapshotManifest
    partitions: List[List[NodeRecord]]

    @property
    def node_count(self) -> int:
        return sum(len(p) for p in self.partitions)

    def records(self) -> Iterator[NodeRecord]:
        for partition in self.partitions:
            yield from partition

    def nodes(self) -> Iterator[GraphNode]:
        for record in self.records():
            yield record.node


# =============================================================================
# SECTION 6: FASTA EXPORT
# =============================================================================

def write_fasta(
    nodes: Iterable[GraphNode],
    filepath: Union[str, Path],
    min_length: int = 0,
    line_width: int = 80
) -> int:
    """
    Write node sequences to a FASTA file.

    Args:
        nodes: Graph nodes to write
        filepath: Output FASTA path (gzipped when ending in .gz)
        min_length: Skip nodes shorter than this
        line_width: Number of bases per line (0 = no wrapping)

    Returns:
        Number of sequences written
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open_file(filepath, 'w') as handle:
        for node in nodes:
            if node.length < min_length:
                continue

            handle.write(f">{node.node_id} len={node.length} cov={node.coverage:.2f}\n")

            if line_width > 0:
                for i in range(0, len(node.sequence), line_width):
                    handle.write(node.sequence[i:i + line_width] + '\n')
            else:
                handle.write(node.sequence + '\n')

            count += 1

    return count


__all__ = [
    "SnapshotManifest",
    "Snapshot",
    "is_gzipped",
    "open_file",
    "read_records",
    "write_records",
    "write_snapshot",
    "read_manifest",
    "read_snapshot",
    "write_fasta",
]
