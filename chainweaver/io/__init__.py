"""
Snapshot I/O module for ChainWeaver.

Reads and writes the partitioned, per-round graph snapshots and exports
node sequences as FASTA.
"""

from .snapshot_io import (
    FORMAT_VERSION,
    MANIFEST_NAME,
    Snapshot,
    SnapshotManifest,
    read_records,
    write_records,
    read_manifest,
    read_snapshot,
    write_snapshot,
    write_fasta,
)

__all__ = [
    "FORMAT_VERSION",
    "MANIFEST_NAME",
    "Snapshot",
    "SnapshotManifest",
    "read_records",
    "write_records",
    "read_manifest",
    "read_snapshot",
    "write_snapshot",
    "write_fasta",
]
