"""In-memory bookkeeping of an LSM-tree store: write batches, snapshots, keys, versions and compaction planning."""

__version__ = "0.1.0"