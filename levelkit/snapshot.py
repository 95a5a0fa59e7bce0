"""Snapshots held by the database, oldest first."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

__all__ = ["Snapshot", "SnapshotList"]


@dataclass(frozen=True, eq=False)
class Snapshot:
    """A consistent read point at a sequence number."""

    sequence_number: int


class SnapshotList:
    """Ordered collection of live snapshots."""

    def __init__(self) -> None:
        self._snapshots: dict[Snapshot, None] = {}

    def empty(self) -> bool:
        return not self._snapshots

    def oldest(self) -> Snapshot:
        if not self._snapshots:
            raise IndexError("snapshot list is empty")
        return next(iter(self._snapshots))

    def newest(self) -> Snapshot:
        if not self._snapshots:
            raise IndexError("snapshot list is empty")
        return next(reversed(self._snapshots))

    def new(self, sequence_number: int) -> Snapshot:
        """Create a snapshot and append it as the newest."""
        if self._snapshots and self.newest().sequence_number > sequence_number:
            raise ValueError("snapshot sequence numbers must not decrease")
        snapshot = Snapshot(sequence_number)
        self._snapshots[snapshot] = None
        return snapshot

    def delete(self, snapshot: Snapshot) -> None:
        """Remove a snapshot created by this list."""
        if snapshot not in self._snapshots:
            raise ValueError("snapshot does not belong to this list")
        self._snapshots.pop(snapshot)

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(list(self._snapshots))

    def __len__(self) -> int:
        return len(self._snapshots)