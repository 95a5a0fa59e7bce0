"""The set of live versions, file number allocation and compaction picking."""

from __future__ import annotations

import logging
from functools import cmp_to_key
from typing import Optional

from .compaction import Compaction
from .dbkeys import NUM_LEVELS, FileMetaData, InternalKey, compare_internal_keys
from .version import (
    Options,
    Version,
    VersionEdit,
    add_boundary_inputs,
    max_bytes_for_level,
    total_file_size,
)

__all__ = ["VersionSet"]

logger = logging.getLogger(__name__)

# Roughly one seek is allowed for every 16KB of file data.
_BYTES_PER_SEEK = 16384
_MIN_ALLOWED_SEEKS = 100


def _compare_by_smallest(a: FileMetaData, b: FileMetaData) -> int:
    result = compare_internal_keys(a.smallest, b.smallest)
    if result:
        return result
    return (a.number > b.number) - (a.number < b.number)


def _check_level(level: int) -> None:
    if not 0 <= level < NUM_LEVELS:
        raise ValueError(f"level out of range: {level}")


class _Builder:
    """Accumulates edits on top of a base version without intermediate copies."""

    def __init__(self, vset: VersionSet, base: Version) -> None:
        self._vset = vset
        self._base = base
        base.ref()
        self._deleted: list[set[int]] = [set() for _ in range(NUM_LEVELS)]
        self._added: list[dict[tuple[InternalKey, int], FileMetaData]] = [
            {} for _ in range(NUM_LEVELS)
        ]

    def __enter__(self) -> _Builder:
        return self

    def __exit__(self, *exc_info: object) -> None:
        for added in self._added:
            for f in added.values():
                f.refs -= 1
        self._added = [{} for _ in range(NUM_LEVELS)]
        self._base.unref()

    def apply(self, edit: VersionEdit) -> None:
        for level, key in edit.compact_pointers:
            self._vset.compact_pointer[level] = key
        for level, number in edit.deleted_files:
            self._deleted[level].add(number)
        for level, meta in edit.new_files:
            f = FileMetaData(
                meta.number, meta.file_size, meta.smallest, meta.largest, refs=1
            )
            f.allowed_seeks = max(_MIN_ALLOWED_SEEKS, f.file_size // _BYTES_PER_SEEK)
            self._deleted[level].discard(f.number)
            self._added[level].setdefault((f.smallest, f.number), f)

    def save_to(self, v: Version) -> None:
        for level in range(NUM_LEVELS):
            base_files = self._base.files[level]
            added = sorted(
                self._added[level].values(), key=cmp_to_key(_compare_by_smallest)
            )
            pos = 0
            for added_file in added:
                while (
                    pos < len(base_files)
                    and _compare_by_smallest(added_file, base_files[pos]) >= 0
                ):
                    self._maybe_add(v, level, base_files[pos])
                    pos += 1
                self._maybe_add(v, level, added_file)
            for f in base_files[pos:]:
                self._maybe_add(v, level, f)

    def _maybe_add(self, v: Version, level: int, f: FileMetaData) -> None:
        if f.number in self._deleted[level]:
            return
        files = v.files[level]
        if level > 0 and files and compare_internal_keys(files[-1].largest, f.smallest) >= 0:
            raise ValueError(
                "overlapping ranges in same level "
                f"{files[-1].largest.debug_string()} vs. {f.smallest.debug_string()}"
            )
        f.refs += 1
        files.append(f)


class VersionSet:
    """All live versions of the database, the newest being ``current``."""

    def __init__(self, options: Optional[Options] = None) -> None:
        self.options = options if options is not None else Options()
        self.next_file_number = 2
        self.manifest_file_number = 0
        self.last_sequence = 0
        self.log_number = 0
        self.prev_log_number = 0
        # Per-level key at which the next compaction at that level starts.
        self.compact_pointer: list[Optional[InternalKey]] = [None] * NUM_LEVELS
        self._versions: list[Version] = []
        self.current: Optional[Version] = None
        self._append_version(self._new_version())

    def _new_version(self) -> Version:
        return Version(self.options, on_release=self._forget)

    def _forget(self, version: Version) -> None:
        self._versions = [v for v in self._versions if v is not version]

    def _append_version(self, v: Version) -> None:
        if v.refs != 0:
            raise ValueError("a new version must not be referenced yet")
        if v is self.current:
            raise ValueError("version is already current")
        previous = self.current
        self.current = v
        v.ref()
        self._versions.append(v)
        if previous is not None:
            previous.unref()

    def new_file_number(self) -> int:
        """Allocate and return a new file number."""
        number = self.next_file_number
        self.next_file_number += 1
        return number

    def reuse_file_number(self, file_number: int) -> None:
        """Give back file_number unless a newer one was allocated since."""
        if self.next_file_number == file_number + 1:
            self.next_file_number = file_number

    def mark_file_number_used(self, number: int) -> None:
        if self.next_file_number <= number:
            self.next_file_number = number + 1

    def set_last_sequence(self, s: int) -> None:
        if s < self.last_sequence:
            raise ValueError("last sequence number must not decrease")
        self.last_sequence = s

    def apply(self, edit: VersionEdit) -> Version:
        """Apply edit to the current version and install the result as current."""
        if edit.log_number is not None:
            if edit.log_number < self.log_number:
                raise ValueError("log number must not decrease")
            if edit.log_number >= self.next_file_number:
                raise ValueError("log number has not been allocated")
        else:
            edit.log_number = self.log_number
        if edit.prev_log_number is None:
            edit.prev_log_number = self.prev_log_number
        edit.next_file_number = self.next_file_number
        edit.last_sequence = self.last_sequence

        v = self._new_version()
        with _Builder(self, self.current) as builder:
            builder.apply(edit)
            try:
                builder.save_to(v)
            except ValueError:
                for files in v.files:
                    for f in files:
                        f.refs -= 1
                raise
        self._finalize(v)
        self._append_version(v)
        self.log_number = edit.log_number
        self.prev_log_number = edit.prev_log_number
        return v

    def _finalize(self, v: Version) -> None:
        best_level = -1
        best_score = -1.0
        for level in range(NUM_LEVELS - 1):
            if level == 0:
                # Level 0 is bounded by file count: every read merges all of it.
                score = len(v.files[0]) / float(self.options.l0_compaction_trigger)
            else:
                score = total_file_size(v.files[level]) / max_bytes_for_level(level)
            if score > best_score:
                best_level = level
                best_score = score
        v.compaction_level = best_level
        v.compaction_score = best_score

    def num_level_files(self, level: int) -> int:
        _check_level(level)
        return len(self.current.files[level])

    def num_level_bytes(self, level: int) -> int:
        _check_level(level)
        return total_file_size(self.current.files[level])

    def level_summary(self) -> str:
        """One-line count of files per level."""
        counts = " ".join(str(len(files)) for files in self.current.files)
        return f"files[ {counts} ]"

    def needs_compaction(self) -> bool:
        v = self.current
        return v.compaction_score >= 1 or v.file_to_compact is not None

    def add_live_files(self) -> set[int]:
        """Numbers of every file referenced by any live version."""
        return {
            f.number for v in self._versions for files in v.files for f in files
        }

    def max_next_level_overlapping_bytes(self) -> int:
        """Most bytes at level+1 overlapped by any single file at level >= 1."""
        result = 0
        for level in range(1, NUM_LEVELS - 1):
            for f in self.current.files[level]:
                overlaps = self.current.get_overlapping_inputs(
                    level + 1, f.smallest, f.largest
                )
                result = max(result, total_file_size(overlaps))
        return result

    @staticmethod
    def _get_range(inputs: list[FileMetaData]) -> tuple[InternalKey, InternalKey]:
        if not inputs:
            raise ValueError("range of an empty file list")
        smallest = inputs[0].smallest
        largest = inputs[0].largest
        for f in inputs[1:]:
            if compare_internal_keys(f.smallest, smallest) < 0:
                smallest = f.smallest
            if compare_internal_keys(f.largest, largest) > 0:
                largest = f.largest
        return smallest, largest

    def pick_compaction(self) -> Optional[Compaction]:
        """Choose the next compaction, or None if nothing needs compacting."""
        current = self.current
        if current.compaction_score >= 1:
            level = current.compaction_level
            c = Compaction(level, current, self.options)
            pointer = self.compact_pointer[level]
            chosen = next(
                (
                    f
                    for f in current.files[level]
                    if pointer is None or compare_internal_keys(f.largest, pointer) > 0
                ),
                None,
            )
            # Wrap around to the beginning of the key space.
            c.inputs[0].append(chosen if chosen is not None else current.files[level][0])
        elif current.file_to_compact is not None:
            level = current.file_to_compact_level
            c = Compaction(level, current, self.options)
            c.inputs[0].append(current.file_to_compact)
        else:
            return None

        if level == 0:
            smallest, largest = self._get_range(c.inputs[0])
            c.inputs[0][:] = current.get_overlapping_inputs(0, smallest, largest)

        self._setup_other_inputs(c)
        return c

    def _setup_other_inputs(self, c: Compaction) -> None:
        level = c.level
        current = self.current

        add_boundary_inputs(current.files[level], c.inputs[0])
        smallest, largest = self._get_range(c.inputs[0])

        c.inputs[1][:] = current.get_overlapping_inputs(level + 1, smallest, largest)
        add_boundary_inputs(current.files[level + 1], c.inputs[1])

        all_start, all_limit = self._get_range(c.inputs[0] + c.inputs[1])

        # Grow the level inputs if that does not pull in more level+1 files.
        if c.inputs[1]:
            expanded0 = current.get_overlapping_inputs(level, all_start, all_limit)
            add_boundary_inputs(current.files[level], expanded0)
            inputs0_size = total_file_size(c.inputs[0])
            inputs1_size = total_file_size(c.inputs[1])
            expanded0_size = total_file_size(expanded0)
            if (
                len(expanded0) > len(c.inputs[0])
                and inputs1_size + expanded0_size
                < self.options.expanded_compaction_byte_size_limit
            ):
                new_start, new_limit = self._get_range(expanded0)
                expanded1 = current.get_overlapping_inputs(level + 1, new_start, new_limit)
                add_boundary_inputs(current.files[level + 1], expanded1)
                if len(expanded1) == len(c.inputs[1]):
                    logger.info(
                        "Expanding@%d %d+%d (%d+%d bytes) to %d+%d (%d+%d bytes)",
                        level,
                        len(c.inputs[0]),
                        len(c.inputs[1]),
                        inputs0_size,
                        inputs1_size,
                        len(expanded0),
                        len(expanded1),
                        expanded0_size,
                        inputs1_size,
                    )
                    smallest, largest = new_start, new_limit
                    c.inputs[0][:] = expanded0
                    c.inputs[1][:] = expanded1
                    all_start, all_limit = self._get_range(c.inputs[0] + c.inputs[1])

        if level + 2 < NUM_LEVELS:
            c.grandparents = current.get_overlapping_inputs(level + 2, all_start, all_limit)

        # Advance now so that a failed compaction tries a different range next.
        self.compact_pointer[level] = largest
        c.edit.set_compact_pointer(level, largest)

    def compact_range(
        self,
        level: int,
        begin: Optional[InternalKey],
        end: Optional[InternalKey],
    ) -> Optional[Compaction]:
        """Compaction of the files in level overlapping [begin, end], or None."""
        inputs = self.current.get_overlapping_inputs(level, begin, end)
        if not inputs:
            return None

        # Level-0 files may overlap, so they are never cut short.
        if level > 0:
            limit = self.options.max_file_size_for_level(level)
            total = 0
            for i, f in enumerate(inputs):
                total += f.file_size
                if total >= limit:
                    del inputs[i + 1:]
                    break

        c = Compaction(level, self.current, self.options)
        c.inputs[0][:] = inputs
        self._setup_other_inputs(c)
        return c