"""Per-level table file sets and the lookups that run over them."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Optional, Union

from .dbkeys import (
    MAX_SEQUENCE_NUMBER,
    NUM_LEVELS,
    VALUE_TYPE_FOR_SEEK,
    FileMetaData,
    InternalKey,
    ValueType,
    compare_internal_keys,
    compare_user_keys,
)

__all__ = [
    "Options",
    "GetStats",
    "VersionEdit",
    "Version",
    "total_file_size",
    "max_bytes_for_level",
    "find_file",
    "some_file_overlaps_range",
    "find_largest_key",
    "find_smallest_boundary_file",
    "add_boundary_inputs",
]

UserKey = Union[bytes, bytearray, str]
InternalKeyLike = Union[InternalKey, bytes, bytearray]


def _user_key(key: Optional[UserKey]) -> Optional[bytes]:
    if key is None:
        return None
    if isinstance(key, str):
        return key.encode()
    return bytes(key)


@dataclass(frozen=True)
class Options:
    """Tuning parameters that shape level sizes and compactions."""

    max_file_size: int = 2 * 1024 * 1024
    reuse_logs: bool = False
    paranoid_checks: bool = False
    l0_compaction_trigger: int = 4
    max_mem_compact_level: int = 2

    @property
    def max_grandparent_overlap_bytes(self) -> int:
        """Grandparent overlap at which one compaction output file is cut."""
        return 10 * self.max_file_size

    @property
    def expanded_compaction_byte_size_limit(self) -> int:
        """Upper bound on the bytes an expanded compaction may cover."""
        return 25 * self.max_file_size

    def max_file_size_for_level(self, level: int) -> int:
        return self.max_file_size


@dataclass
class GetStats:
    """The file charged for an extra seek during a read."""

    seek_file: Optional[FileMetaData] = None
    seek_file_level: int = -1


@dataclass
class VersionEdit:
    """A set of changes that turns one version into the next."""

    comparator: Optional[str] = None
    log_number: Optional[int] = None
    prev_log_number: Optional[int] = None
    next_file_number: Optional[int] = None
    last_sequence: Optional[int] = None
    compact_pointers: list[tuple[int, InternalKey]] = field(default_factory=list)
    deleted_files: set[tuple[int, int]] = field(default_factory=set)
    new_files: list[tuple[int, FileMetaData]] = field(default_factory=list)

    def set_compact_pointer(self, level: int, key: InternalKey) -> None:
        self.compact_pointers.append((level, key))

    def remove_file(self, level: int, number: int) -> None:
        """Record that file number is removed from level."""
        self.deleted_files.add((level, number))

    def add_file(
        self,
        level: int,
        number: int,
        file_size: int,
        smallest: InternalKey,
        largest: InternalKey,
    ) -> None:
        """Record that a file with the given key range joins level."""
        self.new_files.append(
            (level, FileMetaData(number, file_size, smallest, largest))
        )


def total_file_size(files: Sequence[FileMetaData]) -> int:
    return sum(f.file_size for f in files)


def max_bytes_for_level(level: int) -> float:
    """Byte budget of a level; levels 0 and 1 share the same value."""
    result = 10.0 * 1048576.0
    while level > 1:
        result *= 10
        level -= 1
    return result


def find_file(files: Sequence[FileMetaData], key: InternalKeyLike) -> int:
    """Smallest index whose largest key is >= key, or len(files)."""
    left, right = 0, len(files)
    while left < right:
        mid = (left + right) // 2
        if compare_internal_keys(files[mid].largest, key) < 0:
            left = mid + 1
        else:
            right = mid
    return right


def _after_file(user_key: Optional[bytes], f: FileMetaData) -> bool:
    return user_key is not None and compare_user_keys(user_key, f.largest.user_key) > 0


def _before_file(user_key: Optional[bytes], f: FileMetaData) -> bool:
    return user_key is not None and compare_user_keys(user_key, f.smallest.user_key) < 0


def some_file_overlaps_range(
    disjoint_sorted_files: bool,
    files: Sequence[FileMetaData],
    smallest_user_key: Optional[UserKey],
    largest_user_key: Optional[UserKey],
) -> bool:
    """Whether any file overlaps [smallest, largest]; None means unbounded."""
    small = _user_key(smallest_user_key)
    large = _user_key(largest_user_key)
    if not disjoint_sorted_files:
        return any(
            not (_after_file(small, f) or _before_file(large, f)) for f in files
        )
    index = 0
    if small is not None:
        index = find_file(
            files, InternalKey(small, MAX_SEQUENCE_NUMBER, VALUE_TYPE_FOR_SEEK)
        )
    if index >= len(files):
        return False
    return not _before_file(large, files[index])


def find_largest_key(files: Sequence[FileMetaData]) -> Optional[InternalKey]:
    """Largest internal key among files, or None if there are none."""
    largest: Optional[InternalKey] = None
    for f in files:
        if largest is None or compare_internal_keys(f.largest, largest) > 0:
            largest = f.largest
    return largest


def find_smallest_boundary_file(
    level_files: Sequence[FileMetaData], largest_key: InternalKey
) -> Optional[FileMetaData]:
    """Smallest file whose smallest key is past largest_key with the same user key."""
    best: Optional[FileMetaData] = None
    for f in level_files:
        if (
            compare_internal_keys(f.smallest, largest_key) > 0
            and compare_user_keys(f.smallest.user_key, largest_key.user_key) == 0
        ):
            if best is None or compare_internal_keys(f.smallest, best.smallest) < 0:
                best = f
    return best


def add_boundary_inputs(
    level_files: Sequence[FileMetaData], compaction_files: list[FileMetaData]
) -> None:
    """Extend compaction_files in place with files sharing its boundary user key."""
    largest_key = find_largest_key(compaction_files)
    if largest_key is None:
        return
    while True:
        boundary = find_smallest_boundary_file(level_files, largest_key)
        if boundary is None:
            return
        compaction_files.append(boundary)
        largest_key = boundary.largest


class Version:
    """An immutable-by-convention snapshot of the table files in each level."""

    def __init__(
        self,
        options: Optional[Options] = None,
        on_release: Optional[Callable[[Version], None]] = None,
    ) -> None:
        self.options = options if options is not None else Options()
        self.files: list[list[FileMetaData]] = [[] for _ in range(NUM_LEVELS)]
        self.refs = 0
        self.file_to_compact: Optional[FileMetaData] = None
        self.file_to_compact_level = -1
        self.compaction_score = -1.0
        self.compaction_level = -1
        self._on_release = on_release

    def ref(self) -> None:
        self.refs += 1

    def unref(self) -> None:
        """Drop a reference; the last one releases the version's files."""
        if self.refs < 1:
            raise RuntimeError("unref of a version with no references")
        self.refs -= 1
        if self.refs == 0:
            for level_files in self.files:
                for f in level_files:
                    f.refs -= 1
            if self._on_release is not None:
                self._on_release(self)

    def num_files(self, level: int) -> int:
        return len(self.files[level])

    def get_overlapping_inputs(
        self,
        level: int,
        begin: Optional[InternalKey],
        end: Optional[InternalKey],
    ) -> list[FileMetaData]:
        """Files in level overlapping [begin, end]; None means unbounded."""
        if not 0 <= level < NUM_LEVELS:
            raise ValueError(f"level out of range: {level}")
        user_begin = begin.user_key if begin is not None else None
        user_end = end.user_key if end is not None else None
        files = self.files[level]
        while True:
            inputs: list[FileMetaData] = []
            for f in files:
                file_start = f.smallest.user_key
                file_limit = f.largest.user_key
                if user_begin is not None and compare_user_keys(file_limit, user_begin) < 0:
                    continue
                if user_end is not None and compare_user_keys(file_start, user_end) > 0:
                    continue
                inputs.append(f)
                if level == 0:
                    # Level-0 files may overlap; a widened range restarts the scan.
                    if user_begin is not None and compare_user_keys(file_start, user_begin) < 0:
                        user_begin = file_start
                        break
                    if user_end is not None and compare_user_keys(file_limit, user_end) > 0:
                        user_end = file_limit
                        break
            else:
                return inputs

    def overlap_in_level(
        self,
        level: int,
        smallest_user_key: Optional[UserKey],
        largest_user_key: Optional[UserKey],
    ) -> bool:
        return some_file_overlaps_range(
            level > 0, self.files[level], smallest_user_key, largest_user_key
        )

    def pick_level_for_memtable_output(
        self, smallest_user_key: UserKey, largest_user_key: UserKey
    ) -> int:
        """Level where a flushed memtable covering the range should go."""
        small = _user_key(smallest_user_key)
        large = _user_key(largest_user_key)
        level = 0
        if self.overlap_in_level(0, small, large):
            return level
        start = InternalKey(small, MAX_SEQUENCE_NUMBER, VALUE_TYPE_FOR_SEEK)
        limit = InternalKey(large, 0, ValueType.DELETION)
        while level < self.options.max_mem_compact_level:
            if self.overlap_in_level(level + 1, small, large):
                break
            if level + 2 < NUM_LEVELS:
                overlaps = self.get_overlapping_inputs(level + 2, start, limit)
                if total_file_size(overlaps) > self.options.max_grandparent_overlap_bytes:
                    break
            level += 1
        return level

    def for_each_overlapping(
        self, user_key: UserKey, internal_key: InternalKeyLike
    ) -> Iterator[tuple[int, FileMetaData]]:
        """Yield (level, file) for files that may hold user_key, newest first."""
        key = _user_key(user_key)
        level0 = [
            f
            for f in self.files[0]
            if compare_user_keys(key, f.smallest.user_key) >= 0
            and compare_user_keys(key, f.largest.user_key) <= 0
        ]
        level0.sort(key=lambda f: f.number, reverse=True)
        for f in level0:
            yield 0, f
        for level in range(1, NUM_LEVELS):
            files = self.files[level]
            if not files:
                continue
            index = find_file(files, internal_key)
            if index < len(files):
                f = files[index]
                if compare_user_keys(key, f.smallest.user_key) >= 0:
                    yield level, f

    def update_stats(self, stats: GetStats) -> bool:
        """Charge a seek to stats.seek_file; True if a compaction may be due."""
        f = stats.seek_file
        if f is not None:
            f.allowed_seeks -= 1
            if f.allowed_seeks <= 0 and self.file_to_compact is None:
                self.file_to_compact = f
                self.file_to_compact_level = stats.seek_file_level
                return True
        return False

    def record_read_sample(self, internal_key: InternalKeyLike) -> bool:
        """Charge a sampled read; True if a compaction may be due."""
        if isinstance(internal_key, InternalKey):
            parsed = internal_key
        else:
            try:
                parsed = InternalKey.decode(internal_key)
            except ValueError:
                return False
        stats = GetStats()
        matches = 0
        for level, f in self.for_each_overlapping(parsed.user_key, internal_key):
            matches += 1
            if matches == 1:
                stats.seek_file = f
                stats.seek_file_level = level
            else:
                break
        if matches >= 2:
            return self.update_stats(stats)
        return False

    def debug_string(self) -> str:
        lines = []
        for level, files in enumerate(self.files):
            lines.append(f"--- level {level} ---\n")
            lines.extend(
                f" {f.number}:{f.file_size}"
                f"[{f.smallest.debug_string()} .. {f.largest.debug_string()}]\n"
                for f in files
            )
        return "".join(lines)