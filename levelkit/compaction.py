"""Description of one compaction and the per-key decisions made while it runs."""

from __future__ import annotations

from typing import Optional, Union

from .dbkeys import NUM_LEVELS, FileMetaData, InternalKey, compare_internal_keys, compare_user_keys
from .version import Options, Version, VersionEdit, total_file_size

__all__ = ["Compaction"]

UserKey = Union[bytes, bytearray, str]
InternalKeyLike = Union[InternalKey, bytes, bytearray]


class Compaction:
    """Inputs from ``level`` and ``level + 1`` merged into new ``level + 1`` files.

    The compaction holds a reference on its input version until
    :meth:`release_inputs` is called, either directly or by leaving a
    ``with`` block.
    """

    def __init__(
        self,
        level: int,
        input_version: Optional[Version] = None,
        options: Optional[Options] = None,
    ) -> None:
        if not 0 <= level < NUM_LEVELS - 1:
            raise ValueError(f"compaction level out of range: {level}")
        if options is None:
            options = input_version.options if input_version is not None else Options()
        self.level = level
        self.options = options
        self.max_output_file_size = options.max_file_size_for_level(level)
        self.input_version = input_version
        if input_version is not None:
            input_version.ref()
        self.edit = VersionEdit()
        self.inputs: tuple[list[FileMetaData], list[FileMetaData]] = ([], [])
        self.grandparents: list[FileMetaData] = []
        self._grandparent_index = 0
        self._seen_key = False
        self._overlapped_bytes = 0
        self._level_ptrs = [0] * NUM_LEVELS

    def __enter__(self) -> Compaction:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release_inputs()

    def num_input_files(self, which: int) -> int:
        """Number of input files at ``level + which``; which is 0 or 1."""
        return len(self.inputs[which])

    def input(self, which: int, i: int) -> FileMetaData:
        """The i-th input file at ``level + which``."""
        return self.inputs[which][i]

    def is_trivial_move(self) -> bool:
        """Whether the single input file can simply move down one level."""
        return (
            self.num_input_files(0) == 1
            and self.num_input_files(1) == 0
            and total_file_size(self.grandparents)
            <= self.options.max_grandparent_overlap_bytes
        )

    def add_input_deletions(self, edit: VersionEdit) -> None:
        """Record every input file as removed in ``edit``."""
        for which, files in enumerate(self.inputs):
            for f in files:
                edit.remove_file(self.level + which, f.number)

    def is_base_level_for_key(self, user_key: UserKey) -> bool:
        """True if no level below ``level + 1`` can hold data for user_key.

        Keys must be passed in ascending order across calls.
        """
        if self.input_version is None:
            raise RuntimeError("compaction inputs have been released")
        key = user_key.encode() if isinstance(user_key, str) else bytes(user_key)
        for lvl in range(self.level + 2, NUM_LEVELS):
            files = self.input_version.files[lvl]
            while self._level_ptrs[lvl] < len(files):
                f = files[self._level_ptrs[lvl]]
                if compare_user_keys(key, f.largest.user_key) <= 0:
                    if compare_user_keys(key, f.smallest.user_key) >= 0:
                        return False
                    break
                self._level_ptrs[lvl] += 1
        return True

    def should_stop_before(self, internal_key: InternalKeyLike) -> bool:
        """True if the current output file should end before internal_key."""
        while self._grandparent_index < len(self.grandparents) and (
            compare_internal_keys(
                internal_key, self.grandparents[self._grandparent_index].largest
            )
            > 0
        ):
            if self._seen_key:
                self._overlapped_bytes += self.grandparents[self._grandparent_index].file_size
            self._grandparent_index += 1
        self._seen_key = True

        if self._overlapped_bytes > self.options.max_grandparent_overlap_bytes:
            self._overlapped_bytes = 0
            return True
        return False

    def release_inputs(self) -> None:
        """Drop the reference on the input version; safe to call twice."""
        if self.input_version is not None:
            self.input_version.unref()
            self.input_version = None