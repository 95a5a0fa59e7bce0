# levelkit

`levelkit` holds the in-memory bookkeeping of a log-structured merge-tree
key-value store. It uses only the standard library.

## Modules

- **`levelkit.write_batch`**: `WriteBatch` collects `put` and `delete`
  operations in the store's binary batch format. The format is a 12-byte
  header, made of an 8-byte sequence number and a 4-byte count, followed by
  the tagged, length-prefixed records.
  - The header fields are exposed as the `sequence` and `count` properties.
  - `records()` yields `BatchRecord(type, key, value)` tuples.
  - `iterate(handler)` replays the operations into a `WriteBatchHandler`.
  - `append(other)` concatenates batches, and `clear()` resets a batch.
  - `contents` returns the serialized bytes, and `WriteBatch.from_contents(data)`
    rebuilds a batch from them.
  - `approximate_size()` returns the serialized length.
  - Malformed contents raise `CorruptionError`.
- **`levelkit.snapshot`**: `SnapshotList` keeps live `Snapshot`s ordered from
  oldest to newest.
  - Its methods are `new(sequence_number)`, `delete(snapshot)`, `oldest()`,
    `newest()` and `empty()`. It also supports iteration and `len()`.
  - `oldest()` and `newest()` raise `IndexError` when the list is empty.
  - `new()` raises `ValueError` if the sequence number would decrease.
- **`levelkit.dbkeys`**: the key types and their ordering.
  - `InternalKey` is a user key with a sequence number and a `ValueType`. It
    provides `encode()`, `decode()` and `debug_string()`.
  - `FileMetaData` describes one table file.
  - `compare_user_keys` compares bytewise. `compare_internal_keys` orders by
    user key ascending, then by sequence and type descending.
- **`levelkit.log_format`**: constants of the block-structured log format:
  `RecordType`, `BLOCK_SIZE` and `HEADER_SIZE`.
- **`levelkit.version`**:
  - `Version` holds the table files of each of the seven levels. It has
    reference counting (`ref`/`unref`) and overlap queries
    (`get_overlapping_inputs`, `overlap_in_level`,
    `pick_level_for_memtable_output`, `for_each_overlapping`). It also keeps
    seek statistics (`update_stats`, `record_read_sample`) and has
    `debug_string()`.
  - `VersionEdit` records added files, removed files and compaction pointers.
  - `Options` holds the size limits.
  - Helper functions: `find_file`, `some_file_overlaps_range`,
    `find_largest_key`, `find_smallest_boundary_file`, `add_boundary_inputs`,
    `total_file_size` and `max_bytes_for_level`.
- **`levelkit.compaction`**: `Compaction` holds the input files at a level and
  at the level below it.
  - `is_trivial_move()` tells whether the inputs can simply be moved down.
  - `add_input_deletions(edit)` records the inputs as removed files in an edit.
  - `is_base_level_for_key()` and `should_stop_before()` answer per-key
    questions while the compaction runs.
  - `release_inputs()` drops the reference on the input version. Leaving a
    `with` block does the same.
- **`levelkit.version_set`**: `VersionSet` tracks the live versions. It
  allocates file numbers (`new_file_number`, `reuse_file_number`,
  `mark_file_number_used`) and applies a `VersionEdit` to install a new
  current version (`apply`). It also offers:
  - per-level statistics: `num_level_files`, `num_level_bytes`,
    `level_summary`, `max_next_level_overlapping_bytes`;
  - live-file tracking: `add_live_files`;
  - compaction picking: `needs_compaction`, `pick_compaction`,
    `compact_range`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from levelkit.write_batch import WriteBatch

batch = WriteBatch()
batch.put(b"foo", b"bar")
batch.delete(b"box")
batch.sequence = 100
for record in batch.records():
    print(record)
```

```python
from levelkit.dbkeys import InternalKey, ValueType
from levelkit.version import VersionEdit
from levelkit.version_set import VersionSet

vset = VersionSet()
edit = VersionEdit()
edit.add_file(
    1,
    vset.new_file_number(),
    1000,
    InternalKey(b"a", 100, ValueType.VALUE),
    InternalKey(b"m", 100, ValueType.VALUE),
)
vset.apply(edit)
print(vset.level_summary())   # files[ 0 1 0 0 0 0 0 ]
print(vset.current.debug_string())
```

## What it does not do

`levelkit` is bookkeeping only. It is not a working key-value store, and it
provides no command-line tool.

- Nothing is written to or read from disk:
  - `VersionSet.apply` installs the new version in memory. It writes no
    manifest.
  - There is no recovery from saved state.
- There is no log reader or writer. `levelkit.log_format` only defines the
  format's constants.
- There is no memtable, no table file reading and no table cache. As a
  result:
  - a `Version` cannot look up values;
  - there are no iterators over stored data;
  - a `WriteBatch` can be replayed into a handler of your own, but not into
    a store.