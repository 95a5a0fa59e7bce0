import pytest

from levelkit.dbkeys import FileMetaData, InternalKey, ValueType
from levelkit.version import (
    GetStats,
    Options,
    Version,
    VersionEdit,
    add_boundary_inputs,
    find_file,
    find_largest_key,
    find_smallest_boundary_file,
    max_bytes_for_level,
    some_file_overlaps_range,
    total_file_size,
)


def make_files(*ranges):
    files = []
    for spec in ranges:
        smallest, largest, *seqs = spec
        smallest_seq, largest_seq = seqs if seqs else (100, 100)
        files.append(
            FileMetaData(
                number=len(files) + 1,
                smallest=InternalKey(smallest, smallest_seq, ValueType.VALUE),
                largest=InternalKey(largest, largest_seq, ValueType.VALUE),
            )
        )
    return files


def target(key):
    return InternalKey(key, 100, ValueType.VALUE).encode()


def test_find_file_empty():
    files = []
    assert find_file(files, target("foo")) == 0
    assert not some_file_overlaps_range(True, files, "a", "z")
    assert not some_file_overlaps_range(True, files, None, "z")
    assert not some_file_overlaps_range(True, files, "a", None)
    assert not some_file_overlaps_range(True, files, None, None)


def test_find_file_single():
    files = make_files(("p", "q"))
    assert find_file(files, target("a")) == 0
    assert find_file(files, target("p")) == 0
    assert find_file(files, target("p1")) == 0
    assert find_file(files, target("q")) == 0
    assert find_file(files, target("q1")) == 1
    assert find_file(files, target("z")) == 1

    assert not some_file_overlaps_range(True, files, "a", "b")
    assert not some_file_overlaps_range(True, files, "z1", "z2")
    for lo, hi in [("a", "p"), ("a", "q"), ("a", "z"), ("p", "p1"), ("p", "q"),
                   ("p", "z"), ("p1", "p2"), ("p1", "z"), ("q", "q"), ("q", "q1")]:
        assert some_file_overlaps_range(True, files, lo, hi)

    assert not some_file_overlaps_range(True, files, None, "j")
    assert not some_file_overlaps_range(True, files, "r", None)
    assert some_file_overlaps_range(True, files, None, "p")
    assert some_file_overlaps_range(True, files, None, "p1")
    assert some_file_overlaps_range(True, files, "q", None)
    assert some_file_overlaps_range(True, files, None, None)


@pytest.fixture
def multiple():
    return make_files(("150", "200"), ("200", "250"), ("300", "350"), ("400", "450"))


@pytest.mark.parametrize(
    "key,expected",
    [("100", 0), ("150", 0), ("151", 0), ("199", 0), ("200", 0), ("201", 1),
     ("249", 1), ("250", 1), ("251", 2), ("299", 2), ("300", 2), ("349", 2),
     ("350", 2), ("351", 3), ("400", 3), ("450", 3), ("451", 4)],
)
def test_find_file_multiple(multiple, key, expected):
    assert find_file(multiple, target(key)) == expected


def test_overlaps_multiple(multiple):
    assert not some_file_overlaps_range(True, multiple, "100", "149")
    assert not some_file_overlaps_range(True, multiple, "251", "299")
    assert not some_file_overlaps_range(True, multiple, "451", "500")
    assert not some_file_overlaps_range(True, multiple, "351", "399")
    for lo, hi in [("100", "150"), ("100", "200"), ("100", "300"), ("100", "400"),
                   ("100", "500"), ("375", "400"), ("450", "450"), ("450", "500")]:
        assert some_file_overlaps_range(True, multiple, lo, hi)


def test_overlaps_multiple_null_boundaries(multiple):
    assert not some_file_overlaps_range(True, multiple, None, "149")
    assert not some_file_overlaps_range(True, multiple, "451", None)
    assert some_file_overlaps_range(True, multiple, None, None)
    for hi in ["150", "199", "200", "201", "400", "800"]:
        assert some_file_overlaps_range(True, multiple, None, hi)
    for lo in ["100", "200", "449", "450"]:
        assert some_file_overlaps_range(True, multiple, lo, None)


def test_overlap_sequence_checks():
    files = make_files(("200", "200", 5000, 3000))
    assert not some_file_overlaps_range(True, files, "199", "199")
    assert not some_file_overlaps_range(True, files, "201", "300")
    assert some_file_overlaps_range(True, files, "200", "200")
    assert some_file_overlaps_range(True, files, "190", "200")
    assert some_file_overlaps_range(True, files, "200", "210")


def test_overlapping_files():
    files = make_files(("150", "600"), ("400", "500"))
    assert not some_file_overlaps_range(False, files, "100", "149")
    assert not some_file_overlaps_range(False, files, "601", "700")
    for lo, hi in [("100", "150"), ("100", "200"), ("100", "300"), ("100", "400"),
                   ("100", "500"), ("375", "400"), ("450", "450"), ("450", "500"),
                   ("450", "700"), ("600", "700")]:
        assert some_file_overlaps_range(False, files, lo, hi)


def meta(number, smallest, largest):
    return FileMetaData(number=number, smallest=smallest, largest=largest)


def ik(key, seq):
    return InternalKey(key, seq, ValueType.VALUE)


def test_boundary_empty_file_sets():
    level_files, compaction_files = [], []
    add_boundary_inputs(level_files, compaction_files)
    assert compaction_files == []
    assert level_files == []


def test_boundary_empty_level_files():
    f1 = meta(1, ik("100", 2), ik("100", 1))
    compaction_files = [f1]
    add_boundary_inputs([], compaction_files)
    assert len(compaction_files) == 1
    assert compaction_files[0] is f1


def test_boundary_empty_compaction_files():
    f1 = meta(1, ik("100", 2), ik("100", 1))
    level_files = [f1]
    compaction_files = []
    add_boundary_inputs(level_files, compaction_files)
    assert compaction_files == []
    assert len(level_files) == 1 and level_files[0] is f1


def test_boundary_no_boundary_files():
    f1 = meta(1, ik("100", 2), ik("100", 1))
    f2 = meta(1, ik("200", 2), ik("200", 1))
    f3 = meta(1, ik("300", 2), ik("300", 1))
    compaction_files = [f2, f3]
    add_boundary_inputs([f3, f2, f1], compaction_files)
    assert len(compaction_files) == 2


def test_boundary_one_boundary_file():
    f1 = meta(1, ik("100", 3), ik("100", 2))
    f2 = meta(1, ik("100", 1), ik("200", 3))
    f3 = meta(1, ik("300", 2), ik("300", 1))
    compaction_files = [f1]
    add_boundary_inputs([f3, f2, f1], compaction_files)
    assert len(compaction_files) == 2
    assert compaction_files[0] is f1
    assert compaction_files[1] is f2


def test_boundary_two_boundary_files():
    f1 = meta(1, ik("100", 6), ik("100", 5))
    f2 = meta(1, ik("100", 2), ik("300", 1))
    f3 = meta(1, ik("100", 4), ik("100", 3))
    compaction_files = [f1]
    add_boundary_inputs([f2, f3, f1], compaction_files)
    assert len(compaction_files) == 3
    assert compaction_files[0] is f1
    assert compaction_files[1] is f3
    assert compaction_files[2] is f2


def test_boundary_disjoint_file_pointers():
    f1 = meta(1, ik("100", 6), ik("100", 5))
    f2 = meta(1, ik("100", 6), ik("100", 5))
    f3 = meta(1, ik("100", 2), ik("300", 1))
    f4 = meta(1, ik("100", 4), ik("100", 3))
    compaction_files = [f1]
    add_boundary_inputs([f2, f3, f4], compaction_files)
    assert len(compaction_files) == 3
    assert compaction_files[0] is f1
    assert compaction_files[1] is f4
    assert compaction_files[2] is f3


def test_find_largest_key_and_smallest_boundary():
    f1 = meta(1, ik("a", 5), ik("c", 9))
    f2 = meta(2, ik("b", 5), ik("c", 3))
    assert find_largest_key([]) is None
    assert find_largest_key([f1, f2]) == ik("c", 3)
    f3 = meta(3, ik("c", 2), ik("d", 1))
    assert find_smallest_boundary_file([f3], ik("c", 3)) is f3
    assert find_smallest_boundary_file([f3], ik("b", 3)) is None


def test_total_file_size_and_max_bytes():
    assert total_file_size([FileMetaData(file_size=3), FileMetaData(file_size=4)]) == 7
    assert total_file_size([]) == 0
    assert max_bytes_for_level(0) == 10485760.0
    assert max_bytes_for_level(1) == 10485760.0
    assert max_bytes_for_level(3) == 1048576000.0


def test_options_limits():
    opts = Options(max_file_size=100)
    assert opts.max_grandparent_overlap_bytes == 1000
    assert opts.expanded_compaction_byte_size_limit == 2500
    assert opts.max_file_size_for_level(3) == 100


def test_version_edit_records_changes():
    edit = VersionEdit()
    edit.add_file(2, 7, 123, ik("a", 1), ik("b", 2))
    edit.remove_file(1, 5)
    edit.set_compact_pointer(3, ik("k", 4))
    level, f = edit.new_files[0]
    assert (level, f.number, f.file_size, f.smallest, f.largest) == (
        2, 7, 123, ik("a", 1), ik("b", 2))
    assert edit.deleted_files == {(1, 5)}
    assert edit.compact_pointers == [(3, ik("k", 4))]
    assert edit.log_number is None


def test_get_overlapping_inputs_level0_expands():
    v = Version()
    f1 = meta(1, ik("a", 1), ik("c", 1))
    f2 = meta(2, ik("b", 1), ik("f", 1))
    f3 = meta(3, ik("x", 1), ik("z", 1))
    v.files[0] = [f1, f2, f3]
    inputs = v.get_overlapping_inputs(0, ik("e", 1), ik("e", 1))
    assert inputs == [f1, f2]
    assert v.get_overlapping_inputs(0, None, None) == [f1, f2, f3]


def test_get_overlapping_inputs_level1_no_expansion():
    v = Version()
    f1 = meta(1, ik("a", 1), ik("c", 1))
    f2 = meta(2, ik("d", 1), ik("f", 1))
    v.files[1] = [f1, f2]
    assert v.get_overlapping_inputs(1, ik("e", 1), None) == [f2]
    assert v.get_overlapping_inputs(1, None, ik("b", 1)) == [f1]
    with pytest.raises(ValueError):
        v.get_overlapping_inputs(7, None, None)


def test_overlap_in_level():
    v = Version()
    v.files[1] = [meta(1, ik("d", 1), ik("f", 1))]
    assert v.overlap_in_level(1, b"a", b"d")
    assert not v.overlap_in_level(1, b"g", b"h")
    assert not v.overlap_in_level(2, None, None)


def test_pick_level_for_memtable_output():
    v = Version(Options(max_file_size=100))
    assert v.pick_level_for_memtable_output(b"a", b"b") == 2
    v.files[2] = [meta(1, ik("a", 1), ik("a", 1))]
    assert v.pick_level_for_memtable_output(b"a", b"b") == 1
    v.files[1] = [meta(2, ik("b", 1), ik("c", 1))]
    assert v.pick_level_for_memtable_output(b"a", b"b") == 0
    assert v.pick_level_for_memtable_output(b"x", b"y") == 2


def test_pick_level_stops_on_grandparent_overlap():
    v = Version(Options(max_file_size=100))
    big = meta(1, ik("a", 1), ik("z", 1))
    big.file_size = 2000
    v.files[2] = [big]
    assert v.pick_level_for_memtable_output(b"m", b"n") == 0


def test_pick_level_overlap_in_level0():
    v = Version()
    v.files[0] = [meta(1, ik("a", 1), ik("c", 1))]
    assert v.pick_level_for_memtable_output(b"b", b"b") == 0


def test_for_each_overlapping_newest_first():
    v = Version()
    old = meta(3, ik("a", 1), ik("m", 1))
    new = meta(9, ik("c", 1), ik("k", 1))
    other = meta(5, ik("x", 1), ik("z", 1))
    deeper = meta(2, ik("e", 1), ik("g", 1))
    v.files[0] = [old, new, other]
    v.files[1] = [deeper]
    found = list(v.for_each_overlapping(b"f", ik("f", 100)))
    assert found == [(0, new), (0, old), (1, deeper)]
    assert list(v.for_each_overlapping(b"b", ik("b", 100))) == [(0, old)]


def test_record_read_sample_and_update_stats():
    v = Version()
    old = meta(3, ik("a", 1), ik("m", 1))
    new = meta(9, ik("c", 1), ik("k", 1))
    new.allowed_seeks = 1
    v.files[0] = [old, new]
    assert v.record_read_sample(ik("f", 100).encode())
    assert v.file_to_compact is new
    assert v.file_to_compact_level == 0
    assert new.allowed_seeks == 0


def test_record_read_sample_needs_two_matches():
    v = Version()
    f = meta(3, ik("a", 1), ik("m", 1))
    v.files[0] = [f]
    assert not v.record_read_sample(ik("f", 100).encode())
    assert not v.record_read_sample(b"short")
    assert v.file_to_compact is None


def test_update_stats_without_file():
    v = Version()
    assert not v.update_stats(GetStats())
    f = FileMetaData(number=1, allowed_seeks=5)
    assert not v.update_stats(GetStats(seek_file=f, seek_file_level=2))
    assert f.allowed_seeks == 4


def test_ref_unref_releases_files():
    released = []
    v = Version(on_release=released.append)
    f = meta(1, ik("a", 1), ik("b", 1))
    f.refs = 1
    v.files[1].append(f)
    v.ref()
    v.ref()
    v.unref()
    assert f.refs == 1 and released == []
    v.unref()
    assert f.refs == 0
    assert released == [v]
    with pytest.raises(RuntimeError):
        v.unref()


def test_num_files_and_debug_string():
    v = Version()
    f = meta(17, ik("a", 1), ik("d", 2))
    f.file_size = 123
    v.files[1].append(f)
    assert v.num_files(1) == 1
    assert v.num_files(0) == 0
    text = v.debug_string()
    assert text.startswith("--- level 0 ---\n--- level 1 ---\n")
    assert " 17:123['a' @ 1 : 1 .. 'd' @ 2 : 1]\n" in text
    assert text.endswith("--- level 6 ---\n")