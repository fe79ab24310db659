import pytest

from mangopt.partition import (
    COLUMNS,
    MpiPartition,
    PartitionError,
    partition_table,
)


def test_default_worker_groups_before_init():
    partition = MpiPartition()
    assert partition.n_worker_groups == -1
    assert partition.initialized is False


@pytest.mark.parametrize(
    "name,expected",
    [
        ("rank_world", 0),
        ("proc0_world", True),
        ("worker_group", 0),
        ("rank_group_leaders", 0),
        ("n_procs_world", 3),
    ],
)
def test_query_before_init_raises(name, expected):
    partition = MpiPartition()
    with pytest.raises(PartitionError):
        getattr(partition, name)
    partition.init(3, 0)
    assert getattr(partition, name) == expected


def test_describe_before_init_raises():
    with pytest.raises(PartitionError):
        MpiPartition().describe()


def test_set_worker_groups_after_init_raises():
    partition = MpiPartition(n_worker_groups=2)
    partition.init(4, 0)
    with pytest.raises(PartitionError):
        partition.n_worker_groups = 3
    assert partition.n_worker_groups == 2


@pytest.mark.parametrize("requested", [-1, 0, 9])
def test_out_of_range_worker_groups_become_one_per_process(requested):
    partition = MpiPartition(n_worker_groups=requested)
    partition.init(5, 2)
    assert partition.n_worker_groups == 5
    assert partition.n_procs_worker_groups == 1
    assert partition.proc0_worker_groups is True


@pytest.mark.parametrize("n_procs", range(1, 8))
@pytest.mark.parametrize("n_groups", range(1, 8))
def test_table_invariants(n_procs, n_groups):
    table = partition_table(n_procs, n_groups)
    expected_groups = min(n_groups, n_procs)
    assert [a.rank_world for a in table] == list(range(n_procs))
    assert all(a.n_worker_groups == expected_groups for a in table)
    groups = [a.worker_group for a in table]
    assert groups == sorted(groups)
    assert set(groups) == set(range(expected_groups))
    sizes = [groups.count(g) for g in range(expected_groups)]
    assert max(sizes) - min(sizes) <= 1
    leaders = [a for a in table if a.is_group_leader]
    assert [a.rank_group_leaders for a in leaders] == list(range(expected_groups))
    assert all(a.n_procs_group_leaders == expected_groups for a in leaders)
    for a in table:
        if not a.is_group_leader:
            assert a.rank_group_leaders == -1
            assert a.n_procs_group_leaders == -1
        assert a.n_procs_worker_groups == sizes[a.worker_group]


def test_init_matches_table_for_every_rank():
    table = partition_table(6, 4)
    for rank in range(6):
        partition = MpiPartition(n_worker_groups=4)
        partition.init(6, rank)
        assert partition.assignment == table[rank]
        assert partition.proc0_world == (rank == 0)


@pytest.mark.parametrize("rank", [-1, 3])
def test_init_rejects_bad_rank(rank):
    with pytest.raises(PartitionError):
        MpiPartition().init(3, rank)


def test_set_custom_non_leader():
    partition = MpiPartition()
    partition.set_custom(4, 2, [1, 3])
    assert partition.n_worker_groups == 2
    assert partition.worker_group == 1
    assert partition.rank_worker_groups == 1
    assert partition.n_procs_worker_groups == 3
    assert partition.rank_group_leaders == -1
    assert partition.proc0_worker_groups is False


def test_set_custom_leader():
    partition = MpiPartition()
    partition.set_custom(4, 1, [1, 3])
    assert partition.rank_group_leaders == partition.worker_group == 1
    assert partition.n_procs_group_leaders == 2


@pytest.mark.parametrize("sizes", [[1, 2], [2, 3], [], [0, 4]])
def test_set_custom_rejects_bad_sizes(sizes):
    with pytest.raises(PartitionError):
        MpiPartition().set_custom(4, 0, sizes)


def test_describe_format():
    partition = MpiPartition(n_worker_groups=2)
    partition.init(4, 1)
    text = partition.describe()
    assert text.startswith("Proc    1 of    4 in comm_world is in worker group    0")
    assert text.endswith("and has rank   -1 of   -1 in comm_group_leaders.")


def test_verbose_init_prints_every_process(capsys):
    partition = MpiPartition(n_worker_groups=2, verbose=1)
    partition.init(3, 0)
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 3
    assert lines[0] == partition.describe()


def test_write_round_trip(tmp_path):
    partition = MpiPartition(n_worker_groups=2)
    partition.init(5, 0)
    path = tmp_path / "partition.csv"
    partition.write(path)
    lines = path.read_text().splitlines()
    assert lines[0] == ", ".join(COLUMNS)
    assert len(lines) == 6
    for line, assignment in zip(lines[1:], partition.table):
        fields = line.split(", ")
        assert [len(f) for f in fields] == [len(c) for c in COLUMNS]
        values = tuple(int(f) for f in fields)
        assert values == (
            assignment.rank_world,
            assignment.n_procs_world,
            assignment.worker_group,
            assignment.n_worker_groups,
            assignment.rank_worker_groups,
            assignment.n_procs_worker_groups,
            assignment.rank_group_leaders,
            assignment.n_procs_group_leaders,
        )


def test_write_only_on_first_process(tmp_path):
    partition = MpiPartition(n_worker_groups=2)
    partition.init(5, 3)
    path = tmp_path / "partition.csv"
    partition.write(path)
    assert path.exists() is False