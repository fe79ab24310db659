"""Division of a set of processes into worker groups with group leaders."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import astuple, dataclass

COLUMNS = (
    "rank_world",
    "N_procs_world",
    "worker_group",
    "N_worker_groups",
    "rank_worker_groups",
    "N_procs_worker_groups",
    "rank_group_leaders",
    "N_procs_group_leaders",
)


class PartitionError(RuntimeError):
    """Raised when a partition is used or changed in an invalid state."""


@dataclass(frozen=True)
class ProcAssignment:
    """Where one process sits in the partition."""

    rank_world: int
    n_procs_world: int
    worker_group: int
    n_worker_groups: int
    rank_worker_groups: int
    n_procs_worker_groups: int
    rank_group_leaders: int
    n_procs_group_leaders: int

    @property
    def is_group_leader(self) -> bool:
        return self.rank_worker_groups == 0


def _check_world(n_procs_world: int, rank_world: int | None = None) -> None:
    if n_procs_world < 1:
        raise PartitionError("The number of processes must be at least 1.")
    if rank_world is not None and not 0 <= rank_world < n_procs_world:
        raise PartitionError(
            f"rank_world must lie in [0, {n_procs_world - 1}], got {rank_world}."
        )


def _assignments(group_of: Sequence[int]) -> list[ProcAssignment]:
    """Build the table for all ranks, given the worker group of each rank.

    Worker groups must be numbered in the order of their lowest rank.
    """
    n_procs_world = len(group_of)
    members: dict[int, list[int]] = {}
    for rank, group in enumerate(group_of):
        members.setdefault(group, []).append(rank)
    leaders = sorted(ranks[0] for ranks in members.values())
    leader_index = {rank: index for index, rank in enumerate(leaders)}
    n_groups = len(members)

    table = []
    for rank, group in enumerate(group_of):
        ranks = members[group]
        is_leader = rank in leader_index
        table.append(
            ProcAssignment(
                rank_world=rank,
                n_procs_world=n_procs_world,
                worker_group=group,
                n_worker_groups=n_groups,
                rank_worker_groups=ranks.index(rank),
                n_procs_worker_groups=len(ranks),
                rank_group_leaders=leader_index[rank] if is_leader else -1,
                n_procs_group_leaders=len(leaders) if is_leader else -1,
            )
        )
    return table


def _clamp_worker_groups(n_worker_groups: int, n_procs_world: int) -> int:
    if n_worker_groups > n_procs_world:
        return n_procs_world
    if n_worker_groups < 1:
        return n_procs_world
    return n_worker_groups


def partition_table(n_procs_world: int, n_worker_groups: int) -> list[ProcAssignment]:
    """Assign every process of a world to a worker group.

    A value of ``n_worker_groups`` below 1 gives one group per process, and a
    value above ``n_procs_world`` is reduced to ``n_procs_world``.
    """
    _check_world(n_procs_world)
    n_groups = _clamp_worker_groups(n_worker_groups, n_procs_world)
    return _assignments([(rank * n_groups) // n_procs_world for rank in range(n_procs_world)])


def _describe(assignment: ProcAssignment) -> str:
    a = assignment
    return (
        "Proc%5d of%5d in comm_world is in worker group%5d, has rank%5d of%5d in "
        "comm_worker_groups, and has rank%5d of%5d in comm_group_leaders."
        % (
            a.rank_world,
            a.n_procs_world,
            a.worker_group,
            a.rank_worker_groups,
            a.n_procs_worker_groups,
            a.rank_group_leaders,
            a.n_procs_group_leaders,
        )
    )


def _format_row(assignment: ProcAssignment) -> str:
    return ", ".join(
        str(value).rjust(len(column)) for column, value in zip(COLUMNS, astuple(assignment))
    )


class MpiPartition:
    """The place of one process in a world split into worker groups."""

    def __init__(self, n_worker_groups: int = -1, verbose: int = 0) -> None:
        self._n_worker_groups = n_worker_groups
        self.verbose = verbose
        self._initialized = False
        self._table: list[ProcAssignment] = []
        self._rank = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def n_worker_groups(self) -> int:
        # Readable before initialization, unlike the other properties.
        return self._n_worker_groups

    @n_worker_groups.setter
    def n_worker_groups(self, value: int) -> None:
        if self._initialized:
            raise PartitionError("n_worker_groups cannot be set after initialization.")
        self._n_worker_groups = value

    @property
    def assignment(self) -> ProcAssignment:
        if not self._initialized:
            raise PartitionError("The partition was queried before initialization.")
        return self._table[self._rank]

    @property
    def table(self) -> list[ProcAssignment]:
        """Assignments of every process in the world, in rank order."""
        self.assignment
        return list(self._table)

    @property
    def rank_world(self) -> int:
        return self.assignment.rank_world

    @property
    def n_procs_world(self) -> int:
        return self.assignment.n_procs_world

    @property
    def worker_group(self) -> int:
        return self.assignment.worker_group

    @property
    def rank_worker_groups(self) -> int:
        return self.assignment.rank_worker_groups

    @property
    def n_procs_worker_groups(self) -> int:
        return self.assignment.n_procs_worker_groups

    @property
    def rank_group_leaders(self) -> int:
        return self.assignment.rank_group_leaders

    @property
    def n_procs_group_leaders(self) -> int:
        return self.assignment.n_procs_group_leaders

    @property
    def proc0_world(self) -> bool:
        return self.assignment.rank_world == 0

    @property
    def proc0_worker_groups(self) -> bool:
        return self.assignment.rank_worker_groups == 0

    def init(self, n_procs_world: int = 1, rank_world: int = 0) -> None:
        """Split a world of ``n_procs_world`` processes into contiguous worker groups."""
        _check_world(n_procs_world, rank_world)
        self._table = partition_table(n_procs_world, self._n_worker_groups)
        self._n_worker_groups = self._table[0].n_worker_groups
        self._rank = rank_world
        self._initialized = True
        self._print()

    def set_custom(
        self, n_procs_world: int, rank_world: int, worker_group_sizes: Sequence[int]
    ) -> None:
        """Use worker groups of the given sizes, laid out over consecutive ranks."""
        _check_world(n_procs_world, rank_world)
        sizes = list(worker_group_sizes)
        if not sizes or any(size < 1 for size in sizes):
            raise PartitionError("Every worker group must hold at least one process.")
        if sum(sizes) != n_procs_world:
            raise PartitionError(
                f"Worker group sizes add up to {sum(sizes)}, not {n_procs_world}."
            )
        group_of = [group for group, size in enumerate(sizes) for _ in range(size)]
        self._table = _assignments(group_of)
        self._n_worker_groups = len(sizes)
        self._rank = rank_world
        self._initialized = True
        self._print()

    def describe(self) -> str:
        """One line saying where this process sits in the partition."""
        return _describe(self.assignment)

    def _print(self) -> None:
        if self.verbose <= 0 or not self.proc0_world:
            return
        for assignment in self._table:
            print(_describe(assignment))

    def write(self, filename) -> None:
        """Write the whole partition as a table; only the first process writes."""
        if not self.proc0_world:
            return
        with open(filename, "w", encoding="utf-8") as output:
            output.write(", ".join(COLUMNS) + "\n")
            for assignment in self._table:
                output.write(_format_row(assignment) + "\n")