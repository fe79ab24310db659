"""Catalogue of the optimization algorithms known to the package."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AlgorithmInfo:
    """Static properties of one optimization algorithm."""

    name: str
    package: str
    least_squares: bool
    uses_derivatives: bool
    parallel: bool
    allows_bound_constraints: bool
    requires_bound_constraints: bool


ALGORITHMS: tuple[AlgorithmInfo, ...] = (
    AlgorithmInfo(
        name="mango_levenberg_marquardt",
        package="mango",
        least_squares=True,
        uses_derivatives=True,
        parallel=True,
        allows_bound_constraints=False,
        requires_bound_constraints=False,
    ),
)

NUM_ALGORITHMS = len(ALGORITHMS)


def get_algorithm(name: str) -> int | None:
    """Return the index of the algorithm called ``name``, or None if there is none."""
    return next(
        (index for index, info in enumerate(ALGORITHMS) if info.name == name),
        None,
    )


def does_algorithm_exist(name: str) -> bool:
    """Return whether an algorithm called ``name`` is known."""
    return get_algorithm(name) is not None