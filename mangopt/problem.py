"""The public face of an optimization problem."""

from __future__ import annotations

import warnings
from typing import Any

import numpy as np

from .algorithms import ALGORITHMS, NUM_ALGORITHMS, get_algorithm
from .least_squares import LeastSquaresSolver
from .partition import MpiPartition
from .solver import Solver


class Problem:
    """An optimization problem with a single objective function."""

    def __init__(self, n_parameters: int, state_vector=None, objective_function=None) -> None:
        self._setup(Solver(n_parameters, objective_function, state_vector, problem=self))

    def _setup(self, solver: Solver) -> None:
        self.solver = solver
        self.partition = MpiPartition()

    # -- settings and results -----------------------------------------------

    @property
    def n_parameters(self) -> int:
        return self.solver.n_parameters

    @property
    def state_vector(self) -> np.ndarray:
        return self.solver.state_vector

    @property
    def best_function_evaluation(self) -> int:
        return self.solver.best_function_evaluation

    @property
    def function_evaluations(self) -> int:
        return self.solver.function_evaluations

    @property
    def centered_differences(self) -> bool:
        return self.solver.centered_differences

    @centered_differences.setter
    def centered_differences(self, value: bool) -> None:
        self.solver.centered_differences = bool(value)

    @property
    def finite_difference_step_size(self) -> float:
        return self.solver.finite_difference_step_size

    @finite_difference_step_size.setter
    def finite_difference_step_size(self, value: float) -> None:
        self.solver.finite_difference_step_size = float(value)

    @property
    def max_function_evaluations(self) -> int:
        return self.solver.max_function_evaluations

    @max_function_evaluations.setter
    def max_function_evaluations(self, value: int) -> None:
        if value < 1:
            raise ValueError("max_function_evaluations must be >= 1.")
        self.solver.max_function_evaluations = value

    @property
    def verbose(self) -> int:
        return self.solver.verbose

    @verbose.setter
    def verbose(self, value: int) -> None:
        self.solver.verbose = value

    @property
    def output_filename(self) -> str:
        return self.solver.output_filename

    @output_filename.setter
    def output_filename(self, value) -> None:
        self.solver.output_filename = str(value)

    @property
    def n_line_search(self) -> int:
        return self.solver.n_line_search

    @n_line_search.setter
    def n_line_search(self, value: int) -> None:
        self.solver.n_line_search = value

    @property
    def package(self) -> Any:
        return self.solver.package

    @package.setter
    def package(self, value: Any) -> None:
        self.solver.package = value

    @property
    def lower_bounds(self) -> np.ndarray | None:
        return self.solver.lower_bounds

    @property
    def upper_bounds(self) -> np.ndarray | None:
        return self.solver.upper_bounds

    # -- constraints --------------------------------------------------------

    def set_bound_constraints(self, lower_bounds, upper_bounds) -> None:
        """Set lower and upper bounds; float arrays passed in are used in place."""
        shape = (self.n_parameters,)
        lower = np.asarray(lower_bounds, dtype=float)
        upper = np.asarray(upper_bounds, dtype=float)
        if lower.shape != shape or upper.shape != shape:
            raise ValueError(f"Bounds must hold {self.n_parameters} values each.")
        self.solver.lower_bounds = lower
        self.solver.upper_bounds = upper
        self.solver.bound_constraints_set = True

    def set_relative_bound_constraints(
        self, min_factor: float, max_factor: float, min_radius: float, preserve_sign: bool
    ) -> None:
        """Reset the bounds around the current state vector."""
        if min_factor < 0:
            raise ValueError("min_factor must be >= 0.")
        if min_factor > 1:
            raise ValueError("min_factor must be <= 1.")
        if max_factor < 1:
            raise ValueError("max_factor must be >= 1.")
        if min_radius < 0:
            raise ValueError("min_radius must be >= 0.")
        solver = self.solver
        if not solver.bound_constraints_set:
            raise ValueError(
                "Relative bound constraints can only be set after bound constraints are set."
            )
        lower, upper = solver.lower_bounds, solver.upper_bounds
        assert lower is not None and upper is not None

        for j, x in enumerate(solver.state_vector):
            if not preserve_sign:
                radius = max(max_factor * abs(x), min_radius)
                lower[j], upper[j] = -radius, radius
            elif x > 0:
                lb, ub = min_factor * x, max_factor * x
                if ub - x < min_radius:
                    ub = x + min_radius
                if x - lb < min_radius:
                    lb = x - min_radius
                lower[j], upper[j] = max(lb, 0.0), ub
            elif x < 0:
                lb, ub = max_factor * x, min_factor * x
                if ub - x < min_radius:
                    ub = x + min_radius
                if x - lb < min_radius:
                    lb = x - min_radius
                lower[j], upper[j] = lb, min(ub, 0.0)
            else:
                lower[j], upper[j] = -min_radius, min_radius

    # -- algorithm and running ----------------------------------------------

    def set_algorithm(self, algorithm) -> None:
        """Choose the algorithm by index or by name."""
        if isinstance(algorithm, str):
            index = get_algorithm(algorithm)
            if index is None:
                raise ValueError(f"The requested algorithm name was not found: {algorithm}")
            how = "string"
        else:
            index = int(algorithm)
            if index < 0:
                raise ValueError("Algorithm cannot be negative.")
            if index >= NUM_ALGORITHMS:
                raise ValueError("Algorithm is too large.")
            how = "integer"
        self.solver.algorithm = index
        if self.verbose > 0:
            print(f"Algorithm set (by {how}) to {index}, a.k.a. {ALGORITHMS[index].name}")

    def mpi_init(self, n_procs_world: int = 1, rank_world: int = 0) -> None:
        """Partition the world, using one worker group if the algorithm is serial."""
        algorithm = self.solver.algorithm
        if algorithm < 0:
            raise ValueError("Algorithm cannot be negative.")
        if algorithm >= NUM_ALGORITHMS:
            raise ValueError("Algorithm is too large.")

        self.partition.verbose = self.verbose
        if ALGORITHMS[algorithm].parallel:
            if n_procs_world > 1 and self.partition.n_worker_groups == 1 and rank_world == 0:
                warnings.warn(
                    "You have chosen an algorithm that can exploit concurrent function "
                    "evaluations but you have set N_worker_groups=1. "
                    "You probably want a larger value.",
                    stacklevel=2,
                )
        else:
            self.partition.n_worker_groups = 1
        self.partition.init(n_procs_world, rank_world)

    def optimize(self) -> float:
        """Run the optimization and return the best objective value."""
        if self.solver.n_line_search <= 0:
            self.solver.n_line_search = self.partition.n_worker_groups
        return self.solver.optimize(self.partition)


class LeastSquaresProblem(Problem):
    """A problem whose objective is a sum of squares of residuals."""

    def __init__(
        self,
        n_parameters: int,
        state_vector,
        n_terms: int,
        targets,
        sigmas,
        residual_function,
        best_residual_function=None,
    ) -> None:
        self.least_squares_solver = LeastSquaresSolver(
            n_parameters,
            n_terms,
            residual_function=residual_function,
            state_vector=state_vector,
            targets=targets,
            sigmas=sigmas,
            best_residual_function=best_residual_function,
            problem=self,
        )
        self._setup(self.least_squares_solver)

    @property
    def n_terms(self) -> int:
        return self.least_squares_solver.n_terms

    @property
    def best_residual_function(self) -> np.ndarray:
        return self.least_squares_solver.best_residual_function

    @property
    def print_residuals_in_output_file(self) -> bool:
        return self.least_squares_solver.print_residuals_in_output_file

    @print_residuals_in_output_file.setter
    def print_residuals_in_output_file(self, value: bool) -> None:
        self.least_squares_solver.print_residuals_in_output_file = bool(value)