"""The solver that drives an optimization of a single objective function."""

from __future__ import annotations

import math
import time
import warnings
from collections.abc import Callable
from typing import Any

import numpy as np

from .algorithms import ALGORITHMS, NUM_ALGORITHMS, AlgorithmInfo
from .finite_differences import finite_difference_jacobian
from .partition import MpiPartition
from .recorders import Recorder, StandardRecorder

ObjectiveFunction = Callable[[np.ndarray], Any]


class OptimizationError(RuntimeError):
    """Raised when an optimization cannot be set up or carried out."""


def _split_result(result: Any) -> tuple[float, bool]:
    """Accept either a plain value or a ``(value, failed)`` pair."""
    if isinstance(result, tuple):
        value, failed = result
        return float(value), bool(failed)
    return float(result), False


class Solver:
    """Holds the settings and the running state of one optimization.

    The objective function takes the state vector and returns either the
    value of the objective or a pair ``(value, failed)``.

    ``package`` is the object that carries out the actual search: it must have
    a method ``optimize(solver)``.
    """

    def __init__(
        self,
        n_parameters: int,
        objective_function: ObjectiveFunction | None = None,
        state_vector=None,
        problem: Any = None,
    ) -> None:
        if n_parameters < 1:
            raise ValueError("n_parameters must be at least 1.")
        self.n_parameters = n_parameters
        self.objective_function = objective_function
        if state_vector is None:
            self.state_vector = np.zeros(n_parameters)
        else:
            self.state_vector = np.asarray(state_vector, dtype=float)
            if self.state_vector.shape != (n_parameters,):
                raise ValueError(
                    f"The state vector must hold {n_parameters} values."
                )
        self.problem = problem

        self.verbose = 0
        self.algorithm = 0
        self.centered_differences = False
        self.finite_difference_step_size = 1.0e-7
        self.output_filename = "mango_out"
        self.max_function_evaluations = 10000
        self.max_function_and_gradient_evaluations = 10000
        self.n_line_search = 0

        self.bound_constraints_set = False
        self.lower_bounds: np.ndarray | None = None
        self.upper_bounds: np.ndarray | None = None

        self.function_evaluations = 0
        self.at_least_one_success = False
        self.best_state_vector = np.zeros(n_parameters)
        self.best_objective_function = math.nan
        self.best_function_evaluation = -1
        self.start_time = time.perf_counter()
        self.best_elapsed = 0.0

        self.package: Any = None
        self.partition: MpiPartition | None = None
        self.recorder: Recorder = StandardRecorder(self)

    # -- helpers ------------------------------------------------------------

    @property
    def algorithm_info(self) -> AlgorithmInfo:
        if not 0 <= self.algorithm < NUM_ALGORITHMS:
            raise OptimizationError(f"Unknown algorithm index {self.algorithm}.")
        return ALGORITHMS[self.algorithm]

    def _require_partition(self) -> MpiPartition:
        if self.partition is None:
            raise OptimizationError("The solver has no process partition yet.")
        return self.partition

    def _call_objective(self, x: np.ndarray) -> tuple[float, bool]:
        if self.objective_function is None:
            raise OptimizationError("No objective function was given.")
        return _split_result(self.objective_function(np.array(x, dtype=float)))

    # -- evaluations --------------------------------------------------------

    def objective_function_wrapper(self, x) -> tuple[float, bool]:
        """Evaluate the objective at ``x``, record it, and return ``(f, failed)``."""
        if self.verbose > 0:
            print("Hello from objective_function_wrapper")
        f, failed = self._call_objective(x)
        self.record_function_evaluation(x, f, failed)
        return f, failed

    def record_function_evaluation(self, x, f: float, failed: bool) -> bool:
        """Count one evaluation and track the best one; return whether it is a new optimum."""
        partition = self._require_partition()
        self.function_evaluations += 1
        elapsed = time.perf_counter() - self.start_time

        new_optimum = False
        if not failed and (not self.at_least_one_success or f < self.best_objective_function):
            new_optimum = True
            self.at_least_one_success = True
            self.best_objective_function = f
            self.best_function_evaluation = self.function_evaluations
            self.best_state_vector = np.array(x, dtype=float)
            self.best_elapsed = elapsed

        if partition.proc0_world:
            self.recorder.record_function_evaluation(
                self.function_evaluations, elapsed, x, f
            )
        return new_optimum

    def finite_difference_gradient(self, x) -> tuple[float, np.ndarray]:
        """Return ``(f(x), gradient)`` by finite differences, recording every evaluation."""

        def as_vector(vector: np.ndarray) -> list[float]:
            f, _ = self._call_objective(vector)
            self.record_function_evaluation(vector, f, False)
            return [f]

        base_case, jacobian = finite_difference_jacobian(
            as_vector,
            x,
            1,
            self.finite_difference_step_size,
            self.centered_differences,
        )
        return float(base_case[0]), jacobian[0].copy()

    # -- driving the optimization -------------------------------------------

    def init_optimization(self) -> None:
        """Reset the running state and check the settings before optimizing."""
        partition = self._require_partition()
        if not partition.proc0_worker_groups:
            raise OptimizationError(
                "optimize() should only be called by group leaders, not by all workers."
            )

        self.function_evaluations = 0
        self.at_least_one_success = False
        self.best_objective_function = math.nan
        self.best_function_evaluation = -1
        self.start_time = time.perf_counter()

        info = self.algorithm_info
        if info.requires_bound_constraints and not self.bound_constraints_set:
            raise OptimizationError(
                "An algorithm was chosen that requires bound constraints, "
                "but bound constraints were not set."
            )
        if self.bound_constraints_set and not info.allows_bound_constraints and partition.proc0_world:
            warnings.warn(
                "Bound constraints were set, but an algorithm was chosen that does not "
                "allow bound constraints. Therefore, the bound constraints will be "
                "ignored for this calculation.",
                stacklevel=2,
            )

        if info.uses_derivatives:
            divisor = 7.0 if self.centered_differences else 4.0
            self.max_function_and_gradient_evaluations = math.ceil(
                self.max_function_evaluations / divisor
            )
        else:
            self.max_function_and_gradient_evaluations = self.max_function_evaluations

        if self.verbose > 0:
            print(
                f"Proc {partition.rank_world} is entering optimize(), and thinks "
                f"proc0_world={partition.proc0_world}"
            )
            print(
                f"max_function_evaluations = {self.max_function_evaluations}, "
                "max_function_and_gradient_evaluations = "
                f"{self.max_function_and_gradient_evaluations}"
            )

        if partition.proc0_world:
            self.recorder.init()

    def optimize(self, partition: MpiPartition) -> float:
        """Run the optimization and return the best objective value found.

        Processes other than the first one of the world return NaN.
        """
        self.partition = partition
        proc0_world = partition.proc0_world
        if proc0_world and self.verbose > 0:
            print("Hello world from optimize()")

        self.init_optimization()
        info = self.algorithm_info

        if info.uses_derivatives and not proc0_world:
            return math.nan

        if info.least_squares:
            raise OptimizationError(
                "An algorithm for least-squares problems was chosen, "
                "but the problem specified is not least-squares."
            )

        if self.package is None:
            raise OptimizationError("No optimization package is available.")
        self.package.optimize(self)

        if not proc0_world:
            return math.nan

        self.state_vector[:] = self.best_state_vector
        self.recorder.finalize()

        if self.verbose > 0:
            values = ", ".join(str(value) for value in self.state_vector)
            print(f"Here comes the optimal state_vector: {values}")

        return self.best_objective_function