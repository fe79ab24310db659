"""The solver for least-squares problems."""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

import numpy as np

from .finite_differences import finite_difference_jacobian
from .partition import MpiPartition
from .recorders import LeastSquaresRecorder
from .solver import OptimizationError, Solver

ResidualFunction = Callable[[np.ndarray], Any]


def _split_residuals(result: Any, n_terms: int) -> tuple[np.ndarray, bool]:
    """Accept either the residuals alone or a ``(residuals, failed)`` pair."""
    failed = False
    if isinstance(result, tuple):
        result, failed = result
    values = np.asarray(result, dtype=float).reshape(-1)
    if values.size != n_terms:
        raise ValueError(
            f"The residual function returned {values.size} values, expected {n_terms}."
        )
    return values, bool(failed)


def _as_terms(values, n_terms: int, default: float, name: str) -> np.ndarray:
    if values is None:
        return np.full(n_terms, default)
    array = np.asarray(values, dtype=float)
    if array.shape != (n_terms,):
        raise ValueError(f"{name} must hold {n_terms} values.")
    return array


class LeastSquaresSolver(Solver):
    """A solver whose objective is the sum of squares of shifted, scaled residuals.

    The objective is ``sum(((residuals - targets) / sigmas) ** 2)``. The residual
    function takes the state vector and returns either the residuals or a pair
    ``(residuals, failed)``.
    """

    def __init__(
        self,
        n_parameters: int,
        n_terms: int,
        residual_function: ResidualFunction | None = None,
        state_vector=None,
        targets=None,
        sigmas=None,
        best_residual_function=None,
        problem: Any = None,
    ) -> None:
        if n_terms < 1:
            raise ValueError("n_terms must be at least 1.")
        super().__init__(n_parameters, None, state_vector, problem)
        self.n_terms = n_terms
        self.residual_function = residual_function
        self.targets = _as_terms(targets, n_terms, 0.0, "targets")
        self.sigmas = _as_terms(sigmas, n_terms, 1.0, "sigmas")
        self.best_residual_function = _as_terms(
            best_residual_function, n_terms, 0.0, "best_residual_function"
        )
        self.current_residuals = np.zeros(n_terms)
        self.print_residuals_in_output_file = True
        self.objective_function = self._least_squares_objective
        self.recorder = LeastSquaresRecorder(self)

    # -- objective ----------------------------------------------------------

    def residuals_to_single_objective(self, residuals) -> float:
        """Combine residuals into the total objective function."""
        terms = (np.asarray(residuals, dtype=float) - self.targets) / self.sigmas
        return float(np.dot(terms, terms))

    def _call_residuals(self, x) -> tuple[np.ndarray, bool]:
        if self.residual_function is None:
            raise OptimizationError("No residual function was given.")
        return _split_residuals(
            self.residual_function(np.array(x, dtype=float)), self.n_terms
        )

    def _least_squares_objective(self, x) -> tuple[float, bool]:
        residuals, failed = self._call_residuals(x)
        self.current_residuals = residuals
        return self.residuals_to_single_objective(residuals), failed

    # -- evaluations --------------------------------------------------------

    def residual_function_wrapper(self, x) -> tuple[np.ndarray, bool]:
        """Evaluate the residuals at ``x``, record them, and return ``(residuals, failed)``."""
        if self.verbose > 0:
            print("Hello from residual_function_wrapper")
        residuals, failed = self._call_residuals(x)
        self.record_residual_evaluation(x, residuals, failed)
        return residuals, failed

    def record_residual_evaluation(self, x, residuals, failed: bool) -> bool:
        """Record one evaluation of the residuals; return whether it is a new optimum."""
        residuals = np.asarray(residuals, dtype=float).reshape(-1)
        self.current_residuals = residuals.copy()
        f = self.residuals_to_single_objective(residuals)
        new_optimum = self.record_function_evaluation(x, f, failed)
        if new_optimum:
            self.best_residual_function[:] = residuals
        return new_optimum

    def finite_difference_jacobian(self, x) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(residuals(x), Jacobian)``, the Jacobian of shape (n_terms, n_parameters).

        Every evaluation is recorded.
        """

        def evaluate(vector: np.ndarray) -> np.ndarray:
            residuals, _ = self.residual_function_wrapper(vector)
            return residuals

        return finite_difference_jacobian(
            evaluate,
            x,
            self.n_terms,
            self.finite_difference_step_size,
            self.centered_differences,
        )

    def finite_difference_gradient(self, x) -> tuple[float, np.ndarray]:
        """Return ``(f(x), gradient)`` of the total objective from the Jacobian."""
        partition = self._require_partition()
        if self.verbose > 0:
            print(
                "Hello from finite_difference_Jacobian_to_gradient from proc "
                f"{partition.rank_world}"
            )
        if not partition.proc0_world:
            raise OptimizationError("Only proc0_world should get here!")
        base_case, jacobian = self.finite_difference_jacobian(x)
        terms = (base_case - self.targets) / self.sigmas
        objective = float(np.dot(terms, terms))
        gradient = 2.0 * (terms / self.sigmas) @ jacobian
        return objective, gradient

    # -- driving the optimization -------------------------------------------

    def optimize(self, partition: MpiPartition) -> float:
        """Run the least-squares optimization and return the best objective found.

        Processes other than the first one of the world return NaN.
        """
        self.partition = partition
        proc0_world = partition.proc0_world
        self.init_optimization()

        if self.algorithm_info.uses_derivatives and not proc0_world:
            return math.nan
        if self.package is None:
            raise OptimizationError("No optimization package is available.")
        self.package.optimize(self)

        if not proc0_world:
            return math.nan
        self.state_vector[:] = self.best_state_vector
        self.recorder.finalize()
        return self.best_objective_function