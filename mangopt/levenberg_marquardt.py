"""A Levenberg-Marquardt least-squares solver that tries several damping values at once."""

from __future__ import annotations

import math
import warnings

import numpy as np

from .least_squares import LeastSquaresSolver
from .solver import OptimizationError

LAMBDA_FILE_HEADER = (
    "outer_iteration,j_line_search,lambdas(1:N_line_search),"
    "objective_functions(1:N_line_search),min_objective_function_index,"
    "line_search_succeeded"
)


def compute_lambda_increase_factor(n_line_search: int) -> float:
    """Factor by which lambda grows when a set of trial steps fails to lower the objective.

    It is 10 for a single trial step and approaches 1e6 as ``n_line_search`` grows.
    """
    max_lambda_step = 1.0e6
    min_lambda_step = 10.0
    factor = 2.0
    return math.exp(
        math.log(max_lambda_step)
        - (math.log(max_lambda_step) - math.log(min_lambda_step))
        * (1 + factor)
        / (n_line_search + factor)
    )


def compute_lambda_grid(n_line_search: int, lambda_step: float) -> np.ndarray:
    """Grid of ``n_line_search`` lambda multipliers, logarithmically centered about 1."""
    log_lambda_step = math.log(lambda_step)
    j = np.arange(n_line_search)
    return np.exp(((j + 0.5) / n_line_search - 0.5) * log_lambda_step)


def _split_residuals(result, n_terms: int) -> tuple[np.ndarray, bool]:
    failed = False
    if isinstance(result, tuple):
        result, failed = result
    values = np.asarray(result, dtype=float).reshape(-1)
    if values.size != n_terms:
        raise ValueError(
            f"The residual function returned {values.size} values, expected {n_terms}."
        )
    return values, bool(failed)


class LevenbergMarquardt:
    """Levenberg-Marquardt minimization of a least-squares objective.

    Each outer iteration computes a finite-difference Jacobian, then searches
    over a grid of damping parameters ``lambda`` for a step that lowers the
    objective. The state vector of the solver is updated in place.
    """

    def __init__(self, solver: LeastSquaresSolver) -> None:
        if solver.partition is None:
            raise OptimizationError("The solver has no process partition yet.")
        self.solver = solver

        # Solve the step a second, direct way and warn if the two disagree.
        self.check_least_squares_solution = False
        self.central_lambda = 0.01
        self.lambda_reduction_on_success = 10.0
        self.max_line_search_iterations = 4
        self.max_outer_iterations = 100000
        self.save_lambda_history = True

        self.n_parameters = solver.n_parameters
        self.n_terms = solver.n_terms
        self.verbose = solver.verbose
        self.n_line_search = solver.n_line_search
        self.proc0_world = solver.partition.proc0_world

        if self.verbose > 0:
            print(f"Hello from levenberg_marquardt. N_line_search={self.n_line_search}")
        if self.n_line_search < 1:
            raise ValueError("n_line_search must be >= 1.")

        # Shared with the solver, so updates reach the caller.
        self.state_vector = solver.state_vector
        self.targets = solver.targets
        self.sigmas = solver.sigmas

        n_terms, n_parameters, n_line_search = self.n_terms, self.n_parameters, self.n_line_search
        self.jacobian = np.zeros((n_terms, n_parameters))
        self.shifted_residuals = np.zeros(n_terms)
        self.residuals_extended = np.zeros(n_terms + n_parameters)
        self.delta_x = np.zeros(n_parameters)
        self.lambda_scan_residuals = np.zeros((n_terms, n_line_search))
        self.lambda_scan_state_vectors = np.zeros((n_parameters, n_line_search))
        self.lambda_scan_failures = np.zeros(n_line_search, dtype=bool)
        self.lambdas = np.zeros(n_line_search)
        self.lambda_scan_objective_functions = np.zeros(n_line_search)

        self.objective_function = math.nan
        self.min_objective_function = math.nan
        self.min_objective_function_index = 0
        self.line_search_succeeded = False
        self.keep_going_outer = True
        self.outer_iteration = 0
        self.j_line_search = 0

        self.lambda_increase_factor = compute_lambda_increase_factor(n_line_search)
        self.normalized_lambda_grid = compute_lambda_grid(
            n_line_search, self.lambda_increase_factor
        )
        self._lambda_file = None

        if self.verbose > 0 and self.proc0_world:
            print(f"lambda_increase_factor: {self.lambda_increase_factor}")
            print("normalized_lambda_grid: " + " ".join(map(str, self.normalized_lambda_grid)))

    # -- main driver --------------------------------------------------------

    def solve(self) -> None:
        """Run outer iterations until a line search fails or a limit is reached."""
        if not (self.save_lambda_history and self.proc0_world):
            self._outer_loop()
            return
        filename = f"{self.solver.output_filename}_levenberg_marquardt"
        try:
            handle = open(filename, "w", encoding="utf-8")
        except OSError as error:
            raise OSError(
                f"Unable to open Levenberg-Marquardt output file {filename!r}."
            ) from error
        with handle:
            handle.write(LAMBDA_FILE_HEADER + "\n")
            self._lambda_file = handle
            try:
                self._outer_loop()
            finally:
                self._lambda_file = None

    def _outer_loop(self) -> None:
        self.keep_going_outer = True
        self.outer_iteration = 0
        while self.keep_going_outer and self.outer_iteration < self.max_outer_iterations:
            self.outer_iteration += 1
            residuals, jacobian = self.solver.finite_difference_jacobian(self.state_vector)

            self.shifted_residuals = (residuals - self.targets) / self.sigmas
            self.jacobian = jacobian / self.sigmas[:, np.newaxis]
            self.objective_function = float(np.dot(self.shifted_residuals, self.shifted_residuals))
            self.residuals_extended[: self.n_terms] = self.shifted_residuals
            self.residuals_extended[self.n_terms :] = 0.0

            if self.verbose > 0 and self.proc0_world:
                print("state_vector:", self.state_vector)
                print("shifted_residuals:", self.shifted_residuals)
                print("Jacobian:")
                print(self.jacobian)

            self.line_search()
            if not self.line_search_succeeded:
                self.keep_going_outer = False
                if self.verbose > 0:
                    print("Line search failed, so exiting outer loop.")

    def line_search(self) -> None:
        """Scan lambda grids until a step lowers the objective or the attempts run out."""
        self.line_search_succeeded = False
        for self.j_line_search in range(self.max_line_search_iterations):
            self.evaluate_on_lambda_grid()
            self.process_lambda_grid_results()
            if self.line_search_succeeded or not self.keep_going_outer:
                break

    # -- one lambda scan ----------------------------------------------------

    def _evaluate_residuals(self, x: np.ndarray) -> tuple[np.ndarray, bool]:
        function = self.solver.residual_function
        if function is None:
            raise OptimizationError("No residual function was given.")
        return _split_residuals(function(np.array(x, dtype=float)), self.n_terms)

    def _check_step(self, delta_x: np.ndarray, lam: float) -> None:
        alpha = self.jacobian.T @ self.jacobian
        beta = -self.jacobian.T @ self.residuals_extended[: self.n_terms]
        alpha_prime = alpha.copy()
        np.fill_diagonal(alpha_prime, np.diag(alpha) * (1 + lam))
        delta_x_direct = np.linalg.lstsq(alpha_prime, beta, rcond=None)[0]
        difference = float(np.linalg.norm(delta_x - delta_x_direct))
        if self.verbose > 0 and self.proc0_world:
            print(f"(delta_x - delta_x_direct).norm() = {difference}")
        if difference > 1e-10:
            warnings.warn(
                "delta_x and delta_x_direct disagree.", RuntimeWarning, stacklevel=3
            )

    def evaluate_on_lambda_grid(self) -> None:
        """Take a trial step for every lambda of the grid and evaluate the residuals there."""
        self.lambda_scan_residuals = np.zeros((self.n_terms, self.n_line_search))
        self.lambda_scan_state_vectors = np.zeros((self.n_parameters, self.n_line_search))
        self.lambda_scan_failures = np.zeros(self.n_line_search, dtype=bool)
        column_norms = np.sum(self.jacobian**2, axis=0)

        for j, normalized in enumerate(self.normalized_lambda_grid):
            lam = self.central_lambda * normalized
            self.lambdas[j] = lam
            if self.verbose > 0:
                print(f"Handling j_lambda_grid={j}, lambda={lam}")

            jacobian_extended = np.vstack(
                [self.jacobian, np.diag(np.sqrt(lam * column_norms))]
            )
            self.delta_x = -np.linalg.lstsq(
                jacobian_extended, self.residuals_extended, rcond=None
            )[0]
            if self.check_least_squares_solution:
                self._check_step(self.delta_x, lam)

            tentative = self.state_vector + self.delta_x
            self.lambda_scan_state_vectors[:, j] = tentative
            residuals, failed = self._evaluate_residuals(tentative)
            self.lambda_scan_residuals[:, j] = residuals
            self.lambda_scan_failures[j] = failed

    def process_lambda_grid_results(self) -> None:
        """Record the scan, keep its best point if it improves, and update lambda."""
        if not self.proc0_world:
            return
        original_j_line_search = self.j_line_search

        for j in range(self.n_line_search):
            state = self.lambda_scan_state_vectors[:, j]
            residuals = self.lambda_scan_residuals[:, j]
            self.solver.record_residual_evaluation(
                state, residuals, bool(self.lambda_scan_failures[j])
            )
            shifted = (residuals - self.targets) / self.sigmas
            tentative = float(np.dot(shifted, shifted))
            if self.verbose > 0:
                print(f"For j_lambda_grid={j}, objective function={tentative}")
            self.lambda_scan_objective_functions[j] = tentative
            if j == 0 or tentative < self.min_objective_function:
                self.min_objective_function = tentative
                self.min_objective_function_index = j

        best = self.min_objective_function_index
        if self.verbose > 0:
            print(
                f"Best j_lambda_grid={best}, "
                f"lambda={self.central_lambda * self.normalized_lambda_grid[best]}"
            )

        if self.min_objective_function < self.objective_function:
            self.state_vector[:] = self.lambda_scan_state_vectors[:, best]
            self.objective_function = self.min_objective_function
            # Lean towards a Newton step next time.
            self.central_lambda = (
                self.central_lambda
                * self.normalized_lambda_grid[best]
                / self.lambda_reduction_on_success
            )
            self.line_search_succeeded = True
            if self.verbose > 0:
                print(f"Line search succeeded. New central lambda = {self.central_lambda}")
        else:
            # Lean towards gradient descent next time.
            self.central_lambda = self.central_lambda * self.lambda_increase_factor
            if self.verbose > 0:
                print(f"Increasing central lambda to {self.central_lambda}")

        if self.solver.function_evaluations >= self.solver.max_function_evaluations:
            self.keep_going_outer = False
            if self.verbose > 0:
                print("Maximum number of function evaluations reached.")

        if self.save_lambda_history and self._lambda_file is not None:
            fields = [f"{self.outer_iteration:6d},{original_j_line_search:3d},"]
            fields += [f"{value:24.16e}," for value in self.lambdas]
            fields += [f"{value:24.16e}," for value in self.lambda_scan_objective_functions]
            fields.append(f"{best:3d}, {int(self.line_search_succeeded)}\n")
            self._lambda_file.write("".join(fields))
            self._lambda_file.flush()