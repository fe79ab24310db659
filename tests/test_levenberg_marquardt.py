import itertools
import math

import numpy as np
import pytest

from mangopt.least_squares import LeastSquaresSolver
from mangopt.levenberg_marquardt import (
    LevenbergMarquardt,
    compute_lambda_grid,
    compute_lambda_increase_factor,
)
from mangopt.partition import MpiPartition
from mangopt.recorders import Recorder
from mangopt.solver import OptimizationError


def residual_function_1(x):
    return np.exp(np.arange(4) + x[0] * x[0] - np.exp(x[1]))


def make_solver(n_worker_groups=1, n_line_search=4, n_procs_world=1):
    solver = LeastSquaresSolver(
        2,
        4,
        residual_function=residual_function_1,
        state_vector=[1.2, 0.9],
        targets=1.5 + 2 * np.arange(4),
        sigmas=0.8 + 1.3 * np.arange(4),
    )
    solver.centered_differences = True
    solver.finite_difference_step_size = 1.0e-7
    solver.max_function_evaluations = 10000
    solver.n_line_search = n_line_search
    partition = MpiPartition(n_worker_groups)
    partition.init(n_procs_world, 0)
    solver.partition = partition
    solver.recorder = Recorder()
    return solver


@pytest.mark.parametrize("log_step", range(5))
def test_single_point_lambda_grid_is_one(log_step):
    grid = compute_lambda_grid(1, math.exp(log_step - 2.0))
    assert grid.shape == (1,)
    assert grid[0] == pytest.approx(1.0, rel=1e-13)


@pytest.mark.parametrize("n", range(1, 7))
def test_lambda_grid_is_centered_and_geometric(n):
    step = 37.0
    grid = compute_lambda_grid(n, step)
    assert np.prod(grid) == pytest.approx(1.0)
    ratios = grid[1:] / grid[:-1]
    assert np.allclose(ratios, step ** (1.0 / n))


def test_lambda_increase_factor_values():
    assert compute_lambda_increase_factor(1) == pytest.approx(10.0)
    factors = [compute_lambda_increase_factor(n) for n in range(1, 50)]
    assert all(a < b for a, b in zip(factors, factors[1:]))
    assert factors[-1] < 1.0e6


def test_rejects_non_positive_line_search():
    solver = make_solver(n_line_search=0)
    with pytest.raises(ValueError):
        LevenbergMarquardt(solver)


def test_requires_partition():
    solver = make_solver()
    solver.partition = None
    with pytest.raises(OptimizationError):
        LevenbergMarquardt(solver)


@pytest.mark.parametrize(
    "n_parameters,n_terms,n_line_search",
    list(itertools.product(range(1, 6), range(1, 6), range(1, 6))),
)
def test_process_lambda_grid_results(n_parameters, n_terms, n_line_search):
    rng = np.random.default_rng(1000 * n_parameters + 100 * n_terms + n_line_search)
    solver = LeastSquaresSolver(
        n_parameters,
        n_terms,
        residual_function=lambda x: np.zeros(n_terms),
        targets=rng.uniform(-10.0, 10.0, n_terms),
        sigmas=rng.uniform(0.1, 10.0, n_terms),
    )
    solver.n_line_search = n_line_search
    partition = MpiPartition(1)
    partition.init(1, 0)
    solver.partition = partition
    solver.recorder = Recorder()

    lm = LevenbergMarquardt(solver)
    lm.save_lambda_history = False
    lm.line_search_succeeded = False
    original_central_lambda = rng.uniform(-10.0, 10.0)
    lm.central_lambda = original_central_lambda
    lm.lambda_increase_factor = rng.uniform(2.0, 30.0)
    lm.objective_function = rng.uniform(0.1, 10.0)
    lm.normalized_lambda_grid = rng.uniform(-10.0, 10.0, n_line_search)
    lm.lambda_scan_residuals = rng.uniform(-10.0, 10.0, (n_terms, n_line_search))
    lm.lambda_scan_state_vectors = rng.uniform(-10.0, 10.0, (n_parameters, n_line_search))

    lm.process_lambda_grid_results()

    assert solver.function_evaluations == n_line_search

    best = solver.residuals_to_single_objective(
        lm.lambda_scan_residuals[:, lm.min_objective_function_index]
    )
    for j in range(n_line_search):
        assert solver.residuals_to_single_objective(lm.lambda_scan_residuals[:, j]) >= best

    if lm.line_search_succeeded:
        assert lm.objective_function == pytest.approx(best)
        assert lm.central_lambda == pytest.approx(
            original_central_lambda
            * lm.normalized_lambda_grid[lm.min_objective_function_index]
            / lm.lambda_reduction_on_success
        )
    else:
        assert lm.objective_function < best
        assert lm.central_lambda == pytest.approx(
            original_central_lambda * lm.lambda_increase_factor
        )


EXPECTED_SCAN_STATE_VECTORS = np.array(
    [
        [6.5966619313657804e-01, 6.2136563284770552e-01, 5.4071043403897379e-01, 4.5835619960968432e-01],
        [-1.1993276056100737e00, -1.1711321102947181e00, -1.1107753800090787e00, -1.0447504305249349e00],
    ]
)

EXPECTED_SCAN_RESIDUALS = np.array(
    [
        [1.1431215076343009e00, 1.0790483326566978e00, 9.6373805043769645e-01, 8.6789095841964070e-01],
        [3.1073264219230281e00, 2.9331574746897324e00, 2.6197116298993373e00, 2.3591722213560140e00],
        [8.4465889478040292e00, 7.9731486634579225e00, 7.1211145193581968e00, 6.4128949795174135e00],
        [2.2960209249278702e01, 2.1673265127480192e01, 1.9357196196347253e01, 1.7432055890638424e01],
    ]
)


def _scan_setup(n_worker_groups):
    solver = make_solver(n_worker_groups=n_worker_groups, n_line_search=4, n_procs_world=5)
    lm = LevenbergMarquardt(solver)
    lm.check_least_squares_solution = False
    lm.save_lambda_history = False
    lm.state_vector[:] = [0.6, -0.8]
    lm.central_lambda = 0.02
    lm.normalized_lambda_grid = np.array([0.1, 0.3, 1.0, 3.0])
    lm.jacobian = np.array([[1.1, 2.5], [3.2, 4.0], [-1.1, -2.5], [-3.2, -4.0]])
    lm.residuals_extended = np.array([0.7, 0.9, -1.2, -1.9, 0.0, 0.0])
    return solver, lm


@pytest.mark.parametrize("n_worker_groups", range(1, 6))
def test_evaluate_on_lambda_grid(n_worker_groups):
    _, lm = _scan_setup(n_worker_groups)
    lm.evaluate_on_lambda_grid()
    assert lm.lambda_scan_state_vectors == pytest.approx(EXPECTED_SCAN_STATE_VECTORS, rel=1e-6)
    assert lm.lambda_scan_residuals == pytest.approx(EXPECTED_SCAN_RESIDUALS, rel=1e-6)


@pytest.mark.parametrize("n_worker_groups", range(1, 6))
def test_line_search_succeeds_on_first_grid(n_worker_groups):
    solver, lm = _scan_setup(n_worker_groups)
    lm.objective_function = 1.0e200
    lm.line_search()
    assert lm.line_search_succeeded is True
    assert lm.state_vector[0] == pytest.approx(4.5835619960968432e-01, rel=1e-6)
    assert lm.state_vector[1] == pytest.approx(-1.0447504305249349e00, rel=1e-6)
    assert solver.state_vector[1] == pytest.approx(-1.0447504305249349e00, rel=1e-6)
    assert lm.lambda_scan_state_vectors == pytest.approx(EXPECTED_SCAN_STATE_VECTORS, rel=1e-6)
    assert lm.lambda_scan_residuals == pytest.approx(EXPECTED_SCAN_RESIDUALS, rel=1e-6)


def _solve_setup(n_worker_groups, save_history=False, output_filename=None):
    solver = make_solver(n_worker_groups=n_worker_groups, n_line_search=5, n_procs_world=5)
    if output_filename is not None:
        solver.output_filename = str(output_filename)
    lm = LevenbergMarquardt(solver)
    lm.check_least_squares_solution = True
    lm.save_lambda_history = save_history
    lm.max_outer_iterations = 1
    lm.verbose = 0
    lm.state_vector[:] = [0.0, 0.0]
    lm.central_lambda = 1.0e-2
    lm.normalized_lambda_grid = np.array([0.1, 0.3, 1.0, 3.0, 10.0])
    lm.lambda_reduction_on_success = 5.0
    return solver, lm


@pytest.mark.parametrize("n_worker_groups", range(1, 6))
def test_solve_one_outer_iteration(n_worker_groups):
    solver, lm = _solve_setup(n_worker_groups)
    lm.solve()

    assert lm.jacobian[:, 0] == pytest.approx([0.0, 0.0, 0.0, 0.0], abs=1e-10)
    assert lm.jacobian[:, 1] == pytest.approx(
        [
            -4.5984930134579383e-01,
            -4.7619047620416932e-01,
            -7.9949465544636245e-01,
            -1.5721395948669106e00,
        ],
        rel=1e-6,
    )
    assert lm.state_vector[0] == pytest.approx(0.0, abs=1e-10)
    assert lm.state_vector[1] == pytest.approx(-5.3731855765138470e-01, rel=1e-6)
    assert lm.lambda_scan_objective_functions == pytest.approx(
        [
            3.0649073234919824e00,
            3.0650616944702622e00,
            3.0656473368484627e00,
            3.0676889601937392e00,
            3.0784332659074516e00,
        ],
        rel=1e-8,
    )
    assert lm.central_lambda == pytest.approx(2.0e-4)
    assert solver.function_evaluations == 10


def test_solve_writes_lambda_history(tmp_path):
    base = tmp_path / "out"
    _, lm = _solve_setup(1, save_history=True, output_filename=base)
    lm.solve()
    assert lm.line_search_succeeded is True
    assert lm.central_lambda == pytest.approx(2.0e-4)
    lines = (tmp_path / "out_levenberg_marquardt").read_text(encoding="utf-8").splitlines()
    assert lines[0] == (
        "outer_iteration,j_line_search,lambdas(1:N_line_search),"
        "objective_functions(1:N_line_search),min_objective_function_index,"
        "line_search_succeeded"
    )
    assert len(lines) == 2
    assert lines[1].startswith("     1,  0,")
    assert lines[1].endswith("  0, 1")
    fields = lines[1].split(",")
    assert float(fields[2]) == pytest.approx(1.0e-3)
    assert float(fields[7]) == pytest.approx(3.0649073234919824e00, rel=1e-8)