# mangopt

A small optimization framework for single objective functions and
least-squares problems, built on numpy.

## What is in the package

- `mangopt.algorithms`: the catalogue of algorithms. `ALGORITHMS` holds one
  `AlgorithmInfo` per algorithm (name, whether it is for least-squares
  problems, uses derivatives, can evaluate in parallel, allows or requires
  bound constraints). `get_algorithm(name)` returns the index of an algorithm
  or `None`; `does_algorithm_exist(name)` returns a bool. The catalogue holds
  one algorithm, `mango_levenberg_marquardt`.
- `mangopt.partition`: division of a world of processes into worker groups.
  `partition_table(n_procs_world, n_worker_groups)` returns one
  `ProcAssignment` per rank (a value below 1 means one group per process, a
  value above `n_procs_world` is reduced to it). `MpiPartition` holds the
  place of one rank: `init(n_procs_world, rank_world)` splits the world into
  contiguous groups, `set_custom(n_procs_world, rank_world,
  worker_group_sizes)` uses groups of given sizes, `describe()` returns a
  one-line summary, and `write(filename)` writes the whole table (only on
  rank 0). Querying a partition before initialization raises
  `PartitionError`, as does changing `n_worker_groups` after it.
- `mangopt.finite_differences`: `perturbed_state_vectors(x, step, centered)`,
  `evaluate_set(function, state_vectors, n_terms)` and
  `finite_difference_jacobian(function, x, n_terms, step, centered)`, which
  returns `(function(x), Jacobian)` with the Jacobian of shape
  `(n_terms, len(x))`, one-sided or centered.
- `mangopt.recorders`: `StandardRecorder` and `LeastSquaresRecorder` write a
  history file with a header, one line per function evaluation, and a copy
  of the best line at the end. The least-squares recorder can also list the
  residuals. `Recorder` records nothing.
- `mangopt.solver`: `Solver` holds settings and running state, counts
  evaluations, tracks the best one, computes finite-difference gradients and
  runs `optimize(partition)`. Errors are raised as `OptimizationError`.
- `mangopt.least_squares`: `LeastSquaresSolver`, whose objective is
  `sum(((residuals - targets) / sigmas) ** 2)`.
- `mangopt.problem`: `Problem` and `LeastSquaresProblem`, the objects a user
  configures (`set_algorithm`, `set_bound_constraints`,
  `set_relative_bound_constraints`, properties such as
  `centered_differences`, `finite_difference_step_size`,
  `max_function_evaluations`, `output_filename`, `n_line_search`, `package`)
  and then runs with `mpi_init(n_procs_world, rank_world)` and `optimize()`.
- `mangopt.levenberg_marquardt`: `LevenbergMarquardt`, which computes a
  finite-difference Jacobian and then tries a grid of damping values
  `lambda` at each step, plus `compute_lambda_increase_factor(n)` and
  `compute_lambda_grid(n, step)`.

Objective and residual functions take the state vector as a numpy array and
return either the value(s) alone or a pair `(value, failed)`.

## Installation

```
pip install .
```

## Example

A solver hands the search over to its `package`, any object with a method
`optimize(solver)`. To run Levenberg-Marquardt, pass one that calls it:

```python
import numpy as np
from mangopt.levenberg_marquardt import LevenbergMarquardt
from mangopt.problem import LeastSquaresProblem


def residuals(x):
    return np.array([np.exp(j + x[0] ** 2 - np.exp(x[1])) for j in range(4)])


class LevenbergMarquardtPackage:
    def optimize(self, solver):
        LevenbergMarquardt(solver).solve()


problem = LeastSquaresProblem(
    n_parameters=2,
    state_vector=np.array([1.2, 0.9]),
    n_terms=4,
    targets=np.array([1.5, 3.5, 5.5, 7.5]),
    sigmas=np.array([0.8, 2.1, 3.4, 4.7]),
    residual_function=residuals,
)
problem.set_algorithm("mango_levenberg_marquardt")
problem.package = LevenbergMarquardtPackage()
problem.mpi_init(1, 0)
best = problem.optimize()
```

After `optimize()` the state vector holds the best point found. The file
named by `output_filename` (by default `mango_out`) holds one line per
evaluation followed by the best one, and `mango_out_levenberg_marquardt`
holds the history of each lambda scan.

## What the package does not do

- It does not start or talk to other processes. A partition only works out
  which rank belongs to which worker group; every function evaluation runs
  in the calling process, and ranks other than 0 simply return NaN from
  `optimize()`.
- Only one algorithm is catalogued. `Problem.optimize()` needs a `package`
  object to be set, and the package provides none for single-objective
  problems.
- There is no command-line tool; the package is used as a library.

## Tests

```
pip install .[test]
pytest
```