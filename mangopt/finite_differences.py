"""Finite-difference Jacobians of vector-valued functions."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

VectorFunction = Callable[[np.ndarray], "np.typing.ArrayLike"]


def perturbed_state_vectors(x, step: float, centered: bool) -> np.ndarray:
    """Return the state vectors needed for a finite-difference Jacobian.

    Row 0 is ``x`` itself; rows 1..N step forward in each parameter in turn;
    with centered differences, rows N+1..2N step backward.
    """
    base = np.asarray(x, dtype=float)
    if base.ndim != 1 or base.size < 1:
        raise ValueError("The state vector must be one-dimensional and non-empty.")
    offsets = np.eye(base.size) * step
    rows = [base[np.newaxis, :], base + offsets]
    if centered:
        rows.append(base - offsets)
    return np.vstack(rows)


def evaluate_set(function: VectorFunction, state_vectors, n_terms: int) -> np.ndarray:
    """Evaluate ``function`` at every row of ``state_vectors``, in order.

    Returns an array of shape (number of state vectors, ``n_terms``).
    """
    if n_terms < 1:
        raise ValueError("n_terms must be at least 1.")
    vectors = np.atleast_2d(np.asarray(state_vectors, dtype=float))
    results = np.empty((vectors.shape[0], n_terms))
    for row, vector in zip(results, vectors):
        values = np.asarray(function(vector.copy()), dtype=float).reshape(-1)
        if values.size != n_terms:
            raise ValueError(
                f"The function returned {values.size} values, expected {n_terms}."
            )
        row[:] = values
    return results


def finite_difference_jacobian(
    function: VectorFunction, x, n_terms: int, step: float, centered: bool
) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(function(x), Jacobian)``, the Jacobian having shape (n_terms, N)."""
    if step == 0:
        raise ValueError("The finite-difference step size must be nonzero.")
    vectors = perturbed_state_vectors(x, step, centered)
    results = evaluate_set(function, vectors, n_terms)
    n_parameters = vectors.shape[1]
    base_case = results[0].copy()
    forward = results[1 : n_parameters + 1]
    if centered:
        backward = results[n_parameters + 1 :]
        jacobian = (forward - backward) / (2 * step)
    else:
        jacobian = (forward - base_case) / step
    return base_case, jacobian.T.copy()