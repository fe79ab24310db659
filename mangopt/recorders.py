"""Writers for the history file that records every function evaluation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import IO


class Recorder:
    """A recorder that records nothing."""

    def init(self) -> None:
        """Prepare for recording."""

    def record_function_evaluation(self, function_evaluations, elapsed, x, f) -> None:
        """Record one evaluation of the objective function."""

    def finalize(self) -> None:
        """Finish recording."""


def _scientific(value: float) -> str:
    return f"{value:24.16e}"


class _FileRecorder(Recorder):
    """Writes a CSV-like history file on the first process of the world.

    The solver handed in must provide ``partition`` (with ``proc0_world``),
    ``output_filename``, ``n_parameters``, ``state_vector``,
    ``best_function_evaluation``, ``best_elapsed`` (seconds) and
    ``best_objective_function``.
    """

    recorder_type = ""

    def __init__(self, solver) -> None:
        self.solver = solver
        self._file: IO[str] | None = None

    def _active(self) -> bool:
        return bool(self.solver.partition.proc0_world)

    def _extra_columns(self) -> list[str]:
        return []

    def _extra_values(self, residuals: Sequence[float] | None) -> list[float]:
        return []

    def init(self) -> None:
        if not self._active():
            return
        solver = self.solver
        try:
            self._file = open(solver.output_filename, "w", encoding="utf-8")
        except OSError as error:
            raise OSError(
                f"Unable to open output file {solver.output_filename!r}."
            ) from error
        columns = ["function_evaluation", "seconds"]
        columns += [f"x({j})" for j in range(1, solver.n_parameters + 1)]
        columns.append("objective_function")
        columns += self._extra_columns()
        self._file.write(
            f"Recorder type:\n{self.recorder_type}\nN_parameters:\n"
            f"{solver.n_parameters}\n" + ",".join(columns) + "\n"
        )
        self._file.flush()

    def _write_line(self, function_evaluations, elapsed, x, f, residuals) -> None:
        if self._file is None:
            raise RuntimeError("The recorder was used before init() or after finalize().")
        fields = [f"{function_evaluations:6d}", f"{elapsed:12.4e}"]
        fields += [_scientific(value) for value in list(x)[: self.solver.n_parameters]]
        fields.append(_scientific(f))
        fields += [_scientific(value) for value in self._extra_values(residuals)]
        self._file.write(",".join(fields) + "\n")
        self._file.flush()

    def _current_residuals(self):
        return None

    def _best_residuals(self):
        return None

    def record_function_evaluation(self, function_evaluations, elapsed, x, f) -> None:
        if not self._active():
            return
        self._write_line(function_evaluations, elapsed, x, f, self._current_residuals())

    def finalize(self) -> None:
        """Repeat the line of the best evaluation at the end, then close the file."""
        if not self._active():
            return
        solver = self.solver
        self._write_line(
            solver.best_function_evaluation,
            solver.best_elapsed,
            solver.state_vector,
            solver.best_objective_function,
            self._best_residuals(),
        )
        assert self._file is not None
        self._file.close()
        self._file = None


class StandardRecorder(_FileRecorder):
    """History file for problems with a single objective function."""

    recorder_type = "standard"

    def init(self) -> None:
        """Open the output file and write the header."""
        super().init()

    def record_function_evaluation(self, function_evaluations, elapsed, x, f) -> None:
        """Write one line for an evaluation."""
        super().record_function_evaluation(function_evaluations, elapsed, x, f)

    def finalize(self) -> None:
        """Repeat the best line and close the file."""
        super().finalize()


class LeastSquaresRecorder(_FileRecorder):
    """History file for least-squares problems, optionally listing the residuals.

    Besides what the standard recorder needs, the solver must provide
    ``n_terms``, ``print_residuals_in_output_file``, ``current_residuals``
    and ``best_residual_function``.
    """

    recorder_type = "least_squares"

    def _extra_columns(self) -> list[str]:
        if not self.solver.print_residuals_in_output_file:
            return []
        return [f"F({j})" for j in range(1, self.solver.n_terms + 1)]

    def _extra_values(self, residuals):
        if not self.solver.print_residuals_in_output_file:
            return []
        if residuals is None:
            raise RuntimeError("No residuals are available to record.")
        return list(residuals)[: self.solver.n_terms]

    def _current_residuals(self):
        return self.solver.current_residuals

    def _best_residuals(self):
        return self.solver.best_residual_function

    def init(self) -> None:
        """Open the output file and write the header."""
        super().init()

    def record_function_evaluation(self, function_evaluations, elapsed, x, f) -> None:
        """Write one line for an evaluation, with the current residuals."""
        super().record_function_evaluation(function_evaluations, elapsed, x, f)

    def finalize(self) -> None:
        """Repeat the best line and close the file."""
        super().finalize()