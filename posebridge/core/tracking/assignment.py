"""Rectangular linear assignment (Kuhn-Munkres / Hungarian algorithm).

`solve()` returns a minimum-total-cost partial bijection between rows and
columns of a cost matrix. The implementation is the O(n^3) shortest augmenting
path formulation with row/column potentials, run on the matrix padded to a
square. It knows nothing about poses or tracks.

Tie-break: rows are inserted in ascending order and, within each augmenting
step, the lowest column index with the minimal reduced cost is taken. Equal-cost
optima therefore resolve to the first one found in row/column scan order, which
makes the output reproducible for identical inputs.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from posebridge.core.tracking.errors import CostMatrixError

Pair = tuple[int, int]


def _as_matrix(cost_matrix: np.ndarray | Sequence[Sequence[float]]) -> np.ndarray:
    """Validate and convert input to a 2-D float64 array."""

    if not isinstance(cost_matrix, np.ndarray):
        rows = [list(row) for row in cost_matrix]
        if rows and len({len(row) for row in rows}) > 1:
            raise CostMatrixError("cost matrix rows have different lengths")
        if not rows:
            return np.zeros((0, 0), dtype=np.float64)
        cost_matrix = rows
    try:
        matrix = np.array(cost_matrix, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise CostMatrixError(f"cost matrix is not numeric: {exc}") from exc
    if matrix.ndim != 2:
        raise CostMatrixError(f"cost matrix must be 2-D, got {matrix.ndim}-D")
    if np.isnan(matrix).any():
        raise CostMatrixError("cost matrix contains NaN")
    if np.isneginf(matrix).any():
        raise CostMatrixError("cost matrix contains -inf")
    return matrix


def forbidden_cost(matrix: np.ndarray) -> float:
    """A finite cost larger than any difference between two finite assignments."""

    finite = matrix[np.isfinite(matrix)]
    return 2.0 * float(np.abs(finite).sum()) + 1.0


def pad_to_square(matrix: np.ndarray) -> np.ndarray:
    """Replace `+inf` with a large finite cost and pad to an n x n matrix with it."""

    rows, cols = matrix.shape
    big = forbidden_cost(matrix)
    n = max(rows, cols)
    square = np.full((n, n), big, dtype=np.float64)
    square[:rows, :cols] = np.where(np.isposinf(matrix), big, matrix)
    return square


def _hungarian_square(work: np.ndarray) -> np.ndarray:
    """Solve a square assignment; returns `row_for_col` (1-based rows, index 0 unused)."""

    n = work.shape[0]
    u = np.zeros(n + 1, dtype=np.float64)
    v = np.zeros(n + 1, dtype=np.float64)
    row_for_col = np.zeros(n + 1, dtype=np.int64)
    way = np.zeros(n + 1, dtype=np.int64)

    for i in range(1, n + 1):
        row_for_col[0] = i
        j0 = 0
        minv = np.full(n + 1, np.inf, dtype=np.float64)
        used = np.zeros(n + 1, dtype=bool)

        while True:
            used[j0] = True
            i0 = row_for_col[j0]
            free = ~used[1:]
            reduced = work[i0 - 1] - u[i0] - v[1:]
            improve = free & (reduced < minv[1:])
            minv[1:][improve] = reduced[improve]
            way[1:][improve] = j0

            candidates = np.where(free, minv[1:], np.inf)
            j1 = int(np.argmin(candidates)) + 1
            delta = candidates[j1 - 1]

            u[row_for_col[used]] += delta
            v[used] -= delta
            minv[~used] -= delta

            j0 = j1
            if row_for_col[j0] == 0:
                break

        while True:
            j1 = int(way[j0])
            row_for_col[j0] = row_for_col[j1]
            j0 = j1
            if j0 == 0:
                break

    return row_for_col


def solve(cost_matrix: np.ndarray | Sequence[Sequence[float]]) -> list[Pair]:
    """Return minimum-cost `(row, col)` pairs sorted by row index.

    Raises:
        CostMatrixError: for jagged, non 2-D, NaN or `-inf` input.
    """

    matrix = _as_matrix(cost_matrix)
    rows, cols = matrix.shape
    if rows == 0 or cols == 0:
        return []

    row_for_col = _hungarian_square(pad_to_square(matrix))

    pairs: list[Pair] = []
    for j in range(1, len(row_for_col)):
        row = int(row_for_col[j]) - 1
        col = j - 1
        if row < rows and col < cols:
            pairs.append((row, col))
    pairs.sort()
    return pairs


def assignment_cost(cost_matrix: np.ndarray | Sequence[Sequence[float]], pairs: Sequence[Pair]) -> float:
    """Total cost of `pairs` over `cost_matrix`."""

    matrix = _as_matrix(cost_matrix)
    return float(sum(matrix[r, c] for r, c in pairs))
