"""
Dense 3x3 and small-system routines.

These are the building blocks used by calibration, homography and
triangulation: 3x3 products and inverses, and a Gaussian-elimination solver
for the damped normal equations of Levenberg-Marquardt.
"""

import numpy as np

from utils.logger_config import get_logger
from ..exceptions import SingularMatrix, SingularSystem

logger = get_logger(__name__)

SINGULAR_TOLERANCE = 1e-10


def _as_3x3(matrix, name: str) -> np.ndarray:
    array = np.asarray(matrix, dtype=np.float64)
    if array.shape != (3, 3):
        raise ValueError(f"{name} must be 3x3, got {array.shape}")
    return array


def multiply3x3(A, B) -> np.ndarray:
    """Standard product of two 3x3 matrices."""
    a = _as_3x3(A, "A")
    b = _as_3x3(B, "B")
    result = np.zeros((3, 3))
    for i in range(3):
        for j in range(3):
            result[i, j] = a[i, 0] * b[0, j] + a[i, 1] * b[1, j] + a[i, 2] * b[2, j]
    return result


def determinant3x3(M) -> float:
    m = _as_3x3(M, "M")
    return float(m[0, 0] * (m[1, 1] * m[2, 2] - m[1, 2] * m[2, 1])
                 - m[0, 1] * (m[1, 0] * m[2, 2] - m[1, 2] * m[2, 0])
                 + m[0, 2] * (m[1, 0] * m[2, 1] - m[1, 1] * m[2, 0]))


def invert3x3(M, tolerance: float = SINGULAR_TOLERANCE) -> np.ndarray:
    """
    Invert a 3x3 matrix through its adjugate.

    Args:
        M: 3x3 matrix
        tolerance: Minimum absolute determinant

    Returns:
        np.ndarray: M^-1

    Raises:
        SingularMatrix: If |det(M)| < tolerance
    """
    m = _as_3x3(M, "M")
    det = determinant3x3(m)

    if not np.isfinite(det) or abs(det) < tolerance:
        raise SingularMatrix(f"Matrix is singular (det={det:.3e})")

    adj = np.empty((3, 3))
    adj[0, 0] = m[1, 1] * m[2, 2] - m[1, 2] * m[2, 1]
    adj[0, 1] = m[0, 2] * m[2, 1] - m[0, 1] * m[2, 2]
    adj[0, 2] = m[0, 1] * m[1, 2] - m[0, 2] * m[1, 1]

    adj[1, 0] = m[1, 2] * m[2, 0] - m[1, 0] * m[2, 2]
    adj[1, 1] = m[0, 0] * m[2, 2] - m[0, 2] * m[2, 0]
    adj[1, 2] = m[0, 2] * m[1, 0] - m[0, 0] * m[1, 2]

    adj[2, 0] = m[1, 0] * m[2, 1] - m[1, 1] * m[2, 0]
    adj[2, 1] = m[0, 1] * m[2, 0] - m[0, 0] * m[2, 1]
    adj[2, 2] = m[0, 0] * m[1, 1] - m[0, 1] * m[1, 0]

    return adj / det


def solve_linear(A, b, tolerance: float = SINGULAR_TOLERANCE) -> np.ndarray:
    """
    Solve A x = b by Gaussian elimination with partial pivoting.

    Args:
        A: (n, n) coefficient matrix
        b: (n,) right-hand side
        tolerance: Smallest acceptable pivot magnitude

    Returns:
        np.ndarray: Solution x of shape (n,)

    Raises:
        SingularSystem: If a pivot column is ~0 after pivoting
    """
    a = np.asarray(A, dtype=np.float64)
    rhs = np.asarray(b, dtype=np.float64).ravel()
    n = a.shape[0]
    if a.ndim != 2 or a.shape[1] != n:
        raise ValueError(f"A must be square, got {a.shape}")
    if rhs.shape[0] != n:
        raise ValueError(f"b must have {n} entries, got {rhs.shape[0]}")

    augmented = np.hstack((a, rhs.reshape(n, 1)))

    # Forward elimination
    for i in range(n):
        pivot_row = i + int(np.argmax(np.abs(augmented[i:, i])))
        if pivot_row != i:
            augmented[[i, pivot_row]] = augmented[[pivot_row, i]]

        pivot = augmented[i, i]
        if not np.isfinite(pivot) or abs(pivot) < tolerance:
            raise SingularSystem(f"Zero pivot in column {i} (|pivot|={abs(pivot):.3e})")

        if i + 1 < n:
            factors = augmented[i + 1:, i] / pivot
            augmented[i + 1:, i:] -= np.outer(factors, augmented[i, i:])

    # Back substitution
    x = np.zeros(n)
    for i in range(n - 1, -1, -1):
        x[i] = (augmented[i, n] - augmented[i, i + 1:n] @ x[i + 1:]) / augmented[i, i]

    return x
