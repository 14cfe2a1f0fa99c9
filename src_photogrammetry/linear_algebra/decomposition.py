"""
Matrix decompositions for homogeneous least-squares problems.

The singular value decomposition is computed with the one-sided Jacobi
(Hestenes) method: plane rotations are applied to pairs of columns until all
columns are mutually orthogonal, while V starts as the identity and
accumulates the same rotations. Singular values are the final column norms.
Homography, fundamental matrix, PnP and triangulation all obtain their
solution as the right singular vector of the smallest singular value.
"""

import math
from typing import Tuple

import numpy as np

from utils.logger_config import get_logger
from ..exceptions import SingularMatrix

logger = get_logger(__name__)

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_TOLERANCE = 1e-10


def jacobi_svd(
    A,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Singular value decomposition A = U diag(S) V^T by one-sided Jacobi.

    Args:
        A: (m, n) matrix; systems with m < n are padded with zero rows
        max_iterations: Maximum number of sweeps over all column pairs
        tolerance: Relative orthogonality |a_p . a_q| / (|a_p| |a_q|) at which
            a column pair counts as converged

    Returns:
        Tuple containing:
            - U: (m, n) left singular vectors (zero columns for zero values)
            - S: (n,) singular values, descending
            - V: (n, n) right singular vectors
    """
    a = np.asarray(A, dtype=np.float64)
    if a.ndim != 2:
        raise ValueError(f"Expected a 2D matrix, got shape {a.shape}")
    m, n = a.shape

    work = a if m >= n else np.vstack((a, np.zeros((n - m, n))))
    U = work.copy()
    V = np.eye(n)

    frobenius = np.linalg.norm(work)
    if frobenius == 0.0:
        return np.zeros((m, n)), np.zeros(n), np.eye(n)
    if not np.isfinite(frobenius):
        raise ValueError("Matrix contains NaN or infinite values")

    # Columns below this squared norm are numerically zero
    negligible = (np.finfo(np.float64).eps * frobenius) ** 2

    converged = False
    for sweep in range(max_iterations):
        rotated = False
        for p in range(n - 1):
            for q in range(p + 1, n):
                alpha = U[:, p] @ U[:, p]
                beta = U[:, q] @ U[:, q]
                gamma = U[:, p] @ U[:, q]

                if alpha < negligible or beta < negligible:
                    continue
                if abs(gamma) <= tolerance * math.sqrt(alpha * beta):
                    continue

                rotated = True
                zeta = (beta - alpha) / (2.0 * gamma)
                t = math.copysign(1.0, zeta) / (abs(zeta) + math.sqrt(1.0 + zeta * zeta))
                c = 1.0 / math.sqrt(1.0 + t * t)
                s = c * t

                column_p = U[:, p].copy()
                U[:, p] = c * column_p - s * U[:, q]
                U[:, q] = s * column_p + c * U[:, q]

                column_p = V[:, p].copy()
                V[:, p] = c * column_p - s * V[:, q]
                V[:, q] = s * column_p + c * V[:, q]

        if not rotated:
            converged = True
            break

    if not converged or not np.all(np.isfinite(U)):
        logger.warning(f"Jacobi SVD did not converge in {max_iterations} sweeps "
                       f"for a {m}x{n} matrix; falling back to LAPACK")
        return _lapack_svd(a)

    singular_values = np.linalg.norm(U, axis=0)
    order = np.argsort(-singular_values, kind="stable")
    singular_values = singular_values[order]
    U = U[:, order]
    V = V[:, order]

    # Relative rank cut-off; left vectors of smaller values are numerical noise
    cutoff = max(m, n) * np.finfo(np.float64).eps * singular_values[0]
    nonzero = singular_values > cutoff
    U[:, nonzero] /= singular_values[nonzero]
    U[:, ~nonzero] = 0.0

    return U[:m, :], singular_values, V


def _lapack_svd(a: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    m, n = a.shape
    u, s, vt = np.linalg.svd(a, full_matrices=True)
    singular_values = np.zeros(n)
    singular_values[:s.shape[0]] = s
    U = np.zeros((m, n))
    columns = min(m, n)
    U[:, :columns] = u[:, :columns]
    return U, singular_values, vt.T


def svd3x3(
    M,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Full SVD of a 3x3 matrix, M = U diag(S) V^T with orthonormal U and V.

    Left singular vectors of zero singular values are completed to an
    orthonormal basis.
    """
    m = np.asarray(M, dtype=np.float64)
    if m.shape != (3, 3):
        raise ValueError(f"M must be 3x3, got {m.shape}")

    U, S, V = jacobi_svd(m, max_iterations, tolerance)
    return _complete_basis(U), S, V


def _complete_basis(U: np.ndarray) -> np.ndarray:
    basis = U.copy()
    n = basis.shape[1]
    for j in range(n):
        if np.linalg.norm(basis[:, j]) > 0.5:
            continue
        # Pick the standard axis least aligned with the columns found so far
        for axis in np.argsort(np.abs(basis).sum(axis=1)):
            candidate = np.zeros(basis.shape[0])
            candidate[axis] = 1.0
            for k in range(n):
                if k != j and np.linalg.norm(basis[:, k]) > 0.5:
                    candidate -= (basis[:, k] @ candidate) * basis[:, k]
            norm = np.linalg.norm(candidate)
            if norm > 1e-6:
                basis[:, j] = candidate / norm
                break
    return basis


def null_space_vector(
    A,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    tolerance: float = DEFAULT_TOLERANCE
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Least-squares solution of A x = 0 subject to |x| = 1.

    Args:
        A: (m, n) homogeneous system

    Returns:
        Tuple containing:
            - x: (n,) unit right singular vector of the smallest singular value
            - singular values in ascending order, used by callers to detect a
              null space of dimension greater than one
    """
    _, singular_values, V = jacobi_svd(A, max_iterations, tolerance)
    solution = V[:, -1]
    return solution / np.linalg.norm(solution), singular_values[::-1]


def qr_decomposition(M) -> Tuple[np.ndarray, np.ndarray]:
    """
    QR decomposition of a square matrix by modified Gram-Schmidt.

    Returns:
        Tuple (Q, R) with orthonormal Q and upper-triangular R whose diagonal
        is positive.

    Raises:
        SingularMatrix: If the columns are linearly dependent
    """
    a = np.asarray(M, dtype=np.float64)
    n = a.shape[0]
    if a.ndim != 2 or a.shape[1] != n:
        raise ValueError(f"M must be square, got {a.shape}")

    Q = a.copy()
    R = np.zeros((n, n))
    scale = max(np.linalg.norm(a), 1e-300)

    for j in range(n):
        for i in range(j):
            R[i, j] = Q[:, i] @ Q[:, j]
            Q[:, j] -= R[i, j] * Q[:, i]
        norm = np.linalg.norm(Q[:, j])
        if norm < 1e-12 * scale:
            raise SingularMatrix(f"Column {j} is linearly dependent; QR undefined")
        R[j, j] = norm
        Q[:, j] /= norm

    return Q, R


def rq_decomposition(M) -> Tuple[np.ndarray, np.ndarray]:
    """
    RQ decomposition M = R Q of a square matrix.

    R is upper triangular with positive diagonal and Q orthonormal. Computed
    from the QR decomposition of the row-reversed transpose.
    """
    a = np.asarray(M, dtype=np.float64)
    n = a.shape[0]
    flip = np.eye(n)[::-1]

    q_t, r_t = qr_decomposition((flip @ a).T)
    R = flip @ r_t.T @ flip
    Q = flip @ q_t.T

    signs = np.sign(np.diag(R))
    signs[signs == 0] = 1.0
    D = np.diag(signs)
    return R @ D, D @ Q
