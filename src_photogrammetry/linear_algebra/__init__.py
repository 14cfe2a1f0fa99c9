"""
Linear algebra kernel for the photogrammetric core.

This package contains the small dense routines every geometric estimator is
built on: 3x3 products and inverses, Gaussian elimination, the one-sided
Jacobi SVD and the QR/RQ factorizations.
"""

from .kernel import multiply3x3, determinant3x3, invert3x3, solve_linear, SINGULAR_TOLERANCE
from .decomposition import (
    jacobi_svd,
    svd3x3,
    null_space_vector,
    qr_decomposition,
    rq_decomposition
)

__all__ = [
    'multiply3x3',
    'determinant3x3',
    'invert3x3',
    'solve_linear',
    'SINGULAR_TOLERANCE',
    'jacobi_svd',
    'svd3x3',
    'null_space_vector',
    'qr_decomposition',
    'rq_decomposition'
]
