"""
Failure taxonomy for the photogrammetric measurement core.

Every condition below is local and recoverable: it is reported to the
immediate caller and never terminates the process. Invalid arguments
(wrong shapes, non-positive sizes) are reported with ``ValueError`` instead.
"""

from typing import Any, Optional


class PhotogrammetryError(Exception):
    """Base class for all geometric failures raised by the core."""


class SingularMatrix(PhotogrammetryError):
    """A 3x3 matrix could not be inverted (|det| below tolerance)."""


class SingularSystem(PhotogrammetryError):
    """A linear system has no unique solution (zero pivot after pivoting)."""


class CalibrationDivergence(PhotogrammetryError):
    """
    Levenberg-Marquardt did not converge within the iteration cap.

    The best-effort calibration is attached as ``result`` so callers can
    still use it with reduced confidence.
    """

    def __init__(self, message: str, result: Optional[Any] = None):
        super().__init__(message)
        self.result = result


class RobustEstimationFailure(PhotogrammetryError):
    """No RANSAC hypothesis gathered the minimum support."""


class NoValidHomography(RobustEstimationFailure):
    """No sampled homography reached four inliers."""


class NoValidFundamentalMatrix(RobustEstimationFailure):
    """No sampled fundamental matrix reached eight inliers."""


class DegenerateTransform(PhotogrammetryError):
    """A projective mapping sent a point to infinity (w ~ 0)."""


class TriangulationFailure(PhotogrammetryError):
    """The homogeneous triangulation system has no finite, unique solution."""


class InsufficientCorrespondences(PhotogrammetryError):
    """Fewer points or views than an algorithm requires."""

    def __init__(self, required: int, received: int, context: str = "correspondences"):
        super().__init__(f"At least {required} {context} required, got {received}")
        self.required = required
        self.received = received
