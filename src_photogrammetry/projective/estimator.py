"""
Configured entry point for robust two-view estimation.
"""

from typing import Optional

from config.config import Config
from utils.logger_config import get_logger
from ..data_models import FundamentalMatrix, HomographyMatrix
from .fundamental import compute_fundamental_matrix
from .homography import compute_homography

logger = get_logger(__name__)


class ProjectiveEstimator:
    """Runs homography and fundamental matrix RANSAC with configured settings."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.logger = get_logger(__name__)

    def estimate_homography(self, src_points, dst_points) -> HomographyMatrix:
        return compute_homography(
            src_points,
            dst_points,
            threshold=self.config.ransac_threshold,
            max_iterations=self.config.ransac_max_iterations,
            seed=self.config.random_seed
        )

    def estimate_fundamental_matrix(self, pts1, pts2) -> FundamentalMatrix:
        return compute_fundamental_matrix(
            pts1,
            pts2,
            threshold=self.config.fundamental_threshold,
            max_iterations=self.config.ransac_max_iterations,
            seed=self.config.random_seed
        )
