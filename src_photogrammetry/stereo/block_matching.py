"""
Exhaustive block matching along horizontal epipolar lines.

For every candidate shift the squared intensity differences of the whole
image pair are computed at once, summed over the matching window with a
separable sliding-window sum, and compared against the best cost so far.
The result is identical to scanning each pixel individually; the cost is
still O(width * height * max_disparity * window_size).
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from utils.image_processing import ImageProcessor
from utils.logger_config import get_logger

logger = get_logger(__name__)


class BlockMatchingEngine:
    """Sum-of-squared-differences block matcher for rectified pairs."""

    def __init__(self, window_size: int = 15, max_disparity: int = 64):
        """
        Args:
            window_size: Odd side length of the square matching window
            max_disparity: Number of shifts searched, 0 <= d < max_disparity
        """
        if window_size <= 0 or window_size % 2 == 0:
            raise ValueError(f"window_size must be positive and odd, got {window_size}")
        if max_disparity <= 0:
            raise ValueError(f"max_disparity must be positive, got {max_disparity}")

        self.window_size = window_size
        self.max_disparity = max_disparity
        self.logger = get_logger(__name__)

    def _window_sums(self, values: np.ndarray) -> np.ndarray:
        w = self.window_size
        rows = sliding_window_view(values, w, axis=1).sum(axis=-1)
        return sliding_window_view(rows, w, axis=0).sum(axis=-1)

    def compute_disparity(self, left_image: np.ndarray, right_image: np.ndarray) -> np.ndarray:
        """
        Disparity of every left-image pixel.

        Pixels within half a window of the border, and pixels with no
        admissible shift, keep disparity 0. Among equal costs the smallest
        shift wins.

        Args:
            left_image: Left rectified image (H x W or H x W x C)
            right_image: Right rectified image of the same shape

        Returns:
            np.ndarray: (H, W) float64 disparity in pixels
        """
        ImageProcessor.validate_image_pair(left_image, right_image)
        left = ImageProcessor.to_intensity(left_image)
        right = ImageProcessor.to_intensity(right_image)

        height, width = left.shape
        half = self.window_size // 2
        disparity = np.zeros((height, width), dtype=np.float64)

        if height < self.window_size or width < self.window_size:
            self.logger.warning(f"Image {width}x{height} smaller than the matching window; "
                                f"disparity is empty")
            return disparity

        best_cost = np.full((height, width), np.inf)
        searched = 0

        for d in range(self.max_disparity):
            if half + d >= width - half:
                break

            difference = left[:, d:] - right[:, :width - d]
            costs = self._window_sums(difference * difference)

            region = (slice(half, height - half), slice(half + d, width - half))
            improved = costs < best_cost[region]
            best_cost[region] = np.where(improved, costs, best_cost[region])
            disparity[region] = np.where(improved, float(d), disparity[region])
            searched += 1

        self.logger.debug(f"Block matching searched {searched} shifts with a "
                          f"{self.window_size}x{self.window_size} window")
        return disparity
