"""
SGBM (Semi-Global Block Matching) engine for stereo disparity calculation.

Drop-in alternative to the exhaustive block matcher for large images; it
runs OpenCV's semi-global matcher and converts its fixed-point output to
float pixels.
"""

import cv2
import numpy as np
from typing import Dict, Any

from utils.image_processing import ImageProcessor
from utils.logger_config import get_logger

logger = get_logger(__name__)


class SGBMEngine:
    """Core SGBM algorithm engine for stereo disparity calculation."""

    def __init__(self, window_size: int = 5, max_disparity: int = 64, use_fast_mode: bool = True):
        """
        Initialize SGBM engine.

        Args:
            window_size: Block size for matching (must be odd)
            max_disparity: Disparity search range; rounded up to a multiple of 16
            use_fast_mode: Whether to use SGBM_3WAY mode for speed
        """
        if window_size <= 0 or window_size % 2 == 0:
            raise ValueError(f"window_size must be positive and odd, got {window_size}")
        if max_disparity <= 0:
            raise ValueError(f"max_disparity must be positive, got {max_disparity}")

        self.logger = get_logger(__name__)
        self.block_size = window_size
        self.num_disparities = int(np.ceil(max_disparity / 16.0)) * 16
        self.sgbm_mode = (cv2.STEREO_SGBM_MODE_SGBM_3WAY if use_fast_mode
                          else cv2.STEREO_SGBM_MODE_SGBM)

        if self.num_disparities != max_disparity:
            self.logger.debug(f"num_disparities rounded from {max_disparity} to {self.num_disparities}")
        if window_size > 21:
            self.logger.warning(f"Large block_size ({window_size}) may reduce accuracy")

        self._stereo_matcher = None

    def create_stereo_matcher(self, image_channels: int = 1) -> cv2.StereoSGBM:
        """
        Create and configure OpenCV StereoSGBM matcher.

        P1 and P2 penalize disparity changes of 1 and of more than 1 between
        neighbouring pixels.
        """
        stereo = cv2.StereoSGBM_create(
            minDisparity=0,
            numDisparities=self.num_disparities,
            blockSize=self.block_size,
            P1=8 * image_channels * self.block_size * self.block_size,
            P2=32 * image_channels * self.block_size * self.block_size,
            disp12MaxDiff=-1,
            uniquenessRatio=1,
            speckleWindowSize=100,
            speckleRange=32,
            mode=self.sgbm_mode
        )
        self._stereo_matcher = stereo
        self.logger.info(f"StereoSGBM matcher created: numDisp={self.num_disparities}, "
                         f"blockSize={self.block_size}")
        return stereo

    def compute_disparity(self, left_image: np.ndarray, right_image: np.ndarray) -> np.ndarray:
        """
        Compute disparity map from a rectified stereo pair.

        Returns:
            np.ndarray: (H, W) float64 disparity in pixels, 0 where invalid
        """
        ImageProcessor.validate_image_pair(left_image, right_image)
        if self._stereo_matcher is None:
            self.create_stereo_matcher()

        left_gray = ImageProcessor.to_grayscale_u8(left_image)
        right_gray = ImageProcessor.to_grayscale_u8(right_image)

        # OpenCV returns 16x fixed point; invalid pixels are negative
        raw = self._stereo_matcher.compute(left_gray, right_gray)
        disparity = raw.astype(np.float64) / 16.0
        disparity[disparity < 0] = 0.0

        valid = disparity > 0
        if valid.any():
            self.logger.info(f"Disparity computed: valid_pixels={int(valid.sum())}/{disparity.size} "
                             f"({100 * valid.mean():.1f}%), "
                             f"range=[{disparity[valid].min():.1f}, {disparity[valid].max():.1f}]")
        else:
            self.logger.warning("No valid disparity values computed")
        return disparity

    def get_configuration_info(self) -> Dict[str, Any]:
        return {
            'num_disparities': self.num_disparities,
            'block_size': self.block_size,
            'sgbm_mode': 'SGBM_3WAY' if self.sgbm_mode == cv2.STEREO_SGBM_MODE_SGBM_3WAY else 'SGBM',
            'matcher_created': self._stereo_matcher is not None
        }
