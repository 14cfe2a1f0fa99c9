"""
Dense disparity and depth from rectified stereo pairs.

``compute_disparity_map`` is the single entry point for dense matching; the
matching strategy (exhaustive block matching or OpenCV SGBM) and an optional
explicit downscale are selected behind the same contract.
"""

import cv2
import numpy as np
from typing import Optional, Tuple

from config.config import Config, DISPARITY_METHODS
from utils.image_processing import ImageProcessor, ResizeStrategy
from utils.logger_config import get_logger
from ..data_models import StereoPair
from .block_matching import BlockMatchingEngine
from .sgbm_engine import SGBMEngine

logger = get_logger(__name__)


def compute_disparity_map(
    left_image: np.ndarray,
    right_image: np.ndarray,
    window_size: int = 15,
    max_disparity: int = 64,
    method: str = "block_matching",
    downscale: Optional[float] = None
) -> np.ndarray:
    """
    Per-pixel horizontal disparity of the left image.

    Args:
        left_image: Left rectified image (H x W or H x W x C)
        right_image: Right rectified image of the same shape
        window_size: Odd matching window side length
        max_disparity: Search range in full-resolution pixels
        method: "block_matching" (exact SSD search) or "sgbm"
        downscale: Optional factor in (0, 1]; matching runs on resized images
            and the disparity is rescaled to full resolution

    Returns:
        np.ndarray: (H, W) float64 disparity, 0 where undefined
    """
    ImageProcessor.validate_image_pair(left_image, right_image)
    if method not in DISPARITY_METHODS:
        raise ValueError(f"method must be one of {DISPARITY_METHODS}, got {method!r}")

    height, width = left_image.shape[:2]
    scale = 1.0
    left, right = left_image, right_image

    if downscale is not None and downscale < 1.0:
        left, right, scale = ResizeStrategy.downscale_pair(left_image, right_image, downscale)
        max_disparity = max(1, int(np.ceil(max_disparity * scale)))
        logger.warning(f"Disparity computed at {scale:.3f}x resolution; "
                       f"values are approximate to {1.0 / scale:.1f}px")

    if method == "sgbm":
        engine = SGBMEngine(window_size=window_size, max_disparity=max_disparity)
    else:
        engine = BlockMatchingEngine(window_size=window_size, max_disparity=max_disparity)
        logger.debug(f"Block matching cost ~{width * height * max_disparity * window_size ** 2:.2e} operations")

    disparity = engine.compute_disparity(left, right)

    if scale != 1.0:
        disparity = ResizeStrategy.upscale_disparity(disparity, (width, height), scale)

    return disparity


def disparity_to_depth(disparity: np.ndarray, baseline: float, focal_length_px: float) -> np.ndarray:
    """
    Convert disparity map to depth map.

    depth = baseline * focal_length / disparity, 0 where disparity <= 0.

    Args:
        disparity: Disparity map (in pixels)
        baseline: Baseline; depth is returned in the same unit
        focal_length_px: Focal length in pixels

    Returns:
        np.ndarray: Depth map (float64)
    """
    if baseline <= 0 or focal_length_px <= 0:
        raise ValueError(f"baseline and focal length must be positive, got {baseline}, {focal_length_px}")

    disparity = np.asarray(disparity, dtype=np.float64)
    depth = np.zeros_like(disparity)
    valid = disparity > 0
    depth[valid] = baseline * focal_length_px / disparity[valid]
    return depth


def disparity_to_point_cloud(disparity: np.ndarray, Q: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Reproject a disparity map to 3D with the rig's Q matrix.

    Returns:
        Tuple containing:
            - (H, W, 3) points in the left camera frame, 0 where invalid
            - (H, W) boolean mask of valid pixels
    """
    points = cv2.reprojectImageTo3D(np.asarray(disparity, dtype=np.float32), np.asarray(Q, dtype=np.float64))
    points = points.astype(np.float64)
    valid = (np.asarray(disparity) > 0) & np.all(np.isfinite(points), axis=2)
    points[~valid] = 0.0
    return points, valid


class StereoProcessor:
    """Produces disparity and depth for rectified stereo pairs."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.logger = get_logger(__name__)

    def process_pair(
        self,
        left_image: np.ndarray,
        right_image: np.ndarray,
        baseline: float,
        focal_length_px: float
    ) -> StereoPair:
        """
        Compute the dense maps of one pair with the configured matcher.

        Args:
            left_image: Left rectified image
            right_image: Right rectified image
            baseline: Optical-centre distance in mm
            focal_length_px: Focal length in pixels

        Returns:
            StereoPair: Images with disparity (px) and depth (mm) maps
        """
        disparity = compute_disparity_map(
            left_image,
            right_image,
            window_size=self.config.window_size,
            max_disparity=self.config.max_disparity,
            method=self.config.disparity_method,
            downscale=self.config.disparity_downscale
        )
        depth = disparity_to_depth(disparity, baseline, focal_length_px)

        valid = depth > 0
        if valid.any():
            self.logger.info(f"Depth map: {int(valid.sum())}/{depth.size} valid pixels, "
                             f"range=[{depth[valid].min():.1f}, {depth[valid].max():.1f}]mm")
        else:
            self.logger.warning("Depth map has no valid pixels")

        return StereoPair(
            left_image=left_image,
            right_image=right_image,
            baseline=float(baseline),
            disparity_map=disparity,
            depth_map=depth
        )
