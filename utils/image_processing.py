"""
Image processing utilities for stereo matching.

This module provides the pixel-buffer checks, intensity conversion and
resizing shared by the disparity engines.
"""

import cv2
import numpy as np
from typing import Tuple

from utils.logger_config import get_logger

logger = get_logger(__name__)


class ImageProcessor:
    """Handles common image processing operations for stereo vision."""

    @staticmethod
    def validate_image_pair(
        left_image: np.ndarray,
        right_image: np.ndarray
    ) -> bool:
        """
        Validate that two images are compatible for stereo processing.

        Args:
            left_image: Left stereo image
            right_image: Right stereo image

        Returns:
            bool: True if images are compatible

        Raises:
            ValueError: If images are incompatible
        """
        if left_image is None or right_image is None:
            raise ValueError("One or both images are None")

        if left_image.shape != right_image.shape:
            raise ValueError(f"Image shapes don't match: "
                             f"left={left_image.shape}, right={right_image.shape}")

        if len(left_image.shape) not in [2, 3]:
            raise ValueError(f"Invalid image dimensions: {left_image.shape}")

        if left_image.shape[0] == 0 or left_image.shape[1] == 0:
            raise ValueError(f"Images are empty: {left_image.shape}")

        if left_image.dtype != right_image.dtype:
            logger.warning(f"Image dtypes differ: "
                           f"left={left_image.dtype}, right={right_image.dtype}")

        return True

    @staticmethod
    def to_intensity(image: np.ndarray) -> np.ndarray:
        """
        Per-pixel intensity as float64.

        Multi-channel images use the mean of their first three channels, so
        an alpha channel does not contribute.
        """
        if image.ndim == 2:
            return image.astype(np.float64)
        return image[:, :, :3].astype(np.float64).mean(axis=2)

    @staticmethod
    def to_grayscale_u8(image: np.ndarray) -> np.ndarray:
        """8-bit single-channel image as expected by the OpenCV matchers."""
        if image.ndim == 3:
            channels = image.shape[2]
            if channels == 4:
                image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
            elif channels == 3:
                image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
            else:
                image = image[:, :, 0]
        if image.dtype != np.uint8:
            image = np.clip(image, 0, 255).astype(np.uint8)
        return image


class ResizeStrategy:
    """Scales a stereo pair down for matching and maps results back."""

    @staticmethod
    def apply_resize(
        image: np.ndarray,
        target_size: Tuple[int, int],
        interpolation: int = cv2.INTER_AREA
    ) -> np.ndarray:
        """
        Resize an image.

        Args:
            image: Input image
            target_size: (width, height) target dimensions
            interpolation: OpenCV interpolation method

        Returns:
            np.ndarray: Resized image
        """
        original_height, original_width = image.shape[:2]
        if (original_width, original_height) == tuple(target_size):
            return image.copy()
        return cv2.resize(image, tuple(target_size), interpolation=interpolation)

    @staticmethod
    def downscale_pair(
        left_image: np.ndarray,
        right_image: np.ndarray,
        scale: float
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Downscale a stereo pair by ``scale``.

        Returns:
            Tuple containing:
                - Resized left image
                - Resized right image
                - Effective horizontal scale actually applied
        """
        if not 0 < scale <= 1.0:
            raise ValueError(f"Downscale factor must be in (0, 1], got {scale}")

        height, width = left_image.shape[:2]
        new_width = max(1, int(round(width * scale)))
        new_height = max(1, int(round(height * scale)))

        left = ResizeStrategy.apply_resize(left_image, (new_width, new_height))
        right = ResizeStrategy.apply_resize(right_image, (new_width, new_height))

        logger.info(f"Resized stereo pair from {width}x{height} to {new_width}x{new_height}")
        return left, right, new_width / width

    @staticmethod
    def upscale_disparity(
        disparity: np.ndarray,
        original_size: Tuple[int, int],
        scale: float
    ) -> np.ndarray:
        """
        Bring a disparity map computed at reduced resolution back to full size.

        Values are nearest-neighbour resampled and divided by ``scale`` so they
        are expressed in full-resolution pixels.
        """
        resized = cv2.resize(disparity.astype(np.float32), tuple(original_size),
                             interpolation=cv2.INTER_NEAREST)
        return resized.astype(np.float64) / scale
