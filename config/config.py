import json
from typing import Dict, Any, Optional

from utils.logger_config import get_logger, LoggerConfig

logger = get_logger(__name__)


DEFAULT_PARAMETERS: Dict[str, Any] = {
    "log_level": "INFO",
    # Calibration
    "calibration_max_iterations": 100,
    "calibration_tolerance": 1e-6,
    "lm_initial_lambda": 1e-3,
    "min_points_per_image": 6,
    "seed_intrinsics_from_dlt": "True",
    # Projective geometry
    "ransac_threshold": 3.0,
    "ransac_max_iterations": 1000,
    "fundamental_threshold": 1.0,
    "random_seed": None,
    # Stereo
    "disparity_method": "block_matching",
    "window_size": 15,
    "max_disparity": 64,
    "disparity_downscale": None,
    "undistort_before_triangulation": "True",
    # Measurement
    "confidence_falloff_px": 10.0,
    "enable_monocular_fallback": "False",
    "fallback_confidence": 0.3,
}

DISPARITY_METHODS = ("block_matching", "sgbm")


class Config:
    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        self.config_data = dict(DEFAULT_PARAMETERS)
        if config_path is not None:
            self.config_data.update(self._load_config(config_path))
        if overrides:
            self.config_data.update(overrides)
        self._validate_calibration_config()
        self._validate_ransac_config()
        self._validate_stereo_config()
        self._validate_measurement_config()
        LoggerConfig.resolve_level(self.config_data["log_level"])

    @classmethod
    def from_dict(cls, parameters: Dict[str, Any]) -> "Config":
        """Build a configuration from defaults overlaid with ``parameters``."""
        return cls(overrides=parameters)

    def _load_config(self, config_path: str) -> Dict[str, Any]:
        with open(config_path, 'r') as config_file:
            config_data = json.load(config_file)
        logger.info(f"Loaded configuration from {config_path}")

        unknown = sorted(set(config_data) - set(DEFAULT_PARAMETERS))
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")
            for key in unknown:
                config_data.pop(key)
        return config_data

    def _validate_calibration_config(self) -> None:
        self._require_positive_int("calibration_max_iterations")
        self._require_positive_number("calibration_tolerance")
        self._require_positive_number("lm_initial_lambda")
        self._require_positive_int("min_points_per_image")
        if self.config_data["min_points_per_image"] < 6:
            raise ValueError("min_points_per_image must be at least 6 for DLT pose estimation")

    def _validate_ransac_config(self) -> None:
        self._require_positive_number("ransac_threshold")
        self._require_positive_int("ransac_max_iterations")
        self._require_positive_number("fundamental_threshold")
        seed = self.config_data.get("random_seed")
        if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool) or seed < 0):
            raise ValueError("random_seed must be a non-negative integer or null")

    def _validate_stereo_config(self) -> None:
        """Validate block matching parameters and the disparity strategy."""
        method = self.config_data["disparity_method"]
        if method not in DISPARITY_METHODS:
            raise ValueError(f"disparity_method must be one of {DISPARITY_METHODS}, got {method!r}")

        self._require_positive_int("window_size")
        if self.config_data["window_size"] % 2 == 0:
            raise ValueError(f"window_size must be odd, got {self.config_data['window_size']}")
        self._require_positive_int("max_disparity")

        downscale = self.config_data.get("disparity_downscale")
        if downscale is not None:
            if not isinstance(downscale, (int, float)) or not 0 < downscale <= 1.0:
                raise ValueError("disparity_downscale must be in (0, 1] or null")
            if downscale < 1.0:
                logger.warning(f"Disparity will be computed at reduced resolution (scale={downscale})")

    def _validate_measurement_config(self) -> None:
        self._require_positive_number("confidence_falloff_px")
        fallback_confidence = self.config_data["fallback_confidence"]
        if not isinstance(fallback_confidence, (int, float)) or not 0.0 <= fallback_confidence <= 1.0:
            raise ValueError("fallback_confidence must be within [0, 1]")

    def _require_positive_int(self, key: str) -> None:
        value = self.config_data.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{key} must be a positive integer, got {value!r}")

    def _require_positive_number(self, key: str) -> None:
        value = self.config_data.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{key} must be a positive number, got {value!r}")

    def get_bool(self, key: str) -> bool:
        """Read a flag stored either as a JSON boolean or as "True"/"False"."""
        value = self.config_data.get(key, False)
        if isinstance(value, str):
            return value == "True"
        return bool(value)

    def get_summary(self) -> str:
        """Get a one-line summary of the main processing parameters."""
        return (f"disparity={self.disparity_method} "
                f"(window={self.window_size}, max={self.max_disparity}), "
                f"ransac(threshold={self.ransac_threshold}, iterations={self.ransac_max_iterations}), "
                f"lm(iterations={self.calibration_max_iterations}, tol={self.calibration_tolerance})")

    def __getattr__(self, name: str) -> Any:
        if name != "config_data" and name in self.config_data:
            return self.config_data[name]
        raise AttributeError(f"'{self.__class__.__name__}' object has no attribute '{name}'")
