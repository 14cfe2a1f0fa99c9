import json
import sys
from typing import Any, Dict

from config.config import Config
from src_photogrammetry import (
    CameraExtrinsics,
    CameraIntrinsics,
    CameraParameters,
    PhotogrammetricMeasurement,
    ReferenceScale
)
from src_photogrammetry.exceptions import PhotogrammetryError
from src_photogrammetry.measurement import PhotogrammetricMeasurer
from utils.logger_config import get_logger, LoggerConfig

logger = get_logger(__name__)


def load_config(config_path: str) -> Config:
    """
    Load configuration from a JSON file.

    Args:
        config_path (str): Path to the configuration JSON file.

    Returns:
        Config: Loaded configuration object.
    """
    return Config(config_path)


def parse_camera(entry: Dict[str, Any]) -> CameraParameters:
    """
    Build one view's calibration from its request entry.

    The pose is given either as a 3x3 ``rotation`` or as a Rodrigues
    ``rotation_vector``, plus a ``translation``.
    """
    intrinsics = CameraIntrinsics(**entry["intrinsics"])
    pose = entry.get("extrinsics", {})
    translation = pose.get("translation", [0.0, 0.0, 0.0])
    if "rotation_vector" in pose:
        extrinsics = CameraExtrinsics.from_rotation_vector(pose["rotation_vector"], translation)
    else:
        extrinsics = CameraExtrinsics(pose.get("rotation", [[1, 0, 0], [0, 1, 0], [0, 0, 1]]), translation)
    return CameraParameters(intrinsics, extrinsics)


def parse_request(request: Dict[str, Any]):
    """
    Split a measurement request into its typed parts.

    Returns:
        Tuple of (points_2d, cameras, reference)
    """
    cameras = [parse_camera(entry) for entry in request["cameras"]]
    reference_entry = request["reference"]
    indices = reference_entry.get("point_indices")
    reference = ReferenceScale(
        real_world_distance=reference_entry["real_world_distance"],
        measured_distance=reference_entry.get("measured_distance"),
        point_indices=tuple(indices) if indices is not None else None
    )
    return request["points_2d"], cameras, reference


def load_request(request_path: str):
    with open(request_path, 'r') as request_file:
        request = json.load(request_file)
    logger.info(f"Loaded measurement request from {request_path}")
    return parse_request(request)


def process_measurement(config: Config, request_path: str) -> PhotogrammetricMeasurement:
    """
    Run a photogrammetric measurement described by a JSON request.

    Args:
        config (Config): Configuration object containing processing parameters.
        request_path (str): Path to the request JSON file.
    """
    points_2d, cameras, reference = load_request(request_path)
    measurer = PhotogrammetricMeasurer(config)
    return measurer.measure(points_2d, cameras, reference)


def main() -> None:
    """
    Main function to execute a measurement from the command line.
    """
    config_file = "config/config_measurement.json"
    request_file = sys.argv[1] if len(sys.argv) > 1 else "config/measurement_request_example.json"

    config = load_config(config_file)
    LoggerConfig.set_level(config.log_level)
    logger.info(f"Configuration: {config.get_summary()}")

    try:
        measurement = process_measurement(config, request_file)
    except PhotogrammetryError as e:
        logger.error(f"Measurement failed: {e}")
        sys.exit(1)

    print(json.dumps(measurement.summary(), indent=2))
    print(measurement.to_dataframe().to_string(index=False))
    print("Processing completed successfully")


if __name__ == "__main__":
    main()
