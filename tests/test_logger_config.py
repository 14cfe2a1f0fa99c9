"""
Tests for the package logging configuration.
"""

import logging

import pytest

from utils.logger_config import LoggerConfig, get_logger


class TestLoggerConfig:
    """Tests for the shared photogrammetry_core logger."""

    def test_module_loggers_are_children_of_package_root(self):
        logger = get_logger("src_photogrammetry.stereo.triangulation")
        assert logger.name == "photogrammetry_core.src_photogrammetry.stereo.triangulation"
        assert logger.propagate

    def test_prefixed_names_are_not_nested_twice(self):
        assert get_logger("photogrammetry_core.custom").name == "photogrammetry_core.custom"

    def test_set_level_by_name(self):
        root = logging.getLogger("photogrammetry_core")
        previous = root.level
        try:
            LoggerConfig.set_level("DEBUG")
            assert root.level == logging.DEBUG
            assert all(handler.level == logging.DEBUG for handler in root.handlers)
        finally:
            LoggerConfig.set_level(previous)

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError):
            LoggerConfig.set_level("VERBOSE")

    def test_configuration_info(self):
        info = LoggerConfig.get_configuration_info()
        assert LoggerConfig.is_configured()
        assert info['configured']
        assert info['root_logger_name'] == "photogrammetry_core"
        assert any(handler['type'] == "StreamHandler" for handler in info['handlers'])
