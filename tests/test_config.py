"""Tests for render configuration, runtime initialisation, logging and errors."""

import logging

import pytest

from pathtracer.config import MAX_WORK_UNITS, RenderConfig, default_thread_count
from pathtracer.errors import ConfigurationError, InvalidScene, RenderError, TextureLoadError


class TestRenderConfig:
    def test_defaults_are_valid(self):
        config = RenderConfig()
        assert config.thread_count == default_thread_count()
        assert config.thread_count >= 1
        assert config.aspect_ratio == pytest.approx(400 / 225)

    @pytest.mark.parametrize(
        "changes",
        [
            {"samples_per_pixel": 0},
            {"thread_count": 0},
            {"width": 0},
            {"height": -5},
            {"width": 4096},
            {"max_depth": -1},
            {"frame_count": 0},
            {"frame_rate": 0.0},
            {"shutter_angle": 361.0},
            {"shutter_angle": -1.0},
            {"tile_size": 0},
            {"work_unit": "columns"},
            {"rr_min_depth": -1},
            {"gamma": 0.0},
            {"width": 2048, "height": 2048, "tile_size": 1},
        ],
    )
    def test_invalid_values_rejected(self, changes):
        with pytest.raises(ConfigurationError):
            RenderConfig(**changes)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            RenderConfig(samples_per_pixel=-1)

    def test_zero_depth_allowed(self):
        assert RenderConfig(max_depth=0).max_depth == 0

    @pytest.mark.parametrize(
        "width, height, tile, mode, expected",
        [
            (64, 64, 16, "tiles", 16),
            (65, 64, 16, "tiles", 20),
            (400, 225, 16, "tiles", 25 * 15),
            (400, 225, 16, "rows", 15),
            (7, 3, 100, "tiles", 1),
        ],
    )
    def test_work_unit_count(self, width, height, tile, mode, expected):
        config = RenderConfig(width=width, height=height, tile_size=tile, work_unit=mode)
        assert config.work_unit_count == expected
        assert config.work_unit_count <= MAX_WORK_UNITS

    def test_frame_interval(self):
        config = RenderConfig(frame_rate=24.0, shutter_angle=180.0)
        start, end = config.frame_interval(3)
        assert start == pytest.approx(3 / 24)
        assert end - start == pytest.approx(0.5 / 24)

    def test_closed_shutter_interval_is_instant(self):
        config = RenderConfig(frame_rate=10.0, shutter_angle=0.0)
        assert config.frame_interval(2) == pytest.approx((0.2, 0.2))

    def test_with_overrides_validates(self):
        config = RenderConfig(width=64, height=32)
        wide = config.with_overrides(width=128)
        assert (wide.width, wide.height) == (128, 32)
        assert config.width == 64
        with pytest.raises(ConfigurationError):
            config.with_overrides(samples_per_pixel=0)

    def test_frozen(self):
        config = RenderConfig()
        with pytest.raises(AttributeError):
            config.width = 10


class TestRuntime:
    def test_already_initialised(self):
        from pathtracer.runtime import active_thread_count, is_initialized

        assert is_initialized()
        assert active_thread_count() >= 1

    def test_second_init_keeps_pool(self, caplog):
        from pathtracer.runtime import active_thread_count, init_runtime

        pool = active_thread_count()
        with caplog.at_level(logging.WARNING, logger="pathtracer.runtime"):
            assert init_runtime(thread_count=pool + 3) == pool
        assert "already running" in caplog.text

    def test_invalid_thread_count(self):
        from pathtracer.runtime import init_runtime

        with pytest.raises(ConfigurationError):
            init_runtime(thread_count=0)


class TestLogging:
    def test_setup_logging_does_not_stack_handlers(self):
        from pathtracer.logging_config import setup_logging

        logger = setup_logging("pathtracer.test_logging", level="debug")
        setup_logging("pathtracer.test_logging", level="WARNING")
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert logger.handlers[0].level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        from pathtracer.logging_config import setup_logging

        logger = setup_logging("pathtracer.test_logging_fallback", level="chatty")
        assert logger.level == logging.INFO


class TestErrors:
    @pytest.mark.parametrize("error", [InvalidScene, TextureLoadError, ConfigurationError])
    def test_hierarchy(self, error):
        assert issubclass(error, RenderError)
        with pytest.raises(RenderError):
            raise error("boom")

    def test_value_error_compatibility(self):
        assert issubclass(InvalidScene, ValueError)
        assert issubclass(ConfigurationError, ValueError)
        assert not issubclass(TextureLoadError, ValueError)
