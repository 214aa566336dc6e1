"""Pytest configuration for path tracer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import pytest

# Worker pool size for the whole session
TEST_THREADS = 4


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Field-declaring modules are imported inside tests, after this runs.
    """
    from pathtracer.runtime import init_runtime

    init_runtime(thread_count=TEST_THREADS, seed=42)
    yield


@pytest.fixture(autouse=True)
def clear_all_scene_data():
    """Clear every field-backed registry before and after each test."""
    from pathtracer.core.integrator import reset_sanitized_count
    from pathtracer.scene.manager import reset_scene_storage

    def _clear_all():
        reset_scene_storage()
        reset_sanitized_count()

    _clear_all()
    yield
    _clear_all()


@pytest.fixture
def fresh_scene():
    """Create a fresh SceneManager for each test."""
    from pathtracer.scene.manager import SceneManager

    scene = SceneManager()
    yield scene
    scene.clear()
