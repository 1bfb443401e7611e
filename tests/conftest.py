"""Pytest configuration and fixtures."""

import os
from pathlib import Path

import pytest
from PIL import Image

from tests.helpers import make_noise_image

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Run every test in an isolated directory without qic.yaml or QIC_ env vars."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("QIC_"):
            monkeypatch.delenv(key, raising=False)
    from qic.config.settings import get_settings

    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def noise_png(tmp_path) -> Path:
    """A 600x600 noisy RGB PNG (well over 500 KB)."""
    path = tmp_path / "noise.png"
    make_noise_image(600, 600).save(path, format="PNG")
    return path


@pytest.fixture
def noise_jpeg(tmp_path) -> Path:
    """A 900x900 noisy JPEG saved at high quality."""
    path = tmp_path / "noise.jpg"
    make_noise_image(900, 900, seed=2).save(path, format="JPEG", quality=95)
    return path


@pytest.fixture
def small_png(tmp_path) -> Path:
    """A tiny flat-color PNG that is already under any realistic budget."""
    path = tmp_path / "small.png"
    Image.new("RGB", (16, 16), (10, 20, 30)).save(path, format="PNG")
    return path
