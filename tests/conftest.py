"""Shared test fixtures."""

import numpy as np
import pytest
from PIL import Image


def uniform_lab_image(height, width, lab=(50.0, 10.0, -20.0)):
    image = np.empty((height, width, 3), dtype=np.float32)
    image[...] = lab
    return image


def random_rgb_image(height, width, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


@pytest.fixture
def uniform_lab():
    return uniform_lab_image(100, 100)


@pytest.fixture
def uniform_rgb():
    image = np.empty((100, 100, 3), dtype=np.uint8)
    image[...] = (200, 120, 40)
    return image


@pytest.fixture
def noisy_lab():
    rng = np.random.default_rng(7)
    image = np.empty((60, 80, 3), dtype=np.float32)
    image[..., 0] = rng.uniform(0, 100, size=(60, 80))
    image[..., 1:] = rng.uniform(-60, 60, size=(60, 80, 2))
    return image


@pytest.fixture
def rgb_file(tmp_path):
    path = tmp_path / "input.png"
    Image.fromarray(random_rgb_image(30, 40)).save(path)
    return path
