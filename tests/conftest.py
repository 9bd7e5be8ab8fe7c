import numpy as np
import pytest

from vision.templates import TemplateStore


@pytest.fixture
def noise_frame():
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(90, 120, 3), dtype=np.uint8)


@pytest.fixture
def store(noise_frame):
    s = TemplateStore()
    s.add("patch_a", noise_frame[20:35, 30:50].copy())
    s.add("patch_b", noise_frame[50:62, 70:95].copy())
    return s


@pytest.fixture
def red_square_frame():
    """Blue background with a 10x10 red square at x=12, y=7."""
    frame = np.zeros((40, 50, 3), dtype=np.uint8)
    frame[:, :] = (255, 0, 0)
    frame[7:17, 12:22] = (0, 0, 255)
    return frame
