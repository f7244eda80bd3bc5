"""Shared synthetic-content helpers for the test suite."""

from __future__ import annotations

import numpy as np
import pytest


def _make_document(height: int, width: int, seed: int = 0, channels: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)


def _scroll_views(document: np.ndarray, view_height: int, offsets) -> list:
    """Viewport snapshots of `document` whose top edge sits at each offset."""
    return [document[y : y + view_height].copy() for y in offsets]


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def make_document():
    return _make_document


@pytest.fixture
def scroll_views():
    return _scroll_views


@pytest.fixture
def fake_clock():
    return FakeClock()


def _make_smooth_page(height: int, width: int) -> np.ndarray:
    """Low-contrast, non-periodic page (chirp rows over a soft column ripple)."""
    y = np.arange(height, dtype=np.float64)[:, None]
    x = np.arange(width, dtype=np.float64)[None, :]
    page = 128.0 + 70.0 * np.sin(y ** 1.5 / 40.0) + 20.0 * np.cos(x / 9.0)
    return np.repeat(page[..., None], 3, axis=2).round().astype(np.uint8)


def _add_noise(image: np.ndarray, amplitude: int = 3, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    noise = rng.integers(-amplitude, amplitude + 1, size=image.shape)
    return np.clip(image.astype(np.int16) + noise, 0, 255).astype(np.uint8)


@pytest.fixture
def make_smooth_page():
    return _make_smooth_page


@pytest.fixture
def add_noise():
    return _add_noise
