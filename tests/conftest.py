"""Pytest bootstrap helpers shared by all test domains."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest


def _append_repo_root() -> None:
    """Ensure repository root is present in import path."""
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_text = str(repo_root)
    if repo_root_text in sys.path:
        return
    sys.path.insert(0, repo_root_text)


_append_repo_root()


@pytest.fixture
def checkerboard_pixels() -> np.ndarray:
    """640x480 RGB checkerboard with 8px squares."""
    yy, xx = np.mgrid[0:480, 0:640]
    board = (((yy // 8) + (xx // 8)) % 2 * 255).astype(np.uint8)
    return np.stack([board, board, board], axis=2)


@pytest.fixture
def field_pixels() -> np.ndarray:
    """512x384 green field with a bright square plot in the middle."""
    pixels = np.empty((384, 512, 3), dtype=np.uint8)
    pixels[:, :] = (40, 160, 40)
    pixels[96:288, 128:384] = (230, 230, 230)
    return pixels
