import logging
import random
from pathlib import Path

import pytest
from PIL import Image

from collage_photos import Photo


@pytest.fixture
def rng():
    """Seeded random source so layouts and tie-breaks are repeatable."""
    return random.Random(1234)


@pytest.fixture
def make_photo():
    """Factory for in-memory photo records (no file behind them)."""
    counter = {"n": 0}

    def _create(width=400, height=300, importance=0, hue=None, name=None):
        counter["n"] += 1
        return Photo(
            path=Path(name or f"photo_{counter['n']:03d}.jpg"),
            width=width,
            height=height,
            importance=importance,
            hue=hue,
        )

    return _create


@pytest.fixture
def photo_dir(tmp_path: Path):
    """Folder with a handful of small solid-colour images of mixed shapes."""
    folder = tmp_path / "photos"
    folder.mkdir()
    specs = [
        ("a_imp3.jpg", (240, 160), (200, 30, 30)),
        ("b.jpg", (160, 240), (30, 200, 30)),
        ("c.png", (200, 200), (30, 30, 200)),
        ("d_imp1.jpg", (300, 150), (200, 200, 30)),
        ("e.jpg", (150, 300), (30, 200, 200)),
    ]
    for name, size, color in specs:
        Image.new("RGB", size, color=color).save(folder / name)
    return folder


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo ``setup_logging`` calls made by a test."""
    root = logging.getLogger()
    pil = logging.getLogger("PIL")
    handlers, level, pil_level = root.handlers[:], root.level, pil.level
    yield
    pil.setLevel(pil_level)
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
