import numpy as np
import pytest
from PySide6.QtCore import QCoreApplication


@pytest.fixture(autouse=True)
def app_home(tmp_path, monkeypatch):
    """Keep preferences and logs out of the real home directory."""
    home = tmp_path / "cinegrade_home"
    monkeypatch.setenv("CINEGRADE_HOME", str(home))
    return home


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


def make_gradient(height: int = 48, width: int = 64) -> np.ndarray:
    """Opaque RGBA test card: red ramp across, green ramp down, constant blue."""
    img = np.ones((height, width, 4), dtype=np.float32)
    img[..., 0] = np.linspace(0.05, 0.95, width, dtype=np.float32)[None, :]
    img[..., 1] = np.linspace(0.1, 0.9, height, dtype=np.float32)[:, None]
    img[..., 2] = 0.35
    return img


def make_flat(height: int, width: int, value: float = 0.5) -> np.ndarray:
    img = np.full((height, width, 4), value, dtype=np.float32)
    img[..., 3] = 1.0
    return img


@pytest.fixture
def gradient():
    return make_gradient()
