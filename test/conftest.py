import io
import threading

import pytest
from PIL import Image

from configuration_store import ConfigurationStore
from models import ArtworkResult


def make_jpeg(width: int = 64, height: int = 36, color=(120, 80, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, "JPEG")
    return buffer.getvalue()


def make_artwork(artwork_id: str = "abc123", title: str = "Water Lilies", medium: str = "Oil on canvas",
                 provider: str = "Art Institute of Chicago") -> ArtworkResult:
    return ArtworkResult(
        id=artwork_id,
        title=title,
        artist="Claude Monet",
        date="1906",
        medium=medium,
        image_url=f"https://example.org/{artwork_id}.jpg",
        provider_name=provider,
    )


class FakeClock:
    def __init__(self, start):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            return self.now

    def advance(self, delta) -> None:
        with self._lock:
            self.now = self.now + delta


@pytest.fixture
def store(tmp_path):
    return ConfigurationStore(str(tmp_path / "config.json"))
