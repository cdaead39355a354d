"""Pytest configuration and fixtures."""
import io
import os

import pytest
from PIL import Image

# Set test environment variables
os.environ["MEDIAFLOW_ENV"] = "test"
os.environ["MEDIAFLOW_GEMINI_API_KEY"] = "test-key"
os.environ["MEDIAFLOW_TRANSLOADIT_KEY"] = "test-transloadit-key"
os.environ["MEDIAFLOW_TRANSLOADIT_SECRET"] = "test-transloadit-secret"
os.environ["MEDIAFLOW_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MEDIAFLOW_READ_RETRY_DELAY_S"] = "0"


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reload settings around every test so monkeypatched env vars apply."""
    from mediaflow.config import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings():
    from mediaflow.config import get_settings

    return get_settings()


@pytest.fixture
def db_settings(tmp_path, monkeypatch):
    """Settings pointing at a temporary SQLite file."""
    from mediaflow.config import get_settings, reset_settings

    monkeypatch.setenv("MEDIAFLOW_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    reset_settings()
    return get_settings()


@pytest.fixture
def store():
    """Empty graph store."""
    from mediaflow.graph import GraphStore

    return GraphStore()


def make_png(width: int = 100, height: int = 50, color=(255, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_factory():
    """Build PNG bytes of a given size."""
    return make_png


@pytest.fixture
def png_data_url():
    """A 100x50 red PNG as a data URL."""
    from mediaflow.media import to_data_url

    return to_data_url(make_png(), "image/png")


@pytest.fixture
def sample_workflow_payload():
    """Editor payload with runtime fields and a large inline preview."""
    return {
        "name": "Product shots",
        "nodes": [
            {
                "id": "img-1",
                "type": "image",
                "position": {"x": 0, "y": 0},
                "data": {
                    "imageUrl": "https://cdn.example.com/shoe.png",
                    "imageBase64": "A" * 5000,
                    "fileName": "shoe.png",
                    "isLoading": False,
                    "output": "https://cdn.example.com/shoe.png",
                },
            },
            {
                "id": "crop-1",
                "type": "crop",
                "position": {"x": 200, "y": 0},
                "data": {
                    "x_percent": 10,
                    "y_percent": 10,
                    "width_percent": 50,
                    "height_percent": 50,
                    "croppedImageUrl": "data:image/png;base64,AAAA",
                    "label": "Crop",
                },
            },
            {
                "id": "text-1",
                "type": "text",
                "position": {"x": 0, "y": 200},
                "data": {"text": "Describe the product"},
            },
        ],
        "edges": [
            {
                "id": "e1",
                "source": "img-1",
                "sourceHandle": "output",
                "target": "crop-1",
                "targetHandle": "image_url",
                "animated": True,
            }
        ],
    }


@pytest.fixture
def sample_gemini_response():
    """Sample generateContent response."""
    return {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [{"text": "A red running shoe on a white background."}],
                },
                "finishReason": "STOP",
            }
        ],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 9},
    }
