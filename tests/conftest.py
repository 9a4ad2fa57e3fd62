from __future__ import annotations

import io
import os
import sys

import pytest
from PIL import Image

# Add repository root to sys.path for `import venue_imagegen.*` in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from venue_imagegen.settings import Settings  # noqa: E402

SUPABASE_URL = "https://proj.supabase.co"


def _png(width: int = 64, height: int = 48, color: tuple[int, int, int] = (200, 40, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def make_png():
    """Factory for solid-color PNG bytes of a given size."""
    return _png


@pytest.fixture
def png_bytes() -> bytes:
    return _png()


@pytest.fixture
def storage_settings() -> Settings:
    """Settings with storage and records configured and no provider keys."""
    return Settings(
        _env_file=None,
        supabase_url=SUPABASE_URL,
        supabase_service_role_key="service-key",
        openai_api_key=None,
        ai_gateway_api_key=None,
        bfl_api_key=None,
        fal_key=None,
    )


@pytest.fixture
def no_provider_credentials(monkeypatch):
    for var in ["OPENAI_API_KEY", "AI_GATEWAY_API_KEY", "BFL_API_KEY", "FAL_KEY"]:
        monkeypatch.delenv(var, raising=False)
    from venue_imagegen.settings import get_settings

    settings = get_settings()
    for attr in ["openai_api_key", "ai_gateway_api_key", "bfl_api_key", "fal_key"]:
        monkeypatch.setattr(settings, attr, None)
    return settings
