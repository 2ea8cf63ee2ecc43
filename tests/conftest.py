import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.append(str(SRC))

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("MAX_REQUEST_SIZE", "4096")
os.environ.setdefault("ACCOUNTS_FILE", str(ROOT / "tests" / "missing-accounts.json"))
os.environ.setdefault("SYSTEM_INSTRUCTION", "You are a helpful assistant.")

from antigravity_gateway import settings as settings_module

settings_module.get_settings.cache_clear()

from antigravity_gateway.main import app
from antigravity_gateway.settings import Settings


@pytest.fixture()
def client():
    return TestClient(app)


@pytest.fixture()
def auth_headers():
    return {"Authorization": "Bearer test-api-key"}


@pytest.fixture()
def settings():
    return Settings(
        API_URL="https://upstream.test/v1internal:streamGenerateContent?alt=sse",
        MODELS_URL="https://upstream.test/v1internal:fetchAvailableModels",
        API_HOST="upstream.test",
        SYSTEM_INSTRUCTION="be brief",
        DEFAULT_TEMPERATURE=0.7,
        DEFAULT_TOP_P=0.9,
        DEFAULT_TOP_K=40,
        DEFAULT_MAX_TOKENS=2048,
    )
