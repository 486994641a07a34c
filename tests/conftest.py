import os
import tempfile

import pytest

os.environ.setdefault("FINANCE_DATA_DIR", tempfile.mkdtemp(prefix="finance-tests-"))
os.environ["FINANCE_BCRYPT_ROUNDS"] = "4"

from database import build_engine  # noqa: E402
from store import JsonFileUserStore, SqlUserStore  # noqa: E402


@pytest.fixture(params=["file", "sql"])
def store(request, tmp_path):
    if request.param == "file":
        return JsonFileUserStore(tmp_path / "users.json")
    return SqlUserStore(build_engine(f"sqlite:///{tmp_path / 'finance.db'}"))


@pytest.fixture
def client(tmp_path):
    from fastapi.testclient import TestClient

    from main import app, get_store

    file_store = JsonFileUserStore(tmp_path / "users.json")
    app.dependency_overrides[get_store] = lambda: file_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
