import itertools

import pytest
from fastapi.testclient import TestClient

from formcraft.app import create_app
from formcraft.config import Settings
from formcraft.repo_json import JSONStorage
from formcraft.repo_sqlite import SQLiteStorage


@pytest.fixture()
def id_factory():
    """Deterministic ids: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture()
def document():
    """Two sections, A with two text fields and B with a heading."""
    return [
        {
            "id": "A",
            "title": "About you",
            "description": "",
            "showTitle": True,
            "elements": [
                {
                    "id": "name",
                    "type": "TextField",
                    "extraAttributes": {
                        "label": "Name",
                        "helperText": "",
                        "required": True,
                        "placeholder": "",
                    },
                },
                {
                    "id": "nickname",
                    "type": "TextField",
                    "extraAttributes": {
                        "label": "Nickname",
                        "helperText": "",
                        "required": False,
                        "placeholder": "",
                    },
                },
            ],
        },
        {
            "id": "B",
            "title": "Contact",
            "description": "",
            "showTitle": False,
            "elements": [
                {
                    "id": "intro",
                    "type": "Heading",
                    "extraAttributes": {"title": "Contact", "subtitle": "", "level": "h2", "align": "left"},
                },
            ],
        },
    ]


@pytest.fixture(params=["sqlite", "json"])
def storage(request, tmp_path):
    if request.param == "json":
        backend = JSONStorage(tmp_path / "store.json")
    else:
        backend = SQLiteStorage(tmp_path / "app.db")
    yield backend
    backend.dispose()


@pytest.fixture()
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(tmp_path / "data" / "app.db"))
    monkeypatch.setenv("AUTH_MODE", "none")
    return Settings()


@pytest.fixture()
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
