"""
Shared pytest fixtures
"""
import pytest
from fastapi.testclient import TestClient

import config


@pytest.fixture
def uploads_dir(tmp_path, monkeypatch):
    """Point the upload storage at a per-test directory"""
    monkeypatch.setattr(config, "UPLOADS_DIR", tmp_path)
    monkeypatch.setattr(config, "RETAIN_UNRECOGNIZED_IMAGES", False)
    return tmp_path


@pytest.fixture
def app(uploads_dir):
    from main import create_app
    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
