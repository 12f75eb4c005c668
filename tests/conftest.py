from __future__ import annotations

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from filebrowser.config import RuntimeConfig, Settings
from filebrowser.main import create_app
from filebrowser.services.paths import PathResolver


def make_symlink(target: Path, link: Path) -> None:
    try:
        os.symlink(target, link)
    except (OSError, NotImplementedError):
        pytest.skip('symlinks are not supported here')


@pytest.fixture
def symlink():
    return make_symlink


@pytest.fixture
def root(tmp_path: Path) -> Path:
    path = tmp_path / 'root'
    path.mkdir()
    return Path(os.path.realpath(path))


@pytest.fixture
def outside(tmp_path: Path) -> Path:
    path = tmp_path / 'outside'
    path.mkdir()
    (path / 'secret.txt').write_text('top-secret')
    return Path(os.path.realpath(path))


@pytest.fixture
def config(root: Path) -> RuntimeConfig:
    return RuntimeConfig(str(root))


@pytest.fixture
def resolver(config: RuntimeConfig) -> PathResolver:
    return PathResolver(config)


@pytest.fixture
def make_client(root: Path):
    def _factory(**overrides) -> TestClient:
        settings = Settings(root=str(root), **overrides)
        return TestClient(create_app(settings), raise_server_exceptions=False)

    return _factory


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
