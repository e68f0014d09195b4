"""Shared fixtures."""

import pytest

from opensoul.blobs import LocalBlobStorage
from opensoul.config import ClientConfig
from opensoul.registry import SoulRegistry, SoulStorage


@pytest.fixture
def storage(tmp_path):
    return SoulStorage(db_path=str(tmp_path / "souls.db"))


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStorage(tmp_path / "blobs")


@pytest.fixture
def registry(storage, blobs):
    return SoulRegistry(storage=storage, blobs=blobs)


@pytest.fixture
def alice(storage):
    user, _ = storage.create_user("alice")
    return user


@pytest.fixture
def bob(storage):
    user, _ = storage.create_user("bob")
    return user


@pytest.fixture
def client_config(tmp_path):
    """Client config rooted at a temp home with an OpenClaw workspace."""
    home = tmp_path / "home"
    config = ClientConfig.defaults(home)
    (home / ".openclaw" / "workspace").mkdir(parents=True)
    return config
