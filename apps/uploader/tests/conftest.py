from collections.abc import Iterator
from pathlib import Path

import pytest

from fakes import TOWER_TREE, FakeSalesforceClient, register_tower_hierarchy, write_tree
from uploader.config import get_settings


@pytest.fixture(autouse=True)
def reset_uploader_caches(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setattr("uploader.config.load_dotenv", lambda: False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def salesforce() -> FakeSalesforceClient:
    client = FakeSalesforceClient()
    register_tower_hierarchy(client)
    return client


@pytest.fixture
def tower_dir(tmp_path: Path) -> Path:
    return write_tree(tmp_path / "documents", TOWER_TREE)
