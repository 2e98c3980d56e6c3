from __future__ import annotations

import pytest

from blobline.events import EventCollector
from blobline.storage import BlobStore
from tests.helpers import find_free_block


@pytest.fixture
def free_ports():
    return find_free_block


@pytest.fixture
def store(tmp_path) -> BlobStore:
    s = BlobStore(tmp_path / 'server_files')
    s.ensure_root()
    return s


@pytest.fixture
def events() -> EventCollector:
    return EventCollector()
