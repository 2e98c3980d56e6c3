from __future__ import annotations

import asyncio

import pytest

from blobline.errors import StoreReadError, StoreWriteError
from blobline.storage import BlobStore


def test_ensure_root_creates_once(tmp_path):
    store = BlobStore(tmp_path / 'server_files')
    assert store.ensure_root() is True
    assert (tmp_path / 'server_files').is_dir()
    assert store.ensure_root() is False


def test_write_then_read(store):
    async def run():
        await store.write('hello.txt', b'world')
        return await store.read('hello.txt')

    assert asyncio.run(run()) == b'world'
    assert (store.root / 'hello.txt').read_bytes() == b'world'


def test_write_overwrites(store):
    async def run():
        await store.write('a.txt', b'first version')
        await store.write('a.txt', b'second')
        return await store.read('a.txt')

    assert asyncio.run(run()) == b'second'


def test_read_missing_returns_none(store):
    assert asyncio.run(store.read('absent.txt')) is None


def test_read_existing_file_from_disk(store):
    (store.root / 'seed.txt').write_bytes(b'seeded')
    assert asyncio.run(store.read('seed.txt')) == b'seeded'


def test_read_directory_fails(store):
    (store.root / 'subdir').mkdir()
    with pytest.raises(StoreReadError) as exc:
        asyncio.run(store.read('subdir'))
    assert exc.value.name == 'subdir'


def test_write_into_missing_directory_fails(store):
    with pytest.raises(StoreWriteError):
        asyncio.run(store.write('no/such/dir.txt', b'x'))


def test_write_null_byte_name_fails(store):
    with pytest.raises(StoreWriteError) as exc:
        asyncio.run(store.write('bad\x00name.txt', b'x'))
    assert exc.value.name == 'bad\x00name.txt'
    assert 'null' in exc.value.reason


def test_read_null_byte_name_is_missing(store):
    assert asyncio.run(store.read('bad\x00name.txt')) is None


def test_exists(store):
    async def run():
        before = await store.exists('a.txt')
        await store.write('a.txt', b'')
        return before, await store.exists('a.txt')

    assert asyncio.run(run()) == (False, True)


def test_list_and_stats(store):
    async def run():
        await store.write('b.txt', b'12345')
        await store.write('a.txt', b'123')

    asyncio.run(run())
    assert store.list_blobs() == ['a.txt', 'b.txt']
    stats = store.get_stats()
    assert stats.blob_count == 2
    assert stats.total_bytes == 8


def test_list_without_root(tmp_path):
    assert BlobStore(tmp_path / 'nope').list_blobs() == []
