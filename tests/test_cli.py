from __future__ import annotations

import asyncio
import json
import threading
import time

import pytest
from click.testing import CliRunner

from blobline.cli import _handle_input, cli, console, read_prompt
from blobline.events import EventCollector, EventKind
from blobline.transfer.client import FileClient
from blobline.transfer.locator import locate_listen
from blobline.transfer.server import serve_once
from tests.helpers import HOST, occupy, wait_for_events


@pytest.fixture
def runner(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def test_read_prompt_returns_line(monkeypatch):
    monkeypatch.setattr(console, 'input', lambda prompt: f"{prompt}retrieve a.txt")
    assert asyncio.run(read_prompt("> ")) == "> retrieve a.txt"


def test_read_prompt_raises_eof(monkeypatch):
    def closed(prompt):
        raise EOFError

    monkeypatch.setattr(console, 'input', closed)
    with pytest.raises(EOFError):
        asyncio.run(read_prompt("> "))


def test_read_prompt_thread_does_not_block_exit(monkeypatch):
    release = threading.Event()

    def blocked(prompt):
        release.wait(5)
        return "late"

    monkeypatch.setattr(console, 'input', blocked)

    async def run():
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(read_prompt("> "), 0.05)

    started = time.monotonic()
    asyncio.run(run())
    elapsed = time.monotonic() - started
    waiting = [t for t in threading.enumerate() if t.name == "blobline-prompt"]
    release.set()

    assert elapsed < 2
    assert waiting and all(t.daemon for t in waiting)


def test_config_example(runner):
    result = runner.invoke(cli, ['config', '--example'])
    assert result.exit_code == 0
    assert '"port_low": 23525' in result.output


def test_config_shows_overrides(runner):
    result = runner.invoke(cli, ['--port-low', '30000', '--port-high', '30004', 'config'],
                           env={'BLOBLINE_HOST': '127.0.0.1'})
    assert result.exit_code == 0
    assert '30000' in result.output
    assert '127.0.0.1' in result.output


def test_config_save(runner, tmp_path):
    path = tmp_path / 'out.json'
    result = runner.invoke(cli, ['--port-low', '30000', 'config', '--save', str(path)])
    assert result.exit_code == 0
    assert json.loads(path.read_text())['port_low'] == 30000


def test_bad_range_is_usage_error(runner):
    result = runner.invoke(cli, ['--port-low', '10', '--port-high', '5', 'config'])
    assert result.exit_code == 2


def test_server_all_ports_busy(runner, free_ports, tmp_path):
    ports = free_ports(1)
    blocker = occupy(ports.low)
    try:
        result = runner.invoke(cli, [
            '--host', HOST,
            '--port-low', str(ports.low), '--port-high', str(ports.high),
            'server', '--storage-dir', str(tmp_path / 'files'),
        ])
    finally:
        blocker.close()

    assert result.exit_code == 1
    assert 'No available ports' in result.output
    assert (tmp_path / 'files').is_dir()


def test_client_without_server(runner, free_ports):
    ports = free_ports(1)
    result = runner.invoke(cli, [
        '--host', HOST,
        '--port-low', str(ports.low), '--port-high', str(ports.high),
        'client',
    ])
    assert result.exit_code == 1
    assert 'Unable to connect' in result.output


def test_put_uploads_local_file(store, free_ports, tmp_path):
    local = tmp_path / 'local.txt'
    local.write_text("first line\nsecond line\n")
    ports = free_ports(1)
    events = EventCollector()

    async def run():
        endpoint = await locate_listen(ports, host=HOST)
        server_task = asyncio.create_task(serve_once(endpoint, store))
        client = FileClient(post=events, host=HOST)
        await client.connect(ports)
        assert await _handle_input(client, f"put notes.txt {local}") is True
        await wait_for_events(events, EventKind.SERVER_LINE)
        assert await _handle_input(client, "quit") is False
        await client.close()
        await asyncio.wait_for(server_task, 5)

    asyncio.run(run())
    assert events.of_kind(EventKind.COMMAND_SENT)[0].data['line'] == \
        "UPLOAD notes.txt first line\\nsecond line"
    assert (store.root / 'notes.txt').read_text() == "first line\nsecond line"
